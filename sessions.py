from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

SESSION_COOKIE = "finance_session"


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="finance-session")


def issue_session_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def read_session_token(token: str) -> Optional[int]:
    """Return the user id carried by a valid, unexpired token."""
    max_age = get_settings().session_max_age_hours * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id
