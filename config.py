import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        seed_defaults: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.seed_defaults = seed_defaults


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    session_secret = os.getenv(
        "FINANCE_SESSION_SECRET",
        "3f9c1d7be25a48e0a6b8c4d2f17e90a5c3b6d8e1f4a7092b5c8d1e3f6a9b0c2d",
    )
    session_max_age_hours = int(os.getenv("FINANCE_SESSION_MAX_AGE_HOURS", "24"))
    seed_defaults = _env_flag("FINANCE_SEED_DEFAULTS", "true")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        seed_defaults=seed_defaults,
    )
