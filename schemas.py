from datetime import date
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer

from models import TransactionType

PositiveAmount = Annotated[Decimal, Field(gt=0, max_digits=17, decimal_places=2)]

# Exact in Python, a plain number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

# bcrypt refuses passwords longer than 72 bytes.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


Password = Annotated[str, AfterValidator(_check_password_bytes)]


class RegisterIn(BaseModel):
    username: str = Field(
        ..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
    )
    password: Password = Field(..., min_length=8, max_length=72)
    full_name: Optional[str] = Field(default=None, max_length=120)
    phone_number: Optional[str] = Field(default=None, max_length=32)


class LoginIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: Password = Field(..., min_length=1, max_length=72)


class RegisterOut(BaseModel):
    message: str
    user_id: int


class MessageOut(BaseModel):
    message: str


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType


class CategoryOut(BaseModel):
    name: str
    type: TransactionType
    is_custom: bool


class CategoryListOut(BaseModel):
    categories: list[CategoryOut]


class TransactionIn(BaseModel):
    amount: PositiveAmount
    date: date
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionUpdateIn(BaseModel):
    # Unknown keys (including "date") are dropped: the date never changes.
    model_config = ConfigDict(extra="ignore")

    amount: Optional[PositiveAmount] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionOut(BaseModel):
    id: int
    amount: Money
    date: date
    category: str
    description: Optional[str]
    type: TransactionType


class TransactionListOut(BaseModel):
    transactions: list[TransactionOut]


class MonthlyReportOut(BaseModel):
    year: int
    month: int
    total_income: dict[str, Money]
    total_expenses: dict[str, Money]
    net_savings: Money


class YearlyReportOut(BaseModel):
    year: int
    total_income: dict[str, Money]
    total_expenses: dict[str, Money]
    net_savings: Money


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount: PositiveAmount
    target_date: date
    start_date: Optional[date] = None


class GoalUpdateIn(BaseModel):
    target_amount: Optional[PositiveAmount] = None
    target_date: Optional[date] = None


class GoalOut(BaseModel):
    id: int
    name: str
    target_amount: Money
    target_date: date
    start_date: date
    current_progress: Money
    progress_percentage: float
    remaining_amount: Money


class GoalListOut(BaseModel):
    goals: list[GoalOut]
