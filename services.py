from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, date
from decimal import Decimal
from typing import Optional

import bcrypt
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from errors import (
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from models import (
    Category,
    CustomCategory,
    DefaultCategory,
    SavingsGoal,
    Transaction,
    TransactionType,
    User,
)
from money import ZERO, from_cents, percentage_of, to_cents
from periods import Period, local_today, month_period, resolve_range, year_period
from schemas import (
    CategoryIn,
    GoalIn,
    GoalUpdateIn,
    RegisterIn,
    TransactionIn,
    TransactionUpdateIn,
)


logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES: tuple[tuple[str, TransactionType], ...] = (
    ("Salary", TransactionType.income),
    ("Food", TransactionType.expense),
    ("Rent", TransactionType.expense),
    ("Transportation", TransactionType.expense),
    ("Entertainment", TransactionType.expense),
    ("Healthcare", TransactionType.expense),
    ("Utilities", TransactionType.expense),
)


def seed_default_categories(session: Session) -> int:
    existing = session.scalar(
        select(func.count(Category.id)).where(Category.user_id.is_(None))
    )
    if existing:
        logger.info("Default categories already exist. Skipping seeding.")
        return 0

    for name, txn_type in DEFAULT_CATEGORIES:
        session.add(Category(name=name, type=txn_type, user_id=None))
    session.commit()
    logger.info(f"Seeded {len(DEFAULT_CATEGORIES)} default categories")
    return len(DEFAULT_CATEGORIES)


def sum_amount_cents(
    session: Session,
    user_id: int,
    txn_type: TransactionType,
    start: date,
) -> int:
    stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
        Transaction.user_id == user_id,
        Transaction.type == txn_type,
        Transaction.date >= start,
    )
    return int(session.execute(stmt).scalar_one() or 0)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        username = data.username.strip()
        existing = self.session.scalar(select(User).where(User.username == username))
        if existing:
            raise DuplicateError("User", "username", username)

        password_hash = bcrypt.hashpw(
            data.password.encode("utf-8"), bcrypt.gensalt()
        ).decode("utf-8")
        user = User(
            username=username,
            password_hash=password_hash,
            full_name=data.full_name,
            phone_number=data.phone_number,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: id={user.id}")
        return user

    def authenticate(self, username: str, password: str) -> User:
        user = self.session.scalar(
            select(User).where(User.username == username.strip())
        )
        if not user or not bcrypt.checkpw(
            password.encode("utf-8"), user.password_hash.encode("utf-8")
        ):
            raise UnauthenticatedError("Invalid username or password")
        return user

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User", "id", user_id)
        return user


class CategoryService:
    """Default and custom categories as seen by one user.

    A category without an owner is a default: visible to everybody, its name
    reserved globally, never deletable. Everything else is a custom category
    visible to its owner only.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _visible_to(self, user_id: int):
        return or_(Category.user_id == user_id, Category.user_id.is_(None))

    def list_visible(self, user_id: int) -> list[Category]:
        stmt = select(Category).where(self._visible_to(user_id)).order_by(Category.id)
        return list(self.session.scalars(stmt).all())

    def resolve_by_name(self, name: str, user_id: int) -> Category:
        # Exact, case-sensitive match. Should a stale duplicate exist, the
        # user's own category wins over the default.
        stmt = (
            select(Category)
            .where(Category.name == name, self._visible_to(user_id))
            .order_by(Category.user_id.is_(None), Category.id)
            .limit(1)
        )
        category = self.session.scalar(stmt)
        if not category:
            raise NotFoundError("Category", "name", name)
        return category

    def create(self, data: CategoryIn, user: User) -> Category:
        name = data.name
        own = self.session.scalar(
            select(Category.id).where(Category.name == name, Category.user_id == user.id)
        )
        if own:
            raise DuplicateError("Category", "name", name)

        reserved = self.session.scalar(
            select(Category.id).where(Category.name == name, Category.user_id.is_(None))
        )
        if reserved:
            raise DuplicateError(
                "Category", "name", f"{name} (conflicts with default category)"
            )

        category = Category(name=name, type=data.type, user_id=user.id)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} user={user.id}")
        return category

    def delete(self, name: str, user: User) -> None:
        category = self.resolve_by_name(name, user.id)

        kind = category.kind
        if isinstance(kind, DefaultCategory):
            raise ForbiddenError(f"Cannot delete default category: {name}")
        if isinstance(kind, CustomCategory) and kind.owner_id != user.id:
            raise ForbiddenError.for_entity("Category", category.id)

        in_use = self.session.scalar(
            select(Transaction.id).where(Transaction.category_id == category.id).limit(1)
        )
        if in_use is not None:
            raise ValidationError(
                f"Cannot delete category '{name}' because it is used in transactions"
            )

        category_id = category.id
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id} user={user.id}")


@dataclass
class TransactionFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[int] = None


class TransactionService:
    def __init__(
        self, session: Session, categories: Optional[CategoryService] = None
    ) -> None:
        self.session = session
        self.categories = categories or CategoryService(session)

    def create(self, data: TransactionIn, user: User) -> Transaction:
        if data.date > local_today():
            raise ValidationError("Transaction date cannot be in the future")

        category = self.categories.resolve_by_name(data.category, user.id)
        txn = Transaction(
            user_id=user.id,
            date=data.date,
            amount_cents=to_cents(data.amount),
            description=data.description,
        )
        txn.assign_category(category)
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_created: id={txn.id} user={user.id}")
        return txn

    def list(
        self, user_id: int, filters: Optional[TransactionFilters] = None
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        period = resolve_range(filters.start_date, filters.end_date)
        if period is not None:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if filters.category_id is not None:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int, user: User) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise NotFoundError("Transaction", "id", transaction_id)
        if txn.user_id != user.id:
            raise ForbiddenError.for_entity("Transaction", transaction_id)
        return txn

    def update(
        self, transaction_id: int, data: TransactionUpdateIn, user: User
    ) -> Transaction:
        txn = self.get(transaction_id, user)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if "category" in changes:
            txn.assign_category(
                self.categories.resolve_by_name(changes["category"], user.id)
            )
        if "amount" in changes:
            txn.amount_cents = to_cents(changes["amount"])
        if "description" in changes:
            txn.description = changes["description"]

        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_updated: id={txn.id} fields={sorted(changes)}")
        return txn

    def delete(self, transaction_id: int, user: User) -> None:
        txn = self.get(transaction_id, user)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id} user={user.id}")


@dataclass(frozen=True)
class CategoryReport:
    year: int
    month: Optional[int]
    total_income: dict[str, Decimal]
    total_expenses: dict[str, Decimal]
    net_savings: Decimal


class ReportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def monthly_report(self, user_id: int, year: int, month: int) -> CategoryReport:
        if month < 1 or month > 12:
            raise ValidationError(f"Invalid month: {month}")
        if not MINYEAR <= year <= MAXYEAR:
            return self._empty(year, month)
        return self._report(user_id, month_period(year, month), year, month)

    def yearly_report(self, user_id: int, year: int) -> CategoryReport:
        if not MINYEAR <= year <= MAXYEAR:
            return self._empty(year, None)
        return self._report(user_id, year_period(year), year, None)

    def _empty(self, year: int, month: Optional[int]) -> CategoryReport:
        # No transaction can be dated in a year the calendar cannot represent.
        return CategoryReport(
            year=year, month=month, total_income={}, total_expenses={}, net_savings=ZERO
        )

    def _report(
        self, user_id: int, period: Period, year: int, month: Optional[int]
    ) -> CategoryReport:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == user_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        income_cents: dict[str, int] = {}
        expense_cents: dict[str, int] = {}
        for txn in self.session.scalars(stmt):
            bucket = income_cents if txn.type == TransactionType.income else expense_cents
            name = txn.category.name
            bucket[name] = bucket.get(name, 0) + txn.amount_cents

        net = sum(income_cents.values()) - sum(expense_cents.values())
        return CategoryReport(
            year=year,
            month=month,
            total_income={k: from_cents(v) for k, v in income_cents.items()},
            total_expenses={k: from_cents(v) for k, v in expense_cents.items()},
            net_savings=from_cents(net),
        )


@dataclass(frozen=True)
class GoalProgress:
    goal: SavingsGoal
    current_progress: Decimal
    progress_percentage: float
    remaining_amount: Decimal


class SavingsGoalService:
    """Savings goals with progress derived from the owner's ledger.

    Progress is never stored. Every read sums the owner's income and expenses
    dated on or after the goal's start date, so it cannot drift from the
    transactions themselves.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, data: GoalIn, user: User) -> GoalProgress:
        today = local_today()
        if data.target_date <= today:
            raise ValidationError("Target date must be in the future")

        goal = SavingsGoal(
            user_id=user.id,
            name=data.name,
            target_amount_cents=to_cents(data.target_amount),
            target_date=data.target_date,
            start_date=data.start_date or today,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        logger.info(f"goal_created: id={goal.id} user={user.id}")
        return self.progress(goal)

    def list(self, user: User) -> list[GoalProgress]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == user.id)
            .order_by(SavingsGoal.id)
        )
        return [self.progress(goal) for goal in self.session.scalars(stmt).all()]

    def get(self, goal_id: int, user: User) -> GoalProgress:
        return self.progress(self._owned(goal_id, user))

    def update(self, goal_id: int, data: GoalUpdateIn, user: User) -> GoalProgress:
        goal = self._owned(goal_id, user)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if "target_date" in changes and changes["target_date"] <= local_today():
            raise ValidationError("Target date must be in the future")
        if "target_amount" in changes:
            goal.target_amount_cents = to_cents(changes["target_amount"])
        if "target_date" in changes:
            goal.target_date = changes["target_date"]

        self.session.commit()
        self.session.refresh(goal)
        logger.info(f"goal_updated: id={goal.id} fields={sorted(changes)}")
        return self.progress(goal)

    def delete(self, goal_id: int, user: User) -> None:
        goal = self._owned(goal_id, user)
        self.session.delete(goal)
        self.session.commit()
        logger.info(f"goal_deleted: id={goal_id} user={user.id}")

    def net_savings_since(self, user_id: int, start: date) -> Decimal:
        income = sum_amount_cents(self.session, user_id, TransactionType.income, start)
        expenses = sum_amount_cents(
            self.session, user_id, TransactionType.expense, start
        )
        return from_cents(income - expenses)

    def progress(self, goal: SavingsGoal) -> GoalProgress:
        net_savings = self.net_savings_since(goal.user_id, goal.start_date)
        current = max(net_savings, ZERO)
        target = goal.target_amount
        return GoalProgress(
            goal=goal,
            current_progress=current,
            progress_percentage=percentage_of(current, target),
            remaining_amount=max(target - current, ZERO),
        )

    def _owned(self, goal_id: int, user: User) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal:
            raise NotFoundError("Goal", "id", goal_id)
        if goal.user_id != user.id:
            raise ForbiddenError.for_entity("Goal", goal_id)
        return goal
