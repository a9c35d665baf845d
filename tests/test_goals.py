from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import ForbiddenError, NotFoundError, ValidationError
from models import SavingsGoal, User
from periods import local_today
from schemas import GoalIn, GoalUpdateIn, TransactionIn
from services import SavingsGoalService, TransactionService, seed_default_categories


def _user(session: Session, username: str) -> User:
    user = User(username=username, password_hash="x")
    session.add(user)
    session.commit()
    return user


def _add(session: Session, user: User, amount: str, days_ago: int, category: str):
    TransactionService(session).create(
        TransactionIn(
            amount=Decimal(amount),
            date=local_today() - timedelta(days=days_ago),
            category=category,
        ),
        user,
    )


def _goal(target: str, start_days_ago=None) -> GoalIn:
    today = local_today()
    return GoalIn(
        name="Emergency fund",
        target_amount=Decimal(target),
        target_date=today + timedelta(days=365),
        start_date=today - timedelta(days=start_days_ago)
        if start_days_ago is not None
        else None,
    )


def test_progress_from_income_minus_expenses_since_start() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice@example.com")
        _add(session, alice, "8000.00", 30, "Salary")
        _add(session, alice, "1500.00", 20, "Rent")
        _add(session, alice, "500.00", 1, "Food")
        # before the start date
        _add(session, alice, "9999.00", 31, "Salary")

        view = SavingsGoalService(session).create(_goal("10000.00", 30), alice)

        assert view.current_progress == Decimal("6000.00")
        assert view.remaining_amount == Decimal("4000.00")
        assert view.progress_percentage == 60.0
        assert view.goal.start_date == local_today() - timedelta(days=30)


def test_progress_is_capped_at_target() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice@example.com")
        _add(session, alice, "15000.00", 5, "Salary")

        view = SavingsGoalService(session).create(_goal("10000.00", 10), alice)

        assert view.current_progress == Decimal("15000.00")
        assert view.progress_percentage == 100.0
        assert view.remaining_amount == Decimal("0.00")


def test_negative_savings_show_as_zero_progress() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice@example.com")
        _add(session, alice, "100.00", 2, "Salary")
        _add(session, alice, "400.00", 1, "Food")

        view = SavingsGoalService(session).create(_goal("1000.00", 10), alice)

        assert view.current_progress == Decimal("0.00")
        assert view.remaining_amount == Decimal("1000.00")
        assert view.progress_percentage == 0.0


def test_percentage_rounds_half_up_to_two_places() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice@example.com")
        _add(session, alice, "200.00", 1, "Salary")

        view = SavingsGoalService(session).create(_goal("300.00", 5), alice)

        assert view.progress_percentage == 66.67
        assert 0.0 <= view.progress_percentage <= 100.0


def test_start_date_defaults_to_today_and_ignores_older_transactions() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice@example.com")
        _add(session, alice, "500.00", 1, "Salary")

        view = SavingsGoalService(session).create(_goal("1000.00"), alice)
        assert view.goal.start_date == local_today()
        assert view.current_progress == Decimal("0.00")

        _add(session, alice, "250.00", 0, "Salary")
        again = SavingsGoalService(session).get(view.goal.id, alice)
        assert again.current_progress == Decimal("250.00")
        assert again.progress_percentage == 25.0


@pytest.mark.parametrize("days_ahead", [0, -1])
def test_target_date_must_be_after_today(days_ahead) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = _user(session, "alice@example.com")
        data = GoalIn(
            name="Trip",
            target_amount=Decimal("100.00"),
            target_date=local_today() + timedelta(days=days_ahead),
        )

        with pytest.raises(ValidationError):
            SavingsGoalService(session).create(data, alice)
        assert session.scalar(select(func.count(SavingsGoal.id))) == 0


def test_partial_update_changes_only_supplied_fields() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = _user(session, "alice@example.com")
        service = SavingsGoalService(session)
        created = service.create(_goal("1000.00", 0), alice)
        goal_id = created.goal.id
        original_date = created.goal.target_date

        updated = service.update(
            goal_id, GoalUpdateIn(target_amount=Decimal("2500.00")), alice
        )
        assert updated.goal.target_amount == Decimal("2500.00")
        assert updated.goal.target_date == original_date
        assert updated.remaining_amount == Decimal("2500.00")

        new_date = local_today() + timedelta(days=30)
        moved = service.update(goal_id, GoalUpdateIn(target_date=new_date), alice)
        assert moved.goal.target_date == new_date
        assert moved.goal.target_amount == Decimal("2500.00")

        with pytest.raises(ValidationError):
            service.update(goal_id, GoalUpdateIn(target_date=local_today()), alice)
        assert service.get(goal_id, alice).goal.target_date == new_date


def test_goal_ownership_checks() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = _user(session, "alice@example.com")
        bob = _user(session, "bob@example.com")
        service = SavingsGoalService(session)
        goal_id = service.create(_goal("1000.00"), alice).goal.id

        with pytest.raises(NotFoundError):
            service.get(goal_id + 1, alice)
        with pytest.raises(ForbiddenError):
            service.get(goal_id, bob)
        with pytest.raises(ForbiddenError):
            service.update(goal_id, GoalUpdateIn(target_amount=Decimal("1.00")), bob)
        with pytest.raises(ForbiddenError):
            service.delete(goal_id, bob)

        assert [v.goal.id for v in service.list(alice)] == [goal_id]
        assert service.list(bob) == []

        service.delete(goal_id, alice)
        with pytest.raises(NotFoundError):
            service.get(goal_id, alice)


def test_goal_reads_are_repeatable() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        alice = _user(session, "alice@example.com")
        _add(session, alice, "321.45", 0, "Salary")
        service = SavingsGoalService(session)
        goal_id = service.create(_goal("1000.00", 0), alice).goal.id

        first = service.get(goal_id, alice)
        second = service.get(goal_id, alice)

        assert (
            first.current_progress,
            first.progress_percentage,
            first.remaining_amount,
        ) == (second.current_progress, second.progress_percentage, second.remaining_amount)
        assert first.progress_percentage == 32.15
