import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, create_schema, session_scope
from errors import (
    DuplicateError,
    FinanceError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from models import Category, Transaction, User
from schemas import (
    CategoryIn,
    CategoryListOut,
    CategoryOut,
    GoalIn,
    GoalListOut,
    GoalOut,
    GoalUpdateIn,
    LoginIn,
    MessageOut,
    MonthlyReportOut,
    RegisterIn,
    RegisterOut,
    TransactionIn,
    TransactionListOut,
    TransactionOut,
    TransactionUpdateIn,
    YearlyReportOut,
)
from services import (
    CategoryService,
    GoalProgress,
    ReportService,
    SavingsGoalService,
    TransactionFilters,
    TransactionService,
    UserService,
    seed_default_categories,
)
from sessions import SESSION_COOKIE, issue_session_token, read_session_token

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Tracker")

ERROR_STATUS: dict[type, int] = {
    NotFoundError: 404,
    DuplicateError: 409,
    ForbiddenError: 403,
    ValidationError: 400,
    UnauthenticatedError: 401,
}


@app.exception_handler(FinanceError)
async def handle_finance_error(request: Request, exc: FinanceError):
    status = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500
    )
    logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
    return JSONResponse(
        status_code=status, content={"error": exc.label, "detail": str(exc)}
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    create_schema()
    if get_settings().seed_defaults:
        with session_scope() as session:
            seed_default_categories(session)


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = request.cookies.get(SESSION_COOKIE)
    user_id = read_session_token(token) if token else None
    if user_id is None:
        raise UnauthenticatedError("Authentication required")
    user = db.get(User, user_id)
    if not user:
        raise UnauthenticatedError("Authentication required")
    return user


def category_out(category: Category) -> CategoryOut:
    return CategoryOut(name=category.name, type=category.type, is_custom=category.is_custom)


def transaction_out(txn: Transaction) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        amount=txn.amount,
        date=txn.date,
        category=txn.category.name,
        description=txn.description,
        type=txn.type,
    )


def goal_out(view: GoalProgress) -> GoalOut:
    goal = view.goal
    return GoalOut(
        id=goal.id,
        name=goal.name,
        target_amount=goal.target_amount,
        target_date=goal.target_date,
        start_date=goal.start_date,
        current_progress=view.current_progress,
        progress_percentage=view.progress_percentage,
        remaining_amount=view.remaining_amount,
    )


@app.post("/api/auth/register", status_code=201, response_model=RegisterOut)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    user = UserService(db).register(data)
    return RegisterOut(message="User registered successfully", user_id=user.id)


@app.post("/api/auth/login", response_model=MessageOut)
def login(data: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = UserService(db).authenticate(data.username, data.password)
    max_age = get_settings().session_max_age_hours * 3600
    response.set_cookie(
        SESSION_COOKIE,
        issue_session_token(user.id),
        max_age=max_age,
        httponly=True,
        samesite="lax",
    )
    return MessageOut(message="Login successful")


@app.post("/api/auth/logout", response_model=MessageOut)
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return MessageOut(message="Logout successful")


@app.get("/api/categories", response_model=CategoryListOut)
def list_categories(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    categories = CategoryService(db).list_visible(user.id)
    return CategoryListOut(categories=[category_out(c) for c in categories])


@app.post("/api/categories", status_code=201, response_model=CategoryOut)
def create_category(
    data: CategoryIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return category_out(CategoryService(db).create(data, user))


@app.delete("/api/categories/{name}", response_model=MessageOut)
def delete_category(
    name: str, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    CategoryService(db).delete(name, user)
    return MessageOut(message="Category deleted successfully")


@app.post("/api/transactions", status_code=201, response_model=TransactionOut)
def create_transaction(
    data: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return transaction_out(TransactionService(db).create(data, user))


@app.get("/api/transactions", response_model=TransactionListOut)
def list_transactions(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    category_id: Optional[int] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        start_date=start_date, end_date=end_date, category_id=category_id
    )
    items = TransactionService(db).list(user.id, filters)
    return TransactionListOut(transactions=[transaction_out(t) for t in items])


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return transaction_out(TransactionService(db).get(transaction_id, user))


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return transaction_out(TransactionService(db).update(transaction_id, data, user))


@app.delete("/api/transactions/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    TransactionService(db).delete(transaction_id, user)
    return MessageOut(message="Transaction deleted successfully")


@app.get("/api/reports/monthly/{year}/{month}", response_model=MonthlyReportOut)
def monthly_report(
    year: int, month: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    report = ReportService(db).monthly_report(user.id, year, month)
    return MonthlyReportOut(
        year=report.year,
        month=month,
        total_income=report.total_income,
        total_expenses=report.total_expenses,
        net_savings=report.net_savings,
    )


@app.get("/api/reports/yearly/{year}", response_model=YearlyReportOut)
def yearly_report(
    year: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    report = ReportService(db).yearly_report(user.id, year)
    return YearlyReportOut(
        year=report.year,
        total_income=report.total_income,
        total_expenses=report.total_expenses,
        net_savings=report.net_savings,
    )


@app.post("/api/goals", status_code=201, response_model=GoalOut)
def create_goal(
    data: GoalIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return goal_out(SavingsGoalService(db).create(data, user))


@app.get("/api/goals", response_model=GoalListOut)
def list_goals(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return GoalListOut(goals=[goal_out(v) for v in SavingsGoalService(db).list(user)])


@app.get("/api/goals/{goal_id}", response_model=GoalOut)
def get_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return goal_out(SavingsGoalService(db).get(goal_id, user))


@app.put("/api/goals/{goal_id}", response_model=GoalOut)
def update_goal(
    goal_id: int,
    data: GoalUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return goal_out(SavingsGoalService(db).update(goal_id, data, user))


@app.delete("/api/goals/{goal_id}", response_model=MessageOut)
def delete_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    SavingsGoalService(db).delete(goal_id, user)
    return MessageOut(message="Goal deleted successfully")
