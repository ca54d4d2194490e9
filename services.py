"""Lookups, ownership checks and write paths shared by the routers."""
import logging
from datetime import date, datetime
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import User, Expense, Income, Budget, IncomeType
from schemas import validate_month, IncomeRequest, BudgetRequest

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: Optional[str]) -> User:
    user = db.query(User).filter(User.email == email).first() if email else None
    if user is None:
        raise HTTPException(status_code=400, detail="User not found")
    return user


def get_user_by_username(db: Session, username: Optional[str]) -> User:
    user = (
        db.query(User).filter(User.username == username).first() if username else None
    )
    if user is None:
        raise HTTPException(status_code=400, detail="User not found")
    return user


def check_owner(entity, user: User, kind: str):
    if entity.user_id != user.id:
        logger.warning(
            "User %s is not allowed to modify %s %s", user.id, kind.lower(), entity.id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unauthorized access to {kind.lower()}",
        )


def get_owned(db: Session, model, entity_id: int, user: User):
    """Load ``model`` by id and verify that ``user`` owns it."""
    kind = model.__name__
    entity = db.get(model, entity_id)
    if entity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found"
        )
    check_owner(entity, user, kind)
    return entity


def month_range(month: str) -> Tuple[date, date]:
    """Return the first and last day of a ``YYYY-MM`` month."""
    check_month(month)
    try:
        start = datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid month: {month}")
    # day=31 clamps to the last day without leaving the month
    end = start + relativedelta(day=31)
    return start, end


def check_month(month: str):
    try:
        validate_month(month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def parse_income_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value.split("T")[0])
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


def parse_income_type(value: str) -> IncomeType:
    try:
        return IncomeType(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid income type: {value}")


def _incomes_query(db: Session, user: User):
    return db.query(Income).filter(Income.user_id == user.id)


def _newest_first(query):
    return query.order_by(Income.date.desc(), Income.id.desc()).all()


def list_incomes(db: Session, email: str, month: Optional[str] = None):
    user = get_user_by_email(db, email)
    query = _incomes_query(db, user)
    if month:
        start, end = month_range(month)
        query = query.filter(Income.date.between(start, end))
    return _newest_first(query)


def list_recurring_incomes(db: Session, email: str):
    user = get_user_by_email(db, email)
    return _newest_first(_incomes_query(db, user).filter(Income.is_recurring.is_(True)))


def list_incomes_by_type(db: Session, email: str, income_type: str):
    income_type = parse_income_type(income_type)
    user = get_user_by_email(db, email)
    return _newest_first(_incomes_query(db, user).filter(Income.type == income_type))


def total_income(db: Session, email: str, month: Optional[str] = None) -> float:
    user = get_user_by_email(db, email)
    query = db.query(func.coalesce(func.sum(Income.amount), 0)).filter(
        Income.user_id == user.id
    )
    if month:
        start, end = month_range(month)
        query = query.filter(Income.date.between(start, end))
    return float(query.scalar() or 0)


def _apply_income(income: Income, payload: IncomeRequest):
    income.amount = payload.amount
    income.date = parse_income_date(payload.date)
    income.type = parse_income_type(payload.type)
    income.is_recurring = payload.is_recurring
    if payload.is_recurring:
        income.recurrence_pattern = payload.recurrence_pattern or "MONTHLY"


def create_income(db: Session, payload: IncomeRequest) -> Income:
    user = get_user_by_email(db, payload.email)
    income = Income(user_id=user.id, recurrence_pattern="MONTHLY")
    _apply_income(income, payload)
    db.add(income)
    db.commit()
    db.refresh(income)
    logger.info("Created income %s for user %s", income.id, user.email)
    return income


def update_income(db: Session, income_id: int, payload: IncomeRequest) -> Income:
    user = get_user_by_email(db, payload.email)
    income = get_owned(db, Income, income_id, user)
    _apply_income(income, payload)
    db.commit()
    db.refresh(income)
    logger.info("Updated income %s for user %s", income.id, user.email)
    return income


def delete_income(db: Session, income_id: int, email: str):
    user = get_user_by_email(db, email)
    income = get_owned(db, Income, income_id, user)
    db.delete(income)
    db.commit()
    logger.info("Deleted income %s for user %s", income_id, user.email)


def upsert_budget(db: Session, payload: BudgetRequest) -> Budget:
    """Create the budget for (user, category, month) or overwrite its amount."""
    user = get_user_by_username(db, payload.username)
    budget = (
        db.query(Budget)
        .filter(
            Budget.user_id == user.id,
            Budget.category == payload.category,
            Budget.month == payload.month,
        )
        .first()
    )
    created = budget is None
    if budget:
        budget.amount = payload.amount
    else:
        budget = Budget(
            user_id=user.id,
            category=payload.category,
            month=payload.month,
            amount=payload.amount,
        )
        db.add(budget)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Budget upsert conflict for user %s: %s", user.id, exc.orig)
        raise HTTPException(
            status_code=400, detail=f"Failed to create budget: {exc.orig}"
        )
    db.refresh(budget)
    logger.info(
        "%s budget %s for user %s",
        "Created" if created else "Updated",
        budget.id,
        user.username,
    )
    return budget


def list_budgets(db: Session, username: str, month: Optional[str] = None):
    user = get_user_by_username(db, username)
    query = db.query(Budget).filter(Budget.user_id == user.id)
    if month:
        check_month(month)
        query = query.filter(Budget.month == month)
    return query.order_by(Budget.month.desc(), Budget.category).all()


def list_expenses(db: Session, username: str, category: Optional[str] = None):
    user = get_user_by_username(db, username)
    query = db.query(Expense).filter(Expense.user_id == user.id)
    if category:
        query = query.filter(Expense.category == category)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
