import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import services
from database import get_db, Expense, Budget
from schemas import (
    ExpenseRequest,
    ExpenseResponse,
    IncomeRequest,
    IncomeResponse,
    IncomeTotal,
    BudgetRequest,
    BudgetUpdate,
    BudgetResponse,
    Message,
)

logger = logging.getLogger(__name__)

expense_router = APIRouter()
income_router = APIRouter()
budget_router = APIRouter()


@expense_router.post("", response_model=ExpenseResponse)
def create_expense(expense: ExpenseRequest, db: Session = Depends(get_db)):
    user = services.get_user_by_username(db, expense.username)
    db_expense = Expense(
        title=expense.title or expense.description,
        description=expense.description,
        amount=expense.amount,
        category=expense.category,
        expense_date=datetime.now(),
        user_id=user.id,
    )
    db.add(db_expense)
    db.commit()
    db.refresh(db_expense)
    logger.info("Created expense %s for user %s", db_expense.id, user.username)
    return db_expense


@expense_router.get("", response_model=list[ExpenseResponse])
def get_expenses(
    username: str, category: Optional[str] = None, db: Session = Depends(get_db)
):
    return services.list_expenses(db, username, category)


@expense_router.put("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: int, expense: ExpenseRequest, db: Session = Depends(get_db)
):
    user = services.get_user_by_username(db, expense.username)
    db_expense = services.get_owned(db, Expense, expense_id, user)

    db_expense.title = expense.title or expense.description
    db_expense.description = expense.description
    db_expense.amount = expense.amount
    db_expense.category = expense.category
    db.commit()
    db.refresh(db_expense)
    logger.info("Updated expense %s for user %s", db_expense.id, user.username)
    return db_expense


@expense_router.delete("/{expense_id}", response_model=Message)
def delete_expense(expense_id: int, username: str, db: Session = Depends(get_db)):
    user = services.get_user_by_username(db, username)
    db_expense = services.get_owned(db, Expense, expense_id, user)
    db.delete(db_expense)
    db.commit()
    logger.info("Deleted expense %s for user %s", expense_id, user.username)
    return {"message": "Expense deleted successfully"}


@income_router.get("", response_model=list[IncomeResponse])
def get_incomes(email: str, month: Optional[str] = None, db: Session = Depends(get_db)):
    return services.list_incomes(db, email, month)


@income_router.get("/total", response_model=IncomeTotal)
def get_total_income(
    email: str, month: Optional[str] = None, db: Session = Depends(get_db)
):
    return {"total": services.total_income(db, email, month)}


@income_router.get("/recurring", response_model=list[IncomeResponse])
def get_recurring_incomes(email: str, db: Session = Depends(get_db)):
    return services.list_recurring_incomes(db, email)


@income_router.get("/type/{income_type}", response_model=list[IncomeResponse])
def get_incomes_by_type(income_type: str, email: str, db: Session = Depends(get_db)):
    return services.list_incomes_by_type(db, email, income_type)


@income_router.post("", response_model=IncomeResponse)
def create_income(income: IncomeRequest, db: Session = Depends(get_db)):
    return services.create_income(db, income)


@income_router.put("/{income_id}", response_model=IncomeResponse)
def update_income(income_id: int, income: IncomeRequest, db: Session = Depends(get_db)):
    return services.update_income(db, income_id, income)


@income_router.delete("/{income_id}", response_model=Message)
def delete_income(income_id: int, email: str, db: Session = Depends(get_db)):
    services.delete_income(db, income_id, email)
    return {"message": "Income deleted successfully"}


@budget_router.post("", response_model=BudgetResponse)
def create_budget(budget: BudgetRequest, db: Session = Depends(get_db)):
    return services.upsert_budget(db, budget)


@budget_router.get("", response_model=list[BudgetResponse])
def get_budgets(
    username: str, month: Optional[str] = None, db: Session = Depends(get_db)
):
    return services.list_budgets(db, username, month)


@budget_router.put("/{budget_id}", response_model=BudgetResponse)
def update_budget(budget_id: int, budget: BudgetUpdate, db: Session = Depends(get_db)):
    user = services.get_user_by_username(db, budget.username)
    db_budget = services.get_owned(db, Budget, budget_id, user)

    db_budget.amount = budget.amount
    if budget.category:
        db_budget.category = budget.category
    if budget.month:
        db_budget.month = budget.month

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=400, detail=f"Failed to update budget: {exc.orig}"
        )
    db.refresh(db_budget)
    logger.info("Updated budget %s for user %s", db_budget.id, user.username)
    return db_budget


@budget_router.delete("/{budget_id}", response_model=Message)
def delete_budget(budget_id: int, username: str, db: Session = Depends(get_db)):
    user = services.get_user_by_username(db, username)
    db_budget = services.get_owned(db, Budget, budget_id, user)
    db.delete(db_budget)
    db.commit()
    logger.info("Deleted budget %s for user %s", budget_id, user.username)
    return {"message": "Budget deleted successfully"}
