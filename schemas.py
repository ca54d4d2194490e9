import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from database import IncomeType

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _required(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{field_name.capitalize()} is required")
    return value


def _positive(value: Optional[Decimal]) -> Decimal:
    if value is None or value <= 0:
        raise ValueError("Valid amount is required")
    return value


def validate_month(value: str) -> str:
    if not MONTH_PATTERN.match(value):
        raise ValueError("Month must be in YYYY-MM format")
    return value


class UserSignup(BaseModel):
    name: str
    email: str
    password: str

    @field_validator("name", "email", "password")
    @classmethod
    def not_blank(cls, value, info):
        return _required(value, info.field_name)


class UserLogin(BaseModel):
    email: str
    password: str

    @field_validator("email", "password")
    @classmethod
    def not_blank(cls, value, info):
        return _required(value, info.field_name)


class UserProfile(BaseModel):
    id: str
    email: str
    name: str
    role: str


class LoginResponse(UserProfile):
    access_token: str
    token_type: str = "bearer"


class UserSummary(BaseModel):
    id: str
    email: str
    username: str
    role: str
    expenseCount: int
    incomeCount: int


class SystemStats(BaseModel):
    totalUsers: int
    totalExpenses: int
    totalIncomes: int
    activeUsers: int


class Message(BaseModel):
    message: str


class ORMModel(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True

    @field_validator("id", mode="before", check_fields=False)
    @classmethod
    def stringify_id(cls, value):
        return str(value)

    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def amount_as_float(cls, value):
        return float(value)


class ExpenseRequest(BaseModel):
    username: str
    description: Optional[str] = None
    title: Optional[str] = None
    amount: Decimal
    category: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_required(cls, value):
        return _required(value, "username")

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, value):
        return _positive(value)


class ExpenseResponse(ORMModel):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    amount: float
    category: Optional[str] = None
    date: datetime = Field(validation_alias="expense_date")


class IncomeRequest(BaseModel):
    email: str
    amount: Decimal
    date: Optional[str] = None
    type: Optional[str] = Field(None, validate_default=True)
    is_recurring: bool = Field(False, alias="isRecurring")
    recurrence_pattern: Optional[str] = Field(None, alias="recurrencePattern")

    class Config:
        populate_by_name = True

    @field_validator("email")
    @classmethod
    def email_required(cls, value):
        return _required(value, "email")

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, value):
        return _positive(value)

    @field_validator("type")
    @classmethod
    def known_type(cls, value):
        if value is None or not value.strip():
            raise ValueError("Income type is required")
        try:
            return IncomeType(value).value
        except ValueError:
            raise ValueError(f"Invalid income type: {value}")


class IncomeResponse(ORMModel):
    id: str
    amount: float
    date: date
    type: IncomeType
    is_recurring: bool = Field(alias="isRecurring")
    recurrence_pattern: Optional[str] = Field(None, alias="recurrencePattern")


class IncomeTotal(BaseModel):
    total: float


class BudgetRequest(BaseModel):
    username: str
    category: str
    month: str
    amount: Decimal

    @field_validator("username", "category", "month")
    @classmethod
    def not_blank(cls, value, info):
        return _required(value, info.field_name)

    @field_validator("month")
    @classmethod
    def month_format(cls, value):
        return validate_month(value)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, value):
        return _positive(value)


class BudgetUpdate(BaseModel):
    username: str
    amount: Decimal
    category: Optional[str] = None
    month: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_required(cls, value):
        return _required(value, "username")

    @field_validator("month")
    @classmethod
    def month_format(cls, value):
        if value is None:
            return value
        return validate_month(value)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, value):
        return _positive(value)


class BudgetResponse(ORMModel):
    id: str
    category: str
    amount: float
    month: str
