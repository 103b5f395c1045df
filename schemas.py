import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class UserIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class LoginIn(BaseModel):
    email: str
    password: str


class RefreshIn(BaseModel):
    refresh_token: str


class TokenPairOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AccessTokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    created_at: datetime
    updated_at: datetime


class ExpenseIn(BaseModel):
    description: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    category_id: uuid.UUID


class ExpenseUpdate(BaseModel):
    """Only fields present in the request are changed."""

    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, max_length=200)
    amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2
    )
    category_id: Optional[uuid.UUID] = None

    @model_validator(mode="after")
    def _no_explicit_nulls(self) -> "ExpenseUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} may be omitted but not null")
        return self

    def provided(self, name: str) -> bool:
        return name in self.model_fields_set


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    description: str
    amount: Decimal
    category_id: uuid.UUID
    user_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class BudgetIn(BaseModel):
    category_id: uuid.UUID
    goal: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "BudgetIn":
        if self.start_date > self.end_date:
            raise ValueError("Start date must be before end date")
        return self


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    category_id: uuid.UUID
    user_id: uuid.UUID
    goal: Decimal
    amount: Decimal
    start_date: date
    end_date: date
    created_at: datetime
    updated_at: datetime


class CategoryPage(BaseModel):
    categories: list[CategoryOut]
    next: Optional[str] = None


class ExpensePage(BaseModel):
    expenses: list[ExpenseOut]
    next: Optional[str] = None


class BudgetPage(BaseModel):
    budgets: list[BudgetOut]
    next: Optional[str] = None


class TotalSpentOut(BaseModel):
    start: date
    end: date
    total: Decimal
