from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from models import BudgetType, TransactionType
from money import MAX_AMOUNT
from periods import to_utc_iso, to_utc_naive


def _upper(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginIn(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class TokenOut(BaseModel):
    access_token: str


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: TransactionType


class TransactionIn(BaseModel):
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT, decimal_places=2)
    type: TransactionType
    category_id: str = Field(..., min_length=1, max_length=36)
    date: datetime
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)

    @field_validator("date")
    @classmethod
    def date_to_utc(cls, value: datetime) -> datetime:
        return to_utc_naive(value)


class TransactionUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT, decimal_places=2)
    type: Optional[TransactionType] = None
    category_id: Optional[str] = Field(None, min_length=1, max_length=36)
    date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)

    @field_validator("date")
    @classmethod
    def date_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(value)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Decimal
    type: TransactionType
    category_id: str
    date: datetime
    description: Optional[str] = None

    @field_serializer("date")
    def serialize_date(self, value: datetime) -> str:
        return to_utc_iso(value)


class BudgetIn(BaseModel):
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT, decimal_places=2)
    category_id: str = Field(..., min_length=1, max_length=36)
    month: int
    year: int
    type: BudgetType

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)


class BudgetUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT, decimal_places=2)
    category_id: Optional[str] = Field(None, min_length=1, max_length=36)
    month: Optional[int] = None
    year: Optional[int] = None
    type: Optional[BudgetType] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Decimal
    category_id: str
    month: int
    year: int
    type: BudgetType


class BudgetWithSpendingOut(BudgetOut):
    spent: Decimal
    remaining: Decimal
    utilization_percentage: float


class BudgetWithCategoryOut(BudgetOut):
    category: Optional[CategoryOut] = None


class BudgetDetailsOut(BudgetWithSpendingOut):
    category: Optional[CategoryOut] = None
    transactions: list[TransactionOut] = Field(default_factory=list)


class MonthlySummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


class BudgetVsActualOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: CategoryOut
    budget_amount: Decimal
    actual_amount: Decimal
    difference: Decimal
    percentage_used: float
