from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MONTH_REGEX = r"^\d{4}-(0[1-9]|1[0-2])$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: Optional[str] = None
    is_hidden: bool = False
    is_rollover: bool = False
    is_income: Optional[bool] = None


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    parent_id: Optional[str] = None
    is_hidden: Optional[bool] = None
    is_rollover: Optional[bool] = None
    is_income: Optional[bool] = None


class TransactionIn(CamelModel):
    date: date
    name: str = Field(..., min_length=1, max_length=200)
    amount: float
    category_id: Optional[str] = None
    pending: bool = False
    is_hidden: bool = False
    notes: Optional[str] = Field(default=None, max_length=500)


class TransactionCategoryIn(CamelModel):
    category_id: Optional[str] = None


class TransactionHiddenIn(CamelModel):
    is_hidden: bool


class BudgetIn(CamelModel):
    category_id: str = Field(..., min_length=1)
    month: str = Field(..., pattern=MONTH_REGEX)
    amount: float = Field(..., ge=0)


class BatchBudgetsIn(CamelModel):
    updates: list[BudgetIn]


class CopyBudgetsIn(CamelModel):
    from_month: str = Field(..., pattern=MONTH_REGEX)
    to_month: str = Field(..., pattern=MONTH_REGEX)


class BudgetComparisonIn(CamelModel):
    actuals: Optional[dict[str, float]] = None


class RolloverIn(CamelModel):
    category_id: str = Field(..., min_length=1)
    from_month: str = Field(..., pattern=MONTH_REGEX)
    to_month: str = Field(..., pattern=MONTH_REGEX)
    actual_spent: float


class ActualsOverrideIn(CamelModel):
    month: str = Field(..., pattern=MONTH_REGEX)
    total_income: float = Field(..., ge=0)
    total_expenses: float = Field(..., ge=0)
    notes: Optional[str] = None


class CalculationOptionsIn(CamelModel):
    exclude_hidden: Optional[bool] = None
    exclude_children: Optional[bool] = None
    exclude_transfers: Optional[bool] = None


class CategoryRecord(CamelModel):
    id: str
    name: str = ""
    parent_id: Optional[str] = None
    is_custom: bool = False
    is_hidden: bool = False
    is_rollover: bool = False
    is_income: Optional[bool] = None


class BudgetRecord(CamelModel):
    id: Optional[str] = None
    category_id: Optional[str] = None
    month: Optional[str] = None
    amount: float = 0


class TransactionRecord(CamelModel):
    id: Optional[str] = None
    category_id: Optional[str] = None
    amount: float = 0
    is_hidden: bool = False


class TotalsRequest(CamelModel):
    categories: list[CategoryRecord] = Field(default_factory=list)
    budgets: list[BudgetRecord] = Field(default_factory=list)
    transactions: list[TransactionRecord] = Field(default_factory=list)
    options: CalculationOptionsIn = Field(default_factory=CalculationOptionsIn)
