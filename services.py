from __future__ import annotations

import logging
import statistics
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from budget_calculations import (
    BudgetTotals,
    BudgetVsActual,
    HierarchicalComparison,
    build_hierarchical_comparisons,
    calculate_actual_totals,
    calculate_budget_totals,
    calculate_budget_vs_actual,
    calculate_rollover_amount,
    compare_amounts,
    create_actuals_map,
    get_hidden_category_ids,
)
from category_helpers import (
    CategoryKind,
    classify_category,
    create_category_lookup,
    is_income_category_hierarchical,
)
from config import get_settings
from models import ActualsOverride, Category, MonthlyBudget, Transaction
from money import from_cents, round_money, to_cents
from months import (
    format_month,
    month_bounds,
    month_of,
    months_between,
    shift_month,
    validate_month,
)
from plaid_categories import default_categories
from schemas import (
    ActualsOverrideIn,
    BudgetIn,
    CategoryIn,
    CategoryUpdate,
    TransactionIn,
)

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return get_settings().default_user_id


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex}"


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.parent_id.is_not(None), Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def find(self, category_id: str) -> Optional[Category]:
        return self.session.get(Category, (category_id, self.user_id))

    def get(self, category_id: str) -> Category:
        category = self.find(category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def _check_parent(self, parent_id: str, child_id: Optional[str] = None) -> None:
        if parent_id == child_id:
            raise ValueError("Category cannot be its own parent")
        parent = self.find(parent_id)
        if not parent:
            raise ValueError("Parent category not found")
        if parent.parent_id is not None:
            raise ValueError("Cannot create subcategory under another subcategory")

    def _check_unique_name(
        self, name: str, parent_id: Optional[str], exclude_id: Optional[str] = None
    ) -> None:
        stmt = select(Category).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
            Category.parent_id.is_(None)
            if parent_id is None
            else Category.parent_id == parent_id,
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValueError("Category name is required")
        if data.parent_id:
            self._check_parent(data.parent_id)
        self._check_unique_name(name, data.parent_id)

        category = Category(
            id=new_id("CUSTOM_").upper(),
            user_id=self.user_id,
            name=name,
            parent_id=data.parent_id or None,
            is_custom=True,
            is_hidden=data.is_hidden,
            is_rollover=data.is_rollover,
            is_income=data.is_income,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: str, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        fields = data.model_fields_set
        parent_id = category.parent_id

        if "parent_id" in fields and data.parent_id != category.parent_id:
            if data.parent_id:
                self._check_parent(data.parent_id, category.id)
                if self.subcategories(category.id):
                    raise ValueError(
                        "Category with subcategories cannot become a subcategory"
                    )
            parent_id = data.parent_id or None

        name = data.name.strip() if data.name is not None else category.name
        if not name:
            raise ValueError("Category name is required")
        if name != category.name or parent_id != category.parent_id:
            self._check_unique_name(name, parent_id, exclude_id=category.id)
        category.name = name
        category.parent_id = parent_id
        if data.is_hidden is not None:
            category.is_hidden = data.is_hidden
        if data.is_rollover is not None:
            category.is_rollover = data.is_rollover
        if "is_income" in fields:
            category.is_income = data.is_income

        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: str) -> None:
        category = self.get(category_id)
        if self.subcategories(category.id):
            raise ValueError("Cannot delete category with subcategories")
        if BudgetService(self.session, self.user_id).has_budgets_for_category(
            category.id
        ):
            raise ValueError("Cannot delete category with budgets")
        txn_count = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category.id,
            )
        )
        if txn_count:
            raise ValueError(
                f"Cannot delete category with {txn_count} assigned transactions"
            )
        self.session.delete(category)
        self.session.commit()

    def parents(self) -> list[Category]:
        return [c for c in self.list_all() if c.parent_id is None]

    def subcategories(self, parent_id: str) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id, Category.parent_id == parent_id)
            .order_by(Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def tree(self) -> list[dict[str, Any]]:
        categories = self.list_all()
        children: dict[str, list[Category]] = {}
        for category in categories:
            if category.parent_id:
                children.setdefault(category.parent_id, []).append(category)
        return [
            {
                **category_to_dict(parent),
                "children": [category_to_dict(c) for c in children.get(parent.id, [])],
            }
            for parent in categories
            if parent.parent_id is None
        ]

    def hidden(self) -> list[Category]:
        return [c for c in self.list_all() if c.is_hidden]

    def rollover_categories(self) -> list[Category]:
        return [c for c in self.list_all() if c.is_rollover]

    def initialize_defaults(self) -> int:
        existing = self.session.scalar(
            select(func.count()).select_from(Category).where(
                Category.user_id == self.user_id
            )
        )
        if existing:
            return 0

        seeded = default_categories()
        for default in seeded:
            is_income = default.id == "INCOME" or default.parent_id == "INCOME"
            self.session.add(
                Category(
                    id=default.id,
                    user_id=self.user_id,
                    name=default.name,
                    parent_id=default.parent_id,
                    is_custom=False,
                    is_hidden=False,
                    is_rollover=False,
                    is_income=is_income,
                )
            )
        self.session.commit()
        logger.info(f"categories_seeded: user={self.user_id} count={len(seeded)}")
        return len(seeded)


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def create(self, data: TransactionIn) -> Transaction:
        if data.category_id:
            CategoryService(self.session, self.user_id).get(data.category_id)
        txn = Transaction(
            id=new_id(),
            user_id=self.user_id,
            date=data.date,
            name=data.name.strip(),
            amount=data.amount,
            category_id=data.category_id or None,
            pending=data.pending,
            is_hidden=data.is_hidden,
            notes=data.notes,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: str) -> Transaction:
        txn = self.session.get(Transaction, (transaction_id, self.user_id))
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def list_between(self, start: date, end: date) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date.desc(), Transaction.id)
        )
        return list(self.session.scalars(stmt).all())

    def list_for_month(self, month: str) -> list[Transaction]:
        start, end = month_bounds(month)
        return self.list_between(start, end)

    def update_category(
        self, transaction_id: str, category_id: Optional[str]
    ) -> Transaction:
        txn = self.get(transaction_id)
        if category_id:
            CategoryService(self.session, self.user_id).get(category_id)
        txn.category_id = category_id or None
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def set_hidden(self, transaction_id: str, is_hidden: bool) -> Transaction:
        txn = self.get(transaction_id)
        txn.is_hidden = is_hidden
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


@dataclass(frozen=True)
class CategoryComparison:
    category_id: str
    month: str
    budgeted: float
    actual: float
    remaining: float
    percent_used: int
    is_over_budget: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "month": self.month,
            "budgeted": self.budgeted,
            "actual": self.actual,
            "remaining": self.remaining,
            "percentUsed": self.percent_used,
            "isOverBudget": self.is_over_budget,
        }


@dataclass(frozen=True)
class RolloverResult:
    category_id: str
    from_month: str
    to_month: str
    amount: float
    budget: Optional[MonthlyBudget]


@dataclass(frozen=True)
class MonthlySummary:
    month: str
    budget_totals: BudgetTotals
    actual_totals: BudgetTotals
    comparison: BudgetVsActual
    categories: dict[str, HierarchicalComparison]

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "budgetTotals": self.budget_totals.to_dict(),
            "actualTotals": self.actual_totals.to_dict(),
            "comparison": self.comparison.to_dict(),
            "categories": [c.to_dict() for c in self.categories.values()],
        }


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def _categories(self) -> list[Category]:
        return CategoryService(self.session, self.user_id).list_all()

    def list_all(self) -> list[MonthlyBudget]:
        stmt = (
            select(MonthlyBudget)
            .where(MonthlyBudget.user_id == self.user_id)
            .order_by(MonthlyBudget.month, MonthlyBudget.category_id)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: str, month: str) -> Optional[MonthlyBudget]:
        return self.session.scalar(
            select(MonthlyBudget).where(
                MonthlyBudget.user_id == self.user_id,
                MonthlyBudget.category_id == category_id,
                MonthlyBudget.month == month,
            )
        )

    def _upsert(self, category_id: str, month: str, amount: float) -> MonthlyBudget:
        existing = self.get(category_id, month)
        if existing:
            existing.amount = amount
            self.session.flush()
            return existing
        budget = MonthlyBudget(
            id=new_id(),
            user_id=self.user_id,
            category_id=category_id,
            month=month,
            amount=amount,
        )
        self.session.add(budget)
        self.session.flush()
        return budget

    def create_or_update(self, data: BudgetIn) -> MonthlyBudget:
        validate_month(data.month)
        if data.amount <= 0:
            raise ValueError("Budget amount must be positive")
        budget = self._upsert(data.category_id, data.month, data.amount)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def batch_update(self, updates: list[BudgetIn]) -> list[MonthlyBudget]:
        for data in updates:
            validate_month(data.month)
            if data.amount < 0:
                raise ValueError("Budget amount cannot be negative")
        budgets = [self._upsert(d.category_id, d.month, d.amount) for d in updates]
        self.session.commit()
        logger.info(f"budget_batch_update: user={self.user_id} count={len(budgets)}")
        return budgets

    def delete(self, budget_id: str) -> None:
        budget = self.session.get(MonthlyBudget, (budget_id, self.user_id))
        if not budget:
            raise ValueError("Budget not found")
        self.session.delete(budget)
        self.session.commit()

    def delete_for_category(self, category_id: str) -> int:
        result = self.session.execute(
            delete(MonthlyBudget).where(
                MonthlyBudget.user_id == self.user_id,
                MonthlyBudget.category_id == category_id,
            )
        )
        self.session.commit()
        return result.rowcount or 0

    def has_budgets_for_category(self, category_id: str) -> bool:
        stmt = select(func.count(MonthlyBudget.id)).where(
            MonthlyBudget.user_id == self.user_id,
            MonthlyBudget.category_id == category_id,
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def monthly_budgets(self, month: str) -> list[MonthlyBudget]:
        validate_month(month)
        stmt = (
            select(MonthlyBudget)
            .where(MonthlyBudget.user_id == self.user_id, MonthlyBudget.month == month)
            .order_by(MonthlyBudget.category_id)
        )
        return list(self.session.scalars(stmt).all())

    def monthly_totals(self, month: str) -> BudgetTotals:
        return calculate_budget_totals(
            self.monthly_budgets(month),
            self._categories(),
            {"exclude_hidden": True},
        )

    def budgets_for_category(self, category_id: str) -> list[MonthlyBudget]:
        stmt = (
            select(MonthlyBudget)
            .where(
                MonthlyBudget.user_id == self.user_id,
                MonthlyBudget.category_id == category_id,
            )
            .order_by(MonthlyBudget.month)
        )
        return list(self.session.scalars(stmt).all())

    def yearly_budgets(self, year: int) -> list[MonthlyBudget]:
        if year < 1970 or year > 3000:
            raise ValueError("Invalid year")
        stmt = (
            select(MonthlyBudget)
            .where(
                MonthlyBudget.user_id == self.user_id,
                MonthlyBudget.month.like(f"{year:04d}-%"),
            )
            .order_by(MonthlyBudget.month, MonthlyBudget.category_id)
        )
        return list(self.session.scalars(stmt).all())

    def available_months(self) -> list[str]:
        stmt = (
            select(MonthlyBudget.month)
            .where(MonthlyBudget.user_id == self.user_id)
            .distinct()
            .order_by(MonthlyBudget.month.desc())
        )
        return list(self.session.scalars(stmt).all())

    def copy_budgets(self, from_month: str, to_month: str) -> list[MonthlyBudget]:
        validate_month(from_month)
        validate_month(to_month)
        copied = [
            self._upsert(source.category_id, to_month, source.amount)
            for source in self.monthly_budgets(from_month)
        ]
        self.session.commit()
        logger.info(
            f"budget_copy: user={self.user_id} from={from_month} to={to_month} "
            f"copied={len(copied)}"
        )
        return copied

    def history(
        self, category_id: str, start_month: str, end_month: str
    ) -> list[MonthlyBudget]:
        validate_month(start_month)
        validate_month(end_month)
        if start_month > end_month:
            return []
        stmt = (
            select(MonthlyBudget)
            .where(
                MonthlyBudget.user_id == self.user_id,
                MonthlyBudget.category_id == category_id,
                MonthlyBudget.month >= start_month,
                MonthlyBudget.month <= end_month,
            )
            .order_by(MonthlyBudget.month)
        )
        return list(self.session.scalars(stmt).all())

    def average_budget(
        self, category_id: str, start_month: str, end_month: str
    ) -> int:
        history = self.history(category_id, start_month, end_month)
        if not history:
            return 0
        total = sum(b.amount for b in history)
        return int(total / len(history) + 0.5)

    def actuals_for_month(self, month: str) -> dict[str, float]:
        transactions = TransactionService(self.session, self.user_id).list_for_month(
            month
        )
        return create_actuals_map(transactions, self._categories())

    def category_comparison(
        self,
        category_id: str,
        month: str,
        actual: float,
        *,
        lookup: Optional[dict[str, Category]] = None,
    ) -> Optional[CategoryComparison]:
        if lookup is None:
            lookup = create_category_lookup(self._categories())
        if is_income_category_hierarchical(category_id, lookup):
            return None
        budget = self.get(category_id, month)
        budgeted = budget.amount if budget else 0
        comparison = compare_amounts(budgeted, actual)
        return CategoryComparison(
            category_id=category_id,
            month=month,
            budgeted=budgeted,
            actual=actual,
            remaining=comparison.remaining,
            percent_used=comparison.percent_used,
            is_over_budget=comparison.is_over_budget,
        )

    def monthly_comparison(
        self,
        month: str,
        actuals: dict[str, float],
        hidden_category_ids: Optional[set[str]] = None,
    ) -> list[CategoryComparison]:
        budgets = self.monthly_budgets(month)
        categories = self._categories()
        lookup = create_category_lookup(categories)
        if hidden_category_ids is None:
            hidden_category_ids = get_hidden_category_ids(categories)

        comparisons: list[CategoryComparison] = []
        budgeted_ids = {b.category_id for b in budgets}
        candidates = [b.category_id for b in budgets] + [
            category_id for category_id in actuals if category_id not in budgeted_ids
        ]
        for category_id in candidates:
            if category_id in hidden_category_ids:
                continue
            comparison = self.category_comparison(
                category_id, month, actuals.get(category_id, 0), lookup=lookup
            )
            if comparison:
                comparisons.append(comparison)
        return comparisons

    def summary_for_month(self, month: str) -> MonthlySummary:
        categories = self._categories()
        budgets = self.monthly_budgets(month)
        transactions = TransactionService(self.session, self.user_id).list_for_month(
            month
        )
        options = {"exclude_hidden": True}
        budget_totals = calculate_budget_totals(budgets, categories, options)
        actual_totals = calculate_actual_totals(transactions, categories, options)
        actuals = create_actuals_map(transactions, categories, options)
        return MonthlySummary(
            month=month,
            budget_totals=budget_totals,
            actual_totals=actual_totals,
            comparison=calculate_budget_vs_actual(budget_totals, actual_totals),
            categories=build_hierarchical_comparisons(
                budgets, actuals, categories, options
            ),
        )

    def calculate_rollover(
        self, category_id: str, from_month: str, actual_spent: float
    ) -> float:
        validate_month(from_month)
        category = CategoryService(self.session, self.user_id).find(category_id)
        if not category or not category.is_rollover:
            return 0
        budget = self.get(category_id, from_month)
        if not budget:
            return 0
        return calculate_rollover_amount(budget.amount, actual_spent)

    def apply_rollover(
        self, category_id: str, to_month: str, amount: float
    ) -> Optional[MonthlyBudget]:
        validate_month(to_month)
        existing = self.get(category_id, to_month)
        if amount <= 0:
            return existing
        current = existing.amount if existing else 0
        budget = self._upsert(category_id, to_month, current + amount)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def rollover(
        self, category_id: str, from_month: str, to_month: str, actual_spent: float
    ) -> RolloverResult:
        amount = self.calculate_rollover(category_id, from_month, actual_spent)
        budget = self.apply_rollover(category_id, to_month, amount)
        logger.info(
            f"budget_rollover: user={self.user_id} category={category_id} "
            f"from={from_month} to={to_month} amount={amount}"
        )
        return RolloverResult(
            category_id=category_id,
            from_month=from_month,
            to_month=to_month,
            amount=amount,
            budget=budget,
        )


class ActualsOverrideService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def list_all(self) -> list[ActualsOverride]:
        stmt = (
            select(ActualsOverride)
            .where(ActualsOverride.user_id == self.user_id)
            .order_by(ActualsOverride.month.desc())
        )
        return list(self.session.scalars(stmt).all())

    def find(self, month: str) -> Optional[ActualsOverride]:
        return self.session.scalar(
            select(ActualsOverride).where(
                ActualsOverride.user_id == self.user_id,
                ActualsOverride.month == month,
            )
        )

    def get(self, month: str) -> ActualsOverride:
        validate_month(month)
        override = self.find(month)
        if not override:
            raise ValueError("Override not found")
        return override

    def has_override(self, month: str) -> bool:
        return self.find(month) is not None

    def for_range(self, start_month: str, end_month: str) -> list[ActualsOverride]:
        validate_month(start_month)
        validate_month(end_month)
        if start_month > end_month:
            return []
        stmt = (
            select(ActualsOverride)
            .where(
                ActualsOverride.user_id == self.user_id,
                ActualsOverride.month >= start_month,
                ActualsOverride.month <= end_month,
            )
            .order_by(ActualsOverride.month)
        )
        return list(self.session.scalars(stmt).all())

    def create_or_update(self, data: ActualsOverrideIn) -> ActualsOverride:
        validate_month(data.month)
        if data.total_income < 0 or data.total_expenses < 0:
            raise ValueError("Income and expense amounts must be non-negative")
        override = self.find(data.month)
        if override is None:
            override = ActualsOverride(
                id=new_id("override_"), user_id=self.user_id, month=data.month
            )
            self.session.add(override)
        override.total_income_cents = to_cents(data.total_income)
        override.total_expenses_cents = to_cents(data.total_expenses)
        override.notes = data.notes
        self.session.commit()
        self.session.refresh(override)
        logger.info(f"actuals_override_saved: user={self.user_id} month={data.month}")
        return override

    def delete(self, override_id: str) -> None:
        override = self.session.get(ActualsOverride, (override_id, self.user_id))
        if not override:
            raise ValueError("Override not found")
        self.session.delete(override)
        self.session.commit()


UNCATEGORIZED_ID = "uncategorized"
TOP_CATEGORY_COUNT = 5
PROJECTION_HISTORY_MONTHS = 6


def _percentage(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0


@dataclass(frozen=True)
class SpendingTrend:
    month: str
    category_id: str
    category_name: str
    amount: float
    transaction_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "amount": self.amount,
            "transactionCount": self.transaction_count,
        }


@dataclass(frozen=True)
class CategoryBreakdown:
    category_id: str
    category_name: str
    amount: float
    percentage: float
    transaction_count: int
    subcategories: list["CategoryBreakdown"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "amount": self.amount,
            "percentage": self.percentage,
            "transactionCount": self.transaction_count,
        }
        if self.subcategories:
            data["subcategories"] = [s.to_dict() for s in self.subcategories]
        return data


@dataclass(frozen=True)
class BreakdownReport:
    total: float
    breakdown: list[CategoryBreakdown]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "breakdown": [b.to_dict() for b in self.breakdown],
        }


@dataclass(frozen=True)
class CashFlowMonth:
    month: str
    income: float
    expenses: float
    net_flow: float
    savings_rate: float
    has_override: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "income": self.income,
            "expenses": self.expenses,
            "netFlow": self.net_flow,
            "savingsRate": self.savings_rate,
            "hasOverride": self.has_override,
        }


@dataclass(frozen=True)
class CashFlowProjection:
    month: str
    projected_income: float
    projected_expenses: float
    projected_net_flow: float
    confidence: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "projectedIncome": self.projected_income,
            "projectedExpenses": self.projected_expenses,
            "projectedNetFlow": self.projected_net_flow,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class YearToDateSummary:
    year: int
    months_elapsed: int
    total_income: float
    total_expenses: float
    net_income: float
    average_monthly_income: float
    average_monthly_expenses: float
    savings_rate: float
    top_categories: list[CategoryBreakdown]

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "monthsElapsed": self.months_elapsed,
            "totalIncome": self.total_income,
            "totalExpenses": self.total_expenses,
            "netIncome": self.net_income,
            "averageMonthlyIncome": self.average_monthly_income,
            "averageMonthlyExpenses": self.average_monthly_expenses,
            "savingsRate": self.savings_rate,
            "topCategories": [c.to_dict() for c in self.top_categories],
        }


def _cash_flow_month(
    month: str, income: float, expenses: float, has_override: bool
) -> CashFlowMonth:
    net_flow = round_money(income - expenses)
    return CashFlowMonth(
        month=month,
        income=income,
        expenses=expenses,
        net_flow=net_flow,
        savings_rate=_percentage(net_flow, income),
        has_override=has_override,
    )


def _projection_confidence(history: list[CashFlowMonth]) -> str:
    incomes = [m.income for m in history]
    expenses = [m.expenses for m in history]
    avg_income = statistics.fmean(incomes)
    avg_expenses = statistics.fmean(expenses)
    if avg_income <= 0 or avg_expenses <= 0:
        return "low"
    volatility = (
        statistics.pstdev(incomes) / avg_income
        + statistics.pstdev(expenses) / avg_expenses
    ) / 2
    if volatility < 0.1:
        return "high"
    if volatility < 0.25:
        return "medium"
    return "low"


class ReportService:
    """Read-only reports over settled transactions.

    Hidden or pending transactions and transactions in hidden categories are
    left out. Income and expense follow the category hierarchy; transfers are
    never counted. Transactions without a known category are reported as
    uncategorized spending.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def _context(self) -> tuple[list[Category], dict[str, Category], set[str]]:
        categories = CategoryService(self.session, self.user_id).list_all()
        return (
            categories,
            create_category_lookup(categories),
            get_hidden_category_ids(categories),
        )

    def _transactions(
        self, start: date, end: date, hidden_ids: set[str]
    ) -> list[Transaction]:
        return [
            txn
            for txn in TransactionService(self.session, self.user_id).list_between(
                start, end
            )
            if not txn.is_hidden
            and not txn.pending
            and txn.category_id not in hidden_ids
        ]

    @staticmethod
    def _by_month(transactions: list[Transaction]) -> dict[str, list[Transaction]]:
        grouped: dict[str, list[Transaction]] = {}
        for txn in transactions:
            grouped.setdefault(month_of(txn.date), []).append(txn)
        return grouped

    @staticmethod
    def _group(
        transactions: list[Transaction],
        lookup: dict[str, Category],
        kind: CategoryKind,
    ) -> dict[str, tuple[int, int]]:
        groups: dict[str, tuple[int, int]] = {}
        for txn in transactions:
            txn_kind = (
                classify_category(txn.category_id, lookup)
                if txn.category_id
                else CategoryKind.expense
            )
            if txn_kind is not kind:
                continue
            key = txn.category_id if txn.category_id in lookup else UNCATEGORIZED_ID
            cents, count = groups.get(key, (0, 0))
            groups[key] = (cents + abs(txn.amount_cents), count + 1)
        return groups

    @staticmethod
    def _name(category_id: str, lookup: dict[str, Category]) -> str:
        category = lookup.get(category_id)
        return category.name if category else "Uncategorized"

    @staticmethod
    def _root_id(category_id: str, lookup: dict[str, Category]) -> str:
        seen: set[str] = set()
        current = category_id
        while current not in seen:
            seen.add(current)
            parent_id = lookup[current].parent_id
            if not parent_id or parent_id not in lookup:
                return current
            current = parent_id
        return category_id

    @staticmethod
    def _income_and_expenses(
        transactions: list[Transaction], categories: list[Category]
    ) -> tuple[float, float]:
        totals = calculate_actual_totals(
            transactions, categories, {"exclude_hidden": True}
        )
        uncategorized = sum(
            abs(txn.amount_cents) for txn in transactions if not txn.category_id
        )
        return totals.income, round_money(totals.expense + from_cents(uncategorized))

    def spending_trends(
        self,
        start_month: str,
        end_month: str,
        category_ids: Optional[list[str]] = None,
    ) -> list[SpendingTrend]:
        validate_month(start_month)
        validate_month(end_month)
        if start_month > end_month:
            return []
        _, lookup, hidden_ids = self._context()
        start, _ = month_bounds(start_month)
        _, end = month_bounds(end_month)
        by_month = self._by_month(self._transactions(start, end, hidden_ids))
        wanted = set(category_ids or ())

        trends: list[SpendingTrend] = []
        for month in months_between(start_month, end_month):
            groups = self._group(by_month.get(month, []), lookup, CategoryKind.expense)
            for category_id, (cents, count) in sorted(
                groups.items(), key=lambda item: (-item[1][0], item[0])
            ):
                if wanted and category_id not in wanted:
                    continue
                trends.append(
                    SpendingTrend(
                        month=month,
                        category_id=category_id,
                        category_name=self._name(category_id, lookup),
                        amount=from_cents(cents),
                        transaction_count=count,
                    )
                )
        return trends

    def _breakdown(
        self,
        kind: CategoryKind,
        start: date,
        end: date,
        include_subcategories: bool,
    ) -> BreakdownReport:
        _, lookup, hidden_ids = self._context()
        groups = self._group(self._transactions(start, end, hidden_ids), lookup, kind)
        total_cents = sum(cents for cents, _ in groups.values())

        def entry(
            category_id: str,
            cents: int,
            count: int,
            subcategories: Optional[list[CategoryBreakdown]] = None,
        ) -> CategoryBreakdown:
            return CategoryBreakdown(
                category_id=category_id,
                category_name=self._name(category_id, lookup),
                amount=from_cents(cents),
                percentage=_percentage(cents, total_cents),
                transaction_count=count,
                subcategories=subcategories or [],
            )

        def by_amount(item: CategoryBreakdown) -> tuple[float, str]:
            return (-item.amount, item.category_id)

        if not include_subcategories:
            breakdown = [
                entry(category_id, cents, count)
                for category_id, (cents, count) in groups.items()
            ]
        else:
            # Every category is reported under its top-level ancestor.
            members: dict[str, list[tuple[str, int, int]]] = {}
            for category_id, (cents, count) in groups.items():
                root = (
                    category_id
                    if category_id == UNCATEGORIZED_ID
                    else self._root_id(category_id, lookup)
                )
                members.setdefault(root, []).append((category_id, cents, count))
            breakdown = []
            for root, rows in members.items():
                subcategories = sorted(
                    (
                        entry(category_id, cents, count)
                        for category_id, cents, count in rows
                        if category_id != root
                    ),
                    key=by_amount,
                )
                breakdown.append(
                    entry(
                        root,
                        sum(cents for _, cents, _ in rows),
                        sum(count for _, _, count in rows),
                        subcategories,
                    )
                )

        breakdown.sort(key=by_amount)
        return BreakdownReport(total=from_cents(total_cents), breakdown=breakdown)

    def category_breakdown(
        self, start: date, end: date, include_subcategories: bool = True
    ) -> BreakdownReport:
        return self._breakdown(CategoryKind.expense, start, end, include_subcategories)

    def income_category_breakdown(
        self, start: date, end: date, include_subcategories: bool = True
    ) -> BreakdownReport:
        return self._breakdown(CategoryKind.income, start, end, include_subcategories)

    def _cash_flow(
        self, start_month: str, end_month: str, until: Optional[date] = None
    ) -> list[CashFlowMonth]:
        validate_month(start_month)
        validate_month(end_month)
        if start_month > end_month:
            return []
        categories, _, hidden_ids = self._context()
        start, _ = month_bounds(start_month)
        _, end = month_bounds(end_month)
        if until is not None:
            end = min(end, until)
        by_month = self._by_month(self._transactions(start, end, hidden_ids))
        overrides = {
            o.month: o
            for o in ActualsOverrideService(self.session, self.user_id).for_range(
                start_month, end_month
            )
        }

        flows: list[CashFlowMonth] = []
        for month in months_between(start_month, end_month):
            override = overrides.get(month)
            if override is not None:
                income, expenses = override.total_income, override.total_expenses
            else:
                income, expenses = self._income_and_expenses(
                    by_month.get(month, []), categories
                )
            flows.append(
                _cash_flow_month(month, income, expenses, override is not None)
            )
        return flows

    def cash_flow(self, start_month: str, end_month: str) -> list[CashFlowMonth]:
        """Income, expenses and savings rate per month.

        A month with an actuals override reports the override's totals
        instead of the ones computed from its transactions.
        """
        return self._cash_flow(start_month, end_month)

    def projections(
        self, months_ahead: int = 6, today: Optional[date] = None
    ) -> list[CashFlowProjection]:
        if not 1 <= months_ahead <= 12:
            raise ValueError("Months to project must be between 1 and 12")
        current = month_of(today or date.today())
        history = self.cash_flow(
            shift_month(current, -PROJECTION_HISTORY_MONTHS), shift_month(current, -1)
        )
        avg_income = round_money(statistics.fmean(m.income for m in history))
        avg_expenses = round_money(statistics.fmean(m.expenses for m in history))
        confidence = _projection_confidence(history)
        return [
            CashFlowProjection(
                month=shift_month(current, offset),
                projected_income=avg_income,
                projected_expenses=avg_expenses,
                projected_net_flow=round_money(avg_income - avg_expenses),
                confidence=confidence,
            )
            for offset in range(1, months_ahead + 1)
        ]

    def year_to_date(self, today: Optional[date] = None) -> YearToDateSummary:
        today = today or date.today()
        flows = self._cash_flow(
            format_month(today.year, 1), month_of(today), until=today
        )
        total_income = round_money(sum(m.income for m in flows))
        total_expenses = round_money(sum(m.expenses for m in flows))
        net_income = round_money(total_income - total_expenses)
        top = self._breakdown(
            CategoryKind.expense, date(today.year, 1, 1), today, False
        ).breakdown
        return YearToDateSummary(
            year=today.year,
            months_elapsed=today.month,
            total_income=total_income,
            total_expenses=total_expenses,
            net_income=net_income,
            average_monthly_income=round_money(total_income / today.month),
            average_monthly_expenses=round_money(total_expenses / today.month),
            savings_rate=_percentage(net_income, total_income),
            top_categories=top[:TOP_CATEGORY_COUNT],
        )


def category_to_dict(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "parentId": category.parent_id,
        "isCustom": bool(category.is_custom),
        "isHidden": bool(category.is_hidden),
        "isRollover": bool(category.is_rollover),
        "isIncome": category.is_income,
    }


def transaction_to_dict(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "name": txn.name,
        "amount": txn.amount,
        "categoryId": txn.category_id,
        "pending": bool(txn.pending),
        "isHidden": bool(txn.is_hidden),
        "notes": txn.notes,
    }


def budget_to_dict(budget: MonthlyBudget) -> dict[str, Any]:
    return {
        "id": budget.id,
        "categoryId": budget.category_id,
        "month": budget.month,
        "amount": budget.amount,
    }


def override_to_dict(override: ActualsOverride) -> dict[str, Any]:
    return {
        "id": override.id,
        "month": override.month,
        "totalIncome": override.total_income,
        "totalExpenses": override.total_expenses,
        "notes": override.notes,
    }
