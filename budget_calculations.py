"""Budget and actuals aggregation.

Budgets, transactions and categories come in as plain records (ORM rows or
request models) and the results are immutable dataclasses whose
``to_dict()`` output is embedded directly in API responses.

Sign convention: the sign of ``Transaction.amount`` is not interpreted.
Actuals always accumulate ``abs(amount)`` and the category decides the
bucket. Budgets contribute their amount as is. Sums are taken in whole
cents, so every amount in a result is rounded to two decimals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, Union

from category_helpers import (
    CategoryKind,
    CategoryLike,
    classify_category,
    create_category_lookup,
    is_income_category_hierarchical,
    is_transfer_category,
)
from money import from_cents, round_money, to_cents


class HierarchyCategory(CategoryLike, Protocol):
    is_hidden: bool


class BudgetRecord(Protocol):
    category_id: Optional[str]
    amount: float


class TransactionRecord(Protocol):
    category_id: Optional[str]
    amount: float
    is_hidden: bool


@dataclass(frozen=True)
class BudgetCalculationOptions:
    """Exclusion switches. ``None`` keeps the calling function's default."""

    exclude_hidden: Optional[bool] = None
    exclude_children: Optional[bool] = None
    exclude_transfers: Optional[bool] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BudgetCalculationOptions":
        def pick(snake: str, camel: str) -> Optional[bool]:
            value = data.get(snake, data.get(camel))
            return None if value is None else bool(value)

        return cls(
            exclude_hidden=pick("exclude_hidden", "excludeHidden"),
            exclude_children=pick("exclude_children", "excludeChildren"),
            exclude_transfers=pick("exclude_transfers", "excludeTransfers"),
        )


OptionsArg = Union[BudgetCalculationOptions, Mapping[str, Any], None]


@dataclass(frozen=True)
class _ResolvedOptions:
    exclude_hidden: bool
    exclude_children: bool
    exclude_transfers: bool


def _resolve_options(
    options: OptionsArg,
    *,
    exclude_hidden: bool = False,
    exclude_children: bool = False,
    exclude_transfers: bool = True,
) -> _ResolvedOptions:
    if options is None:
        options = BudgetCalculationOptions()
    elif not isinstance(options, BudgetCalculationOptions):
        options = BudgetCalculationOptions.from_mapping(options)
    return _ResolvedOptions(
        exclude_hidden=exclude_hidden
        if options.exclude_hidden is None
        else options.exclude_hidden,
        exclude_children=exclude_children
        if options.exclude_children is None
        else options.exclude_children,
        exclude_transfers=exclude_transfers
        if options.exclude_transfers is None
        else options.exclude_transfers,
    )


@dataclass(frozen=True)
class BudgetTotals:
    income: float = 0
    expense: float = 0
    transfer: float = 0

    @property
    def total(self) -> float:
        return round_money(self.income + self.expense + self.transfer)

    def to_dict(self) -> dict[str, float]:
        return {
            "income": self.income,
            "expense": self.expense,
            "transfer": self.transfer,
            "total": self.total,
        }


@dataclass(frozen=True)
class BucketComparison:
    budgeted: float
    actual: float
    remaining: float
    percent_used: int
    is_over_budget: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "budgeted": self.budgeted,
            "actual": self.actual,
            "remaining": self.remaining,
            "percentUsed": self.percent_used,
            "isOverBudget": self.is_over_budget,
        }


@dataclass(frozen=True)
class BudgetVsActual:
    income: BucketComparison
    expense: BucketComparison
    transfer: BucketComparison
    total: BucketComparison

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            "income": self.income.to_dict(),
            "expense": self.expense.to_dict(),
            "transfer": self.transfer.to_dict(),
            "total": self.total.to_dict(),
        }


@dataclass(frozen=True)
class HierarchicalComparison:
    category_id: str
    budgeted: float
    actual: float
    remaining: float
    percent_used: int
    is_over_budget: bool
    is_income_category: bool
    is_calculated: bool
    children_ids: list[str] = field(default_factory=list)
    original_budget: Optional[float] = None
    original_actual: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "categoryId": self.category_id,
            "budgeted": self.budgeted,
            "actual": self.actual,
            "remaining": self.remaining,
            "percentUsed": self.percent_used,
            "isOverBudget": self.is_over_budget,
            "isIncomeCategory": self.is_income_category,
            "isCalculated": self.is_calculated,
            "childrenIds": list(self.children_ids),
            "originalBudget": self.original_budget,
            "originalActual": self.original_actual,
        }


def percent_used(actual: float, budgeted: float) -> int:
    if budgeted <= 0:
        return 0
    # Half-up rounding; round() would round 0.5 to even.
    return int(math.floor(actual / budgeted * 100 + 0.5))


def compare_amounts(
    budgeted: float, actual: float, *, is_income: bool = False
) -> BucketComparison:
    if is_income:
        # Income: positive remaining means the target was exceeded and a
        # shortfall is flagged as over budget.
        remaining = round_money(actual - budgeted)
        is_over_budget = actual < budgeted
    else:
        remaining = round_money(budgeted - actual)
        is_over_budget = actual > budgeted
    return BucketComparison(
        budgeted=budgeted,
        actual=actual,
        remaining=remaining,
        percent_used=percent_used(actual, budgeted),
        is_over_budget=is_over_budget,
    )


def get_hidden_category_ids(categories: Iterable[HierarchyCategory]) -> set[str]:
    """Hidden categories plus the direct children of hidden categories.

    Only one hop: a grandchild of a hidden grandparent stays visible unless
    its own parent is hidden too.
    """
    categories = list(categories)
    lookup = create_category_lookup(categories)
    hidden_ids: set[str] = set()
    for category in categories:
        if category.is_hidden:
            hidden_ids.add(category.id)
        elif category.parent_id:
            parent = lookup.get(category.parent_id)
            if parent is not None and parent.is_hidden:
                hidden_ids.add(category.id)
    return hidden_ids


def get_child_category_ids(categories: Iterable[CategoryLike]) -> set[str]:
    return {category.id for category in categories if category.parent_id}


def get_parent_category_ids(categories: Iterable[CategoryLike]) -> set[str]:
    return {category.parent_id for category in categories if category.parent_id}


def _excluded_ids(
    categories: Sequence[HierarchyCategory], options: _ResolvedOptions
) -> set[str]:
    excluded: set[str] = set()
    if options.exclude_hidden:
        excluded |= get_hidden_category_ids(categories)
    if options.exclude_children:
        excluded |= get_child_category_ids(categories)
    return excluded


def _bucket_amounts(
    amounts: Iterable[tuple[str, float]],
    categories: Sequence[HierarchyCategory],
    options: _ResolvedOptions,
) -> BudgetTotals:
    lookup = create_category_lookup(categories)
    excluded = _excluded_ids(categories, options)
    # Summed in cents so float drift never reaches a total.
    income = expense = transfer = 0
    for category_id, amount in amounts:
        if category_id in excluded:
            continue
        kind = classify_category(category_id, lookup)
        if kind is CategoryKind.transfer:
            if not options.exclude_transfers:
                transfer += to_cents(amount)
        elif kind is CategoryKind.income:
            income += to_cents(amount)
        else:
            expense += to_cents(amount)
    return BudgetTotals(
        income=from_cents(income),
        expense=from_cents(expense),
        transfer=from_cents(transfer),
    )


def calculate_budget_totals(
    budgets: Iterable[BudgetRecord],
    categories: Iterable[HierarchyCategory],
    options: OptionsArg = None,
) -> BudgetTotals:
    resolved = _resolve_options(options)
    amounts = (
        (budget.category_id, budget.amount) for budget in budgets if budget.category_id
    )
    return _bucket_amounts(amounts, list(categories), resolved)


def calculate_actual_totals(
    transactions: Iterable[TransactionRecord],
    categories: Iterable[HierarchyCategory],
    options: OptionsArg = None,
) -> BudgetTotals:
    resolved = _resolve_options(options)
    amounts = (
        (txn.category_id, abs(txn.amount))
        for txn in transactions
        if not txn.is_hidden and txn.category_id
    )
    return _bucket_amounts(amounts, list(categories), resolved)


def calculate_budget_vs_actual(
    budget_totals: BudgetTotals, actual_totals: BudgetTotals
) -> BudgetVsActual:
    return BudgetVsActual(
        income=compare_amounts(
            budget_totals.income, actual_totals.income, is_income=True
        ),
        expense=compare_amounts(budget_totals.expense, actual_totals.expense),
        transfer=compare_amounts(budget_totals.transfer, actual_totals.transfer),
        total=compare_amounts(budget_totals.total, actual_totals.total),
    )


def create_actuals_map(
    transactions: Iterable[TransactionRecord],
    categories: Iterable[HierarchyCategory],
    options: OptionsArg = None,
) -> dict[str, float]:
    # Hidden categories are excluded unless the caller opts out.
    resolved = _resolve_options(options, exclude_hidden=True)
    excluded = _excluded_ids(list(categories), resolved)

    cents: dict[str, int] = {}
    for txn in transactions:
        if txn.is_hidden or not txn.category_id:
            continue
        if txn.category_id in excluded:
            continue
        if resolved.exclude_transfers and is_transfer_category(txn.category_id):
            continue
        cents[txn.category_id] = cents.get(txn.category_id, 0) + abs(
            to_cents(txn.amount)
        )
    return {category_id: from_cents(value) for category_id, value in cents.items()}


def _entry_value(entry: Any, snake: str, camel: Optional[str] = None) -> Any:
    if isinstance(entry, Mapping):
        if snake in entry:
            return entry[snake]
        return entry.get(camel) if camel else None
    return getattr(entry, snake, None)


def calculate_enhanced_parent_totals(
    parent_id: str,
    children: Sequence[Any],
    existing_parent: Optional[Any],
    categories: Iterable[CategoryLike],
) -> HierarchicalComparison:
    """Roll a parent's children up into one comparison entry.

    ``children`` and ``existing_parent`` may be mappings or objects with
    ``budgeted``, ``actual`` and an optional ``is_income_category``. The
    parent's own direct amounts stack on top of the children's sums.
    """
    child_budget_sum = round_money(
        sum(_entry_value(c, "budgeted") or 0 for c in children)
    )
    child_actual_sum = round_money(
        sum(_entry_value(c, "actual") or 0 for c in children)
    )

    is_income = bool(
        (
            existing_parent is not None
            and _entry_value(existing_parent, "is_income_category", "isIncomeCategory")
        )
        or (
            children
            and _entry_value(children[0], "is_income_category", "isIncomeCategory")
        )
        or is_income_category_hierarchical(
            parent_id, create_category_lookup(categories)
        )
    )

    original_budget: Optional[float] = None
    original_actual: Optional[float] = None
    budgeted = child_budget_sum
    actual = child_actual_sum
    if existing_parent is not None:
        original_budget = _entry_value(existing_parent, "budgeted") or 0
        original_actual = _entry_value(existing_parent, "actual") or 0
        budgeted = round_money(budgeted + original_budget)
        actual = round_money(actual + original_actual)

    comparison = compare_amounts(budgeted, actual, is_income=is_income)
    return HierarchicalComparison(
        category_id=parent_id,
        budgeted=budgeted,
        actual=actual,
        remaining=comparison.remaining,
        percent_used=comparison.percent_used,
        is_over_budget=comparison.is_over_budget,
        is_income_category=is_income,
        # False only for a standalone parent value the children added nothing to.
        is_calculated=existing_parent is None or child_budget_sum > 0,
        children_ids=[
            _entry_value(c, "category_id", "categoryId") for c in children
        ],
        original_budget=original_budget,
        original_actual=original_actual,
    )


def get_budgetable_transactions(
    transactions: Iterable[TransactionRecord],
    categories: Optional[Iterable[CategoryLike]] = None,
) -> list[TransactionRecord]:
    return [
        txn
        for txn in transactions
        if not txn.is_hidden
        and txn.category_id
        and not is_transfer_category(txn.category_id)
    ]


def should_exclude_category(
    category_id: str,
    categories: Iterable[HierarchyCategory],
    options: OptionsArg = None,
) -> bool:
    resolved = _resolve_options(options)
    if resolved.exclude_transfers and is_transfer_category(category_id):
        return True
    return category_id in _excluded_ids(list(categories), resolved)


def calculate_rollover_amount(budgeted: float, actual_spent: float) -> float:
    """Unspent budget carried forward; overspending carries nothing."""
    return max(0, budgeted - actual_spent)


def build_hierarchical_comparisons(
    budgets: Iterable[BudgetRecord],
    actuals: Mapping[str, float],
    categories: Iterable[HierarchyCategory],
    options: OptionsArg = None,
) -> dict[str, HierarchicalComparison]:
    """Per-category comparisons with parent categories rolled up.

    Every category with a budget or an actual gets its own entry. A parent
    with at least one such child is replaced by the rollup of its children
    plus its own direct amounts.
    """
    categories = list(categories)
    resolved = _resolve_options(options)
    lookup = create_category_lookup(categories)
    excluded = _excluded_ids(categories, resolved)

    def keep(category_id: str) -> bool:
        if category_id in excluded:
            return False
        return not (resolved.exclude_transfers and is_transfer_category(category_id))

    budgeted_by_category: dict[str, float] = {}
    for budget in budgets:
        if budget.category_id and keep(budget.category_id):
            budgeted_by_category[budget.category_id] = round_money(
                budgeted_by_category.get(budget.category_id, 0) + budget.amount
            )

    category_ids = set(budgeted_by_category) | {
        category_id for category_id in actuals if keep(category_id)
    }

    entries: dict[str, HierarchicalComparison] = {}
    for category_id in sorted(category_ids):
        is_income = is_income_category_hierarchical(category_id, lookup)
        comparison = compare_amounts(
            budgeted_by_category.get(category_id, 0),
            actuals.get(category_id, 0),
            is_income=is_income,
        )
        entries[category_id] = HierarchicalComparison(
            category_id=category_id,
            budgeted=comparison.budgeted,
            actual=comparison.actual,
            remaining=comparison.remaining,
            percent_used=comparison.percent_used,
            is_over_budget=comparison.is_over_budget,
            is_income_category=is_income,
            is_calculated=False,
        )

    children_by_parent: dict[str, list[HierarchicalComparison]] = {}
    for category_id, entry in entries.items():
        category = lookup.get(category_id)
        if category is None or not category.parent_id:
            continue
        if category.parent_id == category_id:
            continue
        children_by_parent.setdefault(category.parent_id, []).append(entry)

    for parent_id in sorted(children_by_parent):
        if not keep(parent_id):
            continue
        entries[parent_id] = calculate_enhanced_parent_totals(
            parent_id,
            children_by_parent[parent_id],
            entries.get(parent_id),
            categories,
        )
    return entries
