"""Income / expense / transfer classification of category IDs.

Categories form a two-level hierarchy (root categories and their direct
subcategories). Any object exposing ``id``, ``parent_id`` and ``is_income``
works as a category here: ORM rows, request records or test doubles.

Nothing in this module raises for malformed input. Unknown IDs, orphaned
parents and circular parent chains all resolve to a boolean default.
"""

from __future__ import annotations

import warnings
from enum import Enum
from typing import Iterable, Mapping, Optional, Protocol

INCOME_PREFIX = "INCOME"
TRANSFER_PREFIXES = ("TRANSFER_IN", "TRANSFER_OUT")
MAX_HIERARCHY_DEPTH = 32


class CategoryLike(Protocol):
    id: str
    parent_id: Optional[str]
    is_income: Optional[bool]


class CategoryKind(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


def create_category_lookup(
    categories: Iterable[CategoryLike],
) -> dict[str, CategoryLike]:
    # Duplicate IDs: the last one wins.
    return {category.id: category for category in categories}


def is_transfer_category(category_id: str) -> bool:
    return category_id.startswith(TRANSFER_PREFIXES)


def is_income_category_hierarchical(
    category_id: str, lookup: Mapping[str, CategoryLike]
) -> bool:
    """Resolve whether ``category_id`` counts as income.

    An explicit ``is_income`` on the category wins. Without one the parent
    chain is followed until a category carries the flag. A chain with no
    flag at all falls back to the ``INCOME`` ID prefix of the category the
    walk stopped at. Unknown categories and cycles are not income.
    """
    category = lookup.get(category_id)
    if category is None:
        return False

    visited: set[str] = set()
    while True:
        if category.id in visited or len(visited) >= MAX_HIERARCHY_DEPTH:
            return False
        visited.add(category.id)

        if category.is_income is not None:
            return bool(category.is_income)

        parent = lookup.get(category.parent_id) if category.parent_id else None
        if parent is None:
            break
        category = parent

    return category.id.startswith(INCOME_PREFIX)


def is_expense_category_hierarchical(
    category_id: str, lookup: Mapping[str, CategoryLike]
) -> bool:
    # Expense means "neither transfer nor income", so a category missing from
    # the lookup is an expense even though it is not income.
    if is_transfer_category(category_id):
        return False
    return not is_income_category_hierarchical(category_id, lookup)


def classify_category(
    category_id: str, lookup: Mapping[str, CategoryLike]
) -> CategoryKind:
    if is_transfer_category(category_id):
        return CategoryKind.transfer
    if is_income_category_hierarchical(category_id, lookup):
        return CategoryKind.income
    return CategoryKind.expense


def is_income_category_with_categories(
    category_id: str, categories: Iterable[CategoryLike]
) -> bool:
    return is_income_category_hierarchical(
        category_id, create_category_lookup(categories)
    )


def is_expense_category_with_categories(
    category_id: str, categories: Iterable[CategoryLike]
) -> bool:
    return is_expense_category_hierarchical(
        category_id, create_category_lookup(categories)
    )


def is_income_category(category_id: str) -> bool:
    """Deprecated prefix check; use :func:`is_income_category_hierarchical`."""
    warnings.warn(
        "is_income_category ignores the category hierarchy; "
        "use is_income_category_hierarchical",
        DeprecationWarning,
        stacklevel=2,
    )
    return category_id.startswith(INCOME_PREFIX)


def is_expense_category(category_id: str) -> bool:
    """Deprecated prefix check; use :func:`is_expense_category_hierarchical`."""
    warnings.warn(
        "is_expense_category ignores the category hierarchy; "
        "use is_expense_category_hierarchical",
        DeprecationWarning,
        stacklevel=2,
    )
    return not category_id.startswith(INCOME_PREFIX) and not is_transfer_category(
        category_id
    )
