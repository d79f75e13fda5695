"""Default category taxonomy seeded for a new user.

Primary categories follow Plaid's personal finance category taxonomy. Only
the income and transfer groups are seeded with their subcategories; users add
their own subcategories for everything else.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DefaultCategory:
    id: str
    name: str
    parent_id: Optional[str] = None


PRIMARY_CATEGORIES: list[DefaultCategory] = [
    DefaultCategory("INCOME", "Income"),
    DefaultCategory("TRANSFER_IN", "Transfer In"),
    DefaultCategory("TRANSFER_OUT", "Transfer Out"),
    DefaultCategory("LOAN_PAYMENTS", "Loan Payments"),
    DefaultCategory("BANK_FEES", "Bank Fees"),
    DefaultCategory("ENTERTAINMENT", "Entertainment"),
    DefaultCategory("FOOD_AND_DRINK", "Food and Drink"),
    DefaultCategory("GENERAL_MERCHANDISE", "General Merchandise"),
    DefaultCategory("HOME_IMPROVEMENT", "Home Improvement"),
    DefaultCategory("MEDICAL", "Medical"),
    DefaultCategory("PERSONAL_CARE", "Personal Care"),
    DefaultCategory("GENERAL_SERVICES", "General Services"),
    DefaultCategory("GOVERNMENT_AND_NON_PROFIT", "Government and Non-Profit"),
    DefaultCategory("TRANSPORTATION", "Transportation"),
    DefaultCategory("TRAVEL", "Travel"),
    DefaultCategory("RENT_AND_UTILITIES", "Rent and Utilities"),
]

SUBCATEGORIES: list[DefaultCategory] = [
    DefaultCategory("INCOME_DIVIDENDS", "Dividends", "INCOME"),
    DefaultCategory("INCOME_INTEREST_EARNED", "Interest Earned", "INCOME"),
    DefaultCategory("INCOME_RETIREMENT_PENSION", "Retirement Pension", "INCOME"),
    DefaultCategory("INCOME_TAX_REFUND", "Tax Refund", "INCOME"),
    DefaultCategory("INCOME_UNEMPLOYMENT", "Unemployment", "INCOME"),
    DefaultCategory("INCOME_WAGES", "Wages", "INCOME"),
    DefaultCategory("INCOME_OTHER_INCOME", "Other Income", "INCOME"),
    DefaultCategory(
        "TRANSFER_IN_CASH_ADVANCES_AND_LOANS", "Cash Advances and Loans", "TRANSFER_IN"
    ),
    DefaultCategory("TRANSFER_IN_DEPOSIT", "Deposit", "TRANSFER_IN"),
    DefaultCategory(
        "TRANSFER_IN_INVESTMENT_AND_RETIREMENT_FUNDS",
        "Investment and Retirement Funds",
        "TRANSFER_IN",
    ),
    DefaultCategory("TRANSFER_IN_SAVINGS", "Savings", "TRANSFER_IN"),
    DefaultCategory("TRANSFER_IN_ACCOUNT_TRANSFER", "Account Transfer", "TRANSFER_IN"),
    DefaultCategory("TRANSFER_IN_OTHER_TRANSFER_IN", "Other Transfer In", "TRANSFER_IN"),
    DefaultCategory(
        "TRANSFER_OUT_INVESTMENT_AND_RETIREMENT_FUNDS",
        "Investment and Retirement Funds",
        "TRANSFER_OUT",
    ),
    DefaultCategory("TRANSFER_OUT_SAVINGS", "Savings", "TRANSFER_OUT"),
    DefaultCategory("TRANSFER_OUT_WITHDRAWAL", "Withdrawal", "TRANSFER_OUT"),
    DefaultCategory(
        "TRANSFER_OUT_ACCOUNT_TRANSFER", "Account Transfer", "TRANSFER_OUT"
    ),
    DefaultCategory(
        "TRANSFER_OUT_OTHER_TRANSFER_OUT", "Other Transfer Out", "TRANSFER_OUT"
    ),
]


def default_categories() -> list[DefaultCategory]:
    return PRIMARY_CATEGORIES + SUBCATEGORIES


def is_plaid_category(category_id: str) -> bool:
    return any(c.id == category_id for c in default_categories())
