from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from money import Amount, from_cents, to_cents


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(String(64))
    is_custom: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_rollover: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # None marks a legacy record that never carried the flag.
    is_income: Mapped[Optional[bool]] = mapped_column(Boolean)

    __table_args__ = (
        Index("ix_categories_user_parent", "user_id", "parent_id"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(String(64))
    pending: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category_id", "date"),
    )

    @property
    def amount(self) -> float:
        return from_cents(self.amount_cents)

    @amount.setter
    def amount(self, value: Amount) -> None:
        self.amount_cents = to_cents(value)


class MonthlyBudget(Base, TimestampMixin):
    __tablename__ = "monthly_budgets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_monthly_budget_amount_positive"),
        UniqueConstraint(
            "user_id",
            "category_id",
            "month",
            name="uq_monthly_budget_user_category_month",
        ),
        Index("ix_monthly_budget_user_month", "user_id", "month"),
    )

    @property
    def amount(self) -> float:
        return from_cents(self.amount_cents)

    @amount.setter
    def amount(self, value: Amount) -> None:
        self.amount_cents = to_cents(value)


class ActualsOverride(Base, TimestampMixin):
    """Entered income and expense totals for a month without full transaction data."""

    __tablename__ = "actuals_overrides"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    total_income_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_expenses_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "total_income_cents >= 0 AND total_expenses_cents >= 0",
            name="ck_actuals_override_amounts_positive",
        ),
        UniqueConstraint("user_id", "month", name="uq_actuals_override_user_month"),
    )

    @property
    def total_income(self) -> float:
        return from_cents(self.total_income_cents)

    @property
    def total_expenses(self) -> float:
        return from_cents(self.total_expenses_cents)
