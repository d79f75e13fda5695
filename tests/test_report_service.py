from datetime import date
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from schemas import ActualsOverrideIn, CategoryIn, TransactionIn
from services import (
    ActualsOverrideService,
    CategoryService,
    ReportService,
    TransactionService,
)


def _add(
    session: Session,
    day: date,
    amount: float,
    category_id: Optional[str],
    **flags: bool,
) -> None:
    TransactionService(session, user_id=1).create(
        TransactionIn(
            date=day, name="Entry", amount=amount, category_id=category_id, **flags
        )
    )


def _seed(session: Session) -> str:
    categories = CategoryService(session, user_id=1)
    categories.initialize_defaults()
    groceries = categories.create(
        CategoryIn(name="Groceries", parent_id="FOOD_AND_DRINK")
    )
    secret = categories.create(CategoryIn(name="Secret", is_hidden=True))

    jan = date(2025, 1, 10)
    _add(session, jan, -3000, "INCOME_WAGES")
    _add(session, jan, -100.5, "INCOME_DIVIDENDS")
    _add(session, jan, 200, "FOOD_AND_DRINK")
    _add(session, jan, 150.25, groceries.id)
    _add(session, jan, 49.75, groceries.id)
    _add(session, jan, 100, "ENTERTAINMENT")
    _add(session, jan, 50, None)
    _add(session, jan, 500, "TRANSFER_OUT")
    _add(session, jan, 80, secret.id)
    _add(session, jan, 999, "FOOD_AND_DRINK", pending=True)
    _add(session, jan, 60, "ENTERTAINMENT", is_hidden=True)

    feb = date(2025, 2, 3)
    _add(session, feb, -3000, "INCOME_WAGES")
    _add(session, feb, 400, "FOOD_AND_DRINK")

    _add(session, date(2025, 3, 20), 70, "FOOD_AND_DRINK")
    ActualsOverrideService(session, user_id=1).create_or_update(
        ActualsOverrideIn(month="2025-03", total_income=2500, total_expenses=1000)
    )
    return groceries.id


def test_overrides_upsert_per_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        overrides = ActualsOverrideService(session, user_id=1)
        first = overrides.create_or_update(
            ActualsOverrideIn(month="2025-03", total_income=2500, total_expenses=999.99)
        )
        second = overrides.create_or_update(
            ActualsOverrideIn(
                month="2025-03", total_income=2600, total_expenses=1000, notes="Paper"
            )
        )
        overrides.create_or_update(
            ActualsOverrideIn(month="2024-12", total_income=1, total_expenses=2)
        )

        assert first.id == second.id
        assert second.total_income_cents == 260000
        assert overrides.get("2025-03").notes == "Paper"
        assert [o.month for o in overrides.list_all()] == ["2025-03", "2024-12"]
        assert [o.month for o in overrides.for_range("2024-01", "2025-12")] == [
            "2024-12",
            "2025-03",
        ]
        assert overrides.for_range("2025-12", "2024-01") == []
        assert overrides.has_override("2024-12")
        assert not ActualsOverrideService(session, user_id=2).has_override("2024-12")

        with pytest.raises(ValueError, match="non-negative"):
            overrides.create_or_update(
                ActualsOverrideIn.model_construct(
                    month="2025-04", total_income=-1, total_expenses=0, notes=None
                )
            )
        with pytest.raises(ValueError, match="Invalid month"):
            overrides.get("2025-3")

        override_id = second.id
        overrides.delete(override_id)
        with pytest.raises(ValueError, match="Override not found"):
            overrides.get("2025-03")
        with pytest.raises(ValueError, match="Override not found"):
            overrides.delete(override_id)


def test_cash_flow_uses_overrides() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)
        flows = ReportService(session, user_id=1).cash_flow("2025-01", "2025-04")

        assert [f.to_dict() for f in flows] == [
            {
                "month": "2025-01",
                "income": 3100.5,
                "expenses": 550,
                "netFlow": 2550.5,
                "savingsRate": 82.26,
                "hasOverride": False,
            },
            {
                "month": "2025-02",
                "income": 3000,
                "expenses": 400,
                "netFlow": 2600,
                "savingsRate": 86.67,
                "hasOverride": False,
            },
            {
                "month": "2025-03",
                "income": 2500,
                "expenses": 1000,
                "netFlow": 1500,
                "savingsRate": 60,
                "hasOverride": True,
            },
            {
                "month": "2025-04",
                "income": 0,
                "expenses": 0,
                "netFlow": 0,
                "savingsRate": 0,
                "hasOverride": False,
            },
        ]
        assert ReportService(session, user_id=1).cash_flow("2025-04", "2025-01") == []
        assert ReportService(session, user_id=2).cash_flow("2025-01", "2025-01")[
            0
        ].income == 0


def test_category_breakdown_groups_under_top_level() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        groceries_id = _seed(session)
        reports = ReportService(session, user_id=1)
        report = reports.category_breakdown(date(2025, 1, 1), date(2025, 1, 31))

        assert report.total == 550
        assert [(b.category_id, b.amount, b.transaction_count) for b in report.breakdown] == [
            ("FOOD_AND_DRINK", 400, 3),
            ("ENTERTAINMENT", 100, 1),
            ("uncategorized", 50, 1),
        ]
        food = report.breakdown[0]
        assert food.percentage == 72.73
        assert [(s.category_id, s.amount, s.percentage) for s in food.subcategories] == [
            (groceries_id, 200, 36.36)
        ]
        assert report.breakdown[2].category_name == "Uncategorized"
        assert "subcategories" not in report.breakdown[1].to_dict()

        flat = reports.category_breakdown(
            date(2025, 1, 1), date(2025, 1, 31), include_subcategories=False
        )
        assert [b.category_id for b in flat.breakdown] == [
            groceries_id,
            "FOOD_AND_DRINK",
            "ENTERTAINMENT",
            "uncategorized",
        ]


def test_income_breakdown() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)
        report = ReportService(session, user_id=1).income_category_breakdown(
            date(2025, 1, 1), date(2025, 1, 31)
        )

        assert report.total == 3100.5
        assert len(report.breakdown) == 1
        income = report.breakdown[0]
        assert (income.category_id, income.amount, income.percentage) == (
            "INCOME",
            3100.5,
            100,
        )
        assert [(s.category_name, s.amount, s.percentage) for s in income.subcategories] == [
            ("Wages", 3000, 96.76),
            ("Dividends", 100.5, 3.24),
        ]


def test_spending_trends_per_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        groceries_id = _seed(session)
        reports = ReportService(session, user_id=1)
        trends = reports.spending_trends("2025-01", "2025-02")

        assert [(t.month, t.category_id, t.amount, t.transaction_count) for t in trends] == [
            ("2025-01", groceries_id, 200, 2),
            ("2025-01", "FOOD_AND_DRINK", 200, 1),
            ("2025-01", "ENTERTAINMENT", 100, 1),
            ("2025-01", "uncategorized", 50, 1),
            ("2025-02", "FOOD_AND_DRINK", 400, 1),
        ]
        filtered = reports.spending_trends(
            "2025-01", "2025-02", category_ids=["FOOD_AND_DRINK"]
        )
        assert [(t.month, t.amount) for t in filtered] == [
            ("2025-01", 200),
            ("2025-02", 400),
        ]
        assert reports.spending_trends("2025-02", "2025-01") == []
        with pytest.raises(ValueError, match="Invalid month"):
            reports.spending_trends("2025-1", "2025-02")


def test_year_to_date_summary() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        groceries_id = _seed(session)
        summary = ReportService(session, user_id=1).year_to_date(date(2025, 3, 15))

        assert summary.months_elapsed == 3
        assert summary.total_income == 8600.5
        assert summary.total_expenses == 1950
        assert summary.net_income == 6650.5
        assert summary.average_monthly_income == 2866.83
        assert summary.average_monthly_expenses == 650
        assert summary.savings_rate == 77.33
        # The 2025-03-20 purchase is after the summary date.
        assert [(c.category_id, c.amount) for c in summary.top_categories] == [
            ("FOOD_AND_DRINK", 600),
            (groceries_id, 200),
            ("ENTERTAINMENT", 100),
            ("uncategorized", 50),
        ]
        assert summary.top_categories[0].percentage == 63.16


def test_projections_average_recent_months() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)
        reports = ReportService(session, user_id=1)
        projections = reports.projections(2, today=date(2025, 7, 10))

        assert [p.month for p in projections] == ["2025-08", "2025-09"]
        assert projections[0].projected_income == 1433.42
        assert projections[0].projected_expenses == 325
        assert projections[0].projected_net_flow == 1108.42
        assert projections[0].confidence == "low"

        with pytest.raises(ValueError, match="between 1 and 12"):
            reports.projections(13)

        empty = ReportService(session, user_id=2).projections(1, today=date(2025, 7, 10))
        assert empty[0].projected_income == 0
        assert empty[0].confidence == "low"
