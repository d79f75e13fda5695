from datetime import date

import pytest

from months import (
    format_month,
    is_valid_month,
    month_bounds,
    month_of,
    months_between,
    months_in_year,
    parse_month,
    shift_month,
    validate_month,
)


def test_month_validation() -> None:
    assert is_valid_month("2025-01")
    assert is_valid_month("1999-12")
    assert not is_valid_month("2025-13")
    assert not is_valid_month("2025-1")
    assert not is_valid_month("25-01")
    assert not is_valid_month("")
    assert not is_valid_month(None)
    with pytest.raises(ValueError, match="Use YYYY-MM"):
        validate_month("2025/01")


def test_parse_and_format() -> None:
    assert parse_month("2024-02") == (2024, 2)
    assert format_month(7, 3) == "0007-03"
    assert month_of(date(2025, 11, 30)) == "2025-11"


def test_shift_month_crosses_years() -> None:
    assert shift_month("2024-12", 1) == "2025-01"
    assert shift_month("2025-01", -1) == "2024-12"
    assert shift_month("2025-03", 24) == "2027-03"
    assert shift_month("2025-03", 0) == "2025-03"


def test_month_bounds() -> None:
    assert month_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds("2025-12") == (date(2025, 12, 1), date(2025, 12, 31))


def test_month_ranges() -> None:
    assert months_in_year(2025)[0] == "2025-01"
    assert len(months_in_year(2025)) == 12
    assert months_between("2024-11", "2025-02") == [
        "2024-11",
        "2024-12",
        "2025-01",
        "2025-02",
    ]
    with pytest.raises(ValueError, match="Start month"):
        months_between("2025-02", "2024-11")
