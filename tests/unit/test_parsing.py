# ============================================================================
# FILE: tests/unit/test_parsing.py
# ============================================================================
"""
Unit tests for lab value, reference range, status and date parsing
"""

import pytest

from bloodwork_ingestion.core.context.enums import ResultStatus
from bloodwork_ingestion.processors.lab.parsing import (
    compute_status,
    normalize_date,
    normalize_status,
    normalize_unit,
    parse_numeric_value,
    parse_reference_range,
)


# ============================================================================
# NUMERIC VALUES
# ============================================================================

@pytest.mark.parametrize("text, expected", [
    ("12.5", 12.5),
    ("52", 52.0),
    ("-3.2", -3.2),
    ("1,024 High", 1024.0),
    ("< 0.5", 0.5),
    (">=90", 90.0),
    ("4.5e3", 4500.0),
    (".8", 0.8),
])
def test_parse_numeric_value(text, expected):
    assert parse_numeric_value(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["not-a-number", "", None, "nan", "inf", "Positive", "-", "1e999"])
def test_parse_numeric_value_rejects(text):
    assert parse_numeric_value(text) is None


# ============================================================================
# REFERENCE RANGES
# ============================================================================

@pytest.mark.parametrize("text, expected", [
    ("> 10", (10.0, None)),
    ("< 5", (None, 5.0)),
    ("10-20", (10.0, 20.0)),
    ("10 - 20", (10.0, 20.0)),
    ("10 to 20", (10.0, 20.0)),
    ("4.5–11.0 x10E3/uL", (4.5, 11.0)),
    ("≥ 30", (30.0, None)),
    ("<=100", (None, 100.0)),
    ("Up to 40", (None, 40.0)),
    ("-1.5 - 2", (-1.5, 2.0)),
    ("20-10", (10.0, 20.0)),
])
def test_parse_reference_range(text, expected):
    assert parse_reference_range(text) == expected


@pytest.mark.parametrize("text", ["", None, "Negative", "N/A", "see comment", "--"])
def test_parse_reference_range_without_bounds(text):
    assert parse_reference_range(text) == (None, None)


def test_zero_bound_is_distinct_from_missing():
    assert parse_reference_range("0-5") == (0.0, 5.0)
    assert parse_reference_range("< 5") == (None, 5.0)


# ============================================================================
# STATUS
# ============================================================================

@pytest.mark.parametrize("text, expected", [
    ("normal", ResultStatus.NORMAL),
    ("Normal", ResultStatus.NORMAL),
    ("H", ResultStatus.HIGH),
    ("H*", ResultStatus.HIGH),
    ("Elevated", ResultStatus.HIGH),
    ("low", ResultStatus.LOW),
    ("L", ResultStatus.LOW),
])
def test_normalize_status(text, expected):
    assert normalize_status(text) is expected


@pytest.mark.parametrize("text", ["", None, "borderline", "see note"])
def test_normalize_status_unknown(text):
    assert normalize_status(text) is None


def test_compute_status():
    assert compute_status(5, 1, 10) is ResultStatus.NORMAL
    assert compute_status(10, 1, 10) is ResultStatus.NORMAL
    assert compute_status(0.5, 1, 10) is ResultStatus.LOW
    assert compute_status(11, 1, 10) is ResultStatus.HIGH
    assert compute_status(0.5, 1, None) is ResultStatus.LOW
    assert compute_status(11, None, 10) is ResultStatus.HIGH
    assert compute_status(5, None, None) is None


# ============================================================================
# DATES
# ============================================================================

@pytest.mark.parametrize("text, expected", [
    ("2023-03-15", "2023-03-15"),
    ("2023-03-15T08:30:00Z", "2023-03-15"),
    ("02 Sep 2022", "2022-09-02"),
    ("12 Sep 2022", "2022-09-12"),
    ("2nd Sep 2022", "2022-09-02"),
    ("September 2, 2022", "2022-09-02"),
    ("2022/09/02", "2022-09-02"),
    ("2/9/2022", "2022-09-02"),
    ("21.01.2025", "2025-01-21"),
])
def test_normalize_date_day_first(text, expected):
    assert normalize_date(text) == expected


def test_normalize_date_month_first():
    assert normalize_date("2/9/2022", day_first=False) == "2022-02-09"
    # Only one reading is a valid date
    assert normalize_date("21/01/2025", day_first=False) == "2025-01-21"


@pytest.mark.parametrize("text", ["", None, "pending", "2023-02-30", "13/13/2023"])
def test_normalize_date_unparseable(text):
    assert normalize_date(text) is None


@pytest.mark.parametrize("unit, expected", [
    ("µmol/L", "umol/l"),
    ("μmol / L", "umol/l"),
    ("mcg/L", "ug/l"),
    ("mg/dL", "mg/dl"),
    ("", ""),
    (None, ""),
])
def test_normalize_unit(unit, expected):
    assert normalize_unit(unit) == expected
