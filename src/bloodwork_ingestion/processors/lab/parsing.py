# src/bloodwork_ingestion/processors/lab/parsing.py
"""
Parsing utilities for lab value normalization.
"""

import math
import re
from datetime import datetime
from typing import Optional, Tuple

from ...core.context.enums import ResultStatus

_NUMBER = r'[-+]?(?:\d{1,3}(?:,\d{3})+|\d+)?(?:\.\d+)?(?:[eE][-+]?\d+)?'

# A value optionally prefixed by a comparator, e.g. "5.2", "< 0.5", "1,024 High"
_VALUE_RE = re.compile(r'^\s*(?:[<>≤≥]=?|=)?\s*(' + _NUMBER + r')')

# "10-20", "10 - 20", "10–20", "10 to 20", "-1.5 - 2"
_RANGE_RE = re.compile(
    r'(' + _NUMBER + r')\s*(?:[-–—]|to)\s*(' + _NUMBER + r')',
    re.IGNORECASE,
)
_LOWER_ONLY_RE = re.compile(r'^(?:>=?|≥|above|over|greater than|more than|min(?:imum)?:?)\s*(' + _NUMBER + r')', re.IGNORECASE)
_UPPER_ONLY_RE = re.compile(r'^(?:<=?|≤|below|under|less than|up to|max(?:imum)?:?)\s*(' + _NUMBER + r')', re.IGNORECASE)

_QUALITATIVE_PATTERNS = [
    r'^negative$', r'^positive$', r'^non[\-\s]?reactive$',
    r'^reactive$', r'^normal$', r'^abnormal$', r'^see\s+', r'^n/?a$',
    r'^none$', r'^not\s+(?:available|applicable|established)$', r'^-+$',
]

_STATUS_ALIASES = {
    "normal": ResultStatus.NORMAL,
    "n": ResultStatus.NORMAL,
    "within range": ResultStatus.NORMAL,
    "in range": ResultStatus.NORMAL,
    "high": ResultStatus.HIGH,
    "h": ResultStatus.HIGH,
    "hh": ResultStatus.HIGH,
    "above": ResultStatus.HIGH,
    "elevated": ResultStatus.HIGH,
    "critical high": ResultStatus.HIGH,
    "low": ResultStatus.LOW,
    "l": ResultStatus.LOW,
    "ll": ResultStatus.LOW,
    "below": ResultStatus.LOW,
    "decreased": ResultStatus.LOW,
    "critical low": ResultStatus.LOW,
}

_DAY_FIRST_FORMATS = [
    "%d/%m/%Y",      # 21/01/2025
    "%d-%m-%Y",      # 21-01-2025
    "%d.%m.%Y",      # 21.01.2025
    "%d/%m/%y",      # 21/01/25
]

_MONTH_FIRST_FORMATS = [
    "%m/%d/%Y",      # 01/21/2025
    "%m-%d-%Y",      # 01-21-2025
    "%m.%d.%Y",      # 01.21.2025
    "%m/%d/%y",      # 01/21/25
]

_UNAMBIGUOUS_FORMATS = [
    "%Y-%m-%d",      # 2025-01-21
    "%Y/%m/%d",      # 2025/01/21
    "%Y.%m.%d",      # 2025.01.21
    "%B %d, %Y",     # January 21, 2025
    "%b %d, %Y",     # Jan 21, 2025
    "%B %d %Y",      # January 21 2025
    "%b %d %Y",      # Jan 21 2025
    "%d %B %Y",      # 21 January 2025
    "%d %b %Y",      # 21 Jan 2025
    "%d-%b-%Y",      # 21-Jan-2025
    "%d-%B-%Y",      # 21-January-2025
    "%d %b %y",      # 21 Jan 25
    "%d-%b-%y",      # 21-Jan-25
    "%Y%m%d",        # 20250121
]


def _to_float(text: str) -> Optional[float]:
    text = text.replace(",", "")
    if not text or text in ("+", "-", ".", "+.", "-."):
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_numeric_value(value_str: Optional[str]) -> Optional[float]:
    """
    Extract a finite numeric value from a result string.

    Handles values like:
    - "12.5"
    - "1,024 High"  (value with thousands separator and embedded flag)
    - "< 0.5"       (comparator prefix)
    - "4.5e3"

    Returns None for anything without a leading number, and for NaN or
    infinity, so callers can drop the record.
    """
    if not value_str:
        return None

    match = _VALUE_RE.match(str(value_str))
    if not match:
        return None
    return _to_float(match.group(1))


def parse_reference_range(ref_str: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Split a free-form reference range into independent (min, max) bounds.

    Handles multiple formats:
    - "12.0-15.5", "12.0 - 15.5", "4.5–11.0 x10E3/uL", "10 to 20"
    - ">=10", "> 5.0", "≥ 30"        -> (10, None)
    - "<=100", "< 0.5", "≤ 5"        -> (None, 100)
    - "Negative", "N/A", ""          -> (None, None)

    A missing bound is None, never 0 or infinity. Reversed ranges
    ("20-10") are returned in ascending order.
    """
    if not ref_str:
        return None, None

    ref_str = str(ref_str).strip()

    for pattern in _QUALITATIVE_PATTERNS:
        if re.match(pattern, ref_str, re.IGNORECASE):
            return None, None

    # Open-ended forms first so "< 5" is not read as a range
    lower = _LOWER_ONLY_RE.match(ref_str)
    if lower:
        return _to_float(lower.group(1)), None

    upper = _UPPER_ONLY_RE.match(ref_str)
    if upper:
        return None, _to_float(upper.group(1))

    for match in _RANGE_RE.finditer(ref_str):
        low = _to_float(match.group(1))
        high = _to_float(match.group(2))
        if low is None or high is None:
            continue
        if low > high:
            low, high = high, low
        return low, high

    return None, None


def normalize_status(status_str: Optional[str]) -> Optional[ResultStatus]:
    """Map a model-provided status/flag onto ResultStatus, or None if unrecognized."""
    if not status_str:
        return None
    key = re.sub(r'[^a-z ]', '', str(status_str).strip().lower()).strip()
    return _STATUS_ALIASES.get(key)


def normalize_unit(unit_str: Optional[str]) -> str:
    """
    Comparable form of a unit: lowercase, no spaces, micro sign as "u".

    "µmol/L", "umol/l" and "μmol / L" all become "umol/l"; "mcg/L"
    becomes "ug/l".
    """
    unit = re.sub(r'\s+', '', str(unit_str or '')).lower()
    unit = unit.replace('µ', 'u').replace('μ', 'u')
    return re.sub(r'^mcg', 'ug', unit)


def compute_status(
    value: float,
    reference_min: Optional[float],
    reference_max: Optional[float],
) -> Optional[ResultStatus]:
    """Status from value vs. bounds; None when no bound is available."""
    if reference_min is None and reference_max is None:
        return None
    if reference_min is not None and value < reference_min:
        return ResultStatus.LOW
    if reference_max is not None and value > reference_max:
        return ResultStatus.HIGH
    return ResultStatus.NORMAL


def normalize_date(date_str: Optional[str], day_first: bool = True) -> Optional[str]:
    """
    Convert a date in one of several common formats to YYYY-MM-DD.

    Returns None when no format matches; callers decide whether to keep
    the original text.
    """
    if not date_str:
        return None

    date_str = re.sub(r'\s+', ' ', str(date_str).strip())
    # Ordinal suffixes: "2nd Sep 2022"
    date_str = re.sub(r'(\d)(st|nd|rd|th)\b', r'\1', date_str, flags=re.IGNORECASE)

    # ISO date or datetime
    iso = re.match(r'^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$', date_str)
    if iso:
        try:
            return datetime(int(iso.group(1)), int(iso.group(2)), int(iso.group(3))).strftime("%Y-%m-%d")
        except ValueError:
            return None

    numeric = _DAY_FIRST_FORMATS + _MONTH_FIRST_FORMATS if day_first else _MONTH_FIRST_FORMATS + _DAY_FIRST_FORMATS

    for fmt in _UNAMBIGUOUS_FORMATS + numeric:
        try:
            return datetime.strptime(date_str, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue

    return None
