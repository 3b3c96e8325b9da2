# Value coercion used when diffing an incoming IPO against the stored row.
#
# Three tiers, in order: absent values (None, "", "n/a") are all the same value,
# numeric-looking values compare as numbers, date-like values compare as IST
# calendar dates. Anything else compares as trimmed text.

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .normalize import strip_html

IST = timezone(timedelta(hours=5, minutes=30), name="IST")

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%a, %b %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%b %d %Y",
)

_has_digit_re = re.compile(r"[0-9]")
_has_letter_re = re.compile(r"[a-zA-Z]")
_has_separator_re = re.compile(r"[-\\/]")


def is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        text = value.strip()
        return text == "" or text.lower() == "n/a"
    return False


def is_date_string(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_has_digit_re.search(value)) and bool(
        _has_letter_re.search(value) or _has_separator_re.search(value))


def _parse_datetime(text: str) -> Optional[datetime]:
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        pass
    for pattern in DATE_FORMATS:
        try:
            return datetime.strptime(text, pattern)
        except ValueError:
            continue
    return None


def parse_to_ist_date(value: Any) -> Optional[str]:
    """
    Canonical 'YYYY-MM-DD' in IST for a date-ish value, or None.
    Naive timestamps are read as UTC and shifted by +5:30, so
    '2025-06-01T20:00:00Z' lands on 2025-06-02.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, str):
        text = strip_html(value)
        if not text:
            return None
        parsed = _parse_datetime(text)
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(IST).date().isoformat()


def to_ist_date(value: Any) -> Optional[date]:
    """Like parse_to_ist_date but only for date-like input, returning a date."""
    if isinstance(value, (date, datetime)):
        canonical = parse_to_ist_date(value)
    elif is_date_string(value):
        canonical = parse_to_ist_date(value)
    else:
        canonical = None
    return date.fromisoformat(canonical) if canonical else None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _canonical(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return parse_to_ist_date(value)
    if isinstance(value, str):
        text = value.strip()
        if is_date_string(text):
            return parse_to_ist_date(text) or text
        return text
    return value


def values_equal(a: Any, b: Any) -> bool:
    a_absent, b_absent = is_absent(a), is_absent(b)
    if a_absent or b_absent:
        return a_absent and b_absent

    num_a, num_b = _as_number(a), _as_number(b)
    if num_a is not None and num_b is not None:
        return num_a == num_b

    return _canonical(a) == _canonical(b)
