"""
Tolerant value coercion shared by the models and the analytics services.

Nothing in here raises for bad input: numbers fall back to 0, dates to
None, dependency lists to an empty list.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

# Spreadsheet serial day 0
SERIAL_DATE_EPOCH = datetime(1899, 12, 30)

_FALLBACK_DATE_FORMATS = (
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def round_half_up(value: float, digits: int = 0):
    """Round halves towards +infinity, so 2.5 -> 3 and -2.5 -> -2."""
    factor = 10 ** digits
    scaled = value * factor + 0.5
    if not math.isfinite(scaled):
        # Too large to carry a fractional part anyway
        return value
    rounded = math.floor(scaled)
    if digits == 0:
        return int(rounded)
    return rounded / factor


def parse_number(value: Any) -> float:
    """Best-effort numeric parse; anything unusable becomes 0."""
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _to_utc_naive(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def parse_iso_datetime(text: str) -> Optional[datetime]:
    """
    ISO 8601 to a naive UTC datetime, or None.

    Accepts the trailing "Z" that browsers emit from toISOString().
    """
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return _to_utc_naive(datetime.fromisoformat(text))
    except (ValueError, OverflowError):
        return None


def parse_date(value: Any) -> Optional[date]:
    """Coerce a date-ish value to a calendar date, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        try:
            return _to_utc_naive(value).date()
        except OverflowError:
            return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return (SERIAL_DATE_EPOCH + timedelta(days=value)).date()
        except OverflowError:
            return None

    text = str(value).strip()
    if not text:
        return None
    moment = parse_iso_datetime(text)
    if moment is not None:
        return moment.date()
    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_dependencies(raw: Any) -> list[str]:
    """Split a comma-separated dependency list into trimmed ids."""
    if not raw:
        return []
    if isinstance(raw, (list, tuple, set)):
        raw = ",".join(str(item) for item in raw)
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def format_number(value: float) -> str:
    """Shortest exact text for a number, without a trailing ".0"."""
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(value)
