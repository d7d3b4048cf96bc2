"""Date helpers shared by the provider adapters."""
import re
from datetime import datetime, timezone
from typing import Optional

_MS_DATE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")


def to_month_key(value: datetime) -> str:
    """'YYYY-MM' bucket used by FinancialRecord.month."""
    return value.strftime("%Y-%m")


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse the date formats providers send into a naive UTC datetime.

    Accepts ISO 8601 (with or without time, 'Z' suffix or offset), and the
    Microsoft JSON form Xero uses ('/Date(1705276800000+0000)/').
    Returns None for empty or unparseable input.
    """
    if not value:
        return None

    ms = _MS_DATE.fullmatch(value.strip())
    if ms:
        return datetime.fromtimestamp(int(ms.group(1)) / 1000, tz=timezone.utc).replace(tzinfo=None)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


_MONTH_NAMES = {
    "jan": "01", "january": "01", "feb": "02", "february": "02",
    "mar": "03", "march": "03", "apr": "04", "april": "04", "may": "05",
    "jun": "06", "june": "06", "jul": "07", "july": "07",
    "aug": "08", "august": "08", "sep": "09", "september": "09",
    "oct": "10", "october": "10", "nov": "11", "november": "11",
    "dec": "12", "december": "12",
}


def normalize_month(value: Optional[str]) -> Optional[str]:
    """
    Spreadsheet month label → 'YYYY-MM'.

    Accepts '2024-01', '2024-01-15', '1/2024', 'Jan 2024' and 'January 2024'.
    Returns None for anything else.
    """
    text = (value or "").strip()
    if re.fullmatch(r"\d{4}-\d{2}", text):
        return text
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", text):
        return text[:7]

    slash = re.fullmatch(r"(\d{1,2})/(\d{4})", text)
    if slash:
        return f"{slash.group(2)}-{slash.group(1).zfill(2)}"

    named = re.fullmatch(r"([a-zA-Z]+)\s*(\d{4})", text)
    if named and named.group(1).lower() in _MONTH_NAMES:
        return f"{named.group(2)}-{_MONTH_NAMES[named.group(1).lower()]}"
    return None
