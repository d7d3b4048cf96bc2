"""
Monday.com column value parsers.

Each item carries column_values of {id, type, text, value}; `value` is a
JSON string whose shape depends on the column type. Parsers return None
(or an empty list) for empty or unparseable input rather than raising.
"""
import json
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

_HHMMSS = re.compile(r"^(\d{1,3}):(\d{2}):(\d{2})$")


def _loads(value: Optional[str]) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


def _round_hours(hours: float) -> float:
    return round(hours, 2)


def parse_hhmmss(text: Optional[str]) -> Optional[float]:
    """'H:MM:SS' / 'HH:MM:SS' → decimal hours."""
    if not text:
        return None
    match = _HHMMSS.match(text.strip())
    if not match:
        return None
    hours, minutes, seconds = (int(g) for g in match.groups())
    if minutes >= 60 or seconds >= 60:
        return None
    return _round_hours(hours + minutes / 60 + seconds / 3600)


def parse_time_tracking(value: Optional[str]) -> Optional[float]:
    """
    Time tracking column → decimal hours (1.5 for 1h30m).

    Monday sends one of:
      {"duration": 3600, ...}                       seconds
      {"additional_value": "{\"duration\": 3600}"}  nested, possibly as a string
      "01:30:00"                                    text form
    """
    parsed = _loads(value)
    if isinstance(parsed, dict):
        duration = parsed.get("duration")
        if isinstance(duration, (int, float)) and duration > 0:
            return _round_hours(duration / 3600)

        additional = parsed.get("additional_value")
        if isinstance(additional, str):
            additional = _loads(additional)
        if isinstance(additional, dict):
            nested = additional.get("duration")
            if isinstance(nested, (int, float)) and nested > 0:
                return _round_hours(nested / 3600)

        # A running timer that has not accumulated anything yet
        if isinstance(parsed.get("running"), bool) and isinstance(duration, (int, float)):
            return _round_hours(duration / 3600)

    return parse_hhmmss(value)


def parse_people(value: Optional[str]) -> List[Dict[str, Any]]:
    """People column → [{"id": ..., "kind": "person"|"team"}]."""
    parsed = _loads(value)
    if not isinstance(parsed, dict):
        return []
    return [
        {"id": p.get("id"), "kind": p.get("kind") or "person"}
        for p in parsed.get("personsAndTeams") or []
    ]


def parse_date(value: Optional[str], text: Optional[str] = None) -> Optional[datetime]:
    """Date column ({"date": "2024-03-15", "time": null}) → datetime at midnight."""
    parsed = _loads(value)
    if isinstance(parsed, dict) and parsed.get("date"):
        try:
            return datetime.strptime(parsed["date"], "%Y-%m-%d")
        except ValueError:
            pass
    if text:
        try:
            return datetime.fromisoformat(text.strip())
        except ValueError:
            return None
    return None


def parse_status(value: Optional[str], text: Optional[str] = None) -> Optional[str]:
    if text:
        return text
    parsed = _loads(value)
    if isinstance(parsed, dict):
        return parsed.get("label")
    return None


def parse_number(value: Optional[str], text: Optional[str] = None) -> Optional[float]:
    parsed = _loads(value)
    if isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
        return float(parsed)
    if isinstance(parsed, str):
        try:
            return float(parsed)
        except ValueError:
            pass
    if text:
        try:
            return float(text.replace(",", ""))
        except ValueError:
            return None
    return None


# ── Item helpers ──────────────────────────────────────────────────────────────

def get_column(item: Dict[str, Any], column_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not column_id:
        return None
    return next((c for c in item.get("column_values") or [] if c.get("id") == column_id), None)


def find_column_by_type(item: Dict[str, Any], column_type: str) -> Optional[Dict[str, Any]]:
    """First column of a type; Monday spells some types with a hyphen."""
    alternate = column_type.replace("_", "-")
    return next(
        (c for c in item.get("column_values") or [] if c.get("type") in (column_type, alternate)),
        None,
    )


def column(item: Dict[str, Any], column_id: Optional[str], column_type: str) -> Optional[Dict[str, Any]]:
    """The mapped column if configured and present, else the first of its type."""
    return get_column(item, column_id) or find_column_by_type(item, column_type)


def has_value(col: Optional[Dict[str, Any]]) -> bool:
    if col is None:
        return False
    return bool(col.get("text")) or col.get("value") not in (None, "", "{}")
