"""Date helpers shared by the normalizer and the compact report.

No timezone normalization is done: a timestamp such as
``2025-03-01T03:00:00Z`` is shown as ``3/1`` even where the local calendar date
is still February 28th.
"""
import re
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as date_parser

DateLike = Union[str, date, datetime, None]

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_item_date(item_date_val: DateLike) -> Optional[date]:
    """Return the calendar date of an ISO 8601 string (or date/datetime), or None."""
    if not item_date_val:
        return None
    if isinstance(item_date_val, datetime):
        return item_date_val.date()
    if isinstance(item_date_val, date):
        return item_date_val
    if not isinstance(item_date_val, str):
        return None
    text = item_date_val.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date_parser.isoparse(text).date()
    except (ValueError, OverflowError):
        return None


def to_compact_date(value: DateLike) -> str:
    """Format a date as ``M/D`` (no zero padding); ``""`` when missing or unparsable."""
    parsed = parse_item_date(value)
    if parsed is None:
        return ""
    return f"{parsed.month}/{parsed.day}"


def normalize_date(date_str: Optional[str]) -> Optional[str]:
    """
    Validate a date string coming from the bridge.

    Date-only strings must name a real calendar day (``2024-02-31`` is
    rejected). Anything else only has to parse. The original string is
    returned unchanged so exact times survive; invalid input gives None.
    """
    if not date_str or not isinstance(date_str, str):
        return None
    if _DATE_ONLY.match(date_str):
        try:
            datetime.strptime(date_str, "%Y-%m-%d")
        except ValueError:
            return None
        return date_str
    return date_str if parse_item_date(date_str) else None


def is_valid_date(date_str: Optional[str]) -> bool:
    return normalize_date(date_str) is not None
