"""
Timezone utilities for the attendance calendar.

Attendance is keyed by the organisation's local calendar day, not the UTC
day, so a check-in at 01:30 in Dubai lands on the Dubai date.
"""

import calendar
import os
from datetime import date, datetime, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

DEFAULT_ORG_TIMEZONE = "Asia/Dubai"


def validate_timezone(tz: str) -> bool:
    """
    Validate if the timezone string is a valid IANA timezone.

    Args:
        tz: IANA timezone string to validate

    Returns:
        bool: True if valid, False otherwise
    """
    try:
        ZoneInfo(tz)
        return True
    except Exception:
        return False


def get_org_timezone() -> str:
    """
    Timezone that defines the attendance day, from ORG_TIMEZONE.

    Falls back to Asia/Dubai when the variable is unset or not a real zone.
    """
    tz = os.getenv("ORG_TIMEZONE", DEFAULT_ORG_TIMEZONE)
    if not validate_timezone(tz):
        return DEFAULT_ORG_TIMEZONE
    return tz


def from_utc_to_local(utc_dt: datetime, tz: str) -> datetime:
    """
    Convert UTC datetime to local datetime in the specified timezone.

    Args:
        utc_dt: UTC datetime (naive values are treated as UTC)
        tz: IANA timezone string (e.g., 'Asia/Dubai', 'Asia/Kolkata')

    Returns:
        datetime: Local datetime in the specified timezone
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    return utc_dt.astimezone(ZoneInfo(tz))


def org_today(now: Optional[datetime] = None, tz: Optional[str] = None) -> date:
    """The organisation-local calendar day that `now` (default: current time) falls on."""
    if now is None:
        now = datetime.now(timezone.utc)
    return from_utc_to_local(now, tz or get_org_timezone()).date()


def parse_month(value: str) -> Tuple[int, int]:
    """
    Parse a 'YYYY-MM' string.

    Raises:
        ValueError: if the string is not a valid year/month
    """
    try:
        year_str, month_str = value.split("-")
        year, month = int(year_str), int(month_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month '{value}', expected YYYY-MM")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month '{value}', expected YYYY-MM")
    return year, month


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)
