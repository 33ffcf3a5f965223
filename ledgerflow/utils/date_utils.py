"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timezone


def add_months(from_date: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of shorter months"""
    month_index = from_date.month - 1 + months
    year = from_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(from_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string"""
    return datetime.now(timezone.utc).isoformat()
