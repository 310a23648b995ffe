"""Payout schedule: month bucketing and transfer eligible dates"""

import re
from datetime import date, datetime, tzinfo

from payout_gateway.domain.exceptions import InvalidMonthError
from payout_gateway.utils.date_utils import ensure_utc, local_date

TRANSFER_DAY = 20

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(month: str) -> tuple[int, int]:
    """Split a YYYY-MM key into (year, month)"""
    match = _MONTH_PATTERN.match(month or "")
    if not match:
        raise InvalidMonthError(f"Invalid month key: {month!r} (expected YYYY-MM)")
    year, month_num = int(match.group(1)), int(match.group(2))
    if not 1 <= month_num <= 12:
        raise InvalidMonthError(f"Invalid month key: {month!r} (month out of range)")
    return year, month_num


def month_key(timestamp: datetime, tz: tzinfo) -> str:
    """YYYY-MM of a timestamp in the business timezone"""
    local = ensure_utc(timestamp).astimezone(tz)
    return f"{local.year:04d}-{local.month:02d}"


def eligible_date(completed_month: str) -> date:
    """
    Earliest payout date for work completed in a month.

    Payouts close at month end and are transferred on the 20th of the
    following month:
        "2024-01" → 2024-02-20
        "2024-12" → 2025-01-20
    """
    year, month = parse_month(completed_month)
    if month == 12:
        return date(year + 1, 1, TRANSFER_DAY)
    return date(year, month + 1, TRANSFER_DAY)


def is_transfer_due(completed_month: str, now: datetime, tz: tzinfo) -> bool:
    return local_date(now, tz) >= eligible_date(completed_month)
