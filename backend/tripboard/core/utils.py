"""
Utility functions for the application.
"""
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to aware UTC.
    Naive values (SQLite drops tzinfo) are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_cents(amount: Decimal) -> Decimal:
    """Round half-up to the nearest cent."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
