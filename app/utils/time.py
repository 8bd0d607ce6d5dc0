from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a datetime to an aware UTC instant.

    Naive values are taken to already be UTC; SQLite hands back naive
    datetimes for ``DateTime(timezone=True)`` columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def total_price(start: datetime, end: datetime, price_per_hour) -> Optional[Decimal]:
    """Hours booked times hourly price, rounded to cents. None for free facilities."""
    price = Decimal(str(price_per_hour or 0))
    if price <= 0:
        return None
    hours = Decimal((ensure_utc(end) - ensure_utc(start)).total_seconds()) / Decimal(3600)
    return (hours * price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
