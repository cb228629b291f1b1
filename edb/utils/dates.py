from datetime import datetime, timezone, date
from typing import Optional

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Heure UTC naïve, format stocké en base."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def add_months(value: datetime, months: int) -> datetime:
    # relativedelta ramène le 31 janvier + 1 mois au dernier jour de février
    return value + relativedelta(months=months)
