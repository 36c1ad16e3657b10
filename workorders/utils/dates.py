from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    """Текущее время в UTC без tzinfo: так оно хранится в БД."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def day_bounds(d: date) -> Tuple[datetime, datetime]:
    """[начало дня, начало следующего дня)"""
    start = datetime(d.year, d.month, d.day)
    return start, start + timedelta(days=1)


def window_bounds(
    start: Optional[date], end: Optional[date]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Полуинтервал: start включительно, конец: следующий день после end (не включая)."""
    lower = day_bounds(start)[0] if start else None
    upper = day_bounds(end)[1] if end else None
    return lower, upper


def current_year_window(today: Optional[date] = None) -> Tuple[date, date]:
    today = today or utcnow().date()
    return date(today.year, 1, 1), date(today.year, 12, 31)
