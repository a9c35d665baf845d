import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def month_period(year: int, month: int) -> Period:
    if month < 1 or month > 12:
        raise ValueError(f"Invalid month: {month}")
    last_day = calendar.monthrange(year, month)[1]
    return Period(
        f"{year:04d}-{month:02d}", date(year, month, 1), date(year, month, last_day)
    )


def year_period(year: int) -> Period:
    return Period(f"{year:04d}", date(year, 1, 1), date(year, 12, 31))


def resolve_range(
    start: Optional[date], end: Optional[date]
) -> Optional[Period]:
    # A date filter only applies when both bounds are given.
    if start is None or end is None:
        return None
    return Period("custom", start, end)
