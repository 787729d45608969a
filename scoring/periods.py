"""
Scope Resolver

A scoring pass is either for one calendar day ("daily") or for one ISO-8601
week ("weekly"). Weekly scores are never an independent formula: they are the
sum of the week's daily trend totals plus week-level context lines.

Period keys identify a TeamScore/Lineup row:
    daily  -> "2026-10-17"
    weekly -> "2026-W42"
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

import pytz


class Scope(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class ScoringPeriod:
    scope: Scope
    key: str
    stat_date: Optional[date] = None
    iso_year: Optional[int] = None
    iso_week: Optional[int] = None

    @property
    def dates(self) -> list[date]:
        """Calendar dates covered by the period, oldest first."""
        if self.scope == Scope.DAILY:
            return [self.stat_date]
        return week_dates(self.iso_year, self.iso_week)

    @property
    def first_date(self) -> date:
        return self.dates[0]

    @property
    def last_date(self) -> date:
        return self.dates[-1]


def iso_week_key(iso_year: int, iso_week: int) -> str:
    return f"{iso_year}-W{iso_week:02d}"


def week_dates(iso_year: int, iso_week: int) -> list[date]:
    """The seven dates of an ISO week, Monday through Sunday."""
    monday = date.fromisocalendar(iso_year, iso_week, 1)
    return [monday + timedelta(days=offset) for offset in range(7)]


def daily_period(stat_date: date) -> ScoringPeriod:
    return ScoringPeriod(scope=Scope.DAILY, key=stat_date.isoformat(), stat_date=stat_date)


def weekly_period(iso_year: int, iso_week: int) -> ScoringPeriod:
    """
    Raises:
        ValueError: If the week does not exist in that ISO year (e.g. W53 of a 52-week year)
    """
    # Validates the week number
    date.fromisocalendar(iso_year, iso_week, 1)
    return ScoringPeriod(
        scope=Scope.WEEKLY,
        key=iso_week_key(iso_year, iso_week),
        iso_year=iso_year,
        iso_week=iso_week,
    )


def period_for(scope: "Scope | str", day: date) -> ScoringPeriod:
    """
    Period containing ``day`` at the given scope.

    ISO year/week follow the Thursday rule: week 1 is the week holding the
    year's first Thursday, so 2027-01-01 (a Friday) belongs to 2026-W53.
    """
    scope = Scope(scope)
    if scope == Scope.DAILY:
        return daily_period(day)
    iso_year, iso_week, _ = day.isocalendar()
    return weekly_period(iso_year, iso_week)


def local_today(timezone: str) -> date:
    """Calendar date right now in the given zone."""
    return datetime.now(pytz.timezone(timezone)).date()
