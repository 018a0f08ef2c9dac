"""Due-date status classification and dashboard counters.

All comparisons are calendar-date comparisons against "today" in the
configured application timezone; times of day never take part.
"""

import enum
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from vaxtracker.config import get_settings

DUE_SOON_DAYS = 30


class VaccineStatus(enum.Enum):
    COMPLETE = ("current", "Complete")
    OVERDUE = ("overdue", "Overdue")
    DUE_SOON = ("upcoming", "Due Soon")
    UP_TO_DATE = ("current", "Up to Date")

    @property
    def css_class(self) -> str:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]


@dataclass
class DashboardStats:
    total: int = 0
    up_to_date: int = 0
    upcoming: int = 0
    overdue: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def local_today(tz_name: Optional[str] = None) -> date:
    """Current calendar date in the application timezone."""
    tz = ZoneInfo(tz_name or get_settings().app_timezone)
    return datetime.now(tz).date()


def classify(next_due: Optional[date], today: date, window_days: int = DUE_SOON_DAYS) -> VaccineStatus:
    if next_due is None:
        return VaccineStatus.COMPLETE
    if next_due < today:
        return VaccineStatus.OVERDUE
    if next_due <= today + timedelta(days=window_days):
        return VaccineStatus.DUE_SOON
    return VaccineStatus.UP_TO_DATE


def is_overdue(due: date, today: date) -> bool:
    return due < today


def compute_stats(
    records: Iterable,
    reminders: Iterable,
    today: date,
    window_days: int = DUE_SOON_DAYS,
) -> DashboardStats:
    """Counters over the full record/reminder sets (never the search-filtered view)."""
    records = list(records)
    reminders = list(reminders)
    horizon = today + timedelta(days=window_days)
    return DashboardStats(
        total=len(records),
        up_to_date=sum(1 for r in records if r.next_due is None or r.next_due > today),
        upcoming=sum(1 for r in reminders if today <= r.due_date <= horizon),
        overdue=sum(1 for r in reminders if r.due_date < today),
    )


def format_date(value: Optional[date]) -> str:
    if value is None:
        return "Not set"
    return f"{value:%b} {value.day}, {value.year}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def format_relative(value: Optional[date], today: date) -> str:
    if value is None:
        return "Unknown"

    diff = (value - today).days
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Tomorrow"
    if diff == -1:
        return "Yesterday"

    future = diff > 0
    days = abs(diff)
    if days < 7:
        text = _plural(days, "day")
    elif days < 30:
        text = _plural(days // 7, "week")
    else:
        text = _plural(days // 30, "month")
    return f"In {text}" if future else f"{text} ago"
