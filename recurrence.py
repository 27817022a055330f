from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import BillingCycle


DEFAULT_ALERT_DAYS = 3
CATCH_UP_DAYS = 7
CONFIRM_WINDOW_DAYS = 3


class RenewalState(str, Enum):
    upcoming = "upcoming"
    due_or_recent = "due_or_recent"
    post_due_pending = "post_due_pending"
    outside_window = "outside_window"


@dataclass(frozen=True)
class RenewalWindow:
    offset_days: int
    state: RenewalState

    @property
    def needs_projection(self) -> bool:
        return self.state in (RenewalState.upcoming, RenewalState.due_or_recent)


def local_today(now: Optional[datetime] = None) -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def add_cycle(from_date: date, cycle: BillingCycle) -> date:
    """Return the occurrence one billing cycle after ``from_date``.

    Month and year steps keep the day of month, snapping to the last day of
    shorter months.
    """
    if cycle == BillingCycle.daily:
        return from_date + timedelta(days=1)
    if cycle == BillingCycle.weekly:
        return from_date + timedelta(weeks=1)
    if cycle == BillingCycle.monthly:
        return _add_months(from_date, 1)
    return _add_months(from_date, 12)


def effective_alert_days(
    alert_override: Optional[int], user_default_alert_days: Optional[int]
) -> int:
    if alert_override is not None:
        return alert_override
    if user_default_alert_days is not None:
        return user_default_alert_days
    return DEFAULT_ALERT_DAYS


def offset_days(today: date, renewal_date: date) -> int:
    # Renewal at noon minus today at midnight, rounded up. Calendar dates carry
    # no DST shift, so this is the whole-day difference.
    return (renewal_date - today).days


def classify_renewal(
    today: date,
    renewal_date: date,
    alert_override: Optional[int],
    user_default_alert_days: Optional[int],
) -> RenewalWindow:
    offset = offset_days(today, renewal_date)
    alert = effective_alert_days(alert_override, user_default_alert_days)
    if 0 < offset <= alert:
        state = RenewalState.upcoming
    elif -CATCH_UP_DAYS <= offset <= 0:
        state = RenewalState.due_or_recent
    else:
        state = RenewalState.outside_window
    return RenewalWindow(offset_days=offset, state=state)


def classify_projection(today: date, projected_on: date) -> RenewalWindow:
    """Classify an existing projected transaction for the confirmation nudge.

    The projection's own date is used rather than the subscription anchor, which
    may already be stale once a projection exists.
    """
    age = (today - projected_on).days
    if 0 <= age <= CONFIRM_WINDOW_DAYS:
        state = RenewalState.post_due_pending
    else:
        state = RenewalState.outside_window
    return RenewalWindow(offset_days=-age, state=state)
