"""
Billing recurrence: next payment date and payment dates within a range.

All functions are pure over a SubscriptionRecord snapshot. A target date is
always built with the billing day clamped to the length of its month, so day
31 lands on Feb 28/29 instead of rolling into March.

Free trial convention: ``free_until`` is the first paid day. A payment dated
before it is free; a payment dated on it is paid.
"""

import calendar
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from subtally.schemas.calendar import PaymentEvent
from subtally.schemas.enums import BillingCycle
from subtally.schemas.subscription import SubscriptionRecord


def as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def clamp_day(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def billing_date(year: int, month: int, day: int) -> date:
    return date(year, month, clamp_day(year, month, day))


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def subscription_start(sub: SubscriptionRecord) -> date:
    return as_date(sub.started_at or sub.created_at)


def next_payment_date(sub: SubscriptionRecord, today: date | datetime) -> date:
    """First payment date strictly after ``today``."""
    today = as_date(today)

    if sub.billing_cycle == BillingCycle.MONTHLY:
        candidate = billing_date(today.year, today.month, sub.billing_day)
        if candidate <= today:
            following = today + relativedelta(months=1)
            candidate = billing_date(following.year, following.month, sub.billing_day)
        return candidate

    month = sub.billing_month or 1
    candidate = billing_date(today.year, month, sub.billing_day)
    if candidate <= today:
        candidate = billing_date(today.year + 1, month, sub.billing_day)
    return candidate


def occurrences_in_range(
    sub: SubscriptionRecord, start: date | datetime, end: date | datetime
) -> list[date]:
    """Payment dates in [start, end], clipped to the subscription's lifetime.

    The lower bound is never earlier than ``started_at`` (or ``created_at``);
    the upper bound never later than ``ended_at``, whose own day is included.
    Both cycles step through ``next_payment_date`` so every date is re-clamped.
    """
    lower = max(as_date(start), subscription_start(sub))
    upper = as_date(end)
    if sub.ended_at is not None:
        upper = min(upper, as_date(sub.ended_at))
    if lower > upper:
        return []

    occurrences: list[date] = []
    current = next_payment_date(sub, lower - timedelta(days=1))
    while current <= upper:
        occurrences.append(current)
        current = next_payment_date(sub, current)
    return occurrences


def is_paid_occurrence(sub: SubscriptionRecord, occurrence: date) -> bool:
    return sub.free_until is None or occurrence >= as_date(sub.free_until)


def is_in_free_trial(sub: SubscriptionRecord, today: date | datetime) -> bool:
    return sub.free_until is not None and as_date(today) < as_date(sub.free_until)


def paid_occurrences(
    sub: SubscriptionRecord, start: date | datetime, end: date | datetime
) -> list[date]:
    return [d for d in occurrences_in_range(sub, start, end) if is_paid_occurrence(sub, d)]


def generate_payment_events(
    sub: SubscriptionRecord, start: date | datetime, end: date | datetime
) -> list[PaymentEvent]:
    # Trial payments are left out entirely, not shown at zero
    return [
        PaymentEvent(
            subscription_id=sub.id,
            name=sub.name,
            category=sub.category,
            amount=sub.amount,
            currency=sub.currency,
            billing_cycle=sub.billing_cycle,
            date=d,
        )
        for d in paid_occurrences(sub, start, end)
    ]


def generate_upcoming_events(
    subscriptions: Iterable[SubscriptionRecord], horizon_days: int, today: date | datetime
) -> list[PaymentEvent]:
    start = as_date(today)
    end = start + timedelta(days=horizon_days)

    events: list[PaymentEvent] = []
    for sub in subscriptions:
        if sub.is_active:
            events.extend(generate_payment_events(sub, start, end))

    events.sort(key=lambda e: (e.date, e.name, e.subscription_id))
    return events


def days_until_payment(sub: SubscriptionRecord, today: date | datetime) -> int:
    today = as_date(today)
    return (next_payment_date(sub, today) - today).days

