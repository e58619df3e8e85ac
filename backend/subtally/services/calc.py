"""
Spending aggregates in the display currency.

Two families of numbers live here:

* run-rate figures (monthly/yearly equivalents) derived from the billing cycle
  of active subscriptions, and
* actuals (YTD, current month, monthly breakdown) derived by counting real
  payment dates from the billing engine.

Anything that depends on the current day takes ``now`` explicitly. Grand totals
are summed from their category buckets so the two always agree.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal

from subtally.schemas.dashboard import MonthlyBreakdownItem
from subtally.schemas.enums import BillingCycle, Category, Currency, SortOption
from subtally.schemas.fx import FxRates
from subtally.schemas.subscription import SubscriptionRecord
from subtally.services.billing import (
    as_date,
    is_in_free_trial,
    month_bounds,
    next_payment_date,
    occurrences_in_range,
    paid_occurrences,
    subscription_start,
)
from subtally.services.fx import convert_currency

ZERO = Decimal("0")


def empty_category_totals() -> dict[Category, Decimal]:
    return {category: ZERO for category in Category}


def _counts_toward_monthly(sub: SubscriptionRecord, now: date | datetime) -> bool:
    # Trial subscriptions are not a cash outflow yet
    return sub.is_active and not is_in_free_trial(sub, now)


def _counts_historically(sub: SubscriptionRecord) -> bool:
    # Ended subscriptions still paid for the dates before they ended
    return sub.is_active or sub.ended_at is not None


# ---------------------------------------------------------------------------
# Run-rate
# ---------------------------------------------------------------------------


def monthly_equivalent_amount(sub: SubscriptionRecord) -> Decimal:
    if sub.billing_cycle == BillingCycle.YEARLY:
        return sub.amount / 12
    return sub.amount


def monthly_equivalent_amount_converted(
    sub: SubscriptionRecord, display_currency: Currency, rates: FxRates
) -> Decimal:
    return convert_currency(monthly_equivalent_amount(sub), sub.currency, display_currency, rates)


def category_monthly_totals(
    subscriptions: Iterable[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> dict[Category, Decimal]:
    totals = empty_category_totals()
    for sub in subscriptions:
        if _counts_toward_monthly(sub, now):
            totals[sub.category] += monthly_equivalent_amount_converted(sub, display_currency, rates)
    return totals


def total_monthly_amount(
    subscriptions: Iterable[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> Decimal:
    return sum(category_monthly_totals(subscriptions, display_currency, rates, now).values(), ZERO)


def yearly_equivalent_amount(sub: SubscriptionRecord) -> Decimal:
    if sub.billing_cycle == BillingCycle.MONTHLY:
        return sub.amount * 12
    return sub.amount


def yearly_equivalent_amount_converted(
    sub: SubscriptionRecord, display_currency: Currency, rates: FxRates
) -> Decimal:
    return convert_currency(yearly_equivalent_amount(sub), sub.currency, display_currency, rates)


def total_yearly_amount(
    subscriptions: Iterable[SubscriptionRecord], display_currency: Currency, rates: FxRates
) -> Decimal:
    """Annualized commitment of active subscriptions, free trials included."""
    return sum(
        (
            yearly_equivalent_amount_converted(sub, display_currency, rates)
            for sub in subscriptions
            if sub.is_active
        ),
        ZERO,
    )


def category_percentages(
    subscriptions: Sequence[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> dict[Category, float]:
    totals = category_monthly_totals(subscriptions, display_currency, rates, now)
    total = sum(totals.values(), ZERO)
    if total == 0:
        return {category: 0.0 for category in Category}
    return {category: float(amount / total * 100) for category, amount in totals.items()}


# ---------------------------------------------------------------------------
# Actuals
# ---------------------------------------------------------------------------


def compute_occurrences(
    sub: SubscriptionRecord, start: date | datetime, end: date | datetime
) -> list[date]:
    return occurrences_in_range(sub, start, end)


def _paid_totals(
    subscriptions: Iterable[SubscriptionRecord],
    start: date,
    end: date,
    display_currency: Currency,
    rates: FxRates,
) -> dict[Category, Decimal]:
    totals = empty_category_totals()
    for sub in subscriptions:
        if not _counts_historically(sub):
            continue
        count = len(paid_occurrences(sub, start, end))
        if count:
            per_payment = convert_currency(sub.amount, sub.currency, display_currency, rates)
            totals[sub.category] += per_payment * count
    return totals


def calculate_ytd_breakdown(
    subscriptions: Iterable[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> dict[Category, Decimal]:
    today = as_date(now)
    return _paid_totals(subscriptions, date(today.year, 1, 1), today, display_currency, rates)


def calculate_ytd(
    subscriptions: Iterable[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> Decimal:
    return sum(calculate_ytd_breakdown(subscriptions, display_currency, rates, now).values(), ZERO)


def calculate_current_month_category_totals(
    subscriptions: Iterable[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> dict[Category, Decimal]:
    today = as_date(now)
    first, last = month_bounds(today.year, today.month)
    return _paid_totals(subscriptions, first, last, display_currency, rates)


def calculate_current_month_total(
    subscriptions: Iterable[SubscriptionRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
) -> Decimal:
    totals = calculate_current_month_category_totals(subscriptions, display_currency, rates, now)
    return sum(totals.values(), ZERO)


def calculate_monthly_breakdown(
    subscriptions: Iterable[SubscriptionRecord],
    year: int,
    display_currency: Currency,
    rates: FxRates,
) -> list[MonthlyBreakdownItem]:
    subs = [sub for sub in subscriptions if _counts_historically(sub)]
    items: list[MonthlyBreakdownItem] = []
    for month in range(1, 13):
        first, last = month_bounds(year, month)
        categories = _paid_totals(subs, first, last, display_currency, rates)
        items.append(
            MonthlyBreakdownItem(month=month, total=sum(categories.values(), ZERO), categories=categories)
        )
    return items


# ---------------------------------------------------------------------------
# Grouping and ordering
# ---------------------------------------------------------------------------


def group_by_category(
    subscriptions: Iterable[SubscriptionRecord],
) -> dict[Category, list[SubscriptionRecord]]:
    groups: dict[Category, list[SubscriptionRecord]] = {category: [] for category in Category}
    for sub in subscriptions:
        groups[sub.category].append(sub)
    return groups


def count_active_subscriptions(subscriptions: Iterable[SubscriptionRecord]) -> int:
    return sum(1 for sub in subscriptions if sub.is_active)


def sort_subscriptions(
    subscriptions: Iterable[SubscriptionRecord],
    option: SortOption,
    display_currency: Currency,
    rates: FxRates,
    today: date | datetime,
) -> list[SubscriptionRecord]:
    subs = list(subscriptions)
    if option == "amount-desc":
        subs.sort(key=lambda s: monthly_equivalent_amount_converted(s, display_currency, rates), reverse=True)
    elif option == "amount-asc":
        subs.sort(key=lambda s: monthly_equivalent_amount_converted(s, display_currency, rates))
    elif option == "name":
        subs.sort(key=lambda s: s.name.casefold())
    elif option == "next-payment":
        subs.sort(key=lambda s: next_payment_date(s, today))
    elif option == "category":
        subs.sort(key=lambda s: s.category.value)
    elif option == "currency":
        subs.sort(key=lambda s: s.currency.value)
    elif option == "start-date":
        subs.sort(key=subscription_start)
    return subs
