import argparse
import asyncio
import logging
import sys
import traceback
from datetime import date
from decimal import Decimal, InvalidOperation

from subtally.config import settings
from subtally.db import get_db, init_db
from subtally.schemas.enums import BillingCycle, Category, Currency
from subtally.schemas.preferences import PreferencesUpdate
from subtally.schemas.subscription import SubscriptionCreate
from subtally.services.billing import generate_upcoming_events
from subtally.services.calc import (
    calculate_current_month_category_totals,
    calculate_monthly_breakdown,
    calculate_ytd_breakdown,
)
from subtally.services.dashboard import build_calendar_month, build_dashboard_summary
from subtally.services.format import format_currency
from subtally.services.fx import FxRateProvider
from subtally.services.payment_methods import list_payment_methods
from subtally.services.preferences import display_currency, load_preferences, update_preferences
from subtally.services.scheduler import build_scheduler, refresh_fx_rates
from subtally.services.seed import seed_demo_data
from subtally.services.subscriptions import (
    create_subscription,
    delete_subscription,
    end_subscription,
    list_subscriptions,
    list_subscriptions_with_details,
    reactivate_subscription,
)

logger = logging.getLogger(__name__)


async def _view_inputs(provider: FxRateProvider):
    async with get_db() as db:
        subs = await list_subscriptions(db)
        methods = await list_payment_methods(db)
        prefs = await load_preferences(db)
    rates = await provider.get_rates()
    return subs, methods, prefs, rates


def _print_categories(totals: dict[Category, Decimal], currency: Currency) -> None:
    for category, amount in totals.items():
        print(f"  {category.value:<11} {format_currency(amount, currency)}")


async def cmd_seed(args, provider: FxRateProvider) -> int:
    async with get_db() as db:
        added = await seed_demo_data(db)
    print(f"Seeded {added} demo subscriptions" if added else "Store is not empty, nothing seeded")
    return 0


async def cmd_list(args, provider: FxRateProvider) -> int:
    async with get_db() as db:
        subs = await list_subscriptions_with_details(db)
    for s in subs:
        status = "active" if s.is_active else "ended"
        card = f" [{s.payment_method_name}]" if s.payment_method_name else ""
        print(f"{s.id}  {s.name:<20} {format_currency(s.amount, s.currency):>12} "
              f"{s.billing_cycle.value.lower():<7} {status}{card}")
    return 0


async def cmd_add(args, provider: FxRateProvider) -> int:
    data = SubscriptionCreate(
        name=args.name,
        category=Category(args.category),
        amount=args.amount,
        currency=Currency(args.currency),
        billing_cycle=BillingCycle(args.cycle),
        billing_day=args.day,
        billing_month=args.month,
        free_until=date.fromisoformat(args.free_until) if args.free_until else None,
        started_at=date.fromisoformat(args.started_at) if args.started_at else None,
        notes=args.notes,
    )
    async with get_db() as db:
        sub = await create_subscription(db, data)
    print(f"Added {sub.name} ({sub.id})")
    return 0


async def cmd_end(args, provider: FxRateProvider) -> int:
    async with get_db() as db:
        sub = await end_subscription(db, args.id)
    print(f"Ended {sub.name}")
    return 0


async def cmd_reactivate(args, provider: FxRateProvider) -> int:
    async with get_db() as db:
        sub = await reactivate_subscription(db, args.id)
    print(f"Reactivated {sub.name}")
    return 0


async def cmd_delete(args, provider: FxRateProvider) -> int:
    async with get_db() as db:
        await delete_subscription(db, args.id)
    print(f"Deleted {args.id}")
    return 0


async def cmd_summary(args, provider: FxRateProvider) -> int:
    subs, methods, prefs, rates = await _view_inputs(provider)
    currency = display_currency(prefs)
    summary = build_dashboard_summary(subs, methods, currency, rates, date.today())

    print(f"Active subscriptions: {summary.active_count}")
    print(f"Monthly:        {format_currency(summary.total_monthly_cost, currency)}")
    print(f"Yearly:         {format_currency(summary.total_yearly_cost, currency)}")
    print(f"This month:     {format_currency(summary.current_month_total, currency)}")
    print(f"Year to date:   {format_currency(summary.ytd_total, currency)}")
    print("By category (monthly):")
    for item in summary.category_breakdown:
        print(f"  {item.category.value:<11} {format_currency(item.total_amount, currency):>14} "
              f"{item.percentage:5.1f}%")
    if summary.card_breakdown:
        print("By payment method (monthly):")
        for card in summary.card_breakdown:
            last4 = f" *{card.card_last4}" if card.card_last4 else ""
            print(f"  {card.card_name}{last4}: {format_currency(card.total_amount, currency)} "
                  f"({card.subscription_count})")
    if summary.fx_is_fallback:
        print("Note: exchange rate is an approximate fallback")
    elif summary.fx_is_stale:
        print(f"Note: exchange rate from {rates.last_updated:%Y-%m-%d %H:%M} may be out of date")
    return 0


async def cmd_upcoming(args, provider: FxRateProvider) -> int:
    subs, _, prefs, _ = await _view_inputs(provider)
    days = args.days if args.days is not None else prefs.horizon_days
    for e in generate_upcoming_events(subs, days, date.today()):
        print(f"{e.date.isoformat()}  {e.name:<20} {format_currency(e.amount, e.currency)}")
    return 0


async def cmd_ytd(args, provider: FxRateProvider) -> int:
    subs, _, prefs, rates = await _view_inputs(provider)
    currency = display_currency(prefs)
    totals = calculate_ytd_breakdown(subs, currency, rates, date.today())
    print(f"Year to date: {format_currency(sum(totals.values(), Decimal('0')), currency)}")
    _print_categories(totals, currency)
    return 0


async def cmd_month(args, provider: FxRateProvider) -> int:
    subs, _, prefs, rates = await _view_inputs(provider)
    currency = display_currency(prefs)
    totals = calculate_current_month_category_totals(subs, currency, rates, date.today())
    print(f"This month: {format_currency(sum(totals.values(), Decimal('0')), currency)}")
    _print_categories(totals, currency)
    return 0


async def cmd_breakdown(args, provider: FxRateProvider) -> int:
    subs, _, prefs, rates = await _view_inputs(provider)
    currency = display_currency(prefs)
    year = args.year or date.today().year
    items = calculate_monthly_breakdown(subs, year, currency, rates)
    for item in items:
        print(f"{year}-{item.month:02d}  {format_currency(item.total, currency):>14}")
    print(f"Total    {format_currency(sum((i.total for i in items), Decimal('0')), currency):>14}")
    return 0


async def cmd_calendar(args, provider: FxRateProvider) -> int:
    subs, _, prefs, rates = await _view_inputs(provider)
    currency = display_currency(prefs)
    month = build_calendar_month(subs, args.year, args.month, currency, rates)
    for e in month.events:
        print(f"{e.date.isoformat()}  {e.name:<20} {format_currency(e.amount, e.currency)}")
    print(f"Total: {format_currency(month.total_amount, currency)}")
    return 0


async def cmd_fx(args, provider: FxRateProvider) -> int:
    if args.refresh:
        rates = await provider.manual_refresh()
        if rates is None:
            print(f"Refresh not allowed yet, try again in {provider.manual_refresh_cooldown()}s")
            return 1
    else:
        rates = await provider.get_rates()
    flag = " (fallback)" if rates.is_fallback else " (stale)" if rates.is_stale else ""
    print(f"1 USD = {format_currency(rates.usd_to_krw, Currency.KRW)}{flag}")
    print(f"Source: {rates.source}, updated {rates.last_updated:%Y-%m-%d %H:%M}")
    return 0


async def cmd_prefs(args, provider: FxRateProvider) -> int:
    changes = {}
    if args.language is not None:
        changes["language"] = args.language
    if args.horizon_days is not None:
        changes["horizon_days"] = args.horizon_days
    async with get_db() as db:
        prefs = (
            await update_preferences(db, PreferencesUpdate(**changes))
            if changes else await load_preferences(db)
        )
    print(f"language={prefs.language} horizon_days={prefs.horizon_days} "
          f"display_currency={display_currency(prefs).value}")
    return 0


async def cmd_run(args, provider: FxRateProvider) -> int:
    scheduler = build_scheduler(provider, settings)
    await refresh_fx_rates(provider)
    scheduler.start()
    logger.info(f"{settings.APP_NAME} scheduler started")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()
    return 0


def _amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}")


COMMANDS = {
    "seed": cmd_seed,
    "list": cmd_list,
    "add": cmd_add,
    "end": cmd_end,
    "reactivate": cmd_reactivate,
    "delete": cmd_delete,
    "summary": cmd_summary,
    "upcoming": cmd_upcoming,
    "ytd": cmd_ytd,
    "month": cmd_month,
    "breakdown": cmd_breakdown,
    "calendar": cmd_calendar,
    "fx": cmd_fx,
    "prefs": cmd_prefs,
    "run": cmd_run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="subtally", description="Subscription expense tracker")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Load demo subscriptions into an empty store")
    sub.add_parser("list", help="List subscriptions")

    p_add = sub.add_parser("add", help="Add a subscription")
    p_add.add_argument("--name", required=True)
    p_add.add_argument("--amount", type=_amount, required=True)
    p_add.add_argument("--currency", choices=[c.value for c in Currency], default="USD")
    p_add.add_argument("--category", choices=[c.value for c in Category], default="OTHER")
    p_add.add_argument("--cycle", choices=[c.value for c in BillingCycle], default="MONTHLY")
    p_add.add_argument("--day", type=int, required=True, help="Billing day of month (1-31)")
    p_add.add_argument("--month", type=int, default=None, help="Billing month (1-12), YEARLY only")
    p_add.add_argument("--free-until", default=None, help="First paid day (YYYY-MM-DD)")
    p_add.add_argument("--started-at", default=None, help="Start date (YYYY-MM-DD)")
    p_add.add_argument("--notes", default=None)

    for name, help_text in (
        ("end", "End a subscription"),
        ("reactivate", "Reactivate an ended subscription"),
        ("delete", "Permanently delete a subscription"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("id")

    sub.add_parser("summary", help="Dashboard summary")
    p_up = sub.add_parser("upcoming", help="Upcoming payments")
    p_up.add_argument("--days", type=int, default=None, help="Horizon (default: preference)")
    sub.add_parser("ytd", help="Year-to-date spend")
    sub.add_parser("month", help="Spend in the current month")
    p_br = sub.add_parser("breakdown", help="Month-by-month spend for a year")
    p_br.add_argument("--year", type=int, default=None)
    p_cal = sub.add_parser("calendar", help="Payments in one month")
    p_cal.add_argument("year", type=int)
    p_cal.add_argument("month", type=int, choices=range(1, 13))

    p_fx = sub.add_parser("fx", help="Show the USD/KRW rate")
    p_fx.add_argument("--refresh", action="store_true", help="Force a refresh (30s cooldown)")

    p_prefs = sub.add_parser("prefs", help="Show or change preferences")
    p_prefs.add_argument("--language", choices=["en", "ko"], default=None)
    p_prefs.add_argument("--horizon-days", type=int, default=None)

    sub.add_parser("run", help="Run scheduled FX refresh and payment reminders")
    return parser


async def _run(args: argparse.Namespace) -> int:
    await init_db()
    provider = FxRateProvider()
    return await COMMANDS[args.command](args, provider)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0
    except (ValueError, LookupError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.error(f"Unhandled error: {exc}\n{traceback.format_exc()}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
