import logging
from datetime import date

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession

from subtally.config import Settings
from subtally.db import get_db
from subtally.services.billing import generate_upcoming_events
from subtally.services.format import format_currency
from subtally.services.fx import FxRateProvider
from subtally.services.notification import send_discord_webhook
from subtally.services.subscriptions import list_subscriptions

logger = logging.getLogger(__name__)


async def check_upcoming_payments(
    db: AsyncSession,
    webhook_url: str,
    today: date | None = None,
    days: int = 3,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Send one alert listing the payments due within ``days``. Returns the event count."""
    today = today or date.today()
    subs = await list_subscriptions(db, is_active=True)
    events = generate_upcoming_events(subs, days, today)
    if events:
        lines = [
            f"- **{e.name}**: {format_currency(e.amount, e.currency)} ({e.date.isoformat()})"
            for e in events
        ]
        await send_discord_webhook(
            webhook_url,
            f"Upcoming payments ({len(events)})",
            "\n".join(lines),
            color=0xFBBF24,
            transport=transport,
        )
    return len(events)


async def refresh_fx_rates(provider: FxRateProvider) -> None:
    rates = await provider.get_rates()
    logger.info(
        f"FX rates: 1 USD = {rates.usd_to_krw} KRW "
        f"(source={rates.source}, stale={rates.is_stale}, fallback={rates.is_fallback})"
    )


def build_scheduler(provider: FxRateProvider, config: Settings) -> AsyncIOScheduler:
    async def run_reminders() -> None:
        async with get_db() as db:
            await check_upcoming_payments(db, config.DISCORD_WEBHOOK_URL, days=config.REMINDER_DAYS)

    scheduler = AsyncIOScheduler()
    # Checked hourly; the provider only fetches once the cache is older than FX_MIN_REFRESH_HOURS
    scheduler.add_job(refresh_fx_rates, "interval", hours=1, args=[provider], id="fx_refresh")
    scheduler.add_job(run_reminders, "cron", hour=config.REMINDER_HOUR, minute=0, id="payment_reminders")
    return scheduler
