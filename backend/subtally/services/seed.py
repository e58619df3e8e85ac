from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from subtally.models.subscription import Subscription
from subtally.schemas.subscription import SubscriptionCreate
from subtally.services.subscriptions import create_subscription

DEMO_SUBSCRIPTIONS = [
    # AI
    {"name": "ChatGPT Plus", "category": "AI", "amount": "20", "currency": "USD",
     "billing_cycle": "MONTHLY", "billing_day": 15, "notes": "GPT-4 access"},
    {"name": "Claude Pro", "category": "AI", "amount": "20", "currency": "USD",
     "billing_cycle": "MONTHLY", "billing_day": 15, "notes": "Anthropic AI assistant"},
    {"name": "Midjourney", "category": "AI", "amount": "10", "currency": "USD",
     "billing_cycle": "MONTHLY", "billing_day": 8, "notes": "Basic plan for image generation"},
    # Entertainment
    {"name": "Netflix", "category": "ENTERTAIN", "amount": "15.99", "currency": "USD",
     "billing_cycle": "MONTHLY", "billing_day": 5, "notes": "Standard plan"},
    {"name": "Spotify Premium", "category": "ENTERTAIN", "amount": "10990", "currency": "KRW",
     "billing_cycle": "MONTHLY", "billing_day": 20},
    {"name": "YouTube Premium", "category": "ENTERTAIN", "amount": "14900", "currency": "KRW",
     "billing_cycle": "MONTHLY", "billing_day": 12, "notes": "Includes YouTube Music"},
    {"name": "Disney+", "category": "ENTERTAIN", "amount": "109.99", "currency": "USD",
     "billing_cycle": "YEARLY", "billing_day": 1, "billing_month": 6, "notes": "Annual subscription"},
    # Membership
    {"name": "Amazon Prime", "category": "MEMBERSHIP", "amount": "139", "currency": "USD",
     "billing_cycle": "YEARLY", "billing_day": 15, "billing_month": 3, "notes": "Includes Prime Video"},
    {"name": "Costco", "category": "MEMBERSHIP", "amount": "48000", "currency": "KRW",
     "billing_cycle": "YEARLY", "billing_day": 10, "billing_month": 9},
    {"name": "Gym Membership", "category": "MEMBERSHIP", "amount": "99000", "currency": "KRW",
     "billing_cycle": "MONTHLY", "billing_day": 1},
    # Other
    {"name": "iCloud+", "category": "OTHER", "amount": "2.99", "currency": "USD",
     "billing_cycle": "MONTHLY", "billing_day": 18, "notes": "200GB storage"},
    {"name": "Notion", "category": "OTHER", "amount": "96", "currency": "USD",
     "billing_cycle": "YEARLY", "billing_day": 22, "billing_month": 1, "notes": "Personal Pro"},
    {"name": "Naver Cloud", "category": "OTHER", "amount": "4400", "currency": "KRW",
     "billing_cycle": "MONTHLY", "billing_day": 5, "notes": "100GB storage"},
]


async def has_subscriptions(db: AsyncSession) -> bool:
    count = await db.scalar(select(func.count()).select_from(Subscription))
    return bool(count)


async def seed_demo_data(db: AsyncSession, now: datetime | None = None) -> int:
    """Insert the demo subscriptions into an empty store. Returns how many were added."""
    if await has_subscriptions(db):
        return 0
    now = now or datetime.now()
    for demo in DEMO_SUBSCRIPTIONS:
        data = SubscriptionCreate(**{**demo, "amount": Decimal(demo["amount"])})
        await create_subscription(db, data, now=now)
    return len(DEMO_SUBSCRIPTIONS)
