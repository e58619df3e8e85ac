"""
Subscription lifecycle: create, update, end, reactivate, delete.

Schedules are validated here, once, when a record is written. The billing
and aggregation services trust the records they are given.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from subtally.models.subscription import Subscription
from subtally.schemas.enums import BillingCycle, Category
from subtally.schemas.subscription import (
    SubscriptionCreate, SubscriptionRecord, SubscriptionUpdate, SubscriptionWithDetails,
)

logger = logging.getLogger(__name__)


class SubscriptionValidationError(ValueError):
    pass


class SubscriptionNotFoundError(LookupError):
    pass


def _column_values(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in data.items()}


def validate_schedule(billing_cycle: str, billing_day: int, billing_month: int | None) -> None:
    if not 1 <= billing_day <= 31:
        raise SubscriptionValidationError(f"billing_day must be 1-31, got {billing_day}")
    if billing_cycle == BillingCycle.YEARLY:
        if billing_month is None:
            raise SubscriptionValidationError("billing_month is required for YEARLY subscriptions")
        if not 1 <= billing_month <= 12:
            raise SubscriptionValidationError(f"billing_month must be 1-12, got {billing_month}")
    elif billing_cycle != BillingCycle.MONTHLY:
        raise SubscriptionValidationError(f"Unknown billing cycle: {billing_cycle}")


async def _get_or_raise(db: AsyncSession, sub_id: str) -> Subscription:
    sub = await db.get(Subscription, sub_id)
    if not sub:
        raise SubscriptionNotFoundError(f"Subscription not found: {sub_id}")
    return sub


async def _record(db: AsyncSession, sub: Subscription) -> SubscriptionRecord:
    await db.flush()
    await db.refresh(sub)
    return SubscriptionRecord.model_validate(sub)


async def create_subscription(
    db: AsyncSession, data: SubscriptionCreate, now: datetime | None = None
) -> SubscriptionRecord:
    now = now or datetime.now()
    values = _column_values(data.model_dump())
    validate_schedule(values["billing_cycle"], values["billing_day"], values["billing_month"])
    sub = Subscription(
        **values,
        is_active=True,
        ended_at=None,
        created_at=now,
        updated_at=now,
    )
    db.add(sub)
    record = await _record(db, sub)
    logger.info(f"Created subscription {record.id} ({record.name})")
    return record


async def get_subscription(db: AsyncSession, sub_id: str) -> SubscriptionRecord:
    return SubscriptionRecord.model_validate(await _get_or_raise(db, sub_id))


async def list_subscriptions(
    db: AsyncSession,
    is_active: bool | None = None,
    category: Category | None = None,
    payment_method_id: str | None = None,
) -> list[SubscriptionRecord]:
    query = select(Subscription)
    if is_active is not None:
        query = query.where(Subscription.is_active == is_active)
    if category is not None:
        query = query.where(Subscription.category == category.value)
    if payment_method_id is not None:
        query = query.where(Subscription.payment_method_id == payment_method_id)
    query = query.order_by(Subscription.name)
    result = await db.execute(query)
    return [SubscriptionRecord.model_validate(s) for s in result.scalars().all()]


async def list_subscriptions_with_details(db: AsyncSession) -> list[SubscriptionWithDetails]:
    result = await db.execute(
        select(Subscription)
        .options(selectinload(Subscription.payment_method))
        .order_by(Subscription.name)
    )
    return [
        SubscriptionWithDetails(
            **SubscriptionRecord.model_validate(s).model_dump(),
            payment_method_name=s.payment_method.name if s.payment_method else None,
            payment_method_last4=s.payment_method.last4 if s.payment_method else None,
        )
        for s in result.scalars().all()
    ]


async def update_subscription(
    db: AsyncSession, sub_id: str, data: SubscriptionUpdate, now: datetime | None = None
) -> SubscriptionRecord:
    sub = await _get_or_raise(db, sub_id)
    update_data = _column_values(data.model_dump(exclude_unset=True))

    for key in ("name", "amount", "category", "currency", "billing_cycle", "billing_day"):
        if key in update_data and update_data[key] is None:
            raise SubscriptionValidationError(f"{key} cannot be cleared")
    # Validate the schedule as it will be after the update
    validate_schedule(
        update_data.get("billing_cycle", sub.billing_cycle),
        update_data.get("billing_day", sub.billing_day),
        update_data.get("billing_month", sub.billing_month),
    )

    for key, value in update_data.items():
        setattr(sub, key, value)
    sub.updated_at = now or datetime.now()
    return await _record(db, sub)


async def end_subscription(
    db: AsyncSession, sub_id: str, now: datetime | None = None
) -> SubscriptionRecord:
    """Soft delete: no payments are generated after ``ended_at``."""
    sub = await _get_or_raise(db, sub_id)
    now = now or datetime.now()
    sub.is_active = False
    sub.ended_at = now
    sub.updated_at = now
    logger.info(f"Ended subscription {sub_id}")
    return await _record(db, sub)


async def reactivate_subscription(
    db: AsyncSession, sub_id: str, now: datetime | None = None
) -> SubscriptionRecord:
    sub = await _get_or_raise(db, sub_id)
    sub.is_active = True
    sub.ended_at = None
    sub.updated_at = now or datetime.now()
    logger.info(f"Reactivated subscription {sub_id}")
    return await _record(db, sub)


async def delete_subscription(db: AsyncSession, sub_id: str) -> None:
    sub = await _get_or_raise(db, sub_id)
    await db.delete(sub)
    await db.flush()
    logger.info(f"Deleted subscription {sub_id}")
