import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from subtally.models.payment_method import PaymentMethod
from subtally.models.subscription import Subscription
from subtally.schemas.payment_method import (
    MigrationResult, PaymentMethodCreate, PaymentMethodRecord, PaymentMethodUpdate,
)
from subtally.schemas.subscription import SubscriptionRecord

logger = logging.getLogger(__name__)


class PaymentMethodNotFoundError(LookupError):
    pass


async def _get_or_raise(db: AsyncSession, pm_id: str) -> PaymentMethod:
    pm = await db.get(PaymentMethod, pm_id)
    if not pm:
        raise PaymentMethodNotFoundError(f"Payment method not found: {pm_id}")
    return pm


async def create_payment_method(
    db: AsyncSession, data: PaymentMethodCreate, now: datetime | None = None
) -> PaymentMethodRecord:
    values = data.model_dump()
    values["type"] = data.type.value
    pm = PaymentMethod(**values, created_at=now or datetime.now())
    db.add(pm)
    await db.flush()
    await db.refresh(pm)
    return PaymentMethodRecord.model_validate(pm)


async def get_payment_method(db: AsyncSession, pm_id: str) -> PaymentMethodRecord:
    return PaymentMethodRecord.model_validate(await _get_or_raise(db, pm_id))


async def list_payment_methods(db: AsyncSession) -> list[PaymentMethodRecord]:
    result = await db.execute(select(PaymentMethod).order_by(PaymentMethod.name))
    return [PaymentMethodRecord.model_validate(m) for m in result.scalars().all()]


async def update_payment_method(
    db: AsyncSession, pm_id: str, data: PaymentMethodUpdate
) -> PaymentMethodRecord:
    pm = await _get_or_raise(db, pm_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if key == "type" and value is not None:
            value = value.value
        setattr(pm, key, value)
    await db.flush()
    await db.refresh(pm)
    return PaymentMethodRecord.model_validate(pm)


async def delete_payment_method(db: AsyncSession, pm_id: str) -> int:
    """Delete a payment method and unlink it from every subscription.

    Returns the number of subscriptions that were unlinked.
    """
    pm = await _get_or_raise(db, pm_id)
    result = await db.execute(
        update(Subscription)
        .where(Subscription.payment_method_id == pm_id)
        .values(payment_method_id=None)
        .execution_options(synchronize_session="fetch")
    )
    await db.delete(pm)
    await db.flush()
    logger.info(f"Deleted payment method {pm_id}, unlinked {result.rowcount} subscriptions")
    return result.rowcount


async def payment_method_subscriptions(db: AsyncSession, pm_id: str) -> list[SubscriptionRecord]:
    await _get_or_raise(db, pm_id)
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.payment_method_id == pm_id,
            Subscription.is_active.is_(True),
        )
        .order_by(Subscription.name)
    )
    return [SubscriptionRecord.model_validate(s) for s in result.scalars().all()]


async def migrate_payment_method(
    db: AsyncSession,
    old_pm_id: str,
    new_pm_id: str,
    subscription_ids: list[str] | None = None,
) -> MigrationResult:
    """Move active subscriptions from one payment method to another (e.g. a replaced card)."""
    for pm_id in (old_pm_id, new_pm_id):
        await _get_or_raise(db, pm_id)

    query = select(Subscription).where(
        Subscription.payment_method_id == old_pm_id,
        Subscription.is_active.is_(True),
    )
    if subscription_ids:
        query = query.where(Subscription.id.in_(subscription_ids))

    result = await db.execute(query)
    subs = result.scalars().all()
    for sub in subs:
        sub.payment_method_id = new_pm_id
    await db.flush()
    return MigrationResult(
        migrated=len(subs),
        from_payment_method_id=old_pm_id,
        to_payment_method_id=new_pm_id,
    )
