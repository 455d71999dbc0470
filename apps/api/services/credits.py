"""Credit ledger: prepaid class-credit batches and their consumption policy.

Batches are consumed and restored soonest-expiry-first, with batches that
never expire used last. None of the helpers here commit; they flush into the
caller's transaction so the booking coordinator can apply them atomically.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_batch import CreditBatch
from services.booking_errors import NoCreditsAvailable

logger = logging.getLogger(__name__)

SOURCE_PURCHASE = "purchase"
SOURCE_CANCELLATION_RESTORE = "cancellation_restore"
SOURCE_MANUAL = "manual"


@dataclass
class CreditMovement:
    batch_id: str
    credits_remaining: int
    created_batch: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def credit_expiry_from(now: Optional[datetime] = None) -> datetime:
    return add_months(now or _utcnow(), max(int(settings.CREDIT_VALIDITY_MONTHS), 1))


def unexpired_clause(now: datetime):
    return or_(CreditBatch.expires_at.is_(None), CreditBatch.expires_at >= now)


def _oldest_first():
    # Expiring batches before non-expiring ones, then soonest expiry.
    return (
        CreditBatch.expires_at.is_(None),
        CreditBatch.expires_at.asc(),
        CreditBatch.created_at.asc(),
        CreditBatch.id.asc(),
    )


def usable_batches_query(user_id: str, now: datetime):
    return (
        select(CreditBatch)
        .where(
            CreditBatch.user_id == user_id,
            CreditBatch.credits_remaining > 0,
            unexpired_clause(now),
        )
        .order_by(*_oldest_first())
    )


async def has_usable_credit(user_id: str, db: AsyncSession, *, now: Optional[datetime] = None) -> bool:
    result = await db.execute(usable_batches_query(user_id, now or _utcnow()).with_only_columns(CreditBatch.id).limit(1))
    return result.scalar_one_or_none() is not None


async def get_usable_credit_total(user_id: str, db: AsyncSession, *, now: Optional[datetime] = None) -> int:
    current = now or _utcnow()
    result = await db.execute(
        select(func.coalesce(func.sum(CreditBatch.credits_remaining), 0)).where(
            CreditBatch.user_id == user_id,
            CreditBatch.credits_remaining > 0,
            unexpired_clause(current),
        )
    )
    return int(result.scalar() or 0)


async def consume_one_credit(user_id: str, db: AsyncSession, *, now: Optional[datetime] = None) -> CreditMovement:
    """Take one credit from the soonest-expiring usable batch."""
    current = now or _utcnow()
    result = await db.execute(usable_batches_query(user_id, current).limit(1).with_for_update())
    batch = result.scalar_one_or_none()
    if batch is None:
        raise NoCreditsAvailable()

    updated = await db.execute(
        update(CreditBatch)
        .where(CreditBatch.id == batch.id, CreditBatch.credits_remaining > 0)
        .values(credits_remaining=CreditBatch.credits_remaining - 1)
        .execution_options(synchronize_session=False)
    )
    if updated.rowcount != 1:
        raise NoCreditsAvailable()

    await db.refresh(batch, attribute_names=["credits_remaining"])
    return CreditMovement(batch_id=batch.id, credits_remaining=int(batch.credits_remaining))


async def restore_one_credit(user_id: str, db: AsyncSession, *, now: Optional[datetime] = None) -> CreditMovement:
    """Return one credit to the customer. Never fails for lack of a batch."""
    current = now or _utcnow()
    result = await db.execute(
        select(CreditBatch)
        .where(
            CreditBatch.user_id == user_id,
            CreditBatch.credits_remaining < CreditBatch.credits_total,
            unexpired_clause(current),
        )
        .order_by(*_oldest_first())
        .limit(1)
        .with_for_update()
    )
    batch = result.scalar_one_or_none()
    if batch is not None:
        updated = await db.execute(
            update(CreditBatch)
            .where(CreditBatch.id == batch.id, CreditBatch.credits_remaining < CreditBatch.credits_total)
            .values(credits_remaining=CreditBatch.credits_remaining + 1)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount == 1:
            await db.refresh(batch, attribute_names=["credits_remaining"])
            return CreditMovement(batch_id=batch.id, credits_remaining=int(batch.credits_remaining))

    fallback = CreditBatch(
        id=str(uuid.uuid4()),
        user_id=user_id,
        credits_total=1,
        credits_remaining=1,
        expires_at=credit_expiry_from(current),
        source=SOURCE_CANCELLATION_RESTORE,
    )
    db.add(fallback)
    await db.flush()
    logger.warning(
        "credit restore fallback: no open batch for user=%s, created batch=%s expiring %s",
        user_id,
        fallback.id,
        fallback.expires_at.isoformat(),
    )
    return CreditMovement(batch_id=fallback.id, credits_remaining=1, created_batch=True)


async def add_credit_purchase(
    user_id: str,
    db: AsyncSession,
    *,
    credits: int,
    payment_id: Optional[str] = None,
    source: str = SOURCE_PURCHASE,
    now: Optional[datetime] = None,
) -> CreditBatch:
    grant = int(credits)
    if grant <= 0:
        raise ValueError("credits must be greater than 0")
    batch = CreditBatch(
        id=str(uuid.uuid4()),
        user_id=user_id,
        credits_total=grant,
        credits_remaining=grant,
        expires_at=credit_expiry_from(now),
        source=source,
        payment_id=payment_id,
    )
    db.add(batch)
    await db.flush()
    logger.info("Granted %s credits to user=%s batch=%s source=%s", grant, user_id, batch.id, source)
    return batch


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


async def get_credit_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    now = _utcnow()
    result = await db.execute(usable_batches_query(user_id, now))
    batches: List[CreditBatch] = list(result.scalars().all())
    return {
        "total_credits": sum(int(batch.credits_remaining) for batch in batches),
        "credit_validity_months": max(int(settings.CREDIT_VALIDITY_MONTHS), 1),
        "batches": [
            {
                "id": batch.id,
                "credits_remaining": batch.credits_remaining,
                "credits_total": batch.credits_total,
                "expires_at": _iso(batch.expires_at),
                "source": batch.source,
            }
            for batch in batches
        ],
    }
