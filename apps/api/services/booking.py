"""Booking coordinator: atomic reserve/cancel across credits and class capacity.

Each call is one transaction on the supplied session. The class row is locked
first so concurrent bookings on the same class serialize on stores that
support row locks; guarded updates and the bookings unique constraints cover
the rest. A station lost to a concurrent insert re-runs the reservation. Any
failure rolls back every mutation made by the call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.booking import Booking
from models.class_session import ClassSession
from services.booking_errors import (
    AlreadyBooked,
    BookingNotFound,
    ClassFull,
    ClassNotFound,
    NoCreditsAvailable,
    ReservationConflict,
)
from services.capacity import release_station, try_reserve_station
from services.credits import (
    consume_one_credit,
    get_usable_credit_total,
    has_usable_credit,
    restore_one_credit,
)

logger = logging.getLogger(__name__)


@dataclass
class ReservationResult:
    booking: Booking
    class_session: ClassSession
    credit_batch_id: str
    credits_remaining: int


@dataclass
class CancellationResult:
    class_session: ClassSession
    station_number: int
    credit_batch_id: str
    credits_remaining: int
    created_credit_batch: bool = False


async def _lock_class(class_id: str, db: AsyncSession) -> Optional[ClassSession]:
    result = await db.execute(select(ClassSession).where(ClassSession.id == class_id).with_for_update())
    return result.scalar_one_or_none()


async def _find_booking(user_id: str, class_id: str, db: AsyncSession, *, for_update: bool = False) -> Optional[Booking]:
    query = select(Booking).where(Booking.user_id == user_id, Booking.class_id == class_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


class _StationTaken(Exception):
    """The picked station was committed by another booking first."""


async def _booked_after_rollback(user_id: str, class_id: str, db: AsyncSession) -> bool:
    existing = await _find_booking(user_id, class_id, db)
    await db.rollback()
    return existing is not None


async def _reserve_once(user_id: str, class_id: str, db: AsyncSession, now: Optional[datetime]) -> ReservationResult:
    try:
        class_session = await _lock_class(class_id, db)
        if class_session is None:
            raise ClassNotFound()
        if await _find_booking(user_id, class_id, db) is not None:
            raise AlreadyBooked()
        if not await has_usable_credit(user_id, db, now=now):
            raise NoCreditsAvailable()

        station = await try_reserve_station(class_session, db)
        movement = await consume_one_credit(user_id, db, now=now)
        booking = Booking(
            id=str(uuid.uuid4()),
            user_id=user_id,
            class_id=class_session.id,
            station_number=station,
        )
        db.add(booking)
        await db.flush()
        credits_remaining = await get_usable_credit_total(user_id, db, now=now)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if await _booked_after_rollback(user_id, class_id, db):
            raise AlreadyBooked()
        raise _StationTaken()
    except (ClassFull, NoCreditsAvailable):
        # A concurrent reserve by the same customer may have won the last place or credit.
        await db.rollback()
        if await _booked_after_rollback(user_id, class_id, db):
            raise AlreadyBooked()
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Booked class=%s station=%s for user=%s using batch=%s",
        class_id,
        booking.station_number,
        user_id,
        movement.batch_id,
    )
    return ReservationResult(
        booking=booking,
        class_session=class_session,
        credit_batch_id=movement.batch_id,
        credits_remaining=credits_remaining,
    )


async def reserve(
    user_id: str,
    class_id: str,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    max_attempts: Optional[int] = None,
) -> ReservationResult:
    """Book the lowest free station on a class, paying with one credit.

    A station lost to a concurrent booking re-runs the whole transaction
    against fresh occupancy, up to ``max_attempts`` times.
    """
    attempts = max(int(max_attempts or settings.BOOKING_MAX_ATTEMPTS), 1)
    for attempt in range(1, attempts + 1):
        try:
            return await _reserve_once(user_id, class_id, db, now)
        except _StationTaken:
            logger.info(
                "Station taken concurrently on class=%s for user=%s (attempt %s/%s)",
                class_id,
                user_id,
                attempt,
                attempts,
            )
    logger.warning("Giving up on class=%s for user=%s after %s station conflicts", class_id, user_id, attempts)
    raise ReservationConflict()


async def cancel(user_id: str, class_id: str, db: AsyncSession, *, now: Optional[datetime] = None) -> CancellationResult:
    """Drop a booking, free its station and give the credit back."""
    try:
        class_session = await _lock_class(class_id, db)
        booking = await _find_booking(user_id, class_id, db, for_update=True) if class_session else None
        if booking is None:
            raise BookingNotFound()

        station = int(booking.station_number)
        await db.execute(delete(Booking).where(Booking.id == booking.id).execution_options(synchronize_session=False))
        db.expunge(booking)
        await release_station(class_session, db)
        movement = await restore_one_credit(user_id, db, now=now)
        credits_remaining = await get_usable_credit_total(user_id, db, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Cancelled class=%s station=%s for user=%s; credit returned to batch=%s",
        class_id,
        station,
        user_id,
        movement.batch_id,
    )
    return CancellationResult(
        class_session=class_session,
        station_number=station,
        credit_batch_id=movement.batch_id,
        credits_remaining=credits_remaining,
        created_credit_batch=movement.created_batch,
    )


async def list_user_bookings(user_id: str, db: AsyncSession, *, upcoming_only: bool = True) -> List[Dict[str, Any]]:
    query = (
        select(Booking, ClassSession)
        .join(ClassSession, ClassSession.id == Booking.class_id)
        .where(Booking.user_id == user_id)
        .order_by(ClassSession.start_time.asc())
    )
    if upcoming_only:
        query = query.where(ClassSession.start_time >= datetime.now(timezone.utc))
    result = await db.execute(query)
    return [
        {
            "booking_id": booking.id,
            "class_id": class_session.id,
            "title": class_session.title,
            "instructor": class_session.instructor,
            "start_time": class_session.start_time.isoformat() if class_session.start_time else None,
            "end_time": class_session.end_time.isoformat() if class_session.end_time else None,
            "station_number": booking.station_number,
        }
        for booking, class_session in result.all()
    ]
