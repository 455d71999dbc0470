"""Class capacity tracking: booked counter and reformer station allocation."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Set

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.booking import Booking
from models.class_session import ClassSession
from services.booking_errors import ClassFull, NoStationAvailable

logger = logging.getLogger(__name__)


def lowest_free_station(capacity: int, occupied: Iterable[int]) -> Optional[int]:
    """Return the lowest station in [1, capacity] not in ``occupied``."""
    taken = set(occupied)
    for station in range(1, int(capacity) + 1):
        if station not in taken:
            return station
    return None


async def get_occupied_stations(class_id: str, db: AsyncSession) -> Set[int]:
    result = await db.execute(select(Booking.station_number).where(Booking.class_id == class_id))
    return {int(number) for number in result.scalars().all()}


async def try_reserve_station(class_session: ClassSession, db: AsyncSession) -> int:
    """Pick a station and bump booked_count within the caller's transaction."""
    if int(class_session.booked_count or 0) >= int(class_session.capacity):
        raise ClassFull()

    occupied = await get_occupied_stations(class_session.id, db)
    station = lowest_free_station(class_session.capacity, occupied)
    if station is None:
        logger.error(
            "Occupancy mismatch for class=%s: booked_count=%s capacity=%s occupied=%s",
            class_session.id,
            class_session.booked_count,
            class_session.capacity,
            sorted(occupied),
        )
        raise NoStationAvailable()

    result = await db.execute(
        update(ClassSession)
        .where(ClassSession.id == class_session.id, ClassSession.booked_count < ClassSession.capacity)
        .values(booked_count=ClassSession.booked_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ClassFull()

    await db.refresh(class_session, attribute_names=["booked_count"])
    return station


async def release_station(class_session: ClassSession, db: AsyncSession) -> None:
    """Give back one place on the class; booked_count never drops below zero."""
    result = await db.execute(
        update(ClassSession)
        .where(ClassSession.id == class_session.id, ClassSession.booked_count > 0)
        .values(booked_count=ClassSession.booked_count - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.error("booked_count already zero while releasing a station on class=%s", class_session.id)
    await db.refresh(class_session, attribute_names=["booked_count"])
