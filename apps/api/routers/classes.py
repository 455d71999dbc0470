"""Class listing and booking router."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.class_session import ClassSession
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services import booking as booking_service
from services.booking_errors import BookingError
from services.notifications import (
    EMAIL_BOOKING_CANCELLATION,
    EMAIL_BOOKING_CONFIRMATION,
    booking_email_vars,
    dispatch_email,
)

router = APIRouter()
logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = {"code": "internal_error", "message": "Something went wrong. Please try again."}


class BookingResponse(BaseModel):
    booking_id: str
    class_id: str
    station_number: int
    credits_remaining: int


class CancellationResponse(BaseModel):
    ok: bool = True
    class_id: str
    credits_remaining: int


def _to_http_error(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


async def _load_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/available")
async def available_classes(db: AsyncSession = Depends(get_db)):
    """Upcoming classes with their remaining spots."""
    result = await db.execute(
        select(ClassSession)
        .where(ClassSession.start_time >= datetime.now(timezone.utc))
        .order_by(ClassSession.start_time.asc())
    )
    classes = []
    for class_session in result.scalars().all():
        booked = int(class_session.booked_count or 0)
        classes.append(
            {
                "id": class_session.id,
                "title": class_session.title,
                "description": class_session.description,
                "instructor": class_session.instructor,
                "start_time": class_session.start_time.isoformat(),
                "end_time": class_session.end_time.isoformat(),
                "capacity": class_session.capacity,
                "booked_spots": booked,
                "available_spots": max(int(class_session.capacity) - booked, 0),
                "is_full": booked >= int(class_session.capacity),
            }
        )
    return {"classes": classes}


@router.get("/mine")
async def my_bookings(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return {"bookings": await booking_service.list_user_bookings(auth.user_id, db)}


@router.post("/{class_id}/book", response_model=BookingResponse)
async def book_class(
    class_id: str,
    background_tasks: BackgroundTasks,
    _rate_limit: None = Depends(rate_limit("class_book", limit=30, window_seconds=600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    user = await _load_user(db, auth.user_id)
    user_id = user.id
    try:
        result = await booking_service.reserve(user_id, class_id, db)
    except BookingError as exc:
        raise _to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("Booking failed for user=%s class=%s: %s", user_id, class_id, exc)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc

    background_tasks.add_task(
        dispatch_email,
        user.email,
        EMAIL_BOOKING_CONFIRMATION,
        booking_email_vars(user, result.class_session, result.booking.station_number),
        user.id,
        {"class_id": class_id, "booking_id": result.booking.id},
    )
    return BookingResponse(
        booking_id=result.booking.id,
        class_id=class_id,
        station_number=result.booking.station_number,
        credits_remaining=result.credits_remaining,
    )


@router.delete("/{class_id}/book", response_model=CancellationResponse)
async def cancel_booking(
    class_id: str,
    background_tasks: BackgroundTasks,
    user_id: Optional[str] = None,
    _rate_limit: None = Depends(rate_limit("class_cancel", limit=30, window_seconds=600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    if user_id and user_id != auth.user_id and not auth.is_admin:
        raise HTTPException(status_code=403, detail="user_id does not match authenticated session.")
    user = await _load_user(db, user_id or auth.user_id)
    user_id = user.id
    try:
        result = await booking_service.cancel(user_id, class_id, db)
    except BookingError as exc:
        raise _to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("Cancellation failed for user=%s class=%s: %s", user_id, class_id, exc)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc

    background_tasks.add_task(
        dispatch_email,
        user.email,
        EMAIL_BOOKING_CANCELLATION,
        booking_email_vars(user, result.class_session, result.station_number),
        user.id,
        {"class_id": class_id},
    )
    return CancellationResponse(class_id=class_id, credits_remaining=result.credits_remaining)
