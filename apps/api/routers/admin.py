"""Admin router: staff login, class creation, rosters and customers."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.booking import Booking
from models.class_session import ClassSession
from models.credit_batch import CreditBatch
from models.user import User
from routers.auth_scope import AuthContext, require_admin
from routers.rate_limit import rate_limit
from services.credits import unexpired_clause
from services.passwords import constant_time_equals
from services.session_token import ROLE_ADMIN, create_session_token

router = APIRouter()
logger = logging.getLogger(__name__)

ADMIN_SUBJECT = "admin"


class AdminLoginRequest(BaseModel):
    password: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CreateClassRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    instructor: Optional[str] = None
    start_time: datetime
    end_time: datetime
    capacity: int = Field(default_factory=lambda: settings.DEFAULT_CLASS_CAPACITY, ge=1, le=100)

    @model_validator(mode="after")
    def _end_after_start(self):
        self.start_time = _as_utc(self.start_time)
        self.end_time = _as_utc(self.end_time)
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@router.post("/login")
async def admin_login(
    request: AdminLoginRequest,
    _rate_limit: None = Depends(rate_limit("admin_login", limit=10, window_seconds=900)),
):
    if not constant_time_equals(request.password, settings.ADMIN_PASSWORD or ""):
        logger.warning("Rejected admin login attempt")
        raise HTTPException(status_code=401, detail="Invalid admin password.")
    session = create_session_token(ADMIN_SUBJECT, role=ROLE_ADMIN, expires_hours=12)
    return {"session_token": session["token"], "session_expires_at": session["expires_at"]}


@router.get("/classes")
async def list_classes(
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Upcoming classes with rosters ordered by reformer number."""
    classes_result = await db.execute(
        select(ClassSession)
        .where(ClassSession.start_time >= datetime.now(timezone.utc))
        .order_by(ClassSession.start_time.asc())
    )
    classes = classes_result.scalars().all()
    class_ids = [class_session.id for class_session in classes]

    rosters = {class_id: [] for class_id in class_ids}
    if class_ids:
        roster_result = await db.execute(
            select(Booking, User)
            .join(User, User.id == Booking.user_id)
            .where(Booking.class_id.in_(class_ids))
            .order_by(Booking.station_number.asc())
        )
        for booking, user in roster_result.all():
            rosters[booking.class_id].append(
                {
                    "booking_id": booking.id,
                    "station_number": booking.station_number,
                    "user": {
                        "id": user.id,
                        "name": user.name,
                        "last_name": user.last_name,
                        "email": user.email,
                        "phone": user.phone,
                    },
                }
            )

    return {
        "classes": [
            {
                "id": class_session.id,
                "title": class_session.title,
                "description": class_session.description,
                "instructor": class_session.instructor,
                "start_time": _iso(class_session.start_time),
                "end_time": _iso(class_session.end_time),
                "capacity": class_session.capacity,
                "booked_count": class_session.booked_count,
                "bookings": rosters[class_session.id],
            }
            for class_session in classes
        ]
    }


@router.post("/classes", status_code=201)
async def create_class(
    request: CreateClassRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    class_session = ClassSession(
        id=str(uuid.uuid4()),
        title=request.title.strip(),
        description=request.description or None,
        instructor=request.instructor or None,
        start_time=request.start_time,
        end_time=request.end_time,
        capacity=request.capacity,
        booked_count=0,
    )
    db.add(class_session)
    await db.commit()
    logger.info("Created class %s (%s) capacity=%s", class_session.id, class_session.title, class_session.capacity)
    return {
        "message": "Class created successfully",
        "class": {
            "id": class_session.id,
            "title": class_session.title,
            "start_time": _iso(class_session.start_time),
            "end_time": _iso(class_session.end_time),
            "capacity": class_session.capacity,
            "booked_count": class_session.booked_count,
        },
    }


@router.get("/customers")
async def list_customers(
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    now = datetime.now(timezone.utc)
    credits_subquery = (
        select(CreditBatch.user_id, func.sum(CreditBatch.credits_remaining).label("total_credits"))
        .where(CreditBatch.credits_remaining > 0, unexpired_clause(now))
        .group_by(CreditBatch.user_id)
        .subquery()
    )
    bookings_subquery = (
        select(Booking.user_id, func.count(Booking.id).label("booking_count"))
        .group_by(Booking.user_id)
        .subquery()
    )
    result = await db.execute(
        select(User, credits_subquery.c.total_credits, bookings_subquery.c.booking_count)
        .outerjoin(credits_subquery, credits_subquery.c.user_id == User.id)
        .outerjoin(bookings_subquery, bookings_subquery.c.user_id == User.id)
        .order_by(User.created_at.desc())
    )
    return {
        "customers": [
            {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "last_name": user.last_name,
                "phone": user.phone,
                "is_active": bool(user.is_active),
                "total_credits": int(total_credits or 0),
                "booking_count": int(booking_count or 0),
                "created_at": _iso(user.created_at),
            }
            for user, total_credits, booking_count in result.all()
        ]
    }
