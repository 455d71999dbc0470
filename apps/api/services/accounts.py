"""Customer account lookups shared by the signup and profile routes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.user import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    value = (phone or "").strip()
    return value or None


async def find_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def email_in_use(db: AsyncSession, email: str, exclude_user_id: Optional[str] = None) -> bool:
    query = select(User.id).where(func.lower(User.email) == normalize_email(email))
    if exclude_user_id:
        query = query.where(User.id != exclude_user_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def phone_in_use(db: AsyncSession, phone: str, exclude_user_id: Optional[str] = None) -> bool:
    query = select(User.id).where(User.phone == normalize_phone(phone))
    if exclude_user_id:
        query = query.where(User.id != exclude_user_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


def profile_payload(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "last_name": user.last_name,
        "phone": user.phone,
        "birthday": user.birthday.isoformat() if user.birthday else None,
        "goals": user.goals,
        "additional_info": user.additional_info,
        "is_active": bool(user.is_active),
        "onboarding_completed": bool(user.onboarding_completed),
    }
