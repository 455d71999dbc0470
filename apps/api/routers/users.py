"""Customer profile router: profile edits, onboarding and phone availability."""

from __future__ import annotations

from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.accounts import (
    email_in_use,
    normalize_email,
    normalize_phone,
    phone_in_use,
    profile_payload,
)
from services.passwords import hash_password

router = APIRouter()
logger = logging.getLogger(__name__)


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=32)
    birthday: Optional[date] = None
    additional_info: Optional[str] = Field(default=None, max_length=2000)


class CompleteOnboardingRequest(BaseModel):
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=32)
    goals: str = Field(min_length=1, max_length=2000)
    birthday: date
    additional_info: Optional[str] = Field(default=None, max_length=2000)


async def _current_user(db: AsyncSession, auth: AuthContext) -> User:
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _commit_profile(db: AsyncSession, user: User) -> dict:
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email or phone number already in use") from exc
    return {"user": profile_payload(user)}


@router.get("/check-phone")
async def check_phone(
    phone: str = Query(default=""),
    exclude_user_id: Optional[str] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("users_check_phone", limit=60, window_seconds=600)),
    db: AsyncSession = Depends(get_db),
):
    """Whether a phone number is free to register."""
    normalized = normalize_phone(phone)
    if not normalized:
        raise HTTPException(status_code=400, detail="Phone required")
    return {"available": not await phone_in_use(db, normalized, exclude_user_id)}


@router.get("/me")
async def get_profile(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return {"user": profile_payload(await _current_user(db, auth))}


@router.patch("/me")
async def update_profile(
    request: UpdateProfileRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    user = await _current_user(db, auth)
    changes = request.model_dump(exclude_unset=True)

    if changes.get("email") and await email_in_use(db, changes["email"], user.id):
        raise HTTPException(status_code=409, detail="Email already in use")
    phone = normalize_phone(changes.get("phone"))
    if phone and await phone_in_use(db, phone, user.id):
        raise HTTPException(status_code=409, detail="Phone number already in use")

    if "name" in changes and changes["name"] is not None:
        user.name = changes["name"].strip()
    if "last_name" in changes:
        user.last_name = (changes["last_name"] or "").strip() or None
    if changes.get("email"):
        user.email = normalize_email(changes["email"])
    if "phone" in changes:
        user.phone = phone
    if "birthday" in changes:
        user.birthday = changes["birthday"]
    if "additional_info" in changes:
        user.additional_info = (changes["additional_info"] or "").strip() or None

    logger.info("Updated profile for user=%s fields=%s", user.id, sorted(changes))
    return await _commit_profile(db, user)


@router.patch("/me/onboarding")
async def complete_onboarding(
    request: CompleteOnboardingRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    user = await _current_user(db, auth)
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account not activated")

    phone = normalize_phone(request.phone)
    if await phone_in_use(db, phone, user.id):
        raise HTTPException(status_code=409, detail="That phone number is already registered.")

    user.password_hash = hash_password(request.password)
    user.name = request.name.strip()
    user.last_name = request.last_name.strip()
    user.phone = phone
    user.goals = request.goals.strip()
    user.birthday = request.birthday
    user.additional_info = (request.additional_info or "").strip() or None
    user.onboarding_completed = True

    logger.info("Completed onboarding for user=%s", user.id)
    return await _commit_profile(db, user)
