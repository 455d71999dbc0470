"""Billing and credits router."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.credits import get_credit_summary
from services.payments import create_checkout_session, list_active_packages, verify_checkout_session

router = APIRouter()
logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    user_id: Optional[str] = None
    package_id: str = Field(min_length=1)


class VerifyPaymentRequest(BaseModel):
    user_id: Optional[str] = None
    session_id: str = Field(min_length=1)


async def _get_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/credits")
async def credits_summary(
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    return await get_credit_summary(scoped_user_id, db)


@router.get("/packages")
async def packages(db: AsyncSession = Depends(get_db)):
    return {"packages": await list_active_packages(db)}


@router.post("/checkout")
async def checkout(
    request: CheckoutRequest,
    _rate_limit: None = Depends(rate_limit("billing_checkout", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    user = await _get_user(db, scoped_user_id)
    return await create_checkout_session(user, request.package_id, db)


@router.post("/verify")
async def verify_payment(
    request: VerifyPaymentRequest,
    _rate_limit: None = Depends(rate_limit("billing_verify", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    await _get_user(db, scoped_user_id)
    return await verify_checkout_session(scoped_user_id, request.session_id, db)
