"""Stripe checkout for class packages and credit grants on confirmed payment."""

from __future__ import annotations

import asyncio
from decimal import Decimal
import logging
from typing import Any, Dict, Optional
import uuid

from fastapi import HTTPException
import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import require_stripe_secret_key, settings
from models.package import Package
from models.payment import Payment
from models.user import User
from services.credits import add_credit_purchase

logger = logging.getLogger(__name__)

DEFAULT_PACKAGES = (
    {"id": "1", "name": "1 Class", "description": "Perfect for a first visit", "class_count": 1, "price": Decimal("10")},
    {"id": "2", "name": "2 Classes", "description": "Save 5 per class", "class_count": 2, "price": Decimal("15")},
    {"id": "3", "name": "5 Classes", "description": "Best value", "class_count": 5, "price": Decimal("35")},
)


async def seed_packages(db: AsyncSession) -> int:
    result = await db.execute(select(Package.id).limit(1))
    if result.scalar_one_or_none():
        return 0
    for package in DEFAULT_PACKAGES:
        db.add(Package(active=True, **package))
    await db.commit()
    return len(DEFAULT_PACKAGES)


async def list_active_packages(db: AsyncSession) -> list:
    result = await db.execute(select(Package).where(Package.active.is_(True)).order_by(Package.class_count.asc()))
    return [
        {
            "id": package.id,
            "name": package.name,
            "description": package.description,
            "class_count": package.class_count,
            "price": float(package.price),
        }
        for package in result.scalars().all()
    ]


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


async def create_checkout_session(user: User, package_id: str, db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(select(Package).where(Package.id == package_id, Package.active.is_(True)))
    package = result.scalar_one_or_none()
    if package is None:
        raise HTTPException(status_code=404, detail="Package not found")

    try:
        api_key = require_stripe_secret_key()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail="Stripe is not configured.") from exc

    app_url = settings.APP_URL.rstrip("/")
    try:
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            api_key=api_key,
            mode="payment",
            customer_email=user.email,
            line_items=[
                {
                    "price_data": {
                        "currency": settings.STRIPE_CURRENCY,
                        "product_data": {"name": package.name, "description": package.description or package.name},
                        "unit_amount": int(Decimal(package.price) * 100),
                    },
                    "quantity": 1,
                }
            ],
            success_url=f"{app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{app_url}/packages",
            metadata={
                "userId": user.id,
                "packageId": package.id,
                "classes": str(package.class_count),
            },
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout creation failed for user=%s package=%s: %s", user.id, package.id, exc)
        raise HTTPException(status_code=502, detail="Payment provider unavailable. Try again later.") from exc

    return {"session_id": _field(session, "id"), "checkout_url": _field(session, "url")}


async def _existing_payment(session_id: str, db: AsyncSession) -> Optional[Payment]:
    result = await db.execute(select(Payment).where(Payment.stripe_session_id == session_id))
    return result.scalar_one_or_none()


async def verify_checkout_session(user_id: str, session_id: str, db: AsyncSession) -> Dict[str, Any]:
    """Record a paid checkout once and grant its credits."""
    try:
        api_key = require_stripe_secret_key()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail="Stripe is not configured.") from exc

    try:
        session = await asyncio.to_thread(stripe.checkout.Session.retrieve, session_id, api_key=api_key)
    except stripe.StripeError as exc:
        logger.warning("Stripe session lookup failed for %s: %s", session_id, exc)
        raise HTTPException(status_code=502, detail="Payment provider unavailable. Try again later.") from exc

    if _field(session, "payment_status") != "paid":
        raise HTTPException(status_code=400, detail="Payment not completed")

    metadata = dict(_field(session, "metadata") or {})
    if metadata.get("userId") != user_id:
        raise HTTPException(status_code=403, detail="Checkout session belongs to another user.")

    class_count = int(metadata.get("classes") or 0)
    existing = await _existing_payment(session_id, db)
    if existing is not None:
        return {"message": "Payment already recorded", "payment_id": existing.id, "credits_added": class_count}

    if class_count <= 0:
        raise HTTPException(status_code=422, detail="Checkout session has no classes attached.")

    payment = Payment(
        id=str(uuid.uuid4()),
        user_id=user_id,
        package_id=metadata.get("packageId"),
        amount=Decimal(int(_field(session, "amount_total") or 0)) / 100,
        stripe_session_id=session_id,
        stripe_payment_id=_field(session, "payment_intent"),
        status="completed",
    )
    try:
        db.add(payment)
        await db.flush()
        await add_credit_purchase(user_id, db, credits=class_count, payment_id=payment.id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _existing_payment(session_id, db)
        if existing is None:
            raise
        return {"message": "Payment already recorded", "payment_id": existing.id, "credits_added": class_count}

    logger.info("Payment %s verified for user=%s: %s credits", payment.id, user_id, class_count)
    return {"message": "Payment verified and credits added", "payment_id": payment.id, "credits_added": class_count}
