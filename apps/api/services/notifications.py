"""Transactional email rendering, delivery and fire-and-forget dispatch."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
import re
from typing import Any, Dict, Optional
import uuid

import resend
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from models.class_session import ClassSession
from models.email_template import EmailLog, EmailTemplate
from models.user import User
from services.job_queue import enqueue_email_job

logger = logging.getLogger(__name__)

EMAIL_ACTIVATION = "activation"
EMAIL_PASSWORD_RESET = "password_reset"
EMAIL_BOOKING_CONFIRMATION = "booking_confirmation"
EMAIL_BOOKING_CANCELLATION = "booking_cancellation"

EMAIL_TYPES = (
    EMAIL_ACTIVATION,
    EMAIL_PASSWORD_RESET,
    EMAIL_BOOKING_CONFIRMATION,
    EMAIL_BOOKING_CANCELLATION,
)

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

_WRAPPER = (
    '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 40px;">'
    "{body}"
    "</div>"
)

DEFAULT_TEMPLATES: Dict[str, Dict[str, str]] = {
    EMAIL_ACTIVATION: {
        "subject": "Activate your account",
        "html_body": _WRAPPER.format(
            body=(
                "<p>Hi {{name}},</p>"
                "<p>Thank you for signing up. Activate your account to start booking classes.</p>"
                '<p><a href="{{link}}">Activate Account</a></p>'
            )
        ),
    },
    EMAIL_PASSWORD_RESET: {
        "subject": "Reset your password",
        "html_body": _WRAPPER.format(
            body=(
                "<p>Hi {{name}},</p>"
                "<p>We received a request to reset your password. This link expires in 1 hour.</p>"
                '<p><a href="{{link}}">Reset Password</a></p>'
            )
        ),
    },
    EMAIL_BOOKING_CONFIRMATION: {
        "subject": "Booking confirmed: {{classTitle}}",
        "html_body": _WRAPPER.format(
            body=(
                "<p>Hi {{name}},</p>"
                "<p>Your spot is confirmed.</p>"
                "<p>{{classTitle}}<br>{{date}} at {{time}}<br>Reformer #{{reformerNumber}}</p>"
            )
        ),
    },
    EMAIL_BOOKING_CANCELLATION: {
        "subject": "Booking cancelled: {{classTitle}}",
        "html_body": _WRAPPER.format(
            body=(
                "<p>Hi {{name}},</p>"
                "<p>Your booking for {{classTitle}} on {{date}} at {{time}} was cancelled. "
                "One credit has been returned to your account.</p>"
            )
        ),
    },
}


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Substitute ``{{key}}`` placeholders; unknown placeholders are left as-is."""

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, template or "")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def booking_email_vars(user: User, class_session: ClassSession, station_number: Optional[int] = None) -> Dict[str, str]:
    start = _as_utc(class_session.start_time)
    variables = {
        "name": user.name or user.email,
        "classTitle": class_session.title,
        "date": start.strftime("%A, %d %B %Y"),
        "time": start.strftime("%H:%M"),
    }
    if station_number is not None:
        variables["reformerNumber"] = str(station_number)
    return variables


async def seed_email_templates(db: AsyncSession) -> int:
    """Insert default templates for any type that has none yet."""
    result = await db.execute(select(EmailTemplate.type))
    existing = set(result.scalars().all())
    created = 0
    for email_type, template in DEFAULT_TEMPLATES.items():
        if email_type in existing:
            continue
        db.add(
            EmailTemplate(
                id=str(uuid.uuid4()),
                type=email_type,
                subject=template["subject"],
                html_body=template["html_body"],
            )
        )
        created += 1
    if created:
        await db.commit()
    return created


def _deliver(to: str, subject: str, html: str) -> str:
    api_key = (settings.RESEND_API_KEY or "").strip()
    if not api_key:
        logger.warning("RESEND_API_KEY missing; skipping email to %s (%s)", to, subject)
        return "skipped"

    resend.api_key = api_key
    try:
        resend.Emails.send(
            {
                "from": settings.EMAIL_FROM,
                "to": to,
                "subject": subject,
                "html": html,
            }
        )
    except Exception as exc:
        logger.error("Failed to send email to %s (%s): %s", to, subject, exc)
        return "failed"
    return "sent"


async def send_email(
    db: AsyncSession,
    *,
    to: str,
    email_type: str,
    variables: Dict[str, str],
    user_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Render a stored template, send it and record the outcome in email_logs."""
    result = await db.execute(select(EmailTemplate).where(EmailTemplate.type == email_type))
    template = result.scalar_one_or_none()
    if template is None:
        logger.error("No email template found for type: %s", email_type)
        return "missing_template"

    subject = render_template(template.subject, variables)
    html = render_template(template.html_body, variables)
    status = await asyncio.to_thread(_deliver, to, subject, html)

    try:
        db.add(
            EmailLog(
                id=str(uuid.uuid4()),
                user_id=user_id,
                to=to,
                type=email_type,
                subject=subject,
                status=status,
                metadata_json=metadata,
            )
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.warning("Failed to write email log for %s (%s): %s", to, email_type, exc)
    return status


async def send_email_job_async(
    to: str,
    email_type: str,
    variables: Dict[str, str],
    user_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    async with async_session_maker() as db:
        return await send_email(
            db,
            to=to,
            email_type=email_type,
            variables=variables,
            user_id=user_id,
            metadata=metadata,
        )


def send_email_job(
    to: str,
    email_type: str,
    variables: Dict[str, str],
    user_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """RQ worker entrypoint for transactional email."""
    return asyncio.run(send_email_job_async(to, email_type, variables, user_id, metadata))


def dispatch_email(
    to: str,
    email_type: str,
    variables: Dict[str, str],
    user_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Hand an email to the notification queue. Failures are logged, never raised."""
    if not settings.NOTIFICATIONS_ENABLED:
        return None
    try:
        job = enqueue_email_job(to, email_type, variables, user_id=user_id, metadata=metadata)
    except Exception as exc:
        logger.warning("Could not dispatch %s email to %s: %s", email_type, to, exc)
        return None
    return job.id
