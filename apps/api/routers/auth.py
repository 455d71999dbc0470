"""
Customer account router: signup, activation, login and password reset.
"""

from datetime import date, datetime, timezone
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.accounts import find_user_by_email, normalize_email, normalize_phone, phone_in_use
from services.credits import get_usable_credit_total
from services.notifications import EMAIL_ACTIVATION, EMAIL_PASSWORD_RESET, dispatch_email
from services.passwords import hash_password, new_account_token, token_expiry, verify_password
from services.session_token import create_session_token

router = APIRouter()

DUPLICATE_EMAIL_DETAIL = "An account with this email already exists."
DUPLICATE_PHONE_DETAIL = "An account with this phone number already exists."
DUPLICATE_ACCOUNT_DETAIL = "An account with this email or phone number already exists."


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)
    birthday: Optional[date] = None
    additional_info: Optional[str] = Field(default=None, max_length=2000)


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


class EmailRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=128)


class SessionResponse(BaseModel):
    user_id: str
    email: str
    session_token: str
    session_expires_at: int
    onboarding_completed: bool = False


class CurrentUserResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    onboarding_completed: bool = False
    total_credits: int


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _link(path: str, token: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}/{path}?token={token}"


@router.post("/signup", status_code=201)
async def signup(
    request: SignupRequest,
    background_tasks: BackgroundTasks,
    _rate_limit: None = Depends(rate_limit("auth_signup", limit=10, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    if await find_user_by_email(db, request.email):
        raise HTTPException(status_code=409, detail=DUPLICATE_EMAIL_DETAIL)
    phone = normalize_phone(request.phone)
    if phone and await phone_in_use(db, phone):
        raise HTTPException(status_code=409, detail=DUPLICATE_PHONE_DETAIL)

    activation_token = new_account_token()
    user = User(
        id=str(uuid.uuid4()),
        email=normalize_email(request.email),
        name=request.name.strip(),
        last_name=(request.last_name or "").strip() or None,
        phone=phone,
        birthday=request.birthday,
        additional_info=(request.additional_info or "").strip() or None,
        password_hash=hash_password(request.password),
        is_active=False,
        activation_token=activation_token,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail=DUPLICATE_ACCOUNT_DETAIL) from exc

    background_tasks.add_task(
        dispatch_email,
        user.email,
        EMAIL_ACTIVATION,
        {"name": user.name or user.email, "link": _link("activate", activation_token)},
        user.id,
    )
    return {"user_id": user.id, "email": user.email, "activation_required": True}


@router.post("/activate")
async def activate(request: TokenRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.activation_token == request.token))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or already used activation link.")

    user.is_active = True
    user.activation_token = None
    await db.commit()
    return {"ok": True, "user_id": user.id}


@router.post("/resend-activation")
async def resend_activation(
    request: EmailRequest,
    background_tasks: BackgroundTasks,
    _rate_limit: None = Depends(rate_limit("auth_resend_activation", limit=5, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    user = await find_user_by_email(db, request.email)
    # Same response whether or not the account exists.
    if user and not user.is_active:
        user.activation_token = new_account_token()
        await db.commit()
        background_tasks.add_task(
            dispatch_email,
            user.email,
            EMAIL_ACTIVATION,
            {"name": user.name or user.email, "link": _link("activate", user.activation_token)},
            user.id,
        )
    return {"ok": True}


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    _rate_limit: None = Depends(rate_limit("auth_login", limit=20, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    user = await find_user_by_email(db, request.email)
    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account not activated. Check your email for the activation link.")

    session = create_session_token(user.id, user.email)
    return SessionResponse(
        user_id=user.id,
        email=user.email,
        session_token=session["token"],
        session_expires_at=session["expires_at"],
        onboarding_completed=bool(user.onboarding_completed),
    )


@router.post("/forgot-password")
async def forgot_password(
    request: EmailRequest,
    background_tasks: BackgroundTasks,
    _rate_limit: None = Depends(rate_limit("auth_forgot_password", limit=5, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    user = await find_user_by_email(db, request.email)
    if user:
        user.reset_token = new_account_token()
        user.reset_token_expires_at = token_expiry(settings.RESET_TOKEN_TTL_MINUTES)
        await db.commit()
        background_tasks.add_task(
            dispatch_email,
            user.email,
            EMAIL_PASSWORD_RESET,
            {"name": user.name or user.email, "link": _link("reset-password", user.reset_token)},
            user.id,
        )
    return {"ok": True}


@router.post("/reset-password")
async def reset_password(request: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.reset_token == request.token))
    user = result.scalar_one_or_none()
    expires_at = _as_utc(user.reset_token_expires_at) if user else None
    if not user or not expires_at or expires_at < datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Invalid or expired reset link.")

    user.password_hash = hash_password(request.password)
    user.reset_token = None
    user.reset_token_expires_at = None
    await db.commit()
    return {"ok": True}


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get current customer profile and usable credit balance."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        last_name=user.last_name,
        phone=user.phone,
        is_active=bool(user.is_active),
        onboarding_completed=bool(user.onboarding_completed),
        total_credits=await get_usable_credit_total(user.id, db),
    )
