from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from config import settings
from database import Base, get_db
from main import app
from models.credit_batch import CreditBatch
from models.payment import Payment
from models.user import User
from services.payments import seed_packages
from services.session_token import create_session_token


@pytest_asyncio.fixture
async def accounts_client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_dummy")
    db_path = tmp_path / "accounts.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with session_maker() as session:
        await seed_packages(session)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, session_maker

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


async def _signup_and_activate(client, session_maker, email="new@example.com", password="reformer-pass-1"):
    with patch("routers.auth.dispatch_email") as mock_dispatch:
        signup_resp = await client.post(
            "/auth/signup",
            json={"email": email, "password": password, "name": "Nora", "phone": "+34600000000"},
        )
    assert signup_resp.status_code == 201
    assert mock_dispatch.call_args.args[1] == "activation"
    assert "/activate?token=" in mock_dispatch.call_args.args[2]["link"]

    async with session_maker() as session:
        user = (await session.execute(select(User).where(User.email == email))).scalar_one()
        token = user.activation_token

    activate_resp = await client.post("/auth/activate", json={"token": token})
    assert activate_resp.status_code == 200
    return user.id


@pytest.mark.asyncio
async def test_signup_requires_activation_before_login(accounts_client):
    client, session_maker = accounts_client

    with patch("routers.auth.dispatch_email"):
        await client.post(
            "/auth/signup",
            json={"email": "Pending@Example.com", "password": "reformer-pass-1", "name": "Pia"},
        )
        duplicate = await client.post(
            "/auth/signup",
            json={"email": "pending@example.com", "password": "reformer-pass-1", "name": "Pia"},
        )
    assert duplicate.status_code == 409

    early_login = await client.post("/auth/login", json={"email": "pending@example.com", "password": "reformer-pass-1"})
    assert early_login.status_code == 403

    user_id = await _signup_and_activate(client, session_maker)
    reused = await client.post("/auth/activate", json={"token": "not-a-token"})
    assert reused.status_code == 400

    bad_login = await client.post("/auth/login", json={"email": "new@example.com", "password": "wrong-password"})
    assert bad_login.status_code == 401

    login = await client.post("/auth/login", json={"email": "new@example.com", "password": "reformer-pass-1"})
    assert login.status_code == 200
    session_token = login.json()["session_token"]

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {session_token}"})
    assert me.status_code == 200
    assert me.json()["user_id"] == user_id
    assert me.json()["total_credits"] == 0


@pytest.mark.asyncio
async def test_password_reset_flow(accounts_client):
    client, session_maker = accounts_client
    await _signup_and_activate(client, session_maker)

    with patch("routers.auth.dispatch_email") as mock_dispatch:
        resp = await client.post("/auth/forgot-password", json={"email": "new@example.com"})
        unknown = await client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
    assert resp.status_code == 200
    assert unknown.status_code == 200
    assert mock_dispatch.call_count == 1
    token = mock_dispatch.call_args.args[2]["link"].split("token=")[1]

    reset = await client.post("/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert reset.status_code == 200
    replay = await client.post("/auth/reset-password", json={"token": token, "password": "another-pass-9"})
    assert replay.status_code == 400

    login = await client.post("/auth/login", json={"email": "new@example.com", "password": "brand-new-pass"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_packages_and_checkout_session_creation(accounts_client):
    client, session_maker = accounts_client
    user_id = await _signup_and_activate(client, session_maker)
    headers = {"Authorization": f"Bearer {create_session_token(user_id)['token']}"}

    packages = (await client.get("/billing/packages")).json()["packages"]
    assert [item["class_count"] for item in packages] == [1, 2, 5]

    fake_session = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")
    with patch("services.payments.stripe.checkout.Session.create", return_value=fake_session) as mock_create:
        resp = await client.post("/billing/checkout", json={"package_id": "3"}, headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"session_id": "cs_test_1", "checkout_url": "https://checkout.stripe.test/cs_test_1"}
    kwargs = mock_create.call_args.kwargs
    assert kwargs["metadata"] == {"userId": user_id, "packageId": "3", "classes": "5"}
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 3500

    missing = await client.post("/billing/checkout", json={"package_id": "99"}, headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_verify_payment_grants_credits_once(accounts_client):
    client, session_maker = accounts_client
    user_id = await _signup_and_activate(client, session_maker)
    headers = {"Authorization": f"Bearer {create_session_token(user_id)['token']}"}

    paid_session = SimpleNamespace(
        id="cs_paid",
        payment_status="paid",
        metadata={"userId": user_id, "packageId": "2", "classes": "2"},
        amount_total=1500,
        payment_intent="pi_123",
    )
    with patch("services.payments.stripe.checkout.Session.retrieve", return_value=paid_session):
        first = await client.post("/billing/verify", json={"session_id": "cs_paid"}, headers=headers)
        second = await client.post("/billing/verify", json={"session_id": "cs_paid"}, headers=headers)

    assert first.status_code == 200
    assert first.json()["credits_added"] == 2
    assert second.json()["message"] == "Payment already recorded"

    async with session_maker() as session:
        payments = (await session.execute(select(Payment))).scalars().all()
        batches = (await session.execute(select(CreditBatch).where(CreditBatch.user_id == user_id))).scalars().all()
    assert len(payments) == 1
    assert float(payments[0].amount) == 15.0
    assert [(batch.credits_total, batch.payment_id) for batch in batches] == [(2, payments[0].id)]

    summary = await client.get("/billing/credits", headers=headers)
    assert summary.json()["total_credits"] == 2


@pytest.mark.asyncio
async def test_verify_rejects_unpaid_and_foreign_sessions(accounts_client):
    client, session_maker = accounts_client
    user_id = await _signup_and_activate(client, session_maker)
    headers = {"Authorization": f"Bearer {create_session_token(user_id)['token']}"}

    unpaid = SimpleNamespace(payment_status="unpaid", metadata={"userId": user_id, "classes": "1"})
    with patch("services.payments.stripe.checkout.Session.retrieve", return_value=unpaid):
        resp = await client.post("/billing/verify", json={"session_id": "cs_unpaid"}, headers=headers)
    assert resp.status_code == 400

    foreign = SimpleNamespace(payment_status="paid", metadata={"userId": "someone-else", "classes": "5"})
    with patch("services.payments.stripe.checkout.Session.retrieve", return_value=foreign):
        resp = await client.post("/billing/verify", json={"session_id": "cs_foreign"}, headers=headers)
    assert resp.status_code == 403

    async with session_maker() as session:
        assert (await session.execute(select(CreditBatch))).scalars().all() == []


@pytest.mark.asyncio
async def test_signup_rejects_taken_phone_and_lost_email_race(accounts_client):
    client, session_maker = accounts_client
    await _signup_and_activate(client, session_maker)

    with patch("routers.auth.dispatch_email") as mock_dispatch:
        phone_taken = await client.post(
            "/auth/signup",
            json={"email": "second@example.com", "password": "reformer-pass-1", "name": "Sam", "phone": " +34600000000 "},
        )
        # Both signups pass the lookup; the unique email index decides.
        with patch("routers.auth.find_user_by_email", AsyncMock(return_value=None)):
            raced = await client.post(
                "/auth/signup",
                json={"email": "new@example.com", "password": "reformer-pass-1", "name": "Nora"},
            )

    assert phone_taken.status_code == 409
    assert raced.status_code == 409
    mock_dispatch.assert_not_called()

    async with session_maker() as session:
        users = (await session.execute(select(User))).scalars().all()
    assert [user.email for user in users] == ["new@example.com"]
