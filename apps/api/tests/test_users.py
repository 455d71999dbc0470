from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.user import User
from services.passwords import hash_password
from services.session_token import create_session_token


@pytest_asyncio.fixture
async def users_client(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with session_maker() as session:
        session.add_all(
            [
                User(id="ana", email="ana@example.com", name="Ana", phone="+34600111222", is_active=True),
                User(
                    id="ben",
                    email="ben@example.com",
                    name="Ben",
                    last_name="Ortiz",
                    password_hash=hash_password("first-password"),
                    is_active=True,
                ),
                User(id="cleo", email="cleo@example.com", name="Cleo", is_active=False),
            ]
        )
        await session.commit()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


def _headers(user_id):
    return {"Authorization": f"Bearer {create_session_token(user_id)['token']}"}


@pytest.mark.asyncio
async def test_check_phone_availability(users_client):
    taken = await users_client.get("/users/check-phone", params={"phone": "+34600111222"})
    own = await users_client.get("/users/check-phone", params={"phone": "+34600111222", "exclude_user_id": "ana"})
    free = await users_client.get("/users/check-phone", params={"phone": "+34699999999"})
    missing = await users_client.get("/users/check-phone", params={"phone": "  "})

    assert taken.json() == {"available": False}
    assert own.json() == {"available": True}
    assert free.json() == {"available": True}
    assert missing.status_code == 400


@pytest.mark.asyncio
async def test_update_profile_changes_only_supplied_fields(users_client):
    resp = await users_client.patch(
        "/users/me",
        json={"name": " Benjamin ", "birthday": "1990-04-12", "additional_info": "Lower back injury"},
        headers=_headers("ben"),
    )

    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["name"] == "Benjamin"
    assert user["last_name"] == "Ortiz"
    assert user["birthday"] == "1990-04-12"
    assert user["additional_info"] == "Lower back injury"

    profile = await users_client.get("/users/me", headers=_headers("ben"))
    assert profile.json()["user"]["name"] == "Benjamin"


@pytest.mark.asyncio
async def test_update_profile_rejects_email_or_phone_of_another_customer(users_client):
    email_taken = await users_client.patch("/users/me", json={"email": "ANA@example.com"}, headers=_headers("ben"))
    phone_taken = await users_client.patch("/users/me", json={"phone": "+34600111222"}, headers=_headers("ben"))
    own_phone = await users_client.patch("/users/me", json={"phone": "+34600111222"}, headers=_headers("ana"))
    new_email = await users_client.patch("/users/me", json={"email": "Ben.Ortiz@Example.com"}, headers=_headers("ben"))

    assert email_taken.status_code == 409
    assert phone_taken.status_code == 409
    assert own_phone.status_code == 200
    assert new_email.json()["user"]["email"] == "ben.ortiz@example.com"


@pytest.mark.asyncio
async def test_complete_onboarding_sets_profile_and_password(users_client):
    payload = {
        "password": "second-password",
        "name": "Ben",
        "last_name": "Ortiz",
        "phone": "+34600333444",
        "goals": "Core strength",
        "birthday": "1988-09-30",
    }
    inactive = await users_client.patch("/users/me/onboarding", json=payload, headers=_headers("cleo"))
    assert inactive.status_code == 403

    phone_clash = await users_client.patch(
        "/users/me/onboarding", json={**payload, "phone": "+34600111222"}, headers=_headers("ben")
    )
    assert phone_clash.status_code == 409

    resp = await users_client.patch("/users/me/onboarding", json=payload, headers=_headers("ben"))
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["onboarding_completed"] is True
    assert user["goals"] == "Core strength"
    assert user["birthday"] == date(1988, 9, 30).isoformat()

    old_login = await users_client.post("/auth/login", json={"email": "ben@example.com", "password": "first-password"})
    login = await users_client.post("/auth/login", json={"email": "ben@example.com", "password": "second-password"})
    assert old_login.status_code == 401
    assert login.status_code == 200
    assert login.json()["onboarding_completed"] is True


@pytest.mark.asyncio
async def test_onboarding_requires_every_field(users_client):
    resp = await users_client.patch(
        "/users/me/onboarding",
        json={"password": "second-password", "name": "Ben"},
        headers=_headers("ben"),
    )
    assert resp.status_code == 422
