from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, get_db
from main import app
from models.class_session import ClassSession
from models.credit_batch import CreditBatch
from models.user import User
from services.booking_errors import ReservationConflict
from services.session_token import ROLE_ADMIN, create_session_token


MEMBER_ID = "member-1"
OTHER_ID = "member-2"
MEMBER_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(MEMBER_ID, 'member@example.com')['token']}"}
OTHER_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(OTHER_ID, 'other@example.com')['token']}"}
ADMIN_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token('admin', role=ROLE_ADMIN)['token']}"}
START = datetime.now(timezone.utc) + timedelta(days=1)


@pytest_asyncio.fixture
async def booking_client(tmp_path):
    db_path = tmp_path / "booking_router.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_maker() as session:
        session.add_all(
            [
                User(id=MEMBER_ID, email="member@example.com", name="Maya", is_active=True),
                User(id=OTHER_ID, email="other@example.com", name="Otto", is_active=True),
                ClassSession(
                    id="solo-class",
                    title="Private Reformer",
                    start_time=START,
                    end_time=START + timedelta(minutes=50),
                    capacity=1,
                    booked_count=0,
                ),
                CreditBatch(
                    id="member-batch",
                    user_id=MEMBER_ID,
                    credits_total=5,
                    credits_remaining=2,
                    expires_at=START + timedelta(days=30),
                ),
                CreditBatch(
                    id="other-batch",
                    user_id=OTHER_ID,
                    credits_total=1,
                    credits_remaining=1,
                    expires_at=START + timedelta(days=30),
                ),
            ]
        )
        await session.commit()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, session_maker

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.mark.asyncio
async def test_book_and_cancel_flow_dispatches_notifications(booking_client):
    client, session_maker = booking_client

    with patch("routers.classes.dispatch_email") as mock_dispatch:
        book_resp = await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)
        assert book_resp.status_code == 200
        payload = book_resp.json()
        assert payload["station_number"] == 1
        assert payload["credits_remaining"] == 1

        to, email_type, variables, user_id, metadata = mock_dispatch.call_args.args
        assert to == "member@example.com"
        assert email_type == "booking_confirmation"
        assert variables["reformerNumber"] == "1"
        assert variables["classTitle"] == "Private Reformer"
        assert metadata["booking_id"] == payload["booking_id"]

        mine_resp = await client.get("/classes/mine", headers=MEMBER_AUTH_HEADER)
        assert [item["class_id"] for item in mine_resp.json()["bookings"]] == ["solo-class"]

        cancel_resp = await client.delete("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)
        assert cancel_resp.status_code == 200
        assert cancel_resp.json() == {"ok": True, "class_id": "solo-class", "credits_remaining": 2}
        assert mock_dispatch.call_args.args[1] == "booking_cancellation"
        assert mock_dispatch.call_count == 2

    async with session_maker() as session:
        class_session = await session.get(ClassSession, "solo-class")
        assert class_session.booked_count == 0


@pytest.mark.asyncio
async def test_named_failures_map_to_distinct_transport_errors(booking_client):
    client, _ = booking_client

    first = await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)
    assert first.status_code == 200

    again = await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_booked"

    full = await client.post("/classes/solo-class/book", headers=OTHER_AUTH_HEADER)
    assert full.status_code == 409
    assert full.json()["detail"]["code"] == "class_full"

    missing_class = await client.post("/classes/nope/book", headers=MEMBER_AUTH_HEADER)
    assert missing_class.status_code == 404
    assert missing_class.json()["detail"]["code"] == "class_not_found"

    missing_booking = await client.delete("/classes/solo-class/book", headers=OTHER_AUTH_HEADER)
    assert missing_booking.status_code == 404
    assert missing_booking.json()["detail"]["code"] == "booking_not_found"


@pytest.mark.asyncio
async def test_booking_without_credits_returns_payment_required(booking_client):
    client, session_maker = booking_client
    async with session_maker() as session:
        batch = await session.get(CreditBatch, "other-batch")
        batch.credits_remaining = 0
        await session.commit()

    resp = await client.post("/classes/solo-class/book", headers=OTHER_AUTH_HEADER)
    assert resp.status_code == 402
    assert resp.json()["detail"]["code"] == "no_credits_available"


@pytest.mark.asyncio
async def test_store_failure_maps_to_opaque_internal_error(booking_client):
    client, _ = booking_client

    with patch("services.booking.reserve", side_effect=OperationalError("UPDATE", {}, Exception("db gone"))):
        resp = await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)

    assert resp.status_code == 500
    assert resp.json()["detail"]["code"] == "internal_error"
    assert "db gone" not in resp.text


@pytest.mark.asyncio
async def test_booking_requires_session_token(booking_client):
    client, _ = booking_client
    resp = await client.post("/classes/solo-class/book")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_customer_cannot_cancel_for_someone_else_but_admin_can(booking_client):
    client, _ = booking_client
    await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)

    denied = await client.delete(f"/classes/solo-class/book?user_id={MEMBER_ID}", headers=OTHER_AUTH_HEADER)
    assert denied.status_code == 403

    allowed = await client.delete(f"/classes/solo-class/book?user_id={MEMBER_ID}", headers=ADMIN_AUTH_HEADER)
    assert allowed.status_code == 200
    assert allowed.json()["credits_remaining"] == 2


@pytest.mark.asyncio
async def test_available_classes_reports_spots(booking_client):
    client, _ = booking_client
    await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)

    resp = await client.get("/classes/available")
    assert resp.status_code == 200
    [item] = resp.json()["classes"]
    assert item["id"] == "solo-class"
    assert item["booked_spots"] == 1
    assert item["available_spots"] == 0
    assert item["is_full"] is True


@pytest.mark.asyncio
async def test_admin_creates_class_and_sees_roster(booking_client):
    client, _ = booking_client

    create_resp = await client.post(
        "/admin/classes",
        json={
            "title": "Evening Reformer",
            "start_time": (START + timedelta(days=1)).isoformat(),
            "end_time": (START + timedelta(days=1, minutes=50)).isoformat(),
            "capacity": 6,
            "instructor": "Ana",
        },
        headers=ADMIN_AUTH_HEADER,
    )
    assert create_resp.status_code == 201
    class_id = create_resp.json()["class"]["id"]

    await client.post(f"/classes/{class_id}/book", headers=MEMBER_AUTH_HEADER)
    await client.post(f"/classes/{class_id}/book", headers=OTHER_AUTH_HEADER)

    roster_resp = await client.get("/admin/classes", headers=ADMIN_AUTH_HEADER)
    assert roster_resp.status_code == 200
    created = next(item for item in roster_resp.json()["classes"] if item["id"] == class_id)
    assert created["booked_count"] == 2
    assert [entry["station_number"] for entry in created["bookings"]] == [1, 2]
    assert created["bookings"][0]["user"]["email"] == "member@example.com"

    customers_resp = await client.get("/admin/customers", headers=ADMIN_AUTH_HEADER)
    customers = {item["id"]: item for item in customers_resp.json()["customers"]}
    assert customers[MEMBER_ID]["booking_count"] == 1
    assert customers[MEMBER_ID]["total_credits"] == 1
    assert customers[OTHER_ID]["total_credits"] == 0


@pytest.mark.asyncio
async def test_admin_rejects_invalid_class_times_and_customer_sessions(booking_client):
    client, _ = booking_client

    bad_times = await client.post(
        "/admin/classes",
        json={
            "title": "Backwards",
            "start_time": START.isoformat(),
            "end_time": (START - timedelta(minutes=5)).isoformat(),
            "capacity": 6,
        },
        headers=ADMIN_AUTH_HEADER,
    )
    assert bad_times.status_code == 422

    forbidden = await client.get("/admin/classes", headers=MEMBER_AUTH_HEADER)
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_admin_login_issues_admin_session(booking_client, monkeypatch):
    client, _ = booking_client
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", "studio-admin-password")

    rejected = await client.post("/admin/login", json={"password": "studio-admin"})
    assert rejected.status_code == 401

    login = await client.post("/admin/login", json={"password": "studio-admin-password"})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['session_token']}"}

    roster = await client.get("/admin/classes", headers=headers)
    assert roster.status_code == 200


@pytest.mark.asyncio
async def test_exhausted_station_retries_map_to_retryable_conflict(booking_client):
    client, _ = booking_client

    with patch("services.booking.reserve", side_effect=ReservationConflict()):
        resp = await client.post("/classes/solo-class/book", headers=MEMBER_AUTH_HEADER)

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "reservation_conflict"
