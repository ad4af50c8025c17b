"""HTTP surface: routing, identity headers and error payloads."""
from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from availability_engine.main import create_app

GUEST = {"X-User-Id": "guest-a"}
OTHER = {"X-User-Id": "guest-b"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest_asyncio.fixture
async def client(engine):
    transport = ASGITransport(app=create_app(engine))
    async with AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


async def _create_hold(client: AsyncClient, check_in: str, check_out: str, headers=GUEST):
    return await client.post(
        "/api/holds",
        json={"room_id": "R1", "check_in": check_in, "check_out": check_out},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_hold_requires_identity(client) -> None:
    response = await _create_hold(client, "2025-06-01", "2025-06-03", headers={})

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "unauthorized"
    assert body["action"]


@pytest.mark.asyncio
async def test_booking_flow(client) -> None:
    created = await _create_hold(client, "2025-06-01", "2025-06-04")
    assert created.status_code == 201
    hold_id = created.json()["hold_id"]

    check = await client.post(
        "/api/availability/check",
        json={"room_id": "R1", "period": {"check_in": "2025-06-02", "check_out": "2025-06-05"}},
    )
    assert check.status_code == 200
    assert check.json()["available"] is False
    assert check.json()["unavailable_dates"] == ["2025-06-02", "2025-06-03"]

    paid = await client.post(f"/api/holds/{hold_id}/payment", json={"payment_reference": "pay-1"}, headers=GUEST)
    assert paid.json()["payment_reference"] == "pay-1"

    booked = await client.post("/api/bookings", json={"payment_reference": "pay-1", "hold_id": hold_id}, headers=GUEST)
    assert booked.status_code == 201
    booking = booked.json()
    assert booking["total_price"] == 150_000

    occupancy = await client.get("/api/rooms/R1/occupancy", params={"start": "2025-06-01", "end": "2025-06-11"})
    assert occupancy.json()["booked_days"] == 3
    assert occupancy.json()["rate"] == pytest.approx(0.3)

    cancelled = await client.post(
        f"/api/bookings/{booking['booking_id']}/cancel", json={"reason": "Plans changed"}, headers=GUEST
    )
    assert cancelled.json()["status"] == "cancelled"

    calendar = await client.get("/api/rooms/R1/calendar", params={"start": "2025-06-01", "end": "2025-06-04"})
    assert [day["status"] for day in calendar.json()["days"]] == ["available"] * 3


@pytest.mark.asyncio
async def test_conflict_payload_carries_fresh_availability(client) -> None:
    await _create_hold(client, "2025-06-01", "2025-06-03")

    response = await _create_hold(client, "2025-06-02", "2025-06-04", headers=OTHER)

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "conflict"
    assert "search again" in body["action"]
    assert body["availability"]["unavailable_dates"] == ["2025-06-02"]


@pytest.mark.asyncio
async def test_release_twice_reports_outcomes(client) -> None:
    hold_id = (await _create_hold(client, "2025-06-01", "2025-06-03")).json()["hold_id"]

    first = await client.delete(f"/api/holds/{hold_id}", headers=GUEST)
    second = await client.delete(f"/api/holds/{hold_id}", headers=GUEST)
    fetched = await client.get(f"/api/holds/{hold_id}", headers=GUEST)

    assert first.json()["outcome"] == "released"
    assert second.status_code == 200
    assert second.json()["outcome"] == "already_inactive"
    assert fetched.json()["status"] == "released"


@pytest.mark.asyncio
async def test_maintenance_endpoints(client) -> None:
    payload = {
        "room_id": "R1",
        "periods": [{"start_date": "2025-06-05", "end_date": "2025-06-07", "reason": "Deep clean"}],
    }

    forbidden = await client.post("/api/maintenance/blocks", json=payload, headers=GUEST)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "forbidden"

    dry_run = await client.post("/api/maintenance/validate", json=payload, headers=ADMIN)
    assert dry_run.json()["valid"] is True

    blocked = await client.post("/api/maintenance/blocks", json=payload, headers=ADMIN)
    result = blocked.json()
    assert result["blocked_days"] == 2

    removed = await client.delete(f"/api/maintenance/blocks/{result['block_ids'][0]}", headers=ADMIN)
    assert removed.json()["outcome"] == "unblocked"


@pytest.mark.asyncio
async def test_lookup_errors(client) -> None:
    bad_range = await client.post(
        "/api/availability/check",
        json={"room_id": "R1", "period": {"check_in": "2025-06-05", "check_out": "2025-06-01"}},
    )
    missing_room = await client.get("/api/rooms/missing/next-available", params={"duration": 2})
    next_free = await client.get("/api/rooms/R1/next-available", params={"duration": 2})
    bulk = await client.post(
        "/api/availability/bulk", json={"room_ids": ["R1", "R2"], "start": "2025-06-01", "end": "2025-06-03"}
    )

    assert bad_range.status_code == 400
    assert bad_range.json()["error"] == "validation_error"
    assert missing_room.status_code == 404
    assert next_free.json()["next_available"] == "2025-06-01"
    assert [room["room_id"] for room in bulk.json()["rooms"]] == ["R1", "R2"]


@pytest.mark.asyncio
async def test_list_bookings_is_scoped_to_caller(client) -> None:
    hold_id = (await _create_hold(client, "2025-06-01", "2025-06-03")).json()["hold_id"]
    await client.post("/api/bookings", json={"payment_reference": "pay-1", "hold_id": hold_id}, headers=GUEST)

    mine = await client.get("/api/bookings", headers=GUEST)
    theirs = await client.get("/api/bookings", headers=OTHER)
    anonymous = await client.get("/api/bookings")

    assert mine.status_code == 200
    assert mine.json()["count"] == 1
    assert mine.json()["bookings"][0]["payment_reference"] == "pay-1"
    assert theirs.json() == {"bookings": [], "count": 0}
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_lifespan_starts_and_stops_expiry_loop(engine) -> None:
    app = create_app(engine)

    async with app.router.lifespan_context(app):
        task = app.state.expiry_task
        assert task is not None
        assert not task.done()

    assert app.state.expiry_stop.is_set()
    assert task.done()
