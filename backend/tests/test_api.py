"""
Integration tests for the HTTP surface: booking event webhook, waitlist view, sweep, health.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.config import get_settings
from app.models import Booking
from tests.conftest import SLOT_DATE, add_entry, at, cancellation_event


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["redis"] == "disabled"


@pytest.mark.asyncio
async def test_metrics_exposed(client):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "waitlist_reactions_total" in response.text


@pytest.mark.asyncio
async def test_cancellation_webhook_allocates(client, session_factory, scenario_entries, cancelled_booking):
    event = cancellation_event(cancelled_booking)

    response = await client.post("/api/v1/booking-events/", json=event.model_dump(mode="json"))

    assert response.status_code == 202
    data = response.json()
    assert data["processed"] is True
    outcome = data["outcome"]
    assert outcome["result"] == "allocated"
    assert outcome["winner"]["user_id"] == "p1"
    assert outcome["winner"]["status"] == "booked"
    assert [e["user_id"] for e in outcome["remainder"]] == ["s1", "p2"]

    async with session_factory() as session:
        booking = await session.get(Booking, outcome["new_booking_id"])
    assert booking.origin == "waitlist_auto"


@pytest.mark.asyncio
async def test_non_cancellation_webhook_is_not_processed(client, scenario_entries, cancelled_booking):
    event = cancellation_event(cancelled_booking, before_status="cancelled")

    response = await client.post("/api/v1/booking-events/", json=event.model_dump(mode="json"))

    assert response.status_code == 202
    assert response.json() == {"processed": False, "outcome": None}


@pytest.mark.asyncio
async def test_webhook_rejects_bad_payload(client):
    response = await client.post("/api/v1/booking-events/", json={"booking_id": "b1"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_replayed_webhook_reports_conflict(client, session_factory, scenario_entries, cancelled_booking):
    payload = cancellation_event(cancelled_booking).model_dump(mode="json")

    await client.post("/api/v1/booking-events/", json=payload)
    response = await client.post("/api/v1/booking-events/", json=payload)

    assert response.json()["outcome"]["result"] == "conflict"
    async with session_factory() as session:
        result = await session.execute(select(Booking).where(Booking.origin == "waitlist_auto"))
        assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_list_waitlist(client, scenario_entries):
    response = await client.get(f"/api/v1/waitlist/court-1/{SLOT_DATE.isoformat()}", params={"limit": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert [e["user_id"] for e in data["entries"]] == ["s1", "p1"]


@pytest.mark.asyncio
async def test_manual_sweep(client, session_factory):
    await add_entry(session_factory, "old", at(9), slot_date=SLOT_DATE - timedelta(days=1))

    response = await client.post("/api/v1/waitlist/sweep")

    assert response.status_code == 200
    assert response.json()["expired"] == 1


@pytest.mark.asyncio
async def test_internal_token_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "INTERNAL_API_TOKEN", "s3cret")

    missing = await client.post("/api/v1/waitlist/sweep")
    wrong = await client.post("/api/v1/waitlist/sweep", headers={"X-Internal-Token": "nope"})
    right = await client.post("/api/v1/waitlist/sweep", headers={"X-Internal-Token": "s3cret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert right.status_code == 200


@pytest.mark.asyncio
async def test_manual_sweep_store_outage_returns_503(client, sweeper, monkeypatch):
    async def locked(today, result):
        raise OperationalError("UPDATE waitlist_entries", {}, Exception("database is locked"))

    monkeypatch.setattr(sweeper, "_sweep_page", locked)

    response = await client.post("/api/v1/waitlist/sweep")

    assert response.status_code == 503
    assert response.json()["detail"] == "Waitlist store unavailable, try again later"
