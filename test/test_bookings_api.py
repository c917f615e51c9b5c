"""
HTTP flow: preview transitions, save, caller-side validation, failure reporting.
Runs against the in-memory document store; no Redis/Postgres needed.
"""
import os
import sys

import pytest
from fastapi.testclient import TestClient

_test_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, _test_dir)

from _helper import TODAY, InMemoryDocumentStore, booking_doc

from repair_admin.main import app
from repair_admin.repository import BookingRepository, get_booking_repository
from repair_admin.routes.bookings import get_today


@pytest.fixture
def store():
    store = InMemoryDocumentStore()
    store.collections["bookings"] = {
        "doc-1": booking_doc("picked"),
        "doc-2": booking_doc("serviceCenter", bookingId="BK-2002", serviceReason="Screen cracked", serviceAmount=450),
        "doc-3": booking_doc("delivered", bookingId="BK-3003", amount=1200, categoryName="Fan",
                             address={"fullName": "Vikram Shah"}, createdAt="2024-01-05"),
    }
    repo = BookingRepository(store, collection="bookings")
    app.dependency_overrides[get_booking_repository] = lambda: repo
    app.dependency_overrides[get_today] = lambda: TODAY
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def client(store):
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_get_booking_with_timeline(client):
    resp = client.get("/bookings/BK-1001")
    assert resp.status_code == 200
    body = resp.json()
    assert body["booking"]["status"] == "picked"
    timeline = body["timeline"]
    assert [s["is_completed"] for s in timeline["steps"]] == [True, True, True, False, False, False, False]
    assert timeline["steps"][0]["date_label"] == "2024-01-01"
    assert timeline["steps"][2]["date_label"] == TODAY.isoformat()
    assert timeline["progress_fraction"] == pytest.approx(2 / 6)


def test_get_missing_booking(client):
    resp = client.get("/bookings/BK-404")
    assert resp.status_code == 404
    assert resp.json()["status"] == "not_found"


def test_transition_to_service_center_is_not_persisted(client, store):
    resp = client.post("/bookings/BK-1001/transition", json={
        "target_status": "serviceCenter",
        "service_center": {"reason": "Screen cracked", "amount": 450},
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["booking"]["status"] == "serviceCenter"
    assert body["booking"]["service_reason"] == "Screen cracked"
    assert body["payload"]["set"]["serviceReason"] == "Screen cracked"
    assert body["payload"]["set"]["serviceAmount"] == 450
    assert body["payload"]["delete"] == ["cancelledAtStatus"]
    assert store.collections["bookings"]["doc-1"]["status"] == "picked"
    assert store.updates == []


def test_service_center_requires_reason(client):
    resp = client.post("/bookings/BK-1001/transition", json={"target_status": "serviceCenter"})
    assert resp.status_code == 422
    assert resp.json()["reason"] == "missing_reason"

    resp = client.post("/bookings/BK-1001/transition", json={
        "target_status": "serviceCenter",
        "service_center": {"reason": "   "},
    })
    assert resp.status_code == 422


def test_same_status_is_rejected(client):
    resp = client.post("/bookings/BK-1001/transition", json={"target_status": "picked"})
    assert resp.status_code == 409
    assert resp.json()["reason"] == "no_op"


def test_unknown_status_is_rejected(client):
    resp = client.post("/bookings/BK-1001/transition", json={"target_status": "shipped"})
    assert resp.status_code == 422


def test_cancel_from_working_state(client):
    resp = client.post("/bookings/BK-1001/transition", json={
        "target_status": "cancelled",
        "working": {"status": "serviceCenter", "service_reason": "Screen cracked", "service_amount": 450},
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["booking"]["cancelled_at_status"] == "serviceCenter"
    marks = [s["is_cancelled_mark"] for s in body["timeline"]["steps"]]
    assert marks == [False, False, False, True, False, False, False]
    assert body["payload"]["set"] == {
        "status": "cancelled",
        "serviceReason": "Screen cracked",
        "serviceAmount": 450,
        "cancelledAtStatus": "serviceCenter",
    }


def test_save_regression_clears_service_fields(client, store):
    resp = client.put("/bookings/BK-2002", json={"status": "booked"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert sorted(body["payload"]["delete"]) == ["cancelledAtStatus", "serviceAmount", "serviceReason"]
    stored = store.collections["bookings"]["doc-2"]
    assert stored["status"] == "booked"
    assert "serviceReason" not in stored and "serviceAmount" not in stored
    assert body["booking"]["service_reason"] is None


def test_save_failure_keeps_store_unchanged(client, store):
    store.fail_updates = True
    resp = client.put("/bookings/BK-1001", json={"status": "confirmed"})
    assert resp.status_code == 502
    assert resp.json() == {"status": "error", "detail": "Failed to update booking"}
    assert store.collections["bookings"]["doc-1"]["status"] == "picked"


def test_list_filters_and_pages(client):
    body = client.get("/bookings", params={"search": "vikram"}).json()
    assert [b["id"] for b in body["bookings"]] == ["doc-3"]

    body = client.get("/bookings", params={"status": "picked"}).json()
    assert body["total"] == 1

    body = client.get("/bookings", params={"per_page": 2, "page": 2}).json()
    assert body["total"] == 3
    assert body["pages"] == 2
    assert len(body["bookings"]) == 1


def test_stats(client):
    body = client.get("/bookings/stats").json()
    assert body["total_revenue"] == 1200
    assert body["pending_amount"] == 799 * 2
    assert body["status_counts"]["delivered"] == 1


def test_statuses(client):
    body = client.get("/bookings/statuses").json()
    assert body["steps"][0] == "booked"
    assert body["steps"][-1] == "delivered"
    assert body["labels"]["serviceCenter"] == "Service Center"


def test_metrics_exposes_booking_counters(client):
    client.post("/bookings/BK-1001/transition", json={"target_status": "confirmed"})
    text = client.get("/metrics").text
    assert "booking_transitions_total" in text


def test_save_rejects_cancel_without_recorded_step(client, store):
    store.collections["bookings"]["doc-4"] = booking_doc(
        "repair", bookingId="BK-4004", serviceReason="X", serviceAmount=10,
    )
    resp = client.put("/bookings/BK-4004", json={"status": "cancelled"})
    assert resp.status_code == 422
    assert resp.json()["reason"] == "missing_cancelled_at"
    stored = store.collections["bookings"]["doc-4"]
    assert stored["status"] == "repair"
    assert stored["serviceReason"] == "X"
    assert store.updates == []


def test_save_rejects_service_center_without_reason(client, store):
    resp = client.put("/bookings/BK-1001", json={"status": "serviceCenter"})
    assert resp.status_code == 422
    assert resp.json()["reason"] == "missing_reason"
    assert store.collections["bookings"]["doc-1"]["status"] == "picked"


def test_save_rejects_cancelled_as_cancelled_at_status(client, store):
    resp = client.put("/bookings/BK-1001", json={"status": "cancelled", "cancelled_at_status": "cancelled"})
    assert resp.status_code == 422
    assert resp.json()["reason"] == "invalid_cancelled_at"
    assert store.updates == []


def test_save_rejects_negative_service_amount(client, store):
    resp = client.put("/bookings/BK-2002", json={
        "status": "serviceCenter", "service_reason": "Screen cracked", "service_amount": -5,
    })
    assert resp.status_code == 422
    assert store.collections["bookings"]["doc-2"]["serviceAmount"] == 450


def test_save_cancelled_with_recorded_step(client, store):
    resp = client.put("/bookings/BK-1001", json={"status": "cancelled", "cancelled_at_status": "picked"})
    assert resp.status_code == 200
    assert resp.json()["booking"]["cancelled_at_status"] == "picked"
    stored = store.collections["bookings"]["doc-1"]
    assert stored["status"] == "cancelled"
    assert stored["cancelledAtStatus"] == "picked"


def test_transition_rejects_invalid_working_state(client, store):
    resp = client.post("/bookings/BK-1001/transition", json={
        "target_status": "repair",
        "working": {"status": "serviceCenter"},
    })
    assert resp.status_code == 422
    assert resp.json()["reason"] == "missing_reason"
