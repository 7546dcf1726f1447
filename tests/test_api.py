# tests/test_api.py
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from carebook.database import get_db
from carebook.main import app

from conftest import upcoming_monday

PATIENT = {"X-User-Id": "patient-7", "X-User-Role": "patient"}
OTHER_PATIENT = {"X-User-Id": "patient-8", "X-User-Role": "patient"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture
def client(session_factory, seeded):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def doctor(seeded):
    return {"X-User-Id": str(seeded.provider_id), "X-User-Role": "doctor"}


def booking_body(seeded, at="10:00", on=None, **extra):
    return {
        "provider_id": seeded.provider_id,
        "location": seeded.location_key,
        "booking_date": (on or upcoming_monday()).isoformat(),
        "booking_time": at,
        **extra,
    }


def test_health_check(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_identity_is_refused(client, seeded):
    response = client.get(f"/api/v1/availability/doctors/{seeded.provider_id}/{seeded.location_key}/slots",
                          params={"date": upcoming_monday().isoformat()})
    assert response.status_code == 403
    assert response.json()["error"] == "permission_denied"


def test_slot_list_uses_presentation_shape(client, seeded):
    response = client.get(
        f"/api/v1/availability/doctors/{seeded.provider_id}/{seeded.location_key}/slots",
        params={"date": upcoming_monday().isoformat()}, headers=PATIENT,
    )

    assert response.status_code == 200
    slots = response.json()
    assert len(slots) == 14
    assert slots[0] == {"time": "09:00:00", "durationMinutes": 30}


def test_available_dates_endpoint(client, seeded):
    start = upcoming_monday()
    response = client.get(
        f"/api/v1/availability/doctors/{seeded.provider_id}/{seeded.location_key}/dates",
        params={"start_date": start.isoformat(), "end_date": (start + timedelta(days=6)).isoformat()},
        headers=PATIENT,
    )

    assert response.status_code == 200
    assert response.json()["available_dates"] == [start.isoformat()]


def test_book_then_conflict(client, seeded):
    first = client.post("/api/v1/bookings", json=booking_body(seeded), headers=PATIENT)
    assert first.status_code == 201
    data = first.json()
    assert data["status"] == "scheduled"
    assert data["patient_id"] == "patient-7"
    assert data["duration_minutes"] == 30

    second = client.post("/api/v1/bookings", json=booking_body(seeded), headers=OTHER_PATIENT)
    assert second.status_code == 409
    assert second.json()["error"] == "slot_conflict"

    detailed = client.get(
        f"/api/v1/availability/doctors/{seeded.provider_id}/{seeded.location_key}/detailed",
        params={"date": upcoming_monday().isoformat()}, headers=PATIENT,
    ).json()
    assert [d["time"] for d in detailed if not d["available"]] == ["10:00:00"]


def test_booking_errors_map_to_status_codes(client, seeded):
    in_break = client.post("/api/v1/bookings", json=booking_body(seeded, at="12:00"), headers=PATIENT)
    assert in_break.status_code == 409
    assert in_break.json()["error"] == "slot_unavailable"

    unassigned = client.post(
        "/api/v1/bookings", json=booking_body(seeded, location=str(seeded.other_center_id)), headers=PATIENT
    )
    assert unassigned.status_code == 403
    assert unassigned.json()["error"] == "location_not_assigned"

    missing = client.get("/api/v1/bookings/9999", headers=ADMIN)
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_booking_request_needs_exactly_one_target(client, seeded):
    body = booking_body(seeded, center_id=seeded.center_id)
    assert client.post("/api/v1/bookings", json=body, headers=PATIENT).status_code == 422


def test_patients_only_see_their_own_bookings(client, seeded):
    booking_id = client.post("/api/v1/bookings", json=booking_body(seeded), headers=PATIENT).json()["id"]

    assert client.get(f"/api/v1/bookings/{booking_id}", headers=PATIENT).status_code == 200
    assert client.get(f"/api/v1/bookings/{booking_id}", headers=OTHER_PATIENT).status_code == 403
    assert [b["id"] for b in client.get("/api/v1/bookings", headers=PATIENT).json()] == [booking_id]
    assert client.get("/api/v1/bookings", headers=OTHER_PATIENT).json() == []


def test_lifecycle_over_http(client, seeded, doctor):
    booking_id = client.post("/api/v1/bookings", json=booking_body(seeded), headers=PATIENT).json()["id"]

    assert client.post(f"/api/v1/bookings/{booking_id}/confirm", headers=PATIENT).status_code == 403
    confirmed = client.post(f"/api/v1/bookings/{booking_id}/confirm", headers=doctor)
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    moved = client.post(
        f"/api/v1/bookings/{booking_id}/reschedule",
        json={"new_date": upcoming_monday().isoformat(), "new_time": "14:00"}, headers=PATIENT,
    )
    assert moved.status_code == 200
    assert moved.json()["booking_time"] == "14:00:00"
    assert moved.json()["status"] == "scheduled"
    assert moved.json()["reschedule_count"] == 1

    cancelled = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "travel"}, headers=PATIENT)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    again = client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=PATIENT)
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    summary = client.put(
        f"/api/v1/bookings/{booking_id}/visit-summary", json={"visit_summary": "Did not attend."}, headers=doctor
    )
    assert summary.status_code == 200
    assert summary.json()["visit_summary"] == "Did not attend."


def test_lab_booking_over_http(client, seeded):
    response = client.post("/api/v1/bookings", json={
        "center_id": seeded.center_id,
        "booking_date": upcoming_monday().isoformat(),
        "booking_time": "08:30",
        "lab_test_type": "Lipid panel",
    }, headers=PATIENT)

    assert response.status_code == 201
    assert response.json()["booking_type"] == "lab_test"
    assert response.json()["fee"] in ("40", "40.00", 40, 40.0)


def test_schedule_edits_are_owner_only(client, seeded, doctor):
    url = f"/api/v1/schedules/doctors/{seeded.provider_id}/{seeded.location_key}"
    week = [{
        "day_of_week": 2, "is_available": True, "start_time": "10:00", "end_time": "14:00",
        "slot_duration_minutes": 20,
    }]

    assert client.put(url, json=week, headers={"X-User-Id": "999", "X-User-Role": "doctor"}).status_code == 403
    assert client.put(url, json=week, headers=PATIENT).status_code == 403

    response = client.put(url, json=week, headers=doctor)
    assert response.status_code == 200
    assert [r["day_of_week"] for r in response.json()] == [2]
    assert [r["day_of_week"] for r in client.get(url, headers=PATIENT).json()] == [2]


def test_invalid_schedule_rules_are_rejected(client, seeded, doctor):
    url = f"/api/v1/schedules/doctors/{seeded.provider_id}/{seeded.location_key}/3"

    bad = client.put(url, json={
        "is_available": True, "start_time": "14:00", "end_time": "10:00", "slot_duration_minutes": 30
    }, headers=doctor)
    assert bad.status_code == 400
    assert bad.json()["error"] == "invalid_schedule_rule"

    missing_flag = client.put(url, json={"start_time": "10:00", "end_time": "14:00"}, headers=doctor)
    assert missing_flag.status_code == 422


def test_home_visit_toggle_endpoint(client, seeded, doctor):
    url = f"/api/v1/providers/{seeded.provider_id}/home-visits"

    enabled = client.put(url, json={"enabled": True}, headers=doctor)
    assert enabled.status_code == 200
    assert enabled.json()["home_visits_available"] is True
    assert len(enabled.json()["rules"]) == 7

    schedule = client.get(f"/api/v1/schedules/doctors/{seeded.provider_id}/home-visit", headers=PATIENT)
    assert schedule.status_code == 200

    disabled = client.put(url, json={"enabled": False}, headers=doctor)
    assert disabled.json()["rules"] == []
    gone = client.get(f"/api/v1/schedules/doctors/{seeded.provider_id}/home-visit", headers=PATIENT)
    assert gone.status_code == 403
    assert gone.json()["error"] == "location_not_assigned"


def test_directory_admin_endpoints(client, seeded):
    denied = client.post("/api/v1/centers", json={"name": "North Clinic"}, headers=PATIENT)
    assert denied.status_code == 403

    center = client.post("/api/v1/centers", json={"name": "North Clinic"}, headers=ADMIN)
    assert center.status_code == 201
    center_id = center.json()["id"]

    assigned = client.post(
        f"/api/v1/providers/{seeded.provider_id}/centers", json={"center_id": center_id, "is_primary": True},
        headers=ADMIN,
    )
    assert assigned.status_code == 201

    links = client.get(f"/api/v1/providers/{seeded.provider_id}/centers", headers=PATIENT).json()
    assert links[0]["center_id"] == center_id
    assert links[0]["is_primary"] is True
    assert len(links) == 2

    assert client.delete(f"/api/v1/providers/{seeded.provider_id}/centers/{center_id}", headers=ADMIN).status_code == 204
