# tests/test_store_failures.py
from datetime import time

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError

from carebook import crud, models
from carebook.config import get_settings
from carebook.exceptions import LocationNotAssigned, StoreUnavailable
from carebook.services import availability_service, booking_service, schedule_service

from conftest import MONDAY, NOW, day_rule


def database_locked():
    return OperationalError("SELECT", {}, Exception("database is locked"))


def fail_queries(db, monkeypatch, model, times, error=database_locked):
    """Make the next `times` queries against `model` on this session raise `error`."""
    real_query = db.query
    failures = []

    def query(*entities, **kwargs):
        if entities and entities[0] is model and len(failures) < times:
            failures.append(model)
            raise error()
        return real_query(*entities, **kwargs)

    monkeypatch.setattr(db, "query", query)
    return failures


def book(db, seeded, at=time(10, 0)):
    return booking_service.create_booking(
        db, provider_key=seeded.provider_key, location_key=seeded.location_key,
        booking_date=MONDAY, booking_time=at, patient_id="p-1", now=NOW
    )


# --- Reads ---

def test_transient_read_failure_is_retried(db, seeded, monkeypatch):
    booking = book(db, seeded)
    failures = fail_queries(db, monkeypatch, models.Booking, times=2)

    active = crud.find_active(db, seeded.provider_key, seeded.location_key, MONDAY)

    assert [b.id for b in active] == [booking.id]
    assert len(failures) == 2


def test_read_that_keeps_failing_is_store_unavailable(db, seeded, monkeypatch):
    failures = fail_queries(db, monkeypatch, models.Booking, times=100)

    with pytest.raises(StoreUnavailable):
        crud.find_active(db, seeded.provider_key, seeded.location_key, MONDAY)

    assert len(failures) == get_settings().store_read_retries


def test_non_transient_driver_error_is_not_retried(db, seeded, monkeypatch):
    failures = fail_queries(
        db, monkeypatch, models.ScheduleRule, times=100,
        error=lambda: DBAPIError("SELECT", {}, Exception("connection refused"))
    )

    with pytest.raises(StoreUnavailable):
        availability_service.available_slots(db, seeded.provider_key, seeded.location_key, MONDAY)

    assert len(failures) == 1


# --- Writes ---

def test_failed_commit_leaves_no_booking_behind(db, session_factory, seeded, monkeypatch, events):
    def commit():
        raise database_locked()

    monkeypatch.setattr(db, "commit", commit)
    with pytest.raises(StoreUnavailable):
        book(db, seeded)
    monkeypatch.undo()

    assert crud.find_active(db, seeded.provider_key, seeded.location_key, MONDAY) == []
    other = session_factory()
    try:
        assert crud.find_active(other, seeded.provider_key, seeded.location_key, MONDAY) == []
    finally:
        other.close()
    assert not [name for name, _ in events if name == "booking.created"]

    # The slot is still bookable once the store recovers
    assert book(db, seeded).status == models.BookingStatus.scheduled


def test_failed_read_during_home_visit_toggle_changes_nothing(db, seeded, monkeypatch, events):
    evening = day_rule(start=time(18, 0), end=time(20, 0), duration=60, break_start=None, break_end=None)
    failures = fail_queries(db, monkeypatch, models.ScheduleRule, times=1)

    with pytest.raises(StoreUnavailable):
        schedule_service.toggle_home_visits(db, seeded.provider_id, True, rules=[evening])
    monkeypatch.undo()
    db.expire_all()

    assert len(failures) == 1
    assert crud.get_provider(db, seeded.provider_id).home_visits_available is False
    assert crud.get_rules(db, seeded.provider_key, models.HOME_VISIT_LOCATION) == []
    with pytest.raises(LocationNotAssigned):
        availability_service.ensure_location_access(db, seeded.provider_key, models.HOME_VISIT_LOCATION)
    assert not events

    rules = schedule_service.toggle_home_visits(db, seeded.provider_id, True, rules=[evening])

    assert [r.day_of_week for r in rules] == [1]
    assert crud.get_provider(db, seeded.provider_id).home_visits_available is True
