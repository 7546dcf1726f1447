# tests/test_availability.py
from datetime import date, datetime, time, timezone

import pytest

from carebook import crud, models, schemas
from carebook.exceptions import BookingEngineError, LocationNotAssigned, NotFound
from carebook.services import availability_service, booking_service, schedule_service

from conftest import MONDAY, NOW


def book(db, seeded, at, patient="p-1"):
    return booking_service.create_booking(
        db, provider_key=seeded.provider_key, location_key=seeded.location_key,
        booking_date=MONDAY, booking_time=at, patient_id=patient, now=NOW
    )


def test_free_slots_exclude_active_bookings(db, seeded):
    book(db, seeded, time(10, 0))

    free = availability_service.available_slots(db, seeded.provider_key, seeded.location_key, MONDAY)

    assert len(free) == 13
    assert time(10, 0) not in [s.start_time for s in free]
    assert [s.start_time for s in free] == sorted(s.start_time for s in free)


def test_cancelled_booking_frees_its_slot(db, seeded):
    booking = book(db, seeded, time(10, 0))
    booking_service.cancel_booking(db, booking.id, reason="travel", now=NOW)

    free = availability_service.available_slots(db, seeded.provider_key, seeded.location_key, MONDAY)

    assert time(10, 0) in [s.start_time for s in free]


def test_day_without_rule_has_no_slots(db, seeded):
    assert availability_service.available_slots(db, seeded.provider_key, seeded.location_key, date(2025, 3, 11)) == []


def test_slots_that_already_started_today_are_hidden(db, seeded):
    now = datetime(2025, 3, 10, 10, 15, tzinfo=timezone.utc)

    free = availability_service.available_slots(db, seeded.provider_key, seeded.location_key, MONDAY, now=now)

    assert free[0].start_time == time(10, 30)
    assert availability_service.available_slots(
        db, seeded.provider_key, seeded.location_key, MONDAY, now=datetime(2025, 3, 11, 8, 0, tzinfo=timezone.utc)
    ) == []


def test_detailed_view_flags_booked_slots(db, seeded):
    book(db, seeded, time(9, 30))

    details = availability_service.slot_details(db, seeded.provider_key, seeded.location_key, MONDAY)

    assert len(details) == 14
    booked = [d for d in details if not d["available"]]
    assert [d["time"] for d in booked] == [time(9, 30)]
    assert booked[0]["reason"] == "booked"


def test_available_dates_over_two_weeks(db, seeded):
    result = availability_service.available_dates(
        db, seeded.provider_key, seeded.location_key, date(2025, 3, 9), date(2025, 3, 22), now=NOW
    )

    assert result["available_dates"] == [date(2025, 3, 10), date(2025, 3, 17)]
    assert result["working_days"] == [1]


def test_range_longer_than_limit_is_rejected(db, seeded):
    with pytest.raises(BookingEngineError):
        availability_service.available_slots_for_range(
            db, seeded.provider_key, seeded.location_key, date(2025, 1, 1), date(2025, 12, 31)
        )
    with pytest.raises(BookingEngineError):
        availability_service.available_slots_for_range(
            db, seeded.provider_key, seeded.location_key, date(2025, 3, 10), date(2025, 3, 1)
        )


def test_unassigned_center_is_rejected(db, seeded):
    with pytest.raises(LocationNotAssigned):
        availability_service.ensure_location_access(
            db, seeded.provider_key, models.location_key_for_center(seeded.other_center_id)
        )


def test_home_visit_requires_it_enabled(db, seeded):
    with pytest.raises(LocationNotAssigned):
        availability_service.ensure_location_access(db, seeded.provider_key, models.HOME_VISIT_LOCATION)

    schedule_service.toggle_home_visits(db, seeded.provider_id, True)
    availability_service.ensure_location_access(db, seeded.provider_key, models.HOME_VISIT_LOCATION)
    # Closed week until the doctor opens days
    assert availability_service.available_slots(db, seeded.provider_key, models.HOME_VISIT_LOCATION, MONDAY) == []

    schedule_service.put_day(
        db, seeded.provider_key, models.HOME_VISIT_LOCATION, 1,
        schemas.DayRuleCreate(is_available=True, start_time=time(18, 0), end_time=time(20, 0), slot_duration_minutes=60)
    )
    free = availability_service.available_slots(db, seeded.provider_key, models.HOME_VISIT_LOCATION, MONDAY)
    assert [s.start_time for s in free] == [time(18, 0), time(19, 0)]


def test_unknown_provider_and_location(db, seeded):
    with pytest.raises(NotFound):
        availability_service.ensure_location_access(db, models.doctor_key(999), seeded.location_key)
    with pytest.raises(NotFound):
        availability_service.ensure_location_access(db, seeded.provider_key, "downtown")


def test_inactive_center_cannot_be_queried_or_booked_for_a_doctor(db, seeded):
    center = crud.get_center(db, seeded.center_id)
    center.is_active = False
    db.commit()

    with pytest.raises(NotFound):
        availability_service.ensure_location_access(db, seeded.provider_key, seeded.location_key)
    with pytest.raises(NotFound):
        booking_service.create_booking(
            db, provider_key=seeded.provider_key, location_key=seeded.location_key,
            booking_date=MONDAY, booking_time=time(10, 0), patient_id="p-1", now=NOW
        )
    assert crud.find_active(db, seeded.provider_key, seeded.location_key, MONDAY) == []


def test_lab_availability_is_keyed_by_center(db, seeded):
    availability_service.ensure_location_access(db, seeded.lab_key, seeded.location_key)

    free = availability_service.available_slots(db, seeded.lab_key, seeded.location_key, MONDAY)

    assert len(free) == 16
    assert free[0].duration_minutes == 15
