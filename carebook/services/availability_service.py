# carebook/services/availability_service.py
# Advisory free/taken view: generated slots minus active bookings.
# Never a reservation; booking_service re-checks at commit time.
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Set

import structlog
from sqlalchemy.orm import Session

from .. import crud, models
from ..config import get_settings
from ..exceptions import BookingEngineError, LocationNotAssigned, NotFound
from .slot_service import Slot, generate_slots, weekday_index

logger = structlog.get_logger(__name__)


def ensure_location_access(db: Session, provider_key: str, location_key: str) -> None:
    """
    A doctor may only be queried or booked at a center they are assigned to, or at
    home-visit while home visits are enabled. A lab key is only valid at its own center.
    """
    kind, _, raw_id = provider_key.partition(":")
    owner_id = int(raw_id)

    if kind == "center":
        center = crud.get_center(db, owner_id)
        if center is None or not center.is_active:
            raise NotFound(f"Center {owner_id} not found")
        if location_key != models.location_key_for_center(owner_id):
            raise LocationNotAssigned("Lab bookings are only available at the center itself")
        if not center.offers_lab_tests:
            raise LocationNotAssigned(f"Center {owner_id} does not offer lab tests")
        return

    provider = crud.get_provider(db, owner_id)
    if provider is None or not provider.is_active:
        raise NotFound(f"Provider {owner_id} not found")

    if location_key == models.HOME_VISIT_LOCATION:
        if not provider.home_visits_available:
            raise LocationNotAssigned(f"Provider {owner_id} does not offer home visits")
        return

    try:
        center_id = int(location_key)
    except ValueError:
        raise NotFound(f"Unknown location '{location_key}'") from None
    center = crud.get_center(db, center_id)
    if center is None or not center.is_active:
        raise NotFound(f"Center {center_id} not found")
    if crud.get_assignment(db, owner_id, center_id) is None:
        raise LocationNotAssigned(f"Provider {owner_id} is not associated with center {center_id}")


def _free(slots: Iterable[Slot], taken: Set[time], not_before: Optional[time]) -> List[Slot]:
    return [
        slot for slot in slots
        if slot.start_time not in taken and (not_before is None or slot.start_time > not_before)
    ]


def _cutoff_for(target_date: date, now: Optional[datetime]) -> Optional[time]:
    """On today's date, slots that already started are hidden; past dates show nothing."""
    if now is None:
        return None
    local_now = now.astimezone(get_settings().tz)
    if target_date == local_now.date():
        return local_now.time().replace(tzinfo=None)
    if target_date < local_now.date():
        return time.max
    return None


def available_slots(
    db: Session,
    provider_key: str,
    location_key: str,
    target_date: date,
    now: Optional[datetime] = None,
    exclude_booking_id: Optional[int] = None
) -> List[Slot]:
    """
    Free slots for (provider, location, date) in chronological order.

    A booking blocks the slot starting at its own time, even if it was made under an
    older slot duration.
    """
    rule = crud.get_rule(db, provider_key, location_key, weekday_index(target_date))
    slots = generate_slots(rule, target_date)
    if not slots:
        return []

    taken = {
        booking.booking_time
        for booking in crud.find_active(db, provider_key, location_key, target_date)
        if booking.id != exclude_booking_id
    }
    free = _free(slots, taken, _cutoff_for(target_date, now))
    logger.debug(
        "availability.resolved",
        provider_key=provider_key, location_key=location_key, date=target_date.isoformat(),
        generated=len(slots), taken=len(taken), free=len(free),
    )
    return free


def slot_details(db: Session, provider_key: str, location_key: str, target_date: date) -> List[Dict]:
    """Every generated slot for the date, flagged available or booked."""
    rule = crud.get_rule(db, provider_key, location_key, weekday_index(target_date))
    slots = generate_slots(rule, target_date)
    if not slots:
        return []
    taken = {b.booking_time for b in crud.find_active(db, provider_key, location_key, target_date)}
    return [
        {
            "time": slot.start_time,
            "duration_minutes": slot.duration_minutes,
            "available": slot.start_time not in taken,
            "reason": "booked" if slot.start_time in taken else "available",
        }
        for slot in slots
    ]


def available_slots_for_range(
    db: Session,
    provider_key: str,
    location_key: str,
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None
) -> Dict[date, List[Slot]]:
    """Free slots per date across a range, using one rule read and one booking read."""
    settings = get_settings()
    if end_date < start_date:
        raise BookingEngineError("end_date must not be before start_date")
    if (end_date - start_date).days >= settings.max_range_days:
        raise BookingEngineError(f"Date range may span at most {settings.max_range_days} days")

    rules_by_day = {r.day_of_week: r for r in crud.get_rules(db, provider_key, location_key)}
    taken_by_date: Dict[date, Set[time]] = {}
    for booking in crud.find_active_in_range(db, provider_key, location_key, start_date, end_date):
        taken_by_date.setdefault(booking.booking_date, set()).add(booking.booking_time)

    result: Dict[date, List[Slot]] = {}
    current = start_date
    while current <= end_date:
        slots = generate_slots(rules_by_day.get(weekday_index(current)), current)
        result[current] = _free(slots, taken_by_date.get(current, set()), _cutoff_for(current, now))
        current += timedelta(days=1)
    return result


def available_dates(
    db: Session,
    provider_key: str,
    location_key: str,
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None
) -> Dict:
    """Dates in the range with at least one free slot, plus the weekdays the provider works."""
    per_day = available_slots_for_range(db, provider_key, location_key, start_date, end_date, now=now)
    working_days = sorted(
        r.day_of_week for r in crud.get_rules(db, provider_key, location_key) if r.is_available
    )
    return {
        "provider_key": provider_key,
        "location_key": location_key,
        "start_date": start_date,
        "end_date": end_date,
        "available_dates": [d for d, slots in per_day.items() if slots],
        "working_days": working_days,
    }
