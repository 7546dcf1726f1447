# carebook/services/booking_service.py
# Booking lifecycle: create, reschedule, cancel, confirm, complete.
# Stateless; every call works against the caller's Session and re-reads the stores.
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

import structlog
from sqlalchemy.orm import Session

from .. import crud, models
from ..config import get_settings
from ..exceptions import (
    BookingInPast, CancellationWindowClosed, InvalidTransition, ReschedulingWindowClosed,
    SlotConflict, SlotUnavailable,
)
from . import availability_service
from .event_sink import (
    BOOKING_CANCELLED, BOOKING_COMPLETED, BOOKING_CONFIRMED, BOOKING_CREATED, BOOKING_RESCHEDULED,
    event_sink,
)
from .slot_service import generate_slots, weekday_index

logger = structlog.get_logger(__name__)

S = models.BookingStatus

TRANSITIONS: Dict[S, FrozenSet[S]] = {
    S.scheduled: frozenset({S.confirmed, S.cancelled, S.completed}),
    S.confirmed: frozenset({S.completed, S.cancelled}),
    S.completed: frozenset(),
    S.cancelled: frozenset(),
}


def can_transition(current: S, target: S) -> bool:
    if target == S.completed and current == S.scheduled and get_settings().require_confirmation:
        return False
    return target in TRANSITIONS[current]


def sources_for(target: S) -> FrozenSet[S]:
    """Statuses a booking may currently hold for a move to `target` to be legal."""
    return frozenset(status for status in S if can_transition(status, target))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def appointment_datetime(booking_date: date, booking_time: time) -> datetime:
    """Local clock date/time of a booking as an aware datetime in the clinic timezone."""
    return datetime.combine(booking_date, booking_time).replace(tzinfo=get_settings().tz)


def modification_window_open(booking: models.Booking, now: datetime) -> bool:
    """Strictly more than the configured window (24h) must remain; exactly 24h00m00s is closed."""
    remaining = appointment_datetime(booking.booking_date, booking.booking_time) - now
    return remaining > timedelta(hours=get_settings().modification_window_hours)


def _window_message(action: str) -> str:
    hours = get_settings().modification_window_hours
    return f"Cannot {action} within {hours} hours of your appointment."


def _verify_slot(
    db: Session,
    provider_key: str,
    location_key: str,
    booking_date: date,
    booking_time: time,
    now: datetime,
    exclude_booking_id: Optional[int] = None
) -> models.ScheduleRule:
    """
    Commit-time re-check against the live schedule and bookings (never a cached view).
    Not a generated slot: SlotUnavailable. A generated slot someone already holds: SlotConflict.
    """
    if appointment_datetime(booking_date, booking_time) <= now:
        raise BookingInPast(
            f"{booking_date.isoformat()} {booking_time.strftime('%H:%M')} is not in the future"
        )

    rule = crud.get_rule(db, provider_key, location_key, weekday_index(booking_date))
    generated = {slot.start_time for slot in generate_slots(rule, booking_date)}
    if booking_time not in generated:
        raise SlotUnavailable(
            f"{booking_time.strftime('%H:%M')} on {booking_date.isoformat()} is not a bookable slot",
            date=booking_date.isoformat(), time=booking_time.strftime('%H:%M')
        )

    free = availability_service.available_slots(
        db, provider_key, location_key, booking_date, exclude_booking_id=exclude_booking_id
    )
    if booking_time not in {slot.start_time for slot in free}:
        raise SlotConflict(
            date=booking_date.isoformat(), time=booking_time.strftime('%H:%M')
        )
    return rule


def _resolve_fee(db: Session, provider_key: str, location_key: str, rule: models.ScheduleRule, explicit: Optional[Decimal]) -> Decimal:
    """Explicit fee, else the day rule's fee, else the provider/center default, else zero."""
    kind, _, raw_id = provider_key.partition(":")
    if kind == "center":
        center = crud.get_center(db, int(raw_id))
        return crud.fee_or_zero(explicit, rule.consultation_fee, center.lab_test_fee if center else None)
    provider = crud.get_provider(db, int(raw_id))
    default = None
    if provider is not None:
        default = provider.home_visit_fee if location_key == models.HOME_VISIT_LOCATION else provider.consultation_fee
        if default is None:
            default = provider.consultation_fee
    return crud.fee_or_zero(explicit, rule.consultation_fee, default)


def create_booking(
    db: Session,
    *,
    provider_key: str,
    location_key: str,
    booking_date: date,
    booking_time: time,
    patient_id: str,
    duration_minutes: Optional[int] = None,
    fee: Optional[Decimal] = None,
    lab_test_type: Optional[str] = None,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> models.Booking:
    """
    Book a slot. Validates the slot against the live schedule and bookings, then inserts
    under the active-slot unique index; a lost race surfaces as SlotConflict.
    """
    now = now or utc_now()
    availability_service.ensure_location_access(db, provider_key, location_key)
    rule = _verify_slot(db, provider_key, location_key, booking_date, booking_time, now)

    if duration_minutes is not None and duration_minutes != rule.slot_duration_minutes:
        raise SlotUnavailable(
            f"Slots on this day are {rule.slot_duration_minutes} minutes long, not {duration_minutes}"
        )

    kind, _, raw_id = provider_key.partition(":")
    booking = models.Booking(
        booking_type=models.BookingType.lab_test if kind == "center" else models.BookingType.appointment,
        provider_id=int(raw_id) if kind == "doctor" else None,
        center_id=int(raw_id) if kind == "center" else (
            int(location_key) if location_key != models.HOME_VISIT_LOCATION else None
        ),
        provider_key=provider_key,
        location_key=location_key,
        patient_id=patient_id,
        booking_date=booking_date,
        booking_time=booking_time,
        # Frozen here; later rule edits never change an existing booking's duration
        duration_minutes=rule.slot_duration_minutes,
        status=S.scheduled,
        fee=_resolve_fee(db, provider_key, location_key, rule, fee),
        lab_test_type=lab_test_type,
        notes=notes,
        created_at=now,
    )
    booking = crud.insert_if_free(db, booking)
    logger.info("booking.committed", booking_id=booking.id, provider_key=provider_key, location_key=location_key)
    event_sink.emit_booking(BOOKING_CREATED, booking, actor_id=actor_id or patient_id)
    return booking


def reschedule_booking(
    db: Session,
    booking_id: int,
    new_date: date,
    new_time: time,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> models.Booking:
    """
    Move an active booking to another slot of the same provider and location.
    Release of the old slot and reservation of the new one happen in a single update;
    if anything fails the booking keeps its original date, time and status.
    """
    now = now or utc_now()
    booking = crud.get_booking_or_404(db, booking_id)

    if booking.status not in models.ACTIVE_STATUSES:
        raise InvalidTransition(
            f"A {booking.status.value} booking cannot be rescheduled", current_status=booking.status.value
        )
    if not modification_window_open(booking, now):
        raise ReschedulingWindowClosed(_window_message("reschedule"))

    availability_service.ensure_location_access(db, booking.provider_key, booking.location_key)
    rule = _verify_slot(
        db, booking.provider_key, booking.location_key, new_date, new_time, now,
        exclude_booking_id=booking.id
    )

    previous = {"date": booking.booking_date.isoformat(), "time": booking.booking_time.strftime('%H:%M')}
    moved = crud.move_booking(db, booking, new_date, new_time, rule.slot_duration_minutes, now)
    event_sink.emit_booking(BOOKING_RESCHEDULED, moved, actor_id=actor_id, previous=previous)
    return moved


def cancel_booking(
    db: Session,
    booking_id: int,
    reason: Optional[str] = None,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> models.Booking:
    """
    Cancel an active booking more than 24 hours before its appointment time. Inside the
    window the booking stays as it is; no-shows are never cancelled automatically.
    """
    now = now or utc_now()
    booking = crud.get_booking_or_404(db, booking_id)

    if not can_transition(booking.status, S.cancelled):
        raise InvalidTransition(
            f"A {booking.status.value} booking cannot be cancelled", current_status=booking.status.value
        )
    if not modification_window_open(booking, now):
        raise CancellationWindowClosed(_window_message("cancel"))

    cancelled = crud.update_status(
        db, booking_id, sources_for(S.cancelled), S.cancelled,
        cancelled_at=now, cancellation_reason=reason, cancelled_by=actor_id
    )
    event_sink.emit_booking(BOOKING_CANCELLED, cancelled, actor_id=actor_id, reason=reason)
    return cancelled


def confirm_booking(db: Session, booking_id: int, actor_id: Optional[str] = None, now: Optional[datetime] = None) -> models.Booking:
    now = now or utc_now()
    confirmed = crud.update_status(db, booking_id, sources_for(S.confirmed), S.confirmed, confirmed_at=now)
    event_sink.emit_booking(BOOKING_CONFIRMED, confirmed, actor_id=actor_id)
    return confirmed


def complete_booking(db: Session, booking_id: int, actor_id: Optional[str] = None, now: Optional[datetime] = None) -> models.Booking:
    """Mark a visit as held. From confirmed, or from scheduled when confirmation is optional."""
    now = now or utc_now()
    completed = crud.update_status(db, booking_id, sources_for(S.completed), S.completed, completed_at=now)
    event_sink.emit_booking(BOOKING_COMPLETED, completed, actor_id=actor_id)
    return completed


def annotate_booking(db: Session, booking_id: int, visit_summary: str) -> models.Booking:
    """Attach a visit summary. Allowed in any status; scheduling state is untouched."""
    return crud.annotate_booking(db, booking_id, visit_summary)
