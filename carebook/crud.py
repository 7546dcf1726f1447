# carebook/crud.py - Schedule Store, Booking Store and directory data access
from sqlalchemy.orm import Session
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, List, Iterable, Dict, Any
import functools
import logging

from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from . import models, schemas
from .config import get_settings
from .exceptions import (
    InvalidScheduleRule, InvalidTransition, NotFound, SlotConflict, StoreUnavailable
)

logger = logging.getLogger(__name__)

DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


# ==================== STORE PLUMBING ====================

def _has_pending_changes(db: Session) -> bool:
    return bool(db.new or db.dirty or db.deleted)


def read_retry(fn):
    """
    Retry a read on transient connection failures, then surface StoreUnavailable.

    A read made while the session holds unflushed changes is not retried: it rolls back
    and fails the whole unit of work.
    """
    @functools.wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        attempts = 1 if _has_pending_changes(db) else get_settings().store_read_retries
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    try:
                        return fn(db, *args, **kwargs)
                    except OperationalError:
                        db.rollback()
                        raise
        except DBAPIError as e:
            db.rollback()
            logger.error(f"Store read {fn.__name__} failed: {e}")
            raise StoreUnavailable() from e
    return wrapper


def _commit(db: Session) -> None:
    """Commit or roll back completely. IntegrityError is left for the caller to classify."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    except DBAPIError as e:
        db.rollback()
        logger.error(f"Store write failed, rolled back: {e}")
        raise StoreUnavailable() from e


# ==================== SCHEDULE STORE ====================

def normalize_day_of_week(day_of_week: int) -> int:
    """Canonical 0=Sunday..6=Saturday. The legacy 1..7 encoding maps 7 to Sunday."""
    if not isinstance(day_of_week, int) or isinstance(day_of_week, bool):
        raise InvalidScheduleRule(f"day_of_week must be an integer, got {day_of_week!r}")
    if day_of_week < 0 or day_of_week > 7:
        raise InvalidScheduleRule(f"day_of_week {day_of_week} is out of range (0-6, or 7 for Sunday)")
    return 0 if day_of_week == 7 else day_of_week


def validate_rule(rule: Dict[str, Any]) -> None:
    """Reject malformed rules before they reach storage (and therefore the slot generator)."""
    duration = rule.get("slot_duration_minutes")
    if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
        raise InvalidScheduleRule(f"slot_duration_minutes must be a positive integer, got {duration!r}")
    if rule.get("is_available") is None:
        raise InvalidScheduleRule("is_available must be set explicitly")

    start, end = rule.get("start_time"), rule.get("end_time")
    if start is None or end is None:
        raise InvalidScheduleRule("start_time and end_time are required")
    if start >= end:
        raise InvalidScheduleRule(f"start_time {start} must be before end_time {end}")

    break_start, break_end = rule.get("break_start"), rule.get("break_end")
    if (break_start is None) != (break_end is None):
        raise InvalidScheduleRule("break_start and break_end must be given together")

    # Slots are laid out on a whole-minute grid
    for field in ("start_time", "end_time", "break_start", "break_end"):
        value = rule.get(field)
        if value is not None and (value.second or value.microsecond):
            raise InvalidScheduleRule(f"{field} {value} must be a whole minute")

    # A zero-length break means no break, wherever it sits
    if break_start is not None and break_start != break_end:
        if break_start > break_end:
            raise InvalidScheduleRule(f"break_start {break_start} is after break_end {break_end}")
        if break_start < start or break_start >= end or break_end > end:
            raise InvalidScheduleRule(f"break {break_start}-{break_end} must lie within {start}-{end}")


def _rule_values(rule) -> Dict[str, Any]:
    values = rule.model_dump() if hasattr(rule, "model_dump") else dict(rule)
    values.pop("day_of_week", None)
    validate_rule(values)
    return values


@read_retry
def get_rule(db: Session, provider_key: str, location_key: str, weekday: int) -> Optional[models.ScheduleRule]:
    """The rule for one weekday (0=Sunday), or None."""
    return db.query(models.ScheduleRule).filter(
        models.ScheduleRule.provider_key == provider_key,
        models.ScheduleRule.location_key == location_key,
        models.ScheduleRule.day_of_week == normalize_day_of_week(weekday)
    ).first()


@read_retry
def get_rules(db: Session, provider_key: str, location_key: str) -> List[models.ScheduleRule]:
    """All rules for a provider at a location, ordered Sunday first."""
    return db.query(models.ScheduleRule).filter(
        models.ScheduleRule.provider_key == provider_key,
        models.ScheduleRule.location_key == location_key
    ).order_by(models.ScheduleRule.day_of_week).all()


def put_rules(db: Session, provider_key: str, location_key: str, rules: Iterable[schemas.ScheduleRuleCreate]) -> List[models.ScheduleRule]:
    """
    Replace the full weekly schedule for (provider, location).
    Days missing from `rules` are removed. All rules are validated before anything is written.
    """
    incoming: Dict[int, Dict[str, Any]] = {}
    for rule in rules:
        day = normalize_day_of_week(rule.day_of_week)
        if day in incoming:
            raise InvalidScheduleRule(f"{DAY_NAMES[day]} appears more than once in the schedule")
        incoming[day] = _rule_values(rule)

    logger.debug(f"[put_rules] {provider_key}@{location_key}: writing days {sorted(incoming)}")
    existing = {r.day_of_week: r for r in get_rules(db, provider_key, location_key)}

    for day, db_rule in existing.items():
        if day not in incoming:
            db.delete(db_rule)

    for day, values in incoming.items():
        db_rule = existing.get(day)
        if db_rule:
            for key, value in values.items():
                setattr(db_rule, key, value)
        else:
            db.add(models.ScheduleRule(provider_key=provider_key, location_key=location_key, day_of_week=day, **values))

    try:
        _commit(db)
    except IntegrityError as e:
        logger.error(f"[put_rules] integrity error for {provider_key}@{location_key}: {e}")
        raise InvalidScheduleRule("A concurrent schedule edit conflicted with this one; please retry.") from e
    return get_rules(db, provider_key, location_key)


def put_rule(db: Session, provider_key: str, location_key: str, day_of_week: int, rule: schemas.DayRuleCreate) -> models.ScheduleRule:
    """Create or wholesale-replace the rule for a single weekday."""
    day = normalize_day_of_week(day_of_week)
    values = _rule_values(rule)

    db_rule = get_rule(db, provider_key, location_key, day)
    if db_rule:
        for key, value in values.items():
            setattr(db_rule, key, value)
    else:
        db_rule = models.ScheduleRule(provider_key=provider_key, location_key=location_key, day_of_week=day, **values)
        db.add(db_rule)

    try:
        _commit(db)
    except IntegrityError as e:
        raise InvalidScheduleRule("A concurrent schedule edit conflicted with this one; please retry.") from e
    db.refresh(db_rule)
    return db_rule


def delete_rule(db: Session, provider_key: str, location_key: str, day_of_week: int) -> bool:
    db_rule = get_rule(db, provider_key, location_key, day_of_week)
    if not db_rule:
        return False
    db.delete(db_rule)
    _commit(db)
    return True


def delete_rules(db: Session, provider_key: str, location_key: str, commit: bool = True) -> int:
    """Remove every rule for (provider, location). Bookings are never touched."""
    count = db.query(models.ScheduleRule).filter(
        models.ScheduleRule.provider_key == provider_key,
        models.ScheduleRule.location_key == location_key
    ).delete(synchronize_session=False)
    if commit:
        _commit(db)
    return count


# ==================== BOOKING STORE ====================

@read_retry
def get_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    return db.query(models.Booking).filter(models.Booking.id == booking_id).first()


def get_booking_or_404(db: Session, booking_id: int) -> models.Booking:
    booking = get_booking(db, booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


@read_retry
def find_active(db: Session, provider_key: str, location_key: str, on_date: date) -> List[models.Booking]:
    """Bookings in scheduled/confirmed status for (provider, location, date), ordered by time."""
    return db.query(models.Booking).filter(
        models.Booking.provider_key == provider_key,
        models.Booking.location_key == location_key,
        models.Booking.booking_date == on_date,
        models.Booking.status.in_(models.ACTIVE_STATUSES)
    ).order_by(models.Booking.booking_time).all()


@read_retry
def find_active_in_range(db: Session, provider_key: str, location_key: str, start_date: date, end_date: date) -> List[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.provider_key == provider_key,
        models.Booking.location_key == location_key,
        models.Booking.booking_date >= start_date,
        models.Booking.booking_date <= end_date,
        models.Booking.status.in_(models.ACTIVE_STATUSES)
    ).order_by(models.Booking.booking_date, models.Booking.booking_time).all()


@read_retry
def list_bookings(
    db: Session,
    patient_id: Optional[str] = None,
    provider_key: Optional[str] = None,
    location_key: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[models.BookingStatus] = None,
    skip: int = 0,
    limit: int = 100
) -> List[models.Booking]:
    query = db.query(models.Booking)
    if patient_id is not None:
        query = query.filter(models.Booking.patient_id == patient_id)
    if provider_key is not None:
        query = query.filter(models.Booking.provider_key == provider_key)
    if location_key is not None:
        query = query.filter(models.Booking.location_key == location_key)
    if start_date is not None:
        query = query.filter(models.Booking.booking_date >= start_date)
    if end_date is not None:
        query = query.filter(models.Booking.booking_date <= end_date)
    if status is not None:
        query = query.filter(models.Booking.status == status)
    return query.order_by(models.Booking.booking_date, models.Booking.booking_time).offset(skip).limit(limit).all()


def insert_if_free(db: Session, booking: models.Booking) -> models.Booking:
    """
    Insert a booking guarded by the active-slot unique index.
    A unique violation means another request won the slot first: SlotConflict.
    """
    db.add(booking)
    try:
        _commit(db)
    except IntegrityError as e:
        logger.info(
            f"Slot conflict on insert for {booking.provider_key}@{booking.location_key} "
            f"{booking.booking_date} {booking.booking_time}"
        )
        raise SlotConflict() from e
    db.refresh(booking)
    return booking


def update_status(
    db: Session,
    booking_id: int,
    expected: Iterable[models.BookingStatus],
    new_status: models.BookingStatus,
    **meta
) -> models.Booking:
    """
    Compare-and-swap status transition: only applies while the booking is still in one of
    `expected`. Losing the swap (or an unknown id) leaves the row untouched.
    """
    expected = tuple(expected)
    try:
        updated = db.query(models.Booking).filter(
            models.Booking.id == booking_id,
            models.Booking.status.in_(expected)
        ).update({"status": new_status, **meta}, synchronize_session=False)
    except DBAPIError as e:
        db.rollback()
        raise StoreUnavailable() from e

    if updated == 0:
        db.rollback()
        current = get_booking_or_404(db, booking_id)
        raise InvalidTransition(
            f"Cannot move booking {booking_id} from {current.status.value} to {new_status.value}",
            current_status=current.status.value
        )

    _commit(db)
    booking = get_booking_or_404(db, booking_id)
    db.refresh(booking)
    return booking


def move_booking(
    db: Session,
    booking: models.Booking,
    new_date: date,
    new_time: time,
    duration_minutes: int,
    now: datetime
) -> models.Booking:
    """
    Move an active booking to a new slot in one statement. The row is matched on its
    current date/time/status so a concurrent change makes the move a no-op (InvalidTransition);
    a unique violation on the new slot (SlotConflict) rolls back and leaves the booking as it was.
    """
    booking_id = booking.id
    old_date, old_time = booking.booking_date, booking.booking_time
    try:
        updated = db.query(models.Booking).filter(
            models.Booking.id == booking_id,
            models.Booking.booking_date == old_date,
            models.Booking.booking_time == old_time,
            models.Booking.status.in_(models.ACTIVE_STATUSES)
        ).update({
            models.Booking.booking_date: new_date,
            models.Booking.booking_time: new_time,
            models.Booking.duration_minutes: duration_minutes,
            models.Booking.status: models.BookingStatus.scheduled,
            models.Booking.confirmed_at: None,
            models.Booking.rescheduled_at: now,
            models.Booking.reschedule_count: models.Booking.reschedule_count + 1,
        }, synchronize_session=False)
    except IntegrityError as e:
        db.rollback()
        raise SlotConflict() from e
    except DBAPIError as e:
        db.rollback()
        raise StoreUnavailable() from e

    if updated == 0:
        db.rollback()
        raise InvalidTransition(f"Booking {booking_id} changed while it was being rescheduled")

    try:
        _commit(db)
    except IntegrityError as e:
        raise SlotConflict() from e

    moved = get_booking_or_404(db, booking_id)
    db.refresh(moved)
    return moved


def annotate_booking(db: Session, booking_id: int, visit_summary: str) -> models.Booking:
    booking = get_booking_or_404(db, booking_id)
    booking.visit_summary = visit_summary
    _commit(db)
    db.refresh(booking)
    return booking


# ==================== DIRECTORY ====================

def create_center(db: Session, center: schemas.CenterCreate) -> models.Center:
    db_center = models.Center(**center.model_dump())
    db.add(db_center)
    _commit(db)
    db.refresh(db_center)
    return db_center


@read_retry
def get_center(db: Session, center_id: int) -> Optional[models.Center]:
    return db.query(models.Center).filter(models.Center.id == center_id).first()


@read_retry
def get_centers(db: Session, skip: int = 0, limit: int = 100) -> List[models.Center]:
    return db.query(models.Center).order_by(models.Center.id).offset(skip).limit(limit).all()


def create_provider(db: Session, provider: schemas.ProviderCreate) -> models.Provider:
    db_provider = models.Provider(**provider.model_dump())
    db.add(db_provider)
    _commit(db)
    db.refresh(db_provider)
    return db_provider


@read_retry
def get_provider(db: Session, provider_id: int) -> Optional[models.Provider]:
    return db.query(models.Provider).filter(models.Provider.id == provider_id).first()


@read_retry
def get_providers(db: Session, skip: int = 0, limit: int = 100) -> List[models.Provider]:
    return db.query(models.Provider).order_by(models.Provider.id).offset(skip).limit(limit).all()


@read_retry
def get_assignment(db: Session, provider_id: int, center_id: int) -> Optional[models.ProviderCenterAssignment]:
    return db.query(models.ProviderCenterAssignment).filter(
        models.ProviderCenterAssignment.provider_id == provider_id,
        models.ProviderCenterAssignment.center_id == center_id
    ).first()


@read_retry
def get_assignments_for_provider(db: Session, provider_id: int) -> List[models.ProviderCenterAssignment]:
    return db.query(models.ProviderCenterAssignment).filter(
        models.ProviderCenterAssignment.provider_id == provider_id
    ).order_by(models.ProviderCenterAssignment.is_primary.desc(), models.ProviderCenterAssignment.center_id).all()


def assign_provider(db: Session, provider_id: int, center_id: int, is_primary: bool = False) -> models.ProviderCenterAssignment:
    """Assign a provider to a center; a new primary assignment demotes the previous one."""
    assignment = get_assignment(db, provider_id, center_id)
    if is_primary:
        db.query(models.ProviderCenterAssignment).filter(
            models.ProviderCenterAssignment.provider_id == provider_id,
            models.ProviderCenterAssignment.center_id != center_id
        ).update({models.ProviderCenterAssignment.is_primary: False}, synchronize_session=False)
    if assignment:
        assignment.is_primary = is_primary
    else:
        assignment = models.ProviderCenterAssignment(provider_id=provider_id, center_id=center_id, is_primary=is_primary)
        db.add(assignment)
    try:
        _commit(db)
    except IntegrityError:
        # Lost a race against an identical assignment; the row exists either way.
        assignment = get_assignment(db, provider_id, center_id)
    db.refresh(assignment)
    return assignment


def unassign_provider(db: Session, provider_id: int, center_id: int) -> bool:
    assignment = get_assignment(db, provider_id, center_id)
    if not assignment:
        return False
    db.delete(assignment)
    _commit(db)
    return True


def set_home_visits(db: Session, provider: models.Provider, enabled: bool, rules: List[schemas.ScheduleRuleCreate]) -> List[models.ScheduleRule]:
    """
    Flip the provider's home-visit flag and create or remove the synthetic home-visit rule set
    in the same transaction. Real-center rules are not touched.
    """
    provider_key = models.doctor_key(provider.id)
    provider.home_visits_available = enabled
    if enabled:
        try:
            return put_rules(db, provider_key, models.HOME_VISIT_LOCATION, rules)
        except InvalidScheduleRule:
            db.rollback()
            raise

    removed = delete_rules(db, provider_key, models.HOME_VISIT_LOCATION, commit=False)
    _commit(db)
    logger.info(f"Removed {removed} home-visit rules for provider {provider.id}")
    return []


def fee_or_zero(*candidates: Optional[Decimal]) -> Decimal:
    for fee in candidates:
        if fee is not None:
            return Decimal(fee)
    return Decimal("0")
