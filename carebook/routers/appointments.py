# carebook/routers/appointments.py
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from .. import crud, models, schemas
from ..database import get_db
from ..exceptions import BookingEngineError, PermissionDenied
from ..limiter import booking_rate_limit, limiter
from ..models import UserRole
from ..security import (
    Identity, get_current_identity, require_booking_access, require_booking_staff,
)
from ..services import booking_service

router = APIRouter(
    prefix="/bookings",
    tags=["Bookings"],
    responses={404: {"description": "Not found"}},
)


def _target_keys(booking_in: schemas.BookingCreate):
    if booking_in.center_id is not None:
        return models.center_key(booking_in.center_id), models.location_key_for_center(booking_in.center_id)
    return models.doctor_key(booking_in.provider_id), booking_in.location


@router.post("", response_model=schemas.BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(booking_rate_limit)
def create_booking(
    booking_in: schemas.BookingCreate,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Book a free slot for a doctor appointment or a lab test.
    A slot taken in the meantime comes back as 409 slot_conflict; re-query availability and retry.
    """
    # --- 1. Resolve the patient ---
    if identity.role == UserRole.patient:
        patient_id = identity.user_id
    elif booking_in.patient_id:
        patient_id = booking_in.patient_id
    else:
        raise BookingEngineError("patient_id is required when booking on behalf of a patient")

    # --- 2. Book ---
    provider_key, location_key = _target_keys(booking_in)
    return booking_service.create_booking(
        db,
        provider_key=provider_key,
        location_key=location_key,
        booking_date=booking_in.booking_date,
        booking_time=booking_in.booking_time,
        patient_id=patient_id,
        duration_minutes=booking_in.duration_minutes,
        fee=booking_in.fee,
        lab_test_type=booking_in.lab_test_type,
        notes=booking_in.notes,
        actor_id=identity.user_id,
    )


@router.get("", response_model=List[schemas.BookingResponse])
def list_bookings(
    provider_id: Optional[int] = None,
    center_id: Optional[int] = None,
    location: Optional[str] = None,
    patient_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status_filter: Optional[models.BookingStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    List bookings in date/time order. Patients only ever see their own, doctors their own
    appointments, centers everything at their center.
    """
    provider_key = models.doctor_key(provider_id) if provider_id is not None else None
    location_key = location
    if center_id is not None:
        location_key = models.location_key_for_center(center_id)

    if identity.role == UserRole.patient:
        patient_id = identity.user_id
    elif identity.role == UserRole.doctor:
        provider_key = models.doctor_key(identity.user_id)
    elif identity.role == UserRole.center:
        location_key = identity.user_id

    return crud.list_bookings(
        db,
        patient_id=patient_id,
        provider_key=provider_key,
        location_key=location_key,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        skip=skip,
        limit=min(limit, 500),
    )


@router.get("/{booking_id}", response_model=schemas.BookingResponse)
def read_booking(booking_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    booking = crud.get_booking_or_404(db, booking_id)
    require_booking_access(identity, booking)
    return booking


@router.post("/{booking_id}/reschedule", response_model=schemas.BookingResponse)
def reschedule_booking(
    booking_id: int,
    move: schemas.BookingReschedule,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Move the booking to another free slot, only while more than 24 hours remain before it."""
    require_booking_access(identity, crud.get_booking_or_404(db, booking_id))
    return booking_service.reschedule_booking(
        db, booking_id, move.new_date, move.new_time, actor_id=identity.user_id
    )


@router.post("/{booking_id}/cancel", response_model=schemas.BookingResponse)
def cancel_booking(
    booking_id: int,
    cancel: Optional[schemas.BookingCancel] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    require_booking_access(identity, crud.get_booking_or_404(db, booking_id))
    return booking_service.cancel_booking(
        db, booking_id, reason=cancel.reason if cancel else None, actor_id=identity.user_id
    )


@router.post("/{booking_id}/confirm", response_model=schemas.BookingResponse)
def confirm_booking(booking_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    require_booking_staff(identity, crud.get_booking_or_404(db, booking_id))
    return booking_service.confirm_booking(db, booking_id, actor_id=identity.user_id)


@router.post("/{booking_id}/complete", response_model=schemas.BookingResponse)
def complete_booking(booking_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    require_booking_staff(identity, crud.get_booking_or_404(db, booking_id))
    return booking_service.complete_booking(db, booking_id, actor_id=identity.user_id)


@router.put("/{booking_id}/visit-summary", response_model=schemas.BookingResponse)
def annotate_booking(
    booking_id: int,
    annotation: schemas.BookingAnnotate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Attach the post-visit summary. Does not change the booking's status."""
    booking = crud.get_booking_or_404(db, booking_id)
    if identity.role not in [UserRole.doctor, UserRole.admin]:
        raise PermissionDenied("Only the treating doctor can write a visit summary")
    require_booking_staff(identity, booking)
    return booking_service.annotate_booking(db, booking_id, annotation.visit_summary)
