# carebook/routers/slots.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, timedelta

from .. import models, schemas
from ..config import get_settings
from ..database import get_db
from ..security import get_current_identity
from ..services import availability_service
from ..services.booking_service import utc_now

router = APIRouter(
    prefix="/availability",
    tags=["availability"],
    dependencies=[Depends(get_current_identity)],
    responses={404: {"description": "Not found"}},
)


def _free_slots(db: Session, provider_key: str, location_key: str, target_date: date) -> List[schemas.SlotResponse]:
    availability_service.ensure_location_access(db, provider_key, location_key)
    slots = availability_service.available_slots(db, provider_key, location_key, target_date, now=utc_now())
    return [schemas.SlotResponse(time=s.start_time, duration_minutes=s.duration_minutes) for s in slots]


def _detailed(db: Session, provider_key: str, location_key: str, target_date: date) -> List[schemas.SlotDetailResponse]:
    availability_service.ensure_location_access(db, provider_key, location_key)
    return [
        schemas.SlotDetailResponse(**slot)
        for slot in availability_service.slot_details(db, provider_key, location_key, target_date)
    ]


def _dates(db: Session, provider_key: str, location_key: str, start_date: Optional[date], end_date: Optional[date]):
    availability_service.ensure_location_access(db, provider_key, location_key)
    now = utc_now()
    start_date = start_date or now.astimezone(get_settings().tz).date()
    end_date = end_date or start_date + timedelta(days=get_settings().availability_horizon_days - 1)
    return availability_service.available_dates(db, provider_key, location_key, start_date, end_date, now=now)


# --- 1. Doctors ---

@router.get("/doctors/{provider_id}/{location}/slots", response_model=List[schemas.SlotResponse])
def get_doctor_slots(provider_id: int, location: str, target_date: date = Query(..., alias="date"), db: Session = Depends(get_db)):
    """
    Free slots for a doctor at a location on a date, in time order.
    Advisory only: a slot shown here can still be taken before it is booked.
    """
    return _free_slots(db, models.doctor_key(provider_id), location, target_date)


@router.get("/doctors/{provider_id}/{location}/detailed", response_model=List[schemas.SlotDetailResponse])
def get_doctor_slots_detailed(provider_id: int, location: str, target_date: date = Query(..., alias="date"), db: Session = Depends(get_db)):
    """Every slot of the day, flagged available or booked."""
    return _detailed(db, models.doctor_key(provider_id), location, target_date)


@router.get("/doctors/{provider_id}/{location}/dates", response_model=schemas.AvailableDatesResponse)
def get_doctor_available_dates(
    provider_id: int,
    location: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db)
):
    return _dates(db, models.doctor_key(provider_id), location, start_date, end_date)


# --- 2. Labs ---

@router.get("/labs/{center_id}/slots", response_model=List[schemas.SlotResponse])
def get_lab_slots(center_id: int, target_date: date = Query(..., alias="date"), db: Session = Depends(get_db)):
    return _free_slots(db, models.center_key(center_id), models.location_key_for_center(center_id), target_date)


@router.get("/labs/{center_id}/detailed", response_model=List[schemas.SlotDetailResponse])
def get_lab_slots_detailed(center_id: int, target_date: date = Query(..., alias="date"), db: Session = Depends(get_db)):
    return _detailed(db, models.center_key(center_id), models.location_key_for_center(center_id), target_date)


@router.get("/labs/{center_id}/dates", response_model=schemas.AvailableDatesResponse)
def get_lab_available_dates(
    center_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db)
):
    return _dates(db, models.center_key(center_id), models.location_key_for_center(center_id), start_date, end_date)
