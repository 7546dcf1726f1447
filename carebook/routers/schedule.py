# carebook/routers/schedule.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from .. import models, schemas
from ..database import get_db
from ..security import Identity, get_current_identity, require_schedule_owner
from ..services import schedule_service

router = APIRouter(
    prefix="/schedules",
    tags=["schedules"],
    dependencies=[Depends(get_current_identity)],
    responses={404: {"description": "Not found"}},
)


# --- Doctor schedules, one rule set per location ("<center id>" or "home-visit") ---

@router.get("/doctors/{provider_id}/{location}", response_model=List[schemas.ScheduleRuleResponse])
def read_doctor_schedule(provider_id: int, location: str, db: Session = Depends(get_db)):
    """Retrieve the weekly rules for a doctor at one location, Sunday first."""
    return schedule_service.get_schedule(db, models.doctor_key(provider_id), location)


@router.put("/doctors/{provider_id}/{location}", response_model=List[schemas.ScheduleRuleResponse])
def replace_doctor_schedule(
    provider_id: int,
    location: str,
    rules: List[schemas.ScheduleRuleCreate],
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Replace the entire weekly schedule for a doctor at a location.
    Days left out are removed. Existing bookings are not affected.
    """
    provider_key = models.doctor_key(provider_id)
    require_schedule_owner(identity, provider_key)
    return schedule_service.update_schedule(db, provider_key, location, rules, actor_id=identity.user_id)


@router.put("/doctors/{provider_id}/{location}/{day_of_week}", response_model=schemas.ScheduleRuleResponse)
def update_doctor_day(
    provider_id: int,
    location: str,
    day_of_week: int,
    rule: schemas.DayRuleCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    provider_key = models.doctor_key(provider_id)
    require_schedule_owner(identity, provider_key)
    return schedule_service.put_day(db, provider_key, location, day_of_week, rule, actor_id=identity.user_id)


@router.delete("/doctors/{provider_id}/{location}/{day_of_week}", status_code=status.HTTP_204_NO_CONTENT)
def delete_doctor_day(
    provider_id: int,
    location: str,
    day_of_week: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    provider_key = models.doctor_key(provider_id)
    require_schedule_owner(identity, provider_key)
    schedule_service.delete_day(db, provider_key, location, day_of_week, actor_id=identity.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Lab schedules, keyed by the center alone ---

@router.get("/labs/{center_id}", response_model=List[schemas.ScheduleRuleResponse])
def read_lab_schedule(center_id: int, db: Session = Depends(get_db)):
    return schedule_service.get_schedule(db, models.center_key(center_id), models.location_key_for_center(center_id))


@router.put("/labs/{center_id}", response_model=List[schemas.ScheduleRuleResponse])
def replace_lab_schedule(
    center_id: int,
    rules: List[schemas.ScheduleRuleCreate],
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    provider_key = models.center_key(center_id)
    require_schedule_owner(identity, provider_key)
    return schedule_service.update_schedule(
        db, provider_key, models.location_key_for_center(center_id), rules, actor_id=identity.user_id
    )


@router.put("/labs/{center_id}/{day_of_week}", response_model=schemas.ScheduleRuleResponse)
def update_lab_day(
    center_id: int,
    day_of_week: int,
    rule: schemas.DayRuleCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    provider_key = models.center_key(center_id)
    require_schedule_owner(identity, provider_key)
    return schedule_service.put_day(
        db, provider_key, models.location_key_for_center(center_id), day_of_week, rule, actor_id=identity.user_id
    )


@router.delete("/labs/{center_id}/{day_of_week}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lab_day(
    center_id: int,
    day_of_week: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    provider_key = models.center_key(center_id)
    require_schedule_owner(identity, provider_key)
    schedule_service.delete_day(
        db, provider_key, models.location_key_for_center(center_id), day_of_week, actor_id=identity.user_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
