# carebook/routers/directory.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, models, schemas
from ..database import get_db
from ..exceptions import NotFound
from ..security import Identity, get_current_identity, require_admin, require_schedule_owner
from ..services import schedule_service

router = APIRouter(
    tags=["Directory"],
    dependencies=[Depends(get_current_identity)],
    responses={404: {"description": "Not found"}},
)


# --- Centers ---

@router.post("/centers", response_model=schemas.CenterResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_center(center: schemas.CenterCreate, db: Session = Depends(get_db)):
    return crud.create_center(db, center)


@router.get("/centers", response_model=List[schemas.CenterResponse])
def read_centers(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return crud.get_centers(db, skip=skip, limit=limit)


@router.get("/centers/{center_id}", response_model=schemas.CenterResponse)
def read_center(center_id: int, db: Session = Depends(get_db)):
    center = crud.get_center(db, center_id)
    if center is None:
        raise NotFound(f"Center {center_id} not found")
    return center


# --- Providers ---

@router.post("/providers", response_model=schemas.ProviderResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
def create_provider(provider: schemas.ProviderCreate, db: Session = Depends(get_db)):
    return crud.create_provider(db, provider)


@router.get("/providers", response_model=List[schemas.ProviderResponse])
def read_providers(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return crud.get_providers(db, skip=skip, limit=limit)


@router.get("/providers/{provider_id}", response_model=schemas.ProviderResponse)
def read_provider(provider_id: int, db: Session = Depends(get_db)):
    provider = crud.get_provider(db, provider_id)
    if provider is None:
        raise NotFound(f"Provider {provider_id} not found")
    return provider


# --- Provider / center assignments ---

@router.get("/providers/{provider_id}/centers", response_model=List[schemas.AssignmentResponse])
def read_provider_centers(provider_id: int, db: Session = Depends(get_db)):
    """Centers the provider practices at, primary first."""
    return crud.get_assignments_for_provider(db, provider_id)


@router.post("/providers/{provider_id}/centers", response_model=schemas.AssignmentResponse,
             status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def assign_provider_to_center(provider_id: int, assignment: schemas.AssignmentCreate, db: Session = Depends(get_db)):
    if crud.get_provider(db, provider_id) is None:
        raise NotFound(f"Provider {provider_id} not found")
    if crud.get_center(db, assignment.center_id) is None:
        raise NotFound(f"Center {assignment.center_id} not found")
    return crud.assign_provider(db, provider_id, assignment.center_id, is_primary=assignment.is_primary)


@router.delete("/providers/{provider_id}/centers/{center_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(require_admin)])
def unassign_provider_from_center(provider_id: int, center_id: int, db: Session = Depends(get_db)):
    """Removes the link only. Rules and bookings at the center are kept."""
    if not crud.unassign_provider(db, provider_id, center_id):
        raise NotFound(f"Provider {provider_id} is not assigned to center {center_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Home visits ---

@router.put("/providers/{provider_id}/home-visits", response_model=schemas.HomeVisitResponse)
def toggle_home_visits(
    provider_id: int,
    toggle: schemas.HomeVisitToggle,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Enable or disable home visits. Enabling without rules creates a closed week that the
    doctor then opens day by day under the "home-visit" location.
    """
    require_schedule_owner(identity, models.doctor_key(provider_id))
    rules = schedule_service.toggle_home_visits(
        db, provider_id, toggle.enabled, rules=toggle.rules, actor_id=identity.user_id
    )
    return schemas.HomeVisitResponse(
        provider_id=provider_id,
        home_visits_available=toggle.enabled,
        rules=[schemas.ScheduleRuleResponse.model_validate(r) for r in rules],
    )
