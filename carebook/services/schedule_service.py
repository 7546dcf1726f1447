# carebook/services/schedule_service.py
# Weekly schedule edits and the home-visit toggle, with location checks and events.
# Existing bookings are never touched by anything in here.
from datetime import time
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..exceptions import NotFound
from .availability_service import ensure_location_access
from .event_sink import HOME_VISITS_TOGGLED, SCHEDULE_UPDATED, event_sink

logger = structlog.get_logger(__name__)


def get_schedule(db: Session, provider_key: str, location_key: str) -> List[models.ScheduleRule]:
    ensure_location_access(db, provider_key, location_key)
    return crud.get_rules(db, provider_key, location_key)


def update_schedule(
    db: Session,
    provider_key: str,
    location_key: str,
    rules: List[schemas.ScheduleRuleCreate],
    actor_id: Optional[str] = None
) -> List[models.ScheduleRule]:
    """Replace the whole week for (provider, location)."""
    ensure_location_access(db, provider_key, location_key)
    saved = crud.put_rules(db, provider_key, location_key, rules)
    event_sink.emit(
        SCHEDULE_UPDATED,
        {"provider_key": provider_key, "location_key": location_key, "days": [r.day_of_week for r in saved]},
        actor_id=actor_id,
    )
    return saved


def put_day(
    db: Session,
    provider_key: str,
    location_key: str,
    day_of_week: int,
    rule: schemas.DayRuleCreate,
    actor_id: Optional[str] = None
) -> models.ScheduleRule:
    ensure_location_access(db, provider_key, location_key)
    saved = crud.put_rule(db, provider_key, location_key, day_of_week, rule)
    event_sink.emit(
        SCHEDULE_UPDATED,
        {"provider_key": provider_key, "location_key": location_key, "days": [saved.day_of_week]},
        actor_id=actor_id,
    )
    return saved


def delete_day(db: Session, provider_key: str, location_key: str, day_of_week: int, actor_id: Optional[str] = None) -> None:
    ensure_location_access(db, provider_key, location_key)
    day = crud.normalize_day_of_week(day_of_week)
    if not crud.delete_rule(db, provider_key, location_key, day):
        raise NotFound(f"No rule for {crud.DAY_NAMES[day]} at this location")
    event_sink.emit(
        SCHEDULE_UPDATED,
        {"provider_key": provider_key, "location_key": location_key, "days": [day], "deleted": True},
        actor_id=actor_id,
    )


def closed_week() -> List[schemas.ScheduleRuleCreate]:
    """Seven explicit unavailable days; the provider opens them up afterwards."""
    return [
        schemas.ScheduleRuleCreate(
            day_of_week=day, is_available=False, start_time=time(9, 0), end_time=time(17, 0)
        )
        for day in range(7)
    ]


def toggle_home_visits(
    db: Session,
    provider_id: int,
    enabled: bool,
    rules: Optional[List[schemas.ScheduleRuleCreate]] = None,
    actor_id: Optional[str] = None
) -> List[models.ScheduleRule]:
    """
    Enable or disable the provider's home-visit location. Enabling creates the home-visit
    rule set (the supplied rules, or a closed week); disabling removes it. Center rules
    are left alone.
    """
    provider = crud.get_provider(db, provider_id)
    if provider is None or not provider.is_active:
        raise NotFound(f"Provider {provider_id} not found")

    if enabled:
        rules = rules or closed_week()
    saved = crud.set_home_visits(db, provider, enabled, rules or [])
    logger.info("home_visits.updated", provider_id=provider_id, enabled=enabled, rules=len(saved))
    event_sink.emit(
        HOME_VISITS_TOGGLED,
        {"provider_id": provider_id, "enabled": enabled, "days": [r.day_of_week for r in saved]},
        actor_id=actor_id,
    )
    return saved
