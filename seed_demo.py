import os
import sys
from datetime import time

from sqlalchemy.orm import Session

# Ensure carebook package import
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from carebook.database import SessionLocal, create_tables
from carebook import crud, models, schemas


def get_env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def weekday_rules():
    """Monday to Friday 09:00-17:00, 30 minute slots, lunch 13:00-14:00. Weekends closed."""
    rules = []
    for day in range(7):
        rules.append(schemas.ScheduleRuleCreate(
            day_of_week=day,
            is_available=day not in (0, 6),
            start_time=time(9, 0),
            end_time=time(17, 0),
            slot_duration_minutes=30,
            break_start=time(13, 0),
            break_end=time(14, 0),
        ))
    return rules


def seed(db: Session):
    center_name = get_env("DEMO_CENTER_NAME", "CareBook Central Clinic")
    provider_name = get_env("DEMO_PROVIDER_NAME", "Dr. Demo")

    center = db.query(models.Center).filter(models.Center.name == center_name).first()
    if center:
        action = "exists"
    else:
        center = crud.create_center(db, schemas.CenterCreate(
            name=center_name, address="1 Demo Street", offers_lab_tests=True, lab_test_fee=25
        ))
        action = "created"
    print(f"Center {action}: id={center.id}, name='{center.name}'")

    provider = db.query(models.Provider).filter(models.Provider.name == provider_name).first()
    if not provider:
        provider = crud.create_provider(db, schemas.ProviderCreate(
            name=provider_name, specialty="General Medicine", consultation_fee=50, home_visit_fee=90
        ))
    print(f"Provider ready: id={provider.id}, name='{provider.name}'")

    crud.assign_provider(db, provider.id, center.id, is_primary=True)
    location_key = models.location_key_for_center(center.id)
    rules = crud.put_rules(db, models.doctor_key(provider.id), location_key, weekday_rules())
    crud.put_rules(db, models.center_key(center.id), location_key, [
        schemas.ScheduleRuleCreate(
            day_of_week=day, is_available=True, start_time=time(7, 30), end_time=time(11, 0), slot_duration_minutes=15
        )
        for day in range(1, 7)
    ])
    print(f"Weekly schedule written: {sum(1 for r in rules if r.is_available)} working days at center {center.id}")


def main():
    create_tables()
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
