# tests/conftest.py
import os
import tempfile
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace

os.environ["ENVIRONMENT"] = "testing"
os.environ["CLINIC_TIMEZONE"] = "UTC"
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "carebook_unused.db")

import pytest
from sqlalchemy.orm import sessionmaker

from carebook import crud, models, schemas
from carebook.database import build_engine, create_tables

# Monday 2025-03-10 is the reference clinic day throughout the suite
MONDAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def day_rule(day_of_week=1, start=time(9, 0), end=time(17, 0), duration=30,
             break_start=time(12, 0), break_end=time(13, 0), **extra):
    return schemas.ScheduleRuleCreate(
        day_of_week=day_of_week,
        is_available=extra.pop("is_available", True),
        start_time=start,
        end_time=end,
        slot_duration_minutes=duration,
        break_start=break_start,
        break_end=break_end,
        **extra,
    )


def upcoming_monday(weeks_ahead: int = 2) -> date:
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7 * weeks_ahead)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'carebook_test.db'}")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    """A doctor assigned to one center with a Monday 09:00-17:00 schedule, and a lab at the same center."""
    center = crud.create_center(db, schemas.CenterCreate(
        name="Central Clinic", address="1 Main St", offers_lab_tests=True, lab_test_fee=40
    ))
    other_center = crud.create_center(db, schemas.CenterCreate(name="Riverside Clinic"))
    provider = crud.create_provider(db, schemas.ProviderCreate(
        name="Dr. Rao", specialty="General Medicine", consultation_fee=100, home_visit_fee=150
    ))
    crud.assign_provider(db, provider.id, center.id, is_primary=True)

    provider_key = models.doctor_key(provider.id)
    location_key = models.location_key_for_center(center.id)
    crud.put_rules(db, provider_key, location_key, [day_rule()])

    lab_key = models.center_key(center.id)
    crud.put_rules(db, lab_key, location_key, [
        day_rule(start=time(8, 0), end=time(12, 0), duration=15, break_start=None, break_end=None)
    ])

    return SimpleNamespace(
        provider_id=provider.id,
        center_id=center.id,
        other_center_id=other_center.id,
        provider_key=provider_key,
        location_key=location_key,
        lab_key=lab_key,
    )


@pytest.fixture
def events():
    """Collect every event published while the test runs."""
    from carebook.services.event_sink import event_sink

    received = []

    def collect(event_type, message):
        received.append((event_type, message))

    event_sink.subscribe(collect)
    yield received
    event_sink.unsubscribe(collect)
