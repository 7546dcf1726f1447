# carebook/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, Time, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, Numeric, Index, UniqueConstraint, CheckConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum

# Reserved location key for a provider's home-visit schedule
HOME_VISIT_LOCATION = "home-visit"


class UserRole(str, enum.Enum):
    patient = "patient"
    doctor = "doctor"
    center = "center"
    admin = "admin"


class BookingStatus(str, enum.Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


ACTIVE_STATUSES = (BookingStatus.scheduled, BookingStatus.confirmed)


class BookingType(str, enum.Enum):
    appointment = "appointment"  # clinical appointment with a doctor
    lab_test = "lab_test"  # lab/imaging booking keyed by the center alone


def doctor_key(provider_id: int) -> str:
    return f"doctor:{provider_id}"


def center_key(center_id: int) -> str:
    return f"center:{center_id}"


def location_key_for_center(center_id: int) -> str:
    return str(center_id)


# ==================== Directory Models ====================

class Center(Base):
    """Medical center hosting doctor schedules and, optionally, lab tests"""
    __tablename__ = "centers"
    __table_args__ = (
        Index('idx_centers_active', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    address = Column(Text, nullable=True)
    offers_lab_tests = Column(Boolean, default=False, nullable=False)
    lab_test_fee = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    assignments = relationship("ProviderCenterAssignment", back_populates="center", cascade="all, delete-orphan")


class Provider(Base):
    """A doctor who publishes weekly availability at one or more locations"""
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    specialty = Column(String(100), nullable=True)
    consultation_fee = Column(Numeric(10, 2), nullable=True)
    home_visits_available = Column(Boolean, default=False, nullable=False)
    home_visit_fee = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    assignments = relationship("ProviderCenterAssignment", back_populates="provider", cascade="all, delete-orphan")


class ProviderCenterAssignment(Base):
    """Many-to-many link deciding which centers a provider may publish schedules at"""
    __tablename__ = "provider_centers"
    __table_args__ = (
        UniqueConstraint('provider_id', 'center_id', name='uq_provider_center'),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    center_id = Column(Integer, ForeignKey("centers.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    provider = relationship("Provider", back_populates="assignments")
    center = relationship("Center", back_populates="assignments")


# ==================== Scheduling Models ====================

class ScheduleRule(Base):
    """Recurring weekly availability for one (provider, location, weekday)"""
    __tablename__ = "schedule_rules"
    __table_args__ = (
        Index('idx_rules_provider_location', 'provider_key', 'location_key'),
        UniqueConstraint('provider_key', 'location_key', 'day_of_week', name='uq_rule_provider_location_day'),
        CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_rule_day_of_week'),
        CheckConstraint('slot_duration_minutes > 0', name='ck_rule_positive_duration'),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_key = Column(String(40), nullable=False)
    location_key = Column(String(40), nullable=False)

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    is_available = Column(Boolean, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False, default=30)

    break_start = Column(Time, nullable=True)
    break_end = Column(Time, nullable=True)

    consultation_fee = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Booking(Base):
    """An appointment or lab booking; the persisted truth for slot occupancy"""
    __tablename__ = "bookings"
    __table_args__ = (
        Index('idx_bookings_slot_lookup', 'provider_key', 'location_key', 'booking_date'),
        Index('idx_bookings_patient_date', 'patient_id', 'booking_date'),
        Index('idx_bookings_status', 'status'),
        # No double booking: one active booking per (provider, location, date, time)
        Index(
            'uq_bookings_active_slot',
            'provider_key', 'location_key', 'booking_date', 'booking_time',
            unique=True,
            sqlite_where=text("status IN ('scheduled', 'confirmed')"),
            postgresql_where=text("status IN ('scheduled', 'confirmed')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_type = Column(SQLAlchemyEnum(BookingType, name='booking_type'), nullable=False, default=BookingType.appointment)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True)
    center_id = Column(Integer, ForeignKey("centers.id"), nullable=True)
    provider_key = Column(String(40), nullable=False)
    location_key = Column(String(40), nullable=False)
    patient_id = Column(String(64), nullable=False)

    booking_date = Column(Date, nullable=False)
    booking_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    status = Column(SQLAlchemyEnum(BookingStatus, name='booking_status'), nullable=False, default=BookingStatus.scheduled)
    fee = Column(Numeric(10, 2), nullable=False, default=0)
    lab_test_type = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(64), nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    # Post-hoc annotation; never affects scheduling state
    visit_summary = Column(Text, nullable=True)

    provider = relationship("Provider")
    center = relationship("Center")
