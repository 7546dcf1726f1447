# carebook/schemas.py
import datetime as dt
from datetime import datetime, date, time
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from .models import BookingStatus, BookingType


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


# --- Directory Schemas ---
class CenterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    address: Optional[str] = None
    offers_lab_tests: bool = False
    lab_test_fee: Optional[Decimal] = Field(None, ge=0)


class CenterResponse(BaseSchema):
    id: int
    name: str
    address: Optional[str] = None
    offers_lab_tests: bool
    lab_test_fee: Optional[Decimal] = None
    is_active: bool


class ProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    specialty: Optional[str] = Field(None, max_length=100)
    consultation_fee: Optional[Decimal] = Field(None, ge=0)
    home_visit_fee: Optional[Decimal] = Field(None, ge=0)


class ProviderResponse(BaseSchema):
    id: int
    name: str
    specialty: Optional[str] = None
    consultation_fee: Optional[Decimal] = None
    home_visits_available: bool
    home_visit_fee: Optional[Decimal] = None
    is_active: bool


class AssignmentCreate(BaseModel):
    center_id: int
    is_primary: bool = False


class AssignmentResponse(BaseSchema):
    id: int
    provider_id: int
    center_id: int
    is_primary: bool


# --- Schedule Schemas ---
class DayRuleBase(BaseModel):
    # is_available has no default: availability is never inferred from the presence of hours
    is_available: bool
    start_time: time
    end_time: time
    slot_duration_minutes: int = 30
    break_start: Optional[time] = None
    break_end: Optional[time] = None
    consultation_fee: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class DayRuleCreate(DayRuleBase):
    """A single weekday's rule when the day comes from the URL."""


class ScheduleRuleCreate(DayRuleBase):
    # 0=Sunday..6=Saturday; 7 is accepted as legacy Sunday and normalized by the store
    day_of_week: int


class ScheduleRuleResponse(BaseSchema):
    id: int
    provider_key: str
    location_key: str
    day_of_week: int
    is_available: bool
    start_time: time
    end_time: time
    slot_duration_minutes: int
    break_start: Optional[time] = None
    break_end: Optional[time] = None
    consultation_fee: Optional[Decimal] = None
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None


class HomeVisitToggle(BaseModel):
    enabled: bool
    rules: Optional[List[ScheduleRuleCreate]] = None


class HomeVisitResponse(BaseModel):
    provider_id: int
    home_visits_available: bool
    rules: List[ScheduleRuleResponse] = []


# --- Availability Schemas ---
class SlotResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time: dt.time
    duration_minutes: int = Field(..., alias="durationMinutes")


class SlotDetailResponse(SlotResponse):
    available: bool
    reason: str  # "available" or "booked"


class AvailableDatesResponse(BaseModel):
    provider_key: str
    location_key: str
    start_date: date
    end_date: date
    available_dates: List[date]
    working_days: List[int]


# --- Booking Schemas ---
class BookingCreate(BaseModel):
    provider_id: Optional[int] = None
    center_id: Optional[int] = None
    # Required for doctor bookings: a center id or "home-visit". Lab bookings use center_id.
    location: Optional[str] = None
    booking_date: date
    booking_time: time
    duration_minutes: Optional[int] = Field(None, gt=0)
    fee: Optional[Decimal] = Field(None, ge=0)
    patient_id: Optional[str] = Field(None, max_length=64)
    lab_test_type: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if (self.provider_id is None) == (self.center_id is None):
            raise ValueError("Exactly one of provider_id or center_id must be given")
        if self.provider_id is not None and not self.location:
            raise ValueError("location is required for doctor appointments")
        return self


class BookingReschedule(BaseModel):
    new_date: date
    new_time: time


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingAnnotate(BaseModel):
    visit_summary: str = Field(..., min_length=1)

    @field_validator("visit_summary")
    @classmethod
    def strip_summary(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("visit_summary cannot be blank")
        return v


class BookingResponse(BaseSchema):
    id: int
    booking_type: BookingType
    provider_id: Optional[int] = None
    center_id: Optional[int] = None
    provider_key: str
    location_key: str
    patient_id: str
    booking_date: date
    booking_time: time
    duration_minutes: int
    status: BookingStatus
    fee: Decimal
    lab_test_type: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    reschedule_count: int = 0
    visit_summary: Optional[str] = None


# --- Health ---
class HealthResponse(BaseModel):
    status: str
    database: str
    timestamp: datetime
