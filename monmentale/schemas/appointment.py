from pydantic import Field, field_validator, model_validator
from uuid import UUID
from datetime import date as date_type, datetime
from typing import Optional, List

from monmentale.core.utils import parse_time_of_day, minutes_of_day
from monmentale.schemas.common import (
    CamelModel,
    Coordinates,
    AppointmentType,
    AppointmentStatus,
    AppointmentPaymentStatus,
    AppointmentPaymentMethod,
    LocationType,
    DocumentType,
)

class TimeSlot(CamelModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def check_time_format(cls, value: str) -> str:
        return parse_time_of_day(value)

    @model_validator(mode="after")
    def check_order(self):
        if minutes_of_day(self.start) >= minutes_of_day(self.end):
            raise ValueError("timeSlot.start must be before timeSlot.end")
        return self

    @property
    def minutes(self) -> int:
        return minutes_of_day(self.end) - minutes_of_day(self.start)

class LocationAddress(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    coordinates: Optional[Coordinates] = None

class Location(CamelModel):
    type: LocationType
    address: Optional[LocationAddress] = None
    meeting_link: Optional[str] = None

class Notes(CamelModel):
    patient: Optional[str] = Field(default=None, max_length=1000)
    practitioner: Optional[str] = Field(default=None, max_length=1000)

class AppointmentDocument(CamelModel):
    type: Optional[DocumentType] = None
    name: Optional[str] = None
    url: Optional[str] = None
    uploaded_by: Optional[UUID] = None
    uploaded_at: Optional[datetime] = None

class FollowUp(CamelModel):
    is_required: bool = False
    suggested_date: Optional[date_type] = None
    notes: Optional[str] = None

class PaymentRequest(CamelModel):
    amount: Optional[float] = Field(default=None, ge=0)
    method: Optional[AppointmentPaymentMethod] = None

class AppointmentCreate(CamelModel):
    patient: Optional[UUID] = None
    practitioner: UUID
    appointment_type: AppointmentType
    date: date_type
    duration: Optional[int] = Field(default=None, ge=15, le=120)
    time_slot: TimeSlot
    location: Optional[Location] = None
    reason: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[Notes] = None
    documents: List[AppointmentDocument] = []
    payment: Optional[PaymentRequest] = None

    @model_validator(mode="after")
    def check_window_length(self):
        if not 15 <= self.time_slot.minutes <= 120:
            raise ValueError("Appointment window must last between 15 and 120 minutes")
        if self.duration is not None and self.duration != self.time_slot.minutes:
            raise ValueError("duration must match the timeSlot length")
        return self

class CancellationRequest(CamelModel):
    reason: Optional[str] = None

class AppointmentUpdate(CamelModel):
    appointment_type: Optional[AppointmentType] = None
    status: Optional[AppointmentStatus] = None
    date: Optional[date_type] = None
    duration: Optional[int] = Field(default=None, ge=15, le=120)
    time_slot: Optional[TimeSlot] = None
    location: Optional[Location] = None
    reason: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[Notes] = None
    documents: Optional[List[AppointmentDocument]] = None
    follow_up: Optional[FollowUp] = None
    payment: Optional[PaymentRequest] = None
    cancellation: Optional[CancellationRequest] = None

    @model_validator(mode="after")
    def check_window_length(self):
        if self.time_slot is None:
            return self
        if not 15 <= self.time_slot.minutes <= 120:
            raise ValueError("Appointment window must last between 15 and 120 minutes")
        if self.duration is not None and self.duration != self.time_slot.minutes:
            raise ValueError("duration must match the timeSlot length")
        return self

class PaymentInfo(CamelModel):
    amount: float
    status: AppointmentPaymentStatus
    method: Optional[AppointmentPaymentMethod] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None

class Cancellation(CamelModel):
    cancelled_by: Optional[UUID] = None
    reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[float] = None

class AppointmentResponse(CamelModel):
    id: UUID = Field(alias="_id")
    patient: UUID
    practitioner: UUID
    appointment_type: AppointmentType
    status: AppointmentStatus
    date: date_type
    duration: int
    time_slot: TimeSlot
    location: Optional[Location] = None
    reason: Optional[str] = None
    notes: Notes
    documents: List[AppointmentDocument] = []
    payment: PaymentInfo
    cancellation: Optional[Cancellation] = None
    follow_up: Optional[FollowUp] = None
    created_at: datetime
    updated_at: datetime

class AppointmentEnvelope(CamelModel):
    message: str
    appointment: AppointmentResponse

class ConflictCheckResponse(CamelModel):
    available: bool
    conflicts: List[AppointmentResponse]
