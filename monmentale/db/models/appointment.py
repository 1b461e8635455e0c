from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional, List
from datetime import date as date_type, datetime
from decimal import Decimal
from uuid import UUID, uuid4

ACTIVE_STATUSES = ("scheduled", "confirmed", "in_progress")

class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    patient_id: UUID = Field(foreign_key="users.id", index=True)
    practitioner_id: UUID = Field(foreign_key="practitioners.id", index=True)
    appointment_type: str # presentiel, teleconsultation, domicile
    status: str = Field(default="scheduled", index=True) # scheduled, confirmed, in_progress, completed, cancelled, no_show
    date: date_type = Field(index=True)
    duration: int
    # HH:MM, zero-padded so lexical order is chronological
    start_time: str
    end_time: str
    location: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    reason: Optional[str] = None
    patient_notes: Optional[str] = None
    practitioner_notes: Optional[str] = None
    documents: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    price: Decimal = Field(max_digits=10, decimal_places=2)
    payment_status: str = Field(default="pending") # pending, paid, failed, refunded
    payment_method: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None

    cancelled_by: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    follow_up: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
