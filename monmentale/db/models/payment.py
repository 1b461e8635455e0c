from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

class Payment(SQLModel, table=True):
    __tablename__ = "payments"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    appointment_id: UUID = Field(foreign_key="appointments.id", index=True)
    patient_id: UUID = Field(foreign_key="users.id", index=True)
    practitioner_id: UUID = Field(foreign_key="practitioners.id", index=True)
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    platform_fee: Decimal = Field(max_digits=10, decimal_places=2)
    practitioner_amount: Decimal = Field(max_digits=10, decimal_places=2)
    currency: str = Field(default="eur") # eur, usd, gbp
    status: str = Field(default="pending", index=True) # pending, processing, succeeded, failed, cancelled, refunded
    payment_method: str = Field(default="card") # card, bank_transfer, apple_pay, google_pay

    stripe_payment_intent_id: Optional[str] = Field(default=None, unique=True, index=True)
    stripe_charge_id: Optional[str] = None
    stripe_transfer_id: Optional[str] = None
    stripe_refund_id: Optional[str] = None
    stripe_client_secret: Optional[str] = None

    # {"email", "name", "address": {...}}
    billing: dict = Field(default_factory=dict, sa_column=Column(JSON))

    refund_amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    refund_reason: Optional[str] = None # duplicate, fraudulent, requested_by_customer
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[UUID] = None

    meta: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
