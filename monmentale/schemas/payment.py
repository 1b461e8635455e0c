from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional

from monmentale.schemas.common import (
    CamelModel,
    PaymentStatus,
    Currency,
    PaymentMethod,
    RefundReason,
)

class PaymentIntentCreate(CamelModel):
    amount: float = Field(gt=0)
    appointment_id: UUID
    currency: Optional[Currency] = None
    payment_method: PaymentMethod = "card"

class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str
    payment_id: UUID

class RefundCreate(CamelModel):
    amount: Optional[float] = Field(default=None, gt=0)
    reason: RefundReason = "requested_by_customer"

class StripeInfo(CamelModel):
    payment_intent_id: Optional[str] = None
    charge_id: Optional[str] = None
    transfer_id: Optional[str] = None
    refund_id: Optional[str] = None
    client_secret: Optional[str] = None

class Billing(CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None
    address: Optional[dict] = None

class Refund(CamelModel):
    amount: Optional[float] = None
    reason: Optional[RefundReason] = None
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[UUID] = None

class PaymentMetadata(CamelModel):
    appointment_type: Optional[str] = None
    practitioner_specialization: Optional[str] = None
    patient_id: Optional[str] = None
    practitioner_id: Optional[str] = None

class PaymentResponse(CamelModel):
    id: UUID = Field(alias="_id")
    appointment: UUID
    patient: UUID
    practitioner: UUID
    amount: float
    platform_fee: float
    practitioner_amount: float
    currency: Currency
    status: PaymentStatus
    payment_method: PaymentMethod
    stripe: StripeInfo
    billing: Billing
    refund: Optional[Refund] = None
    metadata: PaymentMetadata
    created_at: datetime
    updated_at: datetime

class PaymentEnvelope(CamelModel):
    message: str
    payment: PaymentResponse

class ConnectedAccountResponse(CamelModel):
    account_id: str
    onboarding_url: Optional[str] = None

class AccountStatusResponse(CamelModel):
    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    requirements: Optional[dict] = None

class WebhookAck(BaseModel):
    received: bool = True
