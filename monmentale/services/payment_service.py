from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.concurrency import run_in_threadpool

from monmentale.core.config import settings
from monmentale.core.logger import logger
from monmentale.db.models import Appointment, Payment, Practitioner, User
from monmentale.schemas.payment import (
    Billing,
    PaymentIntentCreate,
    PaymentMetadata,
    PaymentResponse,
    Refund,
    RefundCreate,
    StripeInfo,
)
from monmentale.services.settlement import split_amount, to_cents
from monmentale.services.stripe_service import PaymentResult, StripeService

ALLOWED_TRANSITIONS = {
    "pending": {"processing", "failed", "cancelled"},
    "processing": {"succeeded", "failed", "cancelled"},
    "succeeded": {"refunded"},
    # A gateway-confirmed success after a failed attempt still settles
    "failed": {"succeeded"},
    "cancelled": set(),
    "refunded": set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def check_transition(current: str, target: str):
    if not can_transition(current, target):
        raise HTTPException(
            status_code=409,
            detail=f"Invalid payment status transition from {current} to {target}",
        )


def _field(obj: Any, key: str) -> Any:
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def construct_response(payment: Payment) -> PaymentResponse:
    refund = None
    if payment.refunded_at is not None:
        refund = Refund(
            amount=float(payment.refund_amount) if payment.refund_amount is not None else None,
            reason=payment.refund_reason,
            refunded_at=payment.refunded_at,
            refunded_by=payment.refunded_by,
        )

    return PaymentResponse(
        id=payment.id,
        appointment=payment.appointment_id,
        patient=payment.patient_id,
        practitioner=payment.practitioner_id,
        amount=float(payment.amount),
        platform_fee=float(payment.platform_fee),
        practitioner_amount=float(payment.practitioner_amount),
        currency=payment.currency,
        status=payment.status,
        payment_method=payment.payment_method,
        stripe=StripeInfo(
            payment_intent_id=payment.stripe_payment_intent_id,
            charge_id=payment.stripe_charge_id,
            transfer_id=payment.stripe_transfer_id,
            refund_id=payment.stripe_refund_id,
        ),
        billing=Billing.model_validate(payment.billing or {}),
        refund=refund,
        metadata=PaymentMetadata.model_validate(payment.meta or {}),
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


class PaymentService:
    """Payment records and their settlement through the injected gateway."""

    def __init__(self, session: AsyncSession, gateway: StripeService):
        self.session = session
        self.gateway = gateway

    async def get_payment(self, payment_id: UUID) -> Payment:
        payment = await self.session.get(Payment, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return payment

    async def get_appointment(self, appointment_id: UUID) -> Appointment:
        appointment = await self.session.get(Appointment, appointment_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    async def get_practitioner(self, practitioner_id: UUID) -> Optional[Practitioner]:
        return await self.session.get(Practitioner, practitioner_id)

    async def get_practitioner_for_user(self, user: User) -> Practitioner:
        stmt = select(Practitioner).where(Practitioner.user_id == user.id)
        practitioner = (await self.session.execute(stmt)).scalars().first()
        if not practitioner:
            raise HTTPException(status_code=404, detail="Practitioner profile not found")
        return practitioner

    async def get_payment_by_intent(self, payment_intent_id: str) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.stripe_payment_intent_id == payment_intent_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _save(self, *records):
        for record in records:
            record.updated_at = datetime.utcnow()
            self.session.add(record)
        await self.session.commit()
        for record in records:
            await self.session.refresh(record)

    def _set_status(self, payment: Payment, target: str):
        check_transition(payment.status, target)
        logger.info(f"Payment {payment.id}: {payment.status} -> {target}")
        payment.status = target

    async def create_payment_intent(self, data: PaymentIntentCreate, appointment: Appointment) -> tuple[Payment, PaymentResult]:
        """
        Record a pending payment for the appointment and open a gateway intent.

        On gateway failure the payment is marked failed and the failed result is
        returned for the caller to surface.
        """
        if appointment.status in ("cancelled", "no_show"):
            raise HTTPException(status_code=409, detail=f"Cannot pay for a {appointment.status} appointment")

        stmt = select(Payment).where(
            Payment.appointment_id == appointment.id,
            Payment.status.in_(("succeeded", "refunded")),
        )
        if (await self.session.execute(stmt)).scalars().first():
            raise HTTPException(status_code=409, detail="Appointment already paid")

        practitioner = await self.get_practitioner(appointment.practitioner_id)
        patient = await self.session.get(User, appointment.patient_id)
        settlement = split_amount(data.amount)
        currency = data.currency or settings.DEFAULT_CURRENCY
        profile = (patient.profile or {}) if patient else {}

        payment = Payment(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            practitioner_id=appointment.practitioner_id,
            amount=settlement.amount,
            platform_fee=settlement.platform_fee,
            practitioner_amount=settlement.practitioner_amount,
            currency=currency,
            status="pending",
            payment_method=data.payment_method,
            billing={
                "email": patient.email if patient else None,
                "name": " ".join(filter(None, [profile.get("firstName"), profile.get("lastName")])) or None,
            },
            meta={
                "appointmentType": appointment.appointment_type,
                "practitionerSpecialization": (
                    practitioner.specializations[0] if practitioner and practitioner.specializations else "psychologie"
                ),
                "patientId": str(appointment.patient_id),
                "practitionerId": str(appointment.practitioner_id),
            },
        )
        await self._save(payment)

        result = await run_in_threadpool(
            self.gateway.create_payment_intent,
            settlement.amount,
            currency,
            {"appointmentId": str(appointment.id), "paymentId": str(payment.id)},
        )
        if not result.success:
            self._set_status(payment, "failed")
            await self._save(payment)
            return payment, result

        payment.stripe_payment_intent_id = result.data["payment_intent_id"]
        payment.stripe_client_secret = result.data["client_secret"]
        self._set_status(payment, "processing")
        appointment.payment_transaction_id = payment.stripe_payment_intent_id
        await self._save(payment, appointment)
        return payment, result

    async def handle_event(self, event: Any) -> None:
        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        logger.info(f"Webhook event {_field(event, 'id')} received: {event_type}")

        if event_type == "payment_intent.succeeded":
            await self.handle_payment_succeeded(obj)
        elif event_type == "payment_intent.payment_failed":
            await self.handle_payment_closed(obj, "failed")
        elif event_type == "payment_intent.canceled":
            await self.handle_payment_closed(obj, "cancelled")
        elif event_type == "account.updated":
            await self.handle_account_updated(obj)
        else:
            logger.info(f"Unhandled webhook event: {event_type}")

    async def handle_payment_succeeded(self, intent: Any) -> Optional[Payment]:
        intent_id = _field(intent, "id")
        payment = await self.get_payment_by_intent(intent_id)
        if not payment:
            logger.warning(f"No payment recorded for intent {intent_id}")
            return None
        if payment.status in ("succeeded", "refunded"):
            logger.info(f"Payment {payment.id} already settled, ignoring redelivered event")
            return payment
        if not can_transition(payment.status, "succeeded"):
            logger.warning(f"Payment {payment.id} is {payment.status}, cannot mark succeeded")
            return payment

        charge_id = _field(intent, "latest_charge")
        if not charge_id:
            # Older event payloads carry no charge; ask the gateway
            confirmed = await run_in_threadpool(self.gateway.confirm_payment, intent_id)
            if confirmed.success:
                charge_id = confirmed.data["charge_id"]

        self._set_status(payment, "succeeded")
        payment.stripe_charge_id = charge_id

        appointment = await self.session.get(Appointment, payment.appointment_id)
        records = [payment]
        if appointment:
            appointment.payment_status = "paid"
            appointment.payment_transaction_id = intent_id
            appointment.paid_at = datetime.utcnow()
            records.append(appointment)
        # Persist the settlement before moving funds so a redelivery is a no-op
        await self._save(*records)

        await self.transfer_to_practitioner(payment)
        return payment

    async def transfer_to_practitioner(self, payment: Payment) -> Optional[PaymentResult]:
        practitioner = await self.get_practitioner(payment.practitioner_id)
        if not practitioner or not practitioner.stripe_account_id:
            logger.warning(f"Practitioner {payment.practitioner_id} has no connected account, transfer deferred")
            return None

        result = await run_in_threadpool(
            self.gateway.create_transfer,
            practitioner.stripe_account_id,
            payment.practitioner_amount,
            payment.stripe_payment_intent_id,
            payment.currency,
        )
        if result.success:
            payment.stripe_transfer_id = result.data["transfer_id"]
            await self._save(payment)
        return result

    async def handle_payment_closed(self, intent: Any, target: str) -> Optional[Payment]:
        intent_id = _field(intent, "id")
        payment = await self.get_payment_by_intent(intent_id)
        if not payment:
            logger.warning(f"No payment recorded for intent {intent_id}")
            return None
        if payment.status == target or not can_transition(payment.status, target):
            logger.info(f"Payment {payment.id} is {payment.status}, ignoring {target} event")
            return payment

        self._set_status(payment, target)
        records = [payment]
        if target == "failed":
            appointment = await self.session.get(Appointment, payment.appointment_id)
            if appointment and appointment.payment_status == "pending":
                appointment.payment_status = "failed"
                records.append(appointment)
        await self._save(*records)
        return payment

    async def handle_account_updated(self, account: Any) -> Optional[Practitioner]:
        account_id = _field(account, "id")
        stmt = select(Practitioner).where(Practitioner.stripe_account_id == account_id)
        practitioner = (await self.session.execute(stmt)).scalars().first()
        if not practitioner:
            logger.warning(f"No practitioner linked to account {account_id}")
            return None

        practitioner.charges_enabled = bool(_field(account, "charges_enabled"))
        practitioner.payouts_enabled = bool(_field(account, "payouts_enabled"))
        await self._save(practitioner)
        return practitioner

    async def refund_payment(self, payment: Payment, data: RefundCreate, user: User) -> tuple[Payment, PaymentResult]:
        if payment.status != "succeeded":
            raise HTTPException(status_code=409, detail="Only succeeded payments can be refunded")
        if not payment.stripe_charge_id:
            raise HTTPException(status_code=409, detail="Payment has no charge to refund")

        amount = to_cents(data.amount) if data.amount is not None else payment.amount
        if amount > payment.amount:
            raise HTTPException(status_code=400, detail="Refund amount exceeds the original amount")

        result = await run_in_threadpool(
            self.gateway.create_refund,
            payment.stripe_charge_id,
            amount,
            data.reason,
        )
        if not result.success:
            return payment, result

        self._set_status(payment, "refunded")
        payment.stripe_refund_id = result.data["refund_id"]
        payment.refund_amount = Decimal(amount)
        payment.refund_reason = data.reason
        payment.refunded_at = datetime.utcnow()
        payment.refunded_by = user.id

        records = [payment]
        appointment = await self.session.get(Appointment, payment.appointment_id)
        if appointment:
            appointment.payment_status = "refunded"
            if appointment.status == "cancelled":
                appointment.refund_amount = Decimal(amount)
            records.append(appointment)
        await self._save(*records)
        return payment, result

    async def create_connected_account(self, practitioner: Practitioner, user: User) -> PaymentResult:
        if practitioner.stripe_account_id:
            return PaymentResult(success=True, data={"account_id": practitioner.stripe_account_id})

        profile = user.profile or {}
        result = await run_in_threadpool(
            self.gateway.create_connected_account,
            user.email,
            profile.get("firstName"),
            profile.get("lastName"),
            str(practitioner.id),
            practitioner.specializations or [],
        )
        if result.success:
            practitioner.stripe_account_id = result.data["account_id"]
            await self._save(practitioner)
        return result

    async def refresh_account_status(self, practitioner: Practitioner) -> PaymentResult:
        if not practitioner.stripe_account_id:
            raise HTTPException(status_code=404, detail="No connected account for this practitioner")

        result = await run_in_threadpool(self.gateway.get_account_status, practitioner.stripe_account_id)
        if result.success:
            practitioner.charges_enabled = result.data["charges_enabled"]
            practitioner.payouts_enabled = result.data["payouts_enabled"]
            await self._save(practitioner)
        return result
