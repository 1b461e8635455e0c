from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from monmentale.api.deps import get_current_user, get_stripe_service
from monmentale.core import permissions
from monmentale.core.logger import logger
from monmentale.db.models import User
from monmentale.db.session import get_session
from monmentale.schemas.payment import (
    AccountStatusResponse,
    ConnectedAccountResponse,
    PaymentEnvelope,
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentResponse,
    RefundCreate,
    WebhookAck,
)
from monmentale.services.payment_service import PaymentService, construct_response
from monmentale.services.stripe_service import PaymentResult, StripeService

router = APIRouter()

async def get_payment_service(
    session: AsyncSession = Depends(get_session),
    gateway: StripeService = Depends(get_stripe_service),
) -> PaymentService:
    return PaymentService(session, gateway)

def gateway_error(result: PaymentResult) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"detail": result.error or "Payment gateway error", "retryable": result.retryable},
    )

@router.post("/create-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    data: PaymentIntentCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    appointment = await service.get_appointment(data.appointment_id)
    permissions.check_payment_create(current_user, appointment)

    payment, result = await service.create_payment_intent(data, appointment)
    if not result.success:
        return gateway_error(result)
    return PaymentIntentResponse(
        client_secret=payment.stripe_client_secret,
        payment_intent_id=payment.stripe_payment_intent_id,
        payment_id=payment.id,
    )

@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    payload = await request.body()
    result = service.gateway.verify_webhook(payload, request.headers.get("stripe-signature"))
    if not result.success:
        logger.error(f"Webhook rejected: {result.error}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {result.error}")

    await service.handle_event(result.data["event"])
    return WebhookAck()

@router.post("/connect/account", response_model=ConnectedAccountResponse)
async def create_connected_account(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    permissions.require_practitioner_role(current_user)
    practitioner = await service.get_practitioner_for_user(current_user)

    result = await service.create_connected_account(practitioner, current_user)
    if not result.success:
        return gateway_error(result)
    return ConnectedAccountResponse(
        account_id=result.data["account_id"],
        onboarding_url=result.data.get("onboarding_url"),
    )

@router.get("/connect/status", response_model=AccountStatusResponse)
async def read_account_status(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    permissions.require_practitioner_role(current_user)
    practitioner = await service.get_practitioner_for_user(current_user)

    result = await service.refresh_account_status(practitioner)
    if not result.success:
        return gateway_error(result)
    return AccountStatusResponse(**result.data)

@router.get("/{payment_id}", response_model=PaymentResponse)
async def read_payment(
    payment_id: UUID,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id)
    practitioner = await service.get_practitioner(payment.practitioner_id)
    permissions.check_payment_read(current_user, payment, practitioner)
    return construct_response(payment)

@router.post("/{payment_id}/refund", response_model=PaymentEnvelope)
async def refund_payment(
    payment_id: UUID,
    data: RefundCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id)
    practitioner = await service.get_practitioner(payment.practitioner_id)
    permissions.check_payment_refund(current_user, practitioner)

    payment, result = await service.refund_payment(payment, data, current_user)
    if not result.success:
        return gateway_error(result)
    return PaymentEnvelope(message="Refund processed successfully", payment=construct_response(payment))
