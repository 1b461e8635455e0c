import json
from decimal import Decimal
from uuid import UUID

import pytest
import pytest_asyncio

from monmentale.db.models import Appointment, Payment, Practitioner
from monmentale.services.payment_service import can_transition
from monmentale.services.stripe_service import PaymentResult

def intent_event(event_type, intent_id="pi_test_123", **fields):
    return {
        "id": f"evt_{event_type}",
        "type": event_type,
        "data": {"object": {"id": intent_id, **fields}},
    }

@pytest_asyncio.fixture
async def appointment_id(book, patient, practitioner):
    response = await book(patient, practitioner)
    return response.json()["appointment"]["_id"]

@pytest.fixture
def create_intent(client, auth_headers, patient):
    async def _create_intent(appointment_id, amount=60, user=None):
        return await client.post(
            "/api/payments/create-intent",
            json={"amount": amount, "appointmentId": appointment_id},
            headers=await auth_headers(user or patient),
        )
    return _create_intent

@pytest.fixture
def send_webhook(client):
    async def _send_webhook(event, signature="valid"):
        return await client.post(
            "/api/payments/webhook",
            content=json.dumps(event),
            headers={"stripe-signature": signature, "content-type": "application/json"},
        )
    return _send_webhook

@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("pending", "processing", True),
        ("processing", "succeeded", True),
        ("processing", "failed", True),
        ("succeeded", "refunded", True),
        ("pending", "succeeded", False),
        ("failed", "succeeded", True),
        ("failed", "processing", False),
        ("refunded", "succeeded", False),
        ("succeeded", "pending", False),
    ],
)
def test_payment_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed

@pytest.mark.asyncio
async def test_create_intent(create_intent, appointment_id, gateway, session_factory):
    response = await create_intent(appointment_id)
    assert response.status_code == 200
    body = response.json()
    assert body["clientSecret"] == "pi_test_123_secret_abc"
    assert body["paymentIntentId"] == "pi_test_123"

    args = gateway.create_payment_intent.call_args.args
    assert args[0] == Decimal("60.00")
    assert args[1] == "eur"
    assert args[2]["appointmentId"] == appointment_id

    async with session_factory() as session:
        payment = await session.get(Payment, UUID(body["paymentId"]))
        assert payment.status == "processing"
        assert payment.platform_fee == Decimal("3.00")
        assert payment.practitioner_amount == Decimal("57.00")
        assert payment.stripe_payment_intent_id == "pi_test_123"

@pytest.mark.asyncio
async def test_create_intent_gateway_failure(create_intent, appointment_id, gateway, session_factory):
    gateway.create_payment_intent.return_value = PaymentResult(
        success=False, error="Request timed out", retryable=True
    )

    response = await create_intent(appointment_id)
    assert response.status_code == 502
    assert response.json() == {"detail": "Request timed out", "retryable": True}

    async with session_factory() as session:
        appointment = await session.get(Appointment, UUID(appointment_id))
        assert appointment.payment_status == "pending"

@pytest.mark.asyncio
async def test_create_intent_rejects_invalid_amount(create_intent, appointment_id):
    assert (await create_intent(appointment_id, amount=0)).status_code == 422
    assert (await create_intent(appointment_id, amount=-5)).status_code == 422

@pytest.mark.asyncio
async def test_only_the_patient_pays(create_intent, appointment_id, other_patient):
    response = await create_intent(appointment_id, user=other_patient)
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_booking_to_settlement(create_intent, send_webhook, appointment_id, gateway, client, auth_headers, patient, session_factory):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]

    event = intent_event("payment_intent.succeeded", latest_charge="ch_test_123")
    response = await send_webhook(event)
    assert response.status_code == 200
    assert response.json() == {"received": True}

    gateway.create_transfer.assert_called_once_with("acct_test_123", Decimal("57.00"), "pi_test_123", "eur")

    response = await client.get(f"/api/payments/{payment_id}", headers=await auth_headers(patient))
    assert response.status_code == 200
    payment = response.json()
    assert payment["status"] == "succeeded"
    assert payment["amount"] == 60.0
    assert payment["platformFee"] == 3.0
    assert payment["practitionerAmount"] == 57.0
    assert payment["stripe"]["chargeId"] == "ch_test_123"
    assert payment["stripe"]["transferId"] == "tr_test_123"

    async with session_factory() as session:
        appointment = await session.get(Appointment, UUID(appointment_id))
        assert appointment.payment_status == "paid"
        assert appointment.payment_transaction_id == "pi_test_123"
        assert appointment.paid_at is not None

@pytest.mark.asyncio
async def test_redelivered_success_transfers_once(create_intent, send_webhook, appointment_id, gateway):
    await create_intent(appointment_id)
    event = intent_event("payment_intent.succeeded", latest_charge="ch_test_123")

    assert (await send_webhook(event)).status_code == 200
    assert (await send_webhook(event)).status_code == 200

    assert gateway.create_transfer.call_count == 1

@pytest.mark.asyncio
async def test_transfer_failure_keeps_payment_succeeded(create_intent, send_webhook, appointment_id, gateway, session_factory):
    gateway.create_transfer.return_value = PaymentResult(success=False, error="Insufficient funds")
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]

    response = await send_webhook(intent_event("payment_intent.succeeded", latest_charge="ch_test_123"))
    assert response.status_code == 200

    async with session_factory() as session:
        payment = await session.get(Payment, UUID(payment_id))
        assert payment.status == "succeeded"
        assert payment.stripe_transfer_id is None

@pytest.mark.asyncio
async def test_success_without_charge_asks_gateway(create_intent, send_webhook, appointment_id, gateway, session_factory):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]

    assert (await send_webhook(intent_event("payment_intent.succeeded"))).status_code == 200

    gateway.confirm_payment.assert_called_once_with("pi_test_123")
    async with session_factory() as session:
        payment = await session.get(Payment, UUID(payment_id))
        assert payment.stripe_charge_id == "ch_confirmed_123"

@pytest.mark.asyncio
async def test_payment_failed_event(create_intent, send_webhook, appointment_id, session_factory):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]

    response = await send_webhook(intent_event("payment_intent.payment_failed"))
    assert response.status_code == 200

    async with session_factory() as session:
        payment = await session.get(Payment, UUID(payment_id))
        appointment = await session.get(Appointment, UUID(appointment_id))
        assert payment.status == "failed"
        assert appointment.payment_status == "failed"

@pytest.mark.asyncio
async def test_late_failure_does_not_undo_success(create_intent, send_webhook, appointment_id, session_factory):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]
    await send_webhook(intent_event("payment_intent.succeeded", latest_charge="ch_test_123"))
    await send_webhook(intent_event("payment_intent.payment_failed"))

    async with session_factory() as session:
        payment = await session.get(Payment, UUID(payment_id))
        assert payment.status == "succeeded"

@pytest.mark.asyncio
async def test_success_after_failed_attempt_settles(create_intent, send_webhook, appointment_id, gateway, session_factory):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]
    await send_webhook(intent_event("payment_intent.payment_failed"))
    response = await send_webhook(intent_event("payment_intent.succeeded", latest_charge="ch_test_123"))
    assert response.status_code == 200

    assert gateway.create_transfer.call_count == 1
    async with session_factory() as session:
        payment = await session.get(Payment, UUID(payment_id))
        appointment = await session.get(Appointment, UUID(appointment_id))
        assert payment.status == "succeeded"
        assert payment.stripe_charge_id == "ch_test_123"
        assert appointment.payment_status == "paid"

@pytest.mark.asyncio
async def test_unknown_intent_is_acknowledged(send_webhook):
    response = await send_webhook(intent_event("payment_intent.succeeded", intent_id="pi_unknown"))
    assert response.status_code == 200

@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(send_webhook):
    response = await send_webhook(intent_event("payment_intent.succeeded"), signature="forged")
    assert response.status_code == 400
    assert response.json()["detail"] == "Webhook Error: Invalid signature"

@pytest.mark.asyncio
async def test_paid_appointment_cannot_be_paid_again(create_intent, send_webhook, appointment_id):
    await create_intent(appointment_id)
    await send_webhook(intent_event("payment_intent.succeeded", latest_charge="ch_test_123"))

    response = await create_intent(appointment_id)
    assert response.status_code == 409

@pytest.mark.asyncio
async def test_refund(create_intent, send_webhook, appointment_id, gateway, client, auth_headers, patient, practitioner_user, session_factory):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]
    url = f"/api/payments/{payment_id}/refund"

    # Nothing to refund before the charge succeeds
    response = await client.post(url, json={}, headers=await auth_headers(practitioner_user))
    assert response.status_code == 409

    await send_webhook(intent_event("payment_intent.succeeded", latest_charge="ch_test_123"))

    assert (await client.post(url, json={}, headers=await auth_headers(patient))).status_code == 403
    response = await client.post(url, json={"amount": 100}, headers=await auth_headers(practitioner_user))
    assert response.status_code == 400

    response = await client.post(url, json={}, headers=await auth_headers(practitioner_user))
    assert response.status_code == 200
    payment = response.json()["payment"]
    assert payment["status"] == "refunded"
    assert payment["refund"]["amount"] == 60.0
    assert payment["stripe"]["refundId"] == "re_test_123"
    gateway.create_refund.assert_called_once_with("ch_test_123", Decimal("60.00"), "requested_by_customer")

    async with session_factory() as session:
        appointment = await session.get(Appointment, UUID(appointment_id))
        assert appointment.payment_status == "refunded"

@pytest.mark.asyncio
async def test_payment_visibility(create_intent, appointment_id, client, auth_headers, other_patient, practitioner_user):
    payment_id = (await create_intent(appointment_id)).json()["paymentId"]
    url = f"/api/payments/{payment_id}"

    assert (await client.get(url, headers=await auth_headers(practitioner_user))).status_code == 200
    assert (await client.get(url, headers=await auth_headers(other_patient))).status_code == 403

@pytest.mark.asyncio
async def test_connected_account_onboarding(client, auth_headers, practitioner_user, create_practitioner, gateway, session_factory):
    practitioner = await create_practitioner(practitioner_user, stripe_account_id=None)
    headers = await auth_headers(practitioner_user)

    response = await client.post("/api/payments/connect/account", headers=headers)
    assert response.status_code == 200
    assert response.json() == {
        "accountId": "acct_new_123",
        "onboardingUrl": "https://connect.stripe.test/onboarding",
    }
    assert gateway.create_connected_account.call_args.args[0] == "dr.leroy@example.com"

    async with session_factory() as session:
        refreshed = await session.get(Practitioner, practitioner.id)
        assert refreshed.stripe_account_id == "acct_new_123"

@pytest.mark.asyncio
async def test_connected_account_status(client, auth_headers, practitioner_user, practitioner, session_factory):
    response = await client.get("/api/payments/connect/status", headers=await auth_headers(practitioner_user))
    assert response.status_code == 200
    assert response.json()["chargesEnabled"] is True

    async with session_factory() as session:
        refreshed = await session.get(Practitioner, practitioner.id)
        assert refreshed.charges_enabled is True
        assert refreshed.payouts_enabled is True

@pytest.mark.asyncio
async def test_patients_have_no_connected_account(client, auth_headers, patient):
    response = await client.post("/api/payments/connect/account", headers=await auth_headers(patient))
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_account_updated_event(send_webhook, practitioner, session_factory):
    event = {
        "id": "evt_account",
        "type": "account.updated",
        "data": {"object": {"id": "acct_test_123", "charges_enabled": True, "payouts_enabled": False}},
    }
    assert (await send_webhook(event)).status_code == 200

    async with session_factory() as session:
        refreshed = await session.get(Practitioner, practitioner.id)
        assert refreshed.charges_enabled is True
        assert refreshed.payouts_enabled is False
