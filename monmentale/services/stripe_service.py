"""
Stripe gateway service.

Payment intents, settlement transfers to practitioners' connected accounts,
refunds and webhook verification. Every call is a single attempt bounded by
the configured timeout; failures come back as a ``PaymentResult`` rather than
an exception so callers decide whether to retry.
"""

import json
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

import stripe

from monmentale.core.logger import logger
from monmentale.services.settlement import to_minor_units, from_minor_units


@dataclass
class PaymentResult:
    """Result of a gateway operation."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    retryable: bool = False


def _failure(operation: str, e: Exception) -> PaymentResult:
    # Timeouts, connection drops and throttling may succeed on a later attempt
    retryable = isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError))
    logger.error(f"[Stripe] {operation} failed: {e}")
    return PaymentResult(success=False, error=str(e), retryable=retryable)


class StripeService:
    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str] = None,
        timeout: int = 10,
        frontend_url: str = "",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.frontend_url = frontend_url
        self.client: Optional[stripe.StripeClient] = None

        if self.api_key:
            self.client = stripe.StripeClient(
                self.api_key,
                max_network_retries=0,
                http_client=stripe.RequestsClient(timeout=timeout),
            )
            logger.info("[Stripe] Service initialized")
        else:
            logger.warning("[Stripe] API key not configured")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def create_payment_intent(self, amount, currency: str = "eur", metadata: Optional[Dict[str, str]] = None) -> PaymentResult:
        if not self.is_configured:
            return PaymentResult(success=False, error="Stripe not configured")

        try:
            intent = self.client.payment_intents.create(params={
                "amount": to_minor_units(amount),
                "currency": currency,
                "metadata": metadata or {},
                "automatic_payment_methods": {"enabled": True},
            })
            return PaymentResult(success=True, data={
                "payment_intent_id": intent.id,
                "client_secret": intent.client_secret,
            })
        except stripe.StripeError as e:
            return _failure("PaymentIntent creation", e)

    def confirm_payment(self, payment_intent_id: str) -> PaymentResult:
        """Check with the gateway that an intent has succeeded."""
        if not self.is_configured:
            return PaymentResult(success=False, error="Stripe not configured")

        try:
            intent = self.client.payment_intents.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            return _failure("PaymentIntent retrieval", e)

        if intent.status != "succeeded":
            return PaymentResult(success=False, error="Payment not confirmed", data={"status": intent.status})
        return PaymentResult(success=True, data={
            "status": intent.status,
            "charge_id": intent.latest_charge,
        })

    def create_transfer(self, destination: str, amount, payment_intent_id: str, currency: str = "eur") -> PaymentResult:
        """Move the practitioner's share to their connected account."""
        if not self.is_configured:
            return PaymentResult(success=False, error="Stripe not configured")

        try:
            transfer = self.client.transfers.create(
                params={
                    "amount": to_minor_units(amount),
                    "currency": currency,
                    "destination": destination,
                    "transfer_group": payment_intent_id,
                    "metadata": {
                        "type": "practitioner_payment",
                        "source_payment": payment_intent_id,
                    },
                },
                options={"idempotency_key": f"transfer-{payment_intent_id}"},
            )
            return PaymentResult(success=True, data={"transfer_id": transfer.id})
        except stripe.StripeError as e:
            return _failure("Transfer creation", e)

    def create_refund(self, charge_id: str, amount=None, reason: str = "requested_by_customer") -> PaymentResult:
        if not self.is_configured:
            return PaymentResult(success=False, error="Stripe not configured")

        params: Dict[str, Any] = {
            "charge": charge_id,
            "reason": reason,
            "metadata": {"type": "appointment_refund"},
        }
        if amount is not None:
            params["amount"] = to_minor_units(amount)

        try:
            refund = self.client.refunds.create(params=params)
            return PaymentResult(success=True, data={
                "refund_id": refund.id,
                "amount": from_minor_units(refund.amount),
            })
        except stripe.StripeError as e:
            return _failure("Refund creation", e)

    def create_connected_account(
        self,
        email: str,
        first_name: Optional[str],
        last_name: Optional[str],
        practitioner_id: str,
        specializations: List[str],
    ) -> PaymentResult:
        """Create an Express account and its onboarding link."""
        if not self.is_configured:
            return PaymentResult(success=False, error="Stripe not configured")

        try:
            account = self.client.accounts.create(params={
                "type": "express",
                "country": "FR",
                "email": email,
                "capabilities": {
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                "business_type": "individual",
                "individual": {
                    "first_name": first_name or "",
                    "last_name": last_name or "",
                    "email": email,
                },
                "metadata": {
                    "practitioner_id": practitioner_id,
                    "specialization": ",".join(specializations) or "psychologie",
                },
            })
            account_link = self.client.account_links.create(params={
                "account": account.id,
                "refresh_url": f"{self.frontend_url}/practitioner/onboarding/refresh",
                "return_url": f"{self.frontend_url}/practitioner/onboarding/success",
                "type": "account_onboarding",
            })
            return PaymentResult(success=True, data={
                "account_id": account.id,
                "onboarding_url": account_link.url,
            })
        except stripe.StripeError as e:
            return _failure("Connected account creation", e)

    def get_account_status(self, account_id: str) -> PaymentResult:
        if not self.is_configured:
            return PaymentResult(success=False, error="Stripe not configured")

        try:
            account = self.client.accounts.retrieve(account_id)
            requirements = account.requirements
            return PaymentResult(success=True, data={
                "account_id": account.id,
                "charges_enabled": bool(account.charges_enabled),
                "payouts_enabled": bool(account.payouts_enabled),
                "details_submitted": bool(account.details_submitted),
                "requirements": json.loads(str(requirements)) if requirements is not None else None,
            })
        except stripe.StripeError as e:
            return _failure("Account retrieval", e)

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentResult:
        """Verify a webhook signature and parse the event."""
        if not self.webhook_secret:
            return PaymentResult(success=False, error="Webhook secret not configured")
        if not signature:
            return PaymentResult(success=False, error="Missing signature")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            return PaymentResult(success=True, data={"event": event})
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            return PaymentResult(success=False, error="Invalid signature")
        except ValueError as e:
            logger.error(f"Webhook payload could not be parsed: {e}")
            return PaymentResult(success=False, error="Invalid payload")
