"""Stripe processor adapter, built on the official ``stripe`` SDK.

Transfers and lookups go through the module-level resources with a bounded
HTTP timeout. SDK errors are turned into failed results or ``None`` here so
that callers outside the order transaction can log and continue.
"""

import json
import os
from datetime import UTC, datetime

import stripe
import structlog

from settlement.errors import InvalidSignatureError
from settlement.processor.port import ChargeSnapshot, PaymentProcessor, SubscriptionSnapshot, TransferResult

logger = structlog.get_logger(__name__)


def _timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def _first_price_id(subscription) -> str | None:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    price = items[0].get("price") or {}
    return price.get("id")


class StripeProcessor(PaymentProcessor):
    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.webhook_secret = webhook_secret or os.environ.get("STRIPE_WEBHOOK_SECRET", "")
        self.timeout_seconds = timeout_seconds or float(os.environ.get("PROCESSOR_TIMEOUT_SECONDS", "10"))
        stripe.api_key = api_key or os.environ.get("STRIPE_SECRET_KEY", "")
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout_seconds)

    def construct_event(self, payload: bytes | str, signature: str) -> dict:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError(str(exc)) from exc
        except ValueError as exc:
            raise InvalidSignatureError(f"Invalid payload: {exc}") from exc
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)

    def create_transfer(
        self,
        amount_cents: int,
        currency: str,
        destination: str,
        transfer_group: str | None = None,
        metadata: dict | None = None,
    ) -> TransferResult:
        params = {
            "amount": amount_cents,
            "currency": currency,
            "destination": destination,
            "metadata": {k: str(v) for k, v in (metadata or {}).items()},
        }
        if transfer_group:
            params["transfer_group"] = transfer_group

        try:
            transfer = stripe.Transfer.create(**params)
        except stripe.StripeError as exc:
            logger.error("Stripe transfer failed", destination=destination, amount_cents=amount_cents, error=str(exc))
            return TransferResult(success=False, failure_reason=str(exc))
        return TransferResult(success=True, transfer_id=transfer.id)

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot | None:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as exc:
            logger.error("Could not retrieve subscription", subscription_id=subscription_id, error=str(exc))
            return None

        return SubscriptionSnapshot(
            id=subscription.id,
            status=subscription.get("status") or "",
            customer_id=subscription.get("customer"),
            current_period_end=_timestamp(subscription.get("current_period_end")),
            price_id=_first_price_id(subscription),
            metadata=dict(subscription.get("metadata") or {}),
        )

    def retrieve_charge(self, charge_id: str) -> ChargeSnapshot | None:
        try:
            charge = stripe.Charge.retrieve(charge_id)
        except stripe.StripeError as exc:
            logger.error("Could not retrieve charge", charge_id=charge_id, error=str(exc))
            return None

        invoice = charge.get("invoice")
        if invoice is not None and not isinstance(invoice, str):
            invoice = invoice.get("id")
        return ChargeSnapshot(
            id=charge.id,
            amount=charge.get("amount") or 0,
            amount_refunded=charge.get("amount_refunded") or 0,
            invoice_id=invoice,
        )
