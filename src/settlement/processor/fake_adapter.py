"""Configurable fake payment processor for development and testing.

Simulates the processor without any external calls. Transfers succeed or
fail according to ``configure()``; subscriptions and charges are seeded by
tests with ``add_subscription()`` / ``add_charge()``.
"""

import json
from uuid import uuid4

from settlement.errors import InvalidSignatureError
from settlement.processor.port import ChargeSnapshot, PaymentProcessor, SubscriptionSnapshot, TransferResult

FAKE_SIGNATURE = "test-signature"


class FakeProcessor(PaymentProcessor):
    """Configurable fake payment processor."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Transfer declined"
        self.calls: list[dict] = []
        self.subscriptions: dict[str, SubscriptionSnapshot] = {}
        self.charges: dict[str, ChargeSnapshot] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Transfer declined") -> None:
        """Configure transfer behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def add_subscription(self, subscription: SubscriptionSnapshot) -> None:
        self.subscriptions[subscription.id] = subscription

    def add_charge(self, charge: ChargeSnapshot) -> None:
        self.charges[charge.id] = charge

    def transfers(self) -> list[dict]:
        return [call for call in self.calls if call["method"] == "create_transfer"]

    def construct_event(self, payload: bytes | str, signature: str) -> dict:
        if signature != FAKE_SIGNATURE:
            raise InvalidSignatureError("Invalid webhook signature")
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
        self.calls.append(
            {
                "method": "create_transfer",
                "amount_cents": amount_cents,
                "currency": currency,
                "destination": destination,
                "transfer_group": transfer_group,
                "metadata": metadata or {},
            }
        )

        if self.should_succeed:
            return TransferResult(success=True, transfer_id=f"tr_fake_{uuid4().hex[:12]}")
        return TransferResult(success=False, failure_reason=self.failure_reason)

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot | None:
        self.calls.append({"method": "retrieve_subscription", "subscription_id": subscription_id})
        return self.subscriptions.get(subscription_id)

    def retrieve_charge(self, charge_id: str) -> ChargeSnapshot | None:
        self.calls.append({"method": "retrieve_charge", "charge_id": charge_id})
        return self.charges.get(charge_id)
