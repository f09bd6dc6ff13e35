"""Inbound processor events: the closed set of kinds we handle and one
typed payload model per kind.

Expandable references (``subscription``, ``invoice``, ``charge``...) may
arrive either as an id or as the expanded object; validators collapse them
to the id.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    CHARGE_REFUNDED = "charge.refunded"
    DISPUTE_CREATED = "charge.dispute.created"
    TRANSFER_CREATED = "transfer.created"
    TRANSFER_REVERSED = "transfer.reversed"
    TRANSFER_UPDATED = "transfer.updated"
    BALANCE_AVAILABLE = "balance.available"

    @classmethod
    def parse(cls, value: str) -> "EventKind | None":
        try:
            return cls(value)
        except ValueError:
            return None


def _collapse_reference(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CheckoutSessionPayload(_Payload):
    id: str
    mode: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    amount_total: int | None = None
    payment_intent: str | None = None
    subscription: str | None = None
    customer: str | None = None

    collapse_refs = field_validator("payment_intent", "subscription", "customer", mode="before")(_collapse_reference)

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, value):
        if not value:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in value.items()}

    @property
    def is_subscription(self) -> bool:
        return self.mode == "subscription"


class SubscriptionPayload(_Payload):
    id: str
    status: str
    customer: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    current_period_end: int | None = None
    items: dict = Field(default_factory=dict)

    collapse_refs = field_validator("customer", mode="before")(_collapse_reference)

    @property
    def user_id(self) -> str | None:
        return self.metadata.get("userId") or None

    @property
    def price_id(self) -> str | None:
        data = self.items.get("data") or []
        if not data:
            return None
        return (data[0].get("price") or {}).get("id")


class InvoicePayload(_Payload):
    id: str
    subscription: str | None = None
    customer: str | None = None
    amount_paid: int = 0

    collapse_refs = field_validator("subscription", "customer", mode="before")(_collapse_reference)


class ChargePayload(_Payload):
    id: str
    invoice: str | None = None
    amount: int = 0
    amount_refunded: int = 0

    collapse_refs = field_validator("invoice", mode="before")(_collapse_reference)


class DisputePayload(_Payload):
    id: str
    charge: str | None = None
    amount: int = 0

    collapse_refs = field_validator("charge", mode="before")(_collapse_reference)


class TransferPayload(_Payload):
    id: str
    amount: int = 0
    destination: str | None = None

    collapse_refs = field_validator("destination", mode="before")(_collapse_reference)


class TransferReversalPayload(_Payload):
    id: str
    transfer: str | None = None
    amount: int = 0

    collapse_refs = field_validator("transfer", mode="before")(_collapse_reference)


class BalancePayload(_Payload):
    available: list[dict] = Field(default_factory=list)


PAYLOAD_MODELS: dict[EventKind, type[BaseModel]] = {
    EventKind.CHECKOUT_SESSION_COMPLETED: CheckoutSessionPayload,
    EventKind.SUBSCRIPTION_UPDATED: SubscriptionPayload,
    EventKind.SUBSCRIPTION_DELETED: SubscriptionPayload,
    EventKind.INVOICE_PAID: InvoicePayload,
    EventKind.CHARGE_REFUNDED: ChargePayload,
    EventKind.DISPUTE_CREATED: DisputePayload,
    EventKind.TRANSFER_CREATED: TransferPayload,
    EventKind.TRANSFER_REVERSED: TransferReversalPayload,
    EventKind.TRANSFER_UPDATED: TransferPayload,
    EventKind.BALANCE_AVAILABLE: BalancePayload,
}


class InboundEvent(BaseModel):
    """The processor's event envelope."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: dict = Field(default_factory=dict)

    @property
    def kind(self) -> EventKind | None:
        return EventKind.parse(self.type)

    @property
    def object(self) -> dict:
        return self.data.get("object") or {}

    def payload(self) -> BaseModel:
        """Parse ``data.object`` into the payload model for this event's kind."""
        return PAYLOAD_MODELS[self.kind].model_validate(self.object)
