"""Payment processor port — the narrow interface the settlement pipeline uses.

All processor adapters implement this interface. The pipeline never talks to
the processor SDK directly; adapters are swapped via configuration.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class TransferResult:
    """Result of a transfer to a connected payout account."""

    success: bool
    transfer_id: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    id: str
    status: str
    customer_id: str | None = None
    current_period_end: datetime | None = None
    price_id: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class ChargeSnapshot:
    id: str
    amount: int = 0
    amount_refunded: int = 0
    invoice_id: str | None = None


class PaymentProcessor(ABC):
    """Abstract interface for payment processor adapters."""

    @abstractmethod
    def construct_event(self, payload: bytes | str, signature: str) -> dict:
        """Verify the signature and decode the event envelope.

        Raises:
            InvalidSignatureError: the payload was not signed by the processor.
        """
        ...

    @abstractmethod
    def create_transfer(
        self,
        amount_cents: int,
        currency: str,
        destination: str,
        transfer_group: str | None = None,
        metadata: dict | None = None,
    ) -> TransferResult:
        """Move money to a connected account. Never raises for processor failures."""
        ...

    @abstractmethod
    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot | None:
        """Look up a subscription; None when it cannot be retrieved."""
        ...

    @abstractmethod
    def retrieve_charge(self, charge_id: str) -> ChargeSnapshot | None:
        """Look up a charge; None when it cannot be retrieved."""
        ...
