"""Error taxonomy for inbound payment events.

Every failure that reaches the webhook entry point is classified as either
terminal (the processor should not redeliver) or retriable (transient
infrastructure trouble; redelivery is safe because of the idempotency gates).
Best-effort work never reaches the classifier: it is caught and logged where
it runs.
"""

from enum import Enum

import httpx
from protean.exceptions import ExpectedVersionError
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


class SettlementError(Exception):
    """Base class for settlement pipeline errors."""


class TerminalError(SettlementError):
    """The event can never succeed as delivered."""


class MissingBuyerError(TerminalError):
    pass


class EmptyCartError(TerminalError):
    pass


class MalformedMetadataError(TerminalError):
    pass


class InvalidSignatureError(SettlementError):
    """The inbound payload was not signed by the payment processor."""


class RetriableError(SettlementError):
    """A transient failure; the same event may succeed on redelivery."""


class NegativePayoutError(SettlementError):
    """Fees and deductions exceed the item total."""

    def __init__(self, item_total_cents: int, platform_fee_cents: int, sms_cost_cents: int):
        self.item_total_cents = item_total_cents
        self.platform_fee_cents = platform_fee_cents
        self.sms_cost_cents = sms_cost_cents
        super().__init__(
            f"Payout would be negative: item total {item_total_cents}, "
            f"platform fee {platform_fee_cents}, sms cost {sms_cost_cents}"
        )


class ErrorClass(Enum):
    TERMINAL = "Terminal"
    RETRIABLE = "Retriable"


_RETRIABLE_TYPES = (
    RetriableError,
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
    OperationalError,
    IntegrityError,
    ExpectedVersionError,
)

_RETRIABLE_MARKERS = ("connect", "timeout", "timed out", "econnrefused")


def classify(exc: BaseException) -> ErrorClass:
    """Decide whether an order-creation failure deserves a redelivery."""
    if isinstance(exc, TerminalError):
        return ErrorClass.TERMINAL

    if isinstance(exc, _RETRIABLE_TYPES):
        return ErrorClass.RETRIABLE

    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ErrorClass.RETRIABLE

    message = str(exc).lower()
    if any(marker in message for marker in _RETRIABLE_MARKERS):
        return ErrorClass.RETRIABLE

    return ErrorClass.TERMINAL
