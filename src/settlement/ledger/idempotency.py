"""Idempotency Ledger — has this event, session or reversal already had effects?

Every key is answered by looking for the entity the first delivery left
behind rather than by taking a lock: an Order carrying the checkout session
id, a PayoutReversal carrying the transfer-reversal id, or a ProcessedEvent
row for the provider event id. Only event ids are marked explicitly; the
other scopes are marked by the insert of the entity itself.
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from sqlalchemy.exc import IntegrityError

from settlement.ledger.processed_event import ProcessedEvent

logger = structlog.get_logger(__name__)


class KeyScope(Enum):
    EVENT = "Event"
    CHECKOUT_SESSION = "CheckoutSession"
    TRANSFER_REVERSAL = "TransferReversal"


@dataclass(frozen=True)
class IdempotencyKey:
    scope: KeyScope
    value: str

    @classmethod
    def event(cls, event_id: str) -> "IdempotencyKey":
        return cls(KeyScope.EVENT, event_id)

    @classmethod
    def checkout_session(cls, session_id: str) -> "IdempotencyKey":
        return cls(KeyScope.CHECKOUT_SESSION, session_id)

    @classmethod
    def transfer_reversal(cls, reversal_id: str) -> "IdempotencyKey":
        return cls(KeyScope.TRANSFER_REVERSAL, reversal_id)


def _first(aggregate_cls, **filters):
    return current_domain.repository_for(aggregate_cls)._dao.query.filter(**filters).all().first


def find_order_for_session(session_id: str):
    from settlement.order.order import Order

    return _first(Order, session_id=session_id)


def has_processed(key: IdempotencyKey) -> bool:
    if not key.value:
        return False

    if key.scope == KeyScope.EVENT:
        return _first(ProcessedEvent, event_id=key.value) is not None

    if key.scope == KeyScope.CHECKOUT_SESSION:
        return find_order_for_session(key.value) is not None

    from settlement.payout.payout import PayoutReversal

    return _first(PayoutReversal, provider_ref=key.value) is not None


def mark_processed(key: IdempotencyKey, event_type: str | None = None) -> bool:
    """Record the event id. Returns False when another delivery recorded it first.

    Two concurrent copies of one event can both pass ``has_processed``; the
    unique ``event_id`` decides which of them owns the mark.
    """
    if key.scope != KeyScope.EVENT:
        raise ValueError(f"{key.scope.value} keys are marked by the entity they guard")

    if has_processed(key):
        return False

    try:
        current_domain.repository_for(ProcessedEvent).add(ProcessedEvent(event_id=key.value, event_type=event_type))
    except ValidationError as exc:
        if "event_id" not in exc.messages:
            raise
        logger.info("Event marked concurrently by another delivery", event_id=key.value)
        return False
    except IntegrityError:
        logger.info("Event marked concurrently by another delivery", event_id=key.value)
        return False

    logger.debug("Event marked processed", event_id=key.value, event_type=event_type)
    return True
