"""CommissionEntry — one line of the affiliate commission ledger."""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from settlement.domain import settlement


class CommissionEventType(Enum):
    ORDER_PAID = "ORDER_PAID"
    INVOICE_PAID = "INVOICE_PAID"
    REFUND = "REFUND"
    CHARGEBACK = "CHARGEBACK"


class CommissionStatus(Enum):
    PENDING = "PENDING"
    AVAILABLE = "AVAILABLE"
    REVERSED = "REVERSED"


@settlement.aggregate
class CommissionEntry:
    """Entries are keyed by ``event_id``; a second write for the same key is refused
    by the engine before it happens."""

    event_id = String(required=True, max_length=255, unique=True)
    event_type = String(required=True, max_length=20, choices=CommissionEventType)
    affiliate_id = Identifier(required=True)
    amount_cents = Integer(required=True)
    base_amount_cents = Integer()
    currency = String(max_length=3, default="eur")
    status = String(max_length=20, choices=CommissionStatus, default=CommissionStatus.PENDING.value)
    available_at = DateTime()
    business_subscription_id = Identifier()
    reversal_of = Identifier()
    meta = Text()  # JSON
    created_at = DateTime(default=lambda: datetime.now(UTC))

    @property
    def is_reversible(self) -> bool:
        return self.status in (CommissionStatus.PENDING.value, CommissionStatus.AVAILABLE.value)

    def mark_reversed(self) -> None:
        if not self.is_reversible:
            raise ValidationError({"status": [f"Cannot reverse commission in {self.status} state"]})
        self.status = CommissionStatus.REVERSED.value

    @property
    def meta_dict(self) -> dict:
        return json.loads(self.meta) if self.meta else {}


def commission_for(event_id: str) -> CommissionEntry | None:
    return current_domain.repository_for(CommissionEntry)._dao.query.filter(event_id=event_id).all().first
