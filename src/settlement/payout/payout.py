"""Payout — money owed to a seller or courier — and its reversals."""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement

FAILED_PREFIX = "failed_"


@settlement.aggregate
class Payout:
    """``provider_ref`` holds a transfer id, the payment reference, ``None``
    while the money sits in escrow, or a ``failed_<unix-ms>`` sentinel."""

    transaction_id = Identifier(required=True)
    to_user_id = Identifier(required=True)
    amount_cents = Integer(required=True, min_value=0)
    provider_ref = String(max_length=255)
    created_at = DateTime(default=lambda: datetime.now(UTC))

    @property
    def transfer_failed(self) -> bool:
        return bool(self.provider_ref) and self.provider_ref.startswith(FAILED_PREFIX)

    def record_transfer(self, transfer_id: str) -> None:
        self.provider_ref = transfer_id

    def record_transfer_failure(self, at: datetime | None = None) -> None:
        at = at or datetime.now(UTC)
        self.provider_ref = f"{FAILED_PREFIX}{int(at.timestamp() * 1000)}"


@settlement.aggregate
class PayoutReversal:
    """A transfer the processor pulled back; unique on the reversal id."""

    transaction_id = Identifier()
    payout_id = Identifier(required=True)
    amount_cents = Integer(required=True, min_value=0)
    provider_ref = String(required=True, max_length=255, unique=True)
    created_at = DateTime(default=lambda: datetime.now(UTC))


def payout_for_transfer(transfer_id: str) -> Payout | None:
    if not transfer_id:
        return None
    return current_domain.repository_for(Payout)._dao.query.filter(provider_ref=transfer_id).all().first
