"""Transfer lifecycle reported back by the processor.

``transfer.created`` confirms a payout we already recorded; ``transfer.reversed``
pulls money back from the payee and is recorded once per reversal id.
"""

import structlog
from protean.utils.globals import current_domain

from settlement.ledger.idempotency import IdempotencyKey, has_processed
from settlement.notification import fanout
from settlement.payout.payout import PayoutReversal, payout_for_transfer
from settlement.payout.transaction import Transaction, TransactionStatus

logger = structlog.get_logger(__name__)


def confirm_transfer(transfer_id: str) -> bool:
    payout = payout_for_transfer(transfer_id)
    if payout is None:
        logger.warning("Transfer not found in payouts", transfer_id=transfer_id)
        return False

    logger.info("Transfer confirmed", transfer_id=transfer_id, payout_id=str(payout.id))
    fanout.payout_received(payout.to_user_id, payout.amount_cents, transfer_id)
    return True


def record_transfer_reversal(reversal_id: str, transfer_id: str, amount_cents: int) -> PayoutReversal | None:
    if has_processed(IdempotencyKey.transfer_reversal(reversal_id)):
        logger.info("Transfer reversal already recorded", reversal_id=reversal_id)
        return None

    payout = payout_for_transfer(transfer_id)
    if payout is None:
        logger.warning("Reversed transfer not found in payouts", transfer_id=transfer_id, reversal_id=reversal_id)
        return None

    reversal = PayoutReversal(
        transaction_id=payout.transaction_id,
        payout_id=payout.id,
        amount_cents=amount_cents,
        provider_ref=reversal_id,
    )
    current_domain.repository_for(PayoutReversal).add(reversal)

    transaction_repo = current_domain.repository_for(Transaction)
    transaction = transaction_repo._dao.query.filter(id=str(payout.transaction_id)).all().first
    if transaction is not None and transaction.status != TransactionStatus.REVERSED.value:
        transaction.reverse()
        transaction_repo.add(transaction)

    logger.info(
        "Transfer reversal recorded",
        reversal_id=reversal_id,
        payout_id=str(payout.id),
        amount_cents=amount_cents,
    )
    fanout.payout_reversed(payout.to_user_id, amount_cents, reversal_id)
    return reversal
