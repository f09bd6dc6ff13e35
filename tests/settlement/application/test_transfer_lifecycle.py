"""Application tests for transfer confirmations and reversals."""

import pytest
from protean import current_domain

from settlement.ledger.idempotency import IdempotencyKey, has_processed
from settlement.notification.notification import Notification
from settlement.payout.payout import Payout, PayoutReversal
from settlement.payout.transaction import Transaction, TransactionStatus
from settlement.payout.transfers import confirm_transfer, record_transfer_reversal


@pytest.fixture()
def paid_out(make_member):
    make_member("seller-1")
    transaction = Transaction(
        settlement_key="sale:order-1:item-1",
        order_id="order-1",
        seller_id="seller-1",
        amount_cents=1000,
        platform_fee_cents=120,
    )
    current_domain.repository_for(Transaction).add(transaction)
    payout = Payout(transaction_id=transaction.id, to_user_id="seller-1", amount_cents=880, provider_ref="tr_1")
    current_domain.repository_for(Payout).add(payout)
    return transaction, payout


def _notifications(notification_type):
    return [
        n
        for n in current_domain.repository_for(Notification)._dao.query.all().items
        if n.notification_type == notification_type
    ]


class TestConfirmTransfer:
    def test_known_transfer_notifies_the_payee(self, paid_out, push):
        assert confirm_transfer("tr_1") is True
        assert push.sent_messages[0]["user_id"] == "seller-1"
        assert "€8.80" in push.sent_messages[0]["body"]
        assert len(_notifications("PAYOUT_RECEIVED")) == 1

    def test_unknown_transfer(self, paid_out, push):
        assert confirm_transfer("tr_unknown") is False
        assert push.sent_messages == []


class TestTransferReversal:
    def test_records_reversal_and_reverses_the_transaction(self, paid_out, push):
        transaction, payout = paid_out

        reversal = record_transfer_reversal("trr_1", "tr_1", 880)

        assert reversal.amount_cents == 880
        assert str(reversal.payout_id) == str(payout.id)
        assert has_processed(IdempotencyKey.transfer_reversal("trr_1"))
        assert current_domain.repository_for(Transaction).get(transaction.id).status == TransactionStatus.REVERSED.value
        assert len(_notifications("PAYOUT_REVERSED")) == 1

    def test_same_reversal_is_recorded_once(self, paid_out):
        record_transfer_reversal("trr_1", "tr_1", 880)
        assert record_transfer_reversal("trr_1", "tr_1", 880) is None
        assert len(current_domain.repository_for(PayoutReversal)._dao.query.all().items) == 1

    def test_second_partial_reversal_keeps_the_transaction_reversed(self, paid_out):
        transaction, _ = paid_out
        record_transfer_reversal("trr_1", "tr_1", 400)
        record_transfer_reversal("trr_2", "tr_1", 480)
        assert len(current_domain.repository_for(PayoutReversal)._dao.query.all().items) == 2
        assert current_domain.repository_for(Transaction).get(transaction.id).status == TransactionStatus.REVERSED.value

    def test_unknown_transfer(self, paid_out):
        assert record_transfer_reversal("trr_1", "tr_unknown", 880) is None
