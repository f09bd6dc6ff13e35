"""Delivery confirmation — moves the order to DELIVERED and releases escrow."""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from settlement.config import FeeSchedule
from settlement.domain import settlement
from settlement.order.order import Order, PayoutTrigger
from settlement.payout.ledger import release_escrow_for_order
from settlement.processor.port import PaymentProcessor

logger = structlog.get_logger(__name__)


@settlement.command(part_of="Order")
class RecordDelivery:
    order_id = Identifier(required=True)


@settlement.command_handler(part_of=Order)
class RecordDeliveryHandler:
    @handle(RecordDelivery)
    def record_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_delivered()
        repo.add(order)


def deliver_order(order_id: str, processor: PaymentProcessor, schedule: FeeSchedule) -> int:
    """Record delivery, then transfer any escrow waiting on it.

    Returns the number of escrow holds released. The status change commits
    before any transfer is attempted; a failed transfer leaves its escrow held.
    """
    current_domain.process(RecordDelivery(order_id=order_id), asynchronous=False)

    order = current_domain.repository_for(Order).get(order_id)
    if order.payout_trigger != PayoutTrigger.DELIVERED.value:
        return 0

    released = release_escrow_for_order(order, schedule, processor)
    logger.info("Order delivered", order_id=order_id, escrow_released=released)
    return released
