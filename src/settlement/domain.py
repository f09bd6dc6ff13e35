"""Settlement bounded context: Order Fulfillment and Settlement.

Turns a confirmed checkout into exactly one order with its stock
decrements, then settles the money (payouts, escrow holds, affiliate
commissions) and fans out the follow-up work: courier dispatch, shipping
labels and notifications.
"""

import structlog
from protean.domain import Domain

settlement = Domain(name="settlement")

logger = structlog.get_logger(__name__)
