"""Payout/Escrow Ledger — persists the money side of a placed order.

Runs after the order has committed. Each line item is settled on its own:
a failure on one item is logged and does not stop the others. The unique
``settlement_key`` on Transaction makes a second run over the same order a
no-op for every item that was already settled.
"""

from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from settlement.cart.decoder import CheckoutParameters
from settlement.config import FeeSchedule
from settlement.dispatch.delivery_order import delivery_orders_for
from settlement.errors import NegativePayoutError
from settlement.member.courier import CourierProfile
from settlement.member.member import find_member
from settlement.member.seller import seller_profile_for
from settlement.payout.escrow import PaymentEscrow, escrows_for_order
from settlement.payout.fees import ItemSettlement, platform_fee_pct, settle_delivery_fee, settle_item, sms_cost_cents
from settlement.payout.payout import Payout
from settlement.payout.transaction import Transaction, TransactionKind, transaction_for_key
from settlement.processor.port import PaymentProcessor
from settlement.subscription.plan import plan_by_id

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SettledItem:
    order_id: str
    product_id: str
    seller_id: str
    settlement: ItemSettlement
    transaction_id: str
    payout_id: str
    escrowed: bool


def _seller_plan(profile):
    if profile is None or not profile.subscription_id:
        return None
    return plan_by_id(profile.subscription_id)


def _request_transfer(processor: PaymentProcessor, payout: Payout, destination: str, currency: str, group: str, metadata):
    """Ask the processor for a transfer and record the outcome on the payout."""
    try:
        result = processor.create_transfer(
            amount_cents=payout.amount_cents,
            currency=currency,
            destination=destination,
            transfer_group=group,
            metadata=metadata,
        )
    except Exception as e:
        logger.error("Transfer request raised", payout_id=str(payout.id), error=str(e))
        payout.record_transfer_failure()
        return False

    if result.success:
        payout.record_transfer(result.transfer_id)
        logger.info("Transfer created", payout_id=str(payout.id), transfer_id=result.transfer_id)
        return True

    logger.error("Transfer failed", payout_id=str(payout.id), reason=result.failure_reason)
    payout.record_transfer_failure()
    return False


def _settle_item(order, item, schedule: FeeSchedule, processor, sms_charged: set):
    key = Transaction.sale_key(order.id, item.id)
    if transaction_for_key(key) is not None:
        logger.info("Item already settled", order_id=str(order.id), product_id=str(item.product_id))
        return None

    seller_id = str(item.seller_id)
    seller = find_member(seller_id)
    if seller is None:
        logger.warning("Seller not found, item not settled", order_id=str(order.id), seller_id=seller_id)
        return None

    profile = seller_profile_for(seller_id)
    fee_pct = platform_fee_pct(schedule, _seller_plan(profile))
    sms_cost = sms_cost_cents(
        schedule,
        opted_in=bool(profile and profile.sms_order_updates),
        has_phone=bool(seller.phone),
        already_charged=seller_id in sms_charged,
    )
    settlement = settle_item(item.price_cents, item.quantity, fee_pct, sms_cost)
    if sms_cost:
        sms_charged.add(seller_id)

    transaction = Transaction(
        settlement_key=key,
        kind=TransactionKind.SALE.value,
        order_id=order.id,
        product_id=item.product_id,
        buyer_id=order.buyer_id,
        seller_id=seller_id,
        amount_cents=settlement.item_total_cents,
        platform_fee_bps=settlement.platform_fee_bps,
        platform_fee_cents=settlement.platform_fee_cents,
        sms_cost_cents=settlement.sms_cost_cents,
        provider_ref=order.session_id,
    )
    current_domain.repository_for(Transaction).add(transaction)

    payout_repo = current_domain.repository_for(Payout)
    if order.is_shipping:
        payout = Payout(transaction_id=transaction.id, to_user_id=seller_id, amount_cents=settlement.payout_cents)
        payout_repo.add(payout)
        current_domain.repository_for(PaymentEscrow).add(
            PaymentEscrow(
                order_id=order.id,
                seller_id=seller_id,
                payout_id=payout.id,
                amount_cents=settlement.payout_cents,
                payout_trigger=order.payout_trigger,
            )
        )
        logger.info("Payout held in escrow", order_id=str(order.id), seller_id=seller_id, amount_cents=payout.amount_cents)
    else:
        payout = Payout(
            transaction_id=transaction.id,
            to_user_id=seller_id,
            amount_cents=settlement.payout_cents,
            provider_ref=order.payment_reference,
        )
        if seller.payout_account_id and settlement.payout_cents > 0:
            _request_transfer(
                processor,
                payout,
                destination=seller.payout_account_id,
                currency=schedule.currency,
                group=f"order_{order.id}",
                metadata={
                    "order_id": str(order.id),
                    "product_id": str(item.product_id),
                    "seller_id": seller_id,
                    "platform_fee_cents": settlement.platform_fee_cents,
                    "sms_cost_cents": settlement.sms_cost_cents,
                },
            )
        payout_repo.add(payout)

    return SettledItem(
        order_id=str(order.id),
        product_id=str(item.product_id),
        seller_id=seller_id,
        settlement=settlement,
        transaction_id=str(transaction.id),
        payout_id=str(payout.id),
        escrowed=order.is_shipping,
    )


def settle_order(order, schedule: FeeSchedule, processor: PaymentProcessor) -> list[SettledItem]:
    """Create transactions and payouts (or escrow holds) for every item."""
    settled = []
    sms_charged: set[str] = set()
    for item in order.items:
        try:
            result = _settle_item(order, item, schedule, processor, sms_charged)
        except NegativePayoutError as e:
            logger.error(
                "Negative payout, item not settled",
                order_id=str(order.id),
                product_id=str(item.product_id),
                error=str(e),
            )
            continue
        except Exception as e:
            logger.error(
                "Item settlement failed",
                order_id=str(order.id),
                product_id=str(item.product_id),
                error=str(e),
            )
            continue
        if result is not None:
            settled.append(result)
    return settled


def settle_courier_legs(order, params: CheckoutParameters, schedule: FeeSchedule) -> list[Payout]:
    """Pay couriers already assigned to the order's delivery orders.

    Courier payouts carry the payment reference; the transfer itself happens
    when the delivery is completed.
    """
    fee_cents = params.delivery_fee_cents
    if not fee_cents:
        return []

    payouts = []
    for delivery_order in delivery_orders_for(order.id):
        if not delivery_order.courier_id:
            continue

        key = Transaction.delivery_key(order.id, delivery_order.id)
        if transaction_for_key(key) is not None:
            continue

        try:
            leg = settle_delivery_fee(fee_cents, schedule, params.delivery_platform_cut_cents)
            courier_id = str(delivery_order.courier_id)
            transaction = Transaction(
                settlement_key=key,
                kind=TransactionKind.DELIVERY.value,
                order_id=order.id,
                delivery_order_id=delivery_order.id,
                buyer_id=order.buyer_id,
                seller_id=courier_id,
                amount_cents=leg.delivery_fee_cents,
                platform_fee_bps=leg.platform_fee_bps,
                platform_fee_cents=leg.platform_fee_cents,
                provider_ref=order.session_id,
            )
            current_domain.repository_for(Transaction).add(transaction)

            payout = Payout(
                transaction_id=transaction.id,
                to_user_id=courier_id,
                amount_cents=leg.payout_cents,
                provider_ref=order.payment_reference,
            )
            current_domain.repository_for(Payout).add(payout)

            profile_repo = current_domain.repository_for(CourierProfile)
            profile = profile_repo._dao.query.filter(user_id=courier_id).all().first
            if profile is not None:
                profile.record_earnings(leg.payout_cents)
                profile_repo.add(profile)
            payouts.append(payout)
        except Exception as e:
            logger.error(
                "Courier payout failed",
                order_id=str(order.id),
                delivery_order_id=str(delivery_order.id),
                error=str(e),
            )
    return payouts


def release_escrow_for_order(order, schedule: FeeSchedule, processor: PaymentProcessor) -> int:
    """Transfer every held escrow of a delivered order. Returns the number released."""
    released = 0
    payout_repo = current_domain.repository_for(Payout)
    escrow_repo = current_domain.repository_for(PaymentEscrow)

    for escrow in escrows_for_order(order.id):
        if not escrow.is_held:
            continue

        try:
            payout = payout_repo.get(escrow.payout_id)
            seller = find_member(escrow.seller_id)
            if seller is None or not seller.payout_account_id:
                logger.warning("Seller has no payout account, escrow stays held", escrow_id=str(escrow.id))
                continue

            transferred = _request_transfer(
                processor,
                payout,
                destination=seller.payout_account_id,
                currency=schedule.currency,
                group=f"order_{order.id}",
                metadata={"order_id": str(order.id), "escrow_id": str(escrow.id)},
            )
            payout_repo.add(payout)
            if transferred:
                escrow.release()
                escrow_repo.add(escrow)
                released += 1
        except Exception as e:
            logger.error("Escrow release failed", escrow_id=str(escrow.id), order_id=str(order.id), error=str(e))
    return released
