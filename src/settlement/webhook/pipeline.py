"""Webhook pipeline — the entry point for verified processor events.

    event gate → kind dispatch → handler

For a paid product checkout the handler runs the atomic ``PlaceOrder``
command and then a fixed list of post-commit tasks. Post-commit tasks are
isolated from each other: a failure is logged and the next task still runs,
and none of them can change the acknowledgment.

The event id is recorded only after the handler acknowledged success, so a
failed event is processed again on redelivery. Session and reversal gates
inside the handlers make that safe.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError as PayloadValidationError
from protean.utils.globals import current_domain

from settlement.affiliate.commission import CommissionEventType
from settlement.affiliate.engine import award_invoice_commission, award_order_commission, reverse_commission
from settlement.cart.decoder import CheckoutParameters, decode_cart, decode_parameters, require_lines
from settlement.config import Policies
from settlement.dispatch.matcher import dispatch_order
from settlement.errors import classify
from settlement.ledger.idempotency import IdempotencyKey, find_order_for_session, has_processed, mark_processed
from settlement.member.member import find_member
from settlement.notification import fanout
from settlement.order.order import DeliveryMode, Order
from settlement.order.placement import PlaceOrder, serialize_lines
from settlement.payout.ledger import settle_courier_legs, settle_order
from settlement.payout.payout import payout_for_transfer
from settlement.payout.transfers import confirm_transfer, record_transfer_reversal
from settlement.processor import get_processor
from settlement.processor.port import PaymentProcessor
from settlement.shipping.issuer import issue_label
from settlement.subscription.sync import (
    apply_checkout_subscription,
    apply_subscription_deleted,
    apply_subscription_update,
)
from settlement.utils.logging import bind_event_context, clear_event_context
from settlement.webhook.ack import Acknowledgment
from settlement.webhook.events import (
    BalancePayload,
    ChargePayload,
    CheckoutSessionPayload,
    DisputePayload,
    EventKind,
    InboundEvent,
    InvoicePayload,
    SubscriptionPayload,
    TransferPayload,
    TransferReversalPayload,
)

logger = structlog.get_logger(__name__)


@dataclass
class PipelineContext:
    processor: PaymentProcessor
    policies: Policies


@dataclass
class PlacedOrder:
    order: Order
    params: CheckoutParameters
    settled: list = field(default_factory=list)


# --- checkout.session.completed ----------------------------------------------


def place_order_for_session(session: CheckoutSessionPayload) -> tuple[str, CheckoutParameters] | None:
    """Run the atomic order step. Returns None when the session already has an order."""
    if has_processed(IdempotencyKey.checkout_session(session.id)):
        logger.info("Order already exists for session", session_id=session.id)
        return None

    params = decode_parameters(session.metadata, session.id)
    lines = require_lines(decode_cart(session.metadata), session.id)

    order_id = current_domain.process(
        PlaceOrder(
            session_id=session.id,
            buyer_id=params.buyer_id,
            items=serialize_lines(lines),
            delivery_mode=params.delivery_mode,
            address=params.address,
            notes=params.notes,
            pickup_date=params.pickup_date,
            delivery_date=params.delivery_date,
            total_amount_cents=session.amount_total or params.amount_paid_cents,
            delivery_fee_cents=params.delivery_fee_cents,
            payment_reference=session.payment_intent,
        ),
        asynchronous=False,
    )
    return order_id, params


def _notify_parties(placed: PlacedOrder, ctx: PipelineContext) -> None:
    order = placed.order
    fanout.order_placed(order)
    for seller_id in order.seller_ids():
        fanout.new_order_for_seller(order, seller_id)
        fanout.order_paid_for_seller(order, seller_id)
        if placed.params.sms_notification:
            seller = find_member(seller_id)
            if seller is not None and seller.phone:
                fanout.order_paid_sms(order, seller_id)


def _dispatch_couriers(placed: PlacedOrder, ctx: PipelineContext) -> None:
    if placed.order.delivery_mode == DeliveryMode.DELIVERY.value:
        dispatch_order(placed.order, placed.params, ctx.policies.dispatch)


def _settle_payouts(placed: PlacedOrder, ctx: PipelineContext) -> None:
    placed.settled = settle_order(placed.order, ctx.policies.fees, ctx.processor)


def _award_commissions(placed: PlacedOrder, ctx: PipelineContext) -> None:
    for item in placed.settled:
        award_order_commission(
            item.order_id,
            item.product_id,
            item.settlement.platform_fee_cents,
            placed.order.buyer_id,
            item.seller_id,
            ctx.policies.affiliate,
            currency=ctx.policies.fees.currency,
        )


def _issue_label(placed: PlacedOrder, ctx: PipelineContext) -> None:
    if placed.order.is_shipping:
        issue_label(placed.order)


def _pay_couriers(placed: PlacedOrder, ctx: PipelineContext) -> None:
    if placed.order.delivery_mode == DeliveryMode.DELIVERY.value:
        settle_courier_legs(placed.order, placed.params, ctx.policies.fees)


POST_COMMIT_TASKS: list[tuple[str, Callable[[PlacedOrder, PipelineContext], None]]] = [
    ("dispatch", _dispatch_couriers),
    ("notifications", _notify_parties),
    ("payouts", _settle_payouts),
    ("commissions", _award_commissions),
    ("shipping_label", _issue_label),
    ("courier_payouts", _pay_couriers),
]


def run_post_commit(placed: PlacedOrder, ctx: PipelineContext) -> list[str]:
    """Run every post-commit task; returns the names of the tasks that failed."""
    failed = []
    for name, task in POST_COMMIT_TASKS:
        try:
            task(placed, ctx)
        except Exception as e:
            failed.append(name)
            logger.error("Post-commit task failed", task=name, order_id=str(placed.order.id), error=str(e))
    return failed


def on_checkout_completed(session: CheckoutSessionPayload, ctx: PipelineContext) -> Acknowledgment:
    if session.is_subscription:
        apply_checkout_subscription(session, ctx.processor, ctx.policies)
        return Acknowledgment.ok()

    try:
        placed = place_order_for_session(session)
    except Exception as exc:
        # Something may have committed before the failure surfaced
        existing = find_order_for_session(session.id)
        if existing is not None:
            logger.warning(
                "Order exists despite error, acknowledging",
                session_id=session.id,
                order_id=str(existing.id),
                error=str(exc),
            )
            return Acknowledgment.ok()

        error_class = classify(exc)
        logger.error(
            "Order processing failed",
            session_id=session.id,
            error_class=error_class.value,
            error_type=type(exc).__name__,
            error=str(exc),
            metadata_keys=sorted(session.metadata),
        )
        return Acknowledgment.for_error(error_class, f"Order processing failed: {exc}")

    if placed is None:
        return Acknowledgment.ok("duplicate")

    order_id, params = placed
    order = current_domain.repository_for(Order).get(order_id)
    run_post_commit(PlacedOrder(order=order, params=params), ctx)
    return Acknowledgment.ok()


# --- subscriptions, invoices, refunds ------------------------------------------


def on_subscription_updated(subscription: SubscriptionPayload, ctx: PipelineContext) -> Acknowledgment:
    apply_subscription_update(subscription, ctx.policies)
    return Acknowledgment.ok()


def on_subscription_deleted(subscription: SubscriptionPayload, ctx: PipelineContext) -> Acknowledgment:
    apply_subscription_deleted(subscription)
    return Acknowledgment.ok()


def on_invoice_paid(invoice: InvoicePayload, ctx: PipelineContext) -> Acknowledgment:
    if invoice.subscription and invoice.amount_paid:
        award_invoice_commission(
            invoice.id,
            invoice.subscription,
            invoice.amount_paid,
            ctx.policies.affiliate,
            currency=ctx.policies.fees.currency,
        )
    return Acknowledgment.ok()


def on_charge_refunded(charge: ChargePayload, ctx: PipelineContext) -> Acknowledgment:
    if charge.invoice and charge.amount_refunded > 0:
        reverse_commission(charge.id, charge.invoice, charge.amount_refunded, CommissionEventType.REFUND)
    return Acknowledgment.ok()


def on_dispute_created(dispute: DisputePayload, ctx: PipelineContext) -> Acknowledgment:
    if not dispute.charge:
        return Acknowledgment.ok()

    charge = ctx.processor.retrieve_charge(dispute.charge)
    if charge is not None and charge.invoice_id:
        reverse_commission(dispute.id, charge.invoice_id, dispute.amount, CommissionEventType.CHARGEBACK)
    return Acknowledgment.ok()


# --- transfers and balance -----------------------------------------------------


def on_transfer_created(transfer: TransferPayload, ctx: PipelineContext) -> Acknowledgment:
    confirm_transfer(transfer.id)
    return Acknowledgment.ok()


def on_transfer_reversed(reversal: TransferReversalPayload, ctx: PipelineContext) -> Acknowledgment:
    if reversal.transfer:
        record_transfer_reversal(reversal.id, reversal.transfer, reversal.amount)
    return Acknowledgment.ok()


def on_transfer_updated(transfer: TransferPayload, ctx: PipelineContext) -> Acknowledgment:
    payout = payout_for_transfer(transfer.id)
    logger.info("Transfer updated", transfer_id=transfer.id, payout_id=str(payout.id) if payout else None)
    return Acknowledgment.ok()


def on_balance_available(balance: BalancePayload, ctx: PipelineContext) -> Acknowledgment:
    logger.info("Balance available", balances=balance.available)
    return Acknowledgment.ok()


HANDLERS: dict[EventKind, Callable] = {
    EventKind.CHECKOUT_SESSION_COMPLETED: on_checkout_completed,
    EventKind.SUBSCRIPTION_UPDATED: on_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: on_subscription_deleted,
    EventKind.INVOICE_PAID: on_invoice_paid,
    EventKind.CHARGE_REFUNDED: on_charge_refunded,
    EventKind.DISPUTE_CREATED: on_dispute_created,
    EventKind.TRANSFER_CREATED: on_transfer_created,
    EventKind.TRANSFER_REVERSED: on_transfer_reversed,
    EventKind.TRANSFER_UPDATED: on_transfer_updated,
    EventKind.BALANCE_AVAILABLE: on_balance_available,
}


def handle_event(
    event: dict | InboundEvent,
    processor: PaymentProcessor | None = None,
    policies: Policies | None = None,
) -> Acknowledgment:
    """Process one verified processor event and say how to acknowledge it."""
    try:
        inbound = event if isinstance(event, InboundEvent) else InboundEvent.model_validate(event)
    except PayloadValidationError as e:
        logger.error("Malformed event envelope", error=str(e))
        return Acknowledgment.terminal("Malformed event")

    ctx = PipelineContext(
        processor=processor or get_processor(),
        policies=policies or Policies.from_env(),
    )
    bind_event_context(event_id=inbound.id, event_type=inbound.type)
    try:
        key = IdempotencyKey.event(inbound.id)
        if has_processed(key):
            logger.info("Duplicate event, already processed")
            return Acknowledgment.ok("duplicate")

        kind = inbound.kind
        if kind is None:
            logger.info("Unhandled event type")
            return Acknowledgment.ok("ignored")

        try:
            payload = inbound.payload()
        except PayloadValidationError as e:
            logger.error("Malformed event payload", error=str(e))
            return Acknowledgment.terminal("Malformed event payload")

        try:
            ack = HANDLERS[kind](payload, ctx)
        except Exception as exc:
            error_class = classify(exc)
            logger.error("Event handler failed", error_class=error_class.value, error=str(exc))
            return Acknowledgment.for_error(error_class, f"Event processing failed: {exc}")

        if ack.is_success and not mark_processed(key, inbound.type):
            logger.info("Duplicate event, processed concurrently")
            return Acknowledgment.ok("duplicate")
        return ack
    finally:
        clear_event_context()
