"""Notification Fanout — the messages the settlement pipeline sends.

Each function builds one message and hands it to ``NotificationService``,
which swallows and logs failures. None of these may fail the caller.
"""

from settlement.money import format_cents
from settlement.notification.notification import NotificationChannel
from settlement.notification.service import NotificationMessage, NotificationService
from settlement.order.numbering import display_order_number

PUSH = NotificationChannel.PUSH.value
EMAIL = NotificationChannel.EMAIL.value
SMS = NotificationChannel.SMS.value


def _send(user_id, message: NotificationMessage, channels: list[str], save_to_database: bool = True) -> dict:
    return NotificationService().send(user_id, message, channels, save_to_database=save_to_database)


def order_placed(order) -> dict:
    number = display_order_number(order.order_number)
    return _send(
        order.buyer_id,
        NotificationMessage(
            notification_type="ORDER_PLACED",
            title="Order confirmed",
            body=f"Your order {number} of {format_cents(order.total_amount_cents or 0)} is confirmed.",
            data={"order_id": str(order.id), "order_number": order.order_number},
        ),
        [PUSH, EMAIL],
    )


def new_order_for_seller(order, seller_id) -> dict:
    number = display_order_number(order.order_number)
    return _send(
        seller_id,
        NotificationMessage(
            notification_type="NEW_ORDER",
            title="New order",
            body=f"You received order {number} ({order.delivery_mode.lower()}).",
            urgent=True,
            data={"order_id": str(order.id), "order_number": order.order_number},
        ),
        [PUSH],
    )


def order_paid_for_seller(order, seller_id) -> dict:
    number = display_order_number(order.order_number)
    return _send(
        seller_id,
        NotificationMessage(
            notification_type="ORDER_PAID",
            title="Order paid",
            body=f"Order {number} has been paid. Check your dashboard for the details.",
            data={"order_id": str(order.id)},
        ),
        [EMAIL],
        save_to_database=False,
    )


def order_paid_sms(order, seller_id) -> dict:
    number = display_order_number(order.order_number)
    return _send(
        seller_id,
        NotificationMessage(
            notification_type="ORDER_PAID_SMS",
            title="Order paid",
            body=f"New paid order {number}. Open the app to see the details.",
        ),
        [SMS],
        save_to_database=False,
    )


def delivery_available(courier_id, delivery_order, distance_km: float, estimated_minutes: int) -> dict:
    return _send(
        courier_id,
        NotificationMessage(
            notification_type="DELIVERY_AVAILABLE",
            title="New delivery available",
            body=(
                f"Delivery {distance_km:.1f} km from the buyer, "
                f"fee {format_cents(delivery_order.delivery_fee_cents or 0)}, "
                f"about {estimated_minutes} minutes."
            ),
            urgent=True,
            data={
                "delivery_order_id": str(delivery_order.id),
                "order_id": str(delivery_order.order_id),
                "distance_km": round(distance_km, 1),
                "delivery_fee_cents": delivery_order.delivery_fee_cents,
                "estimated_minutes": estimated_minutes,
            },
        ),
        [PUSH],
    )


def shipping_label_ready(seller_id, order, label) -> dict:
    number = display_order_number(order.order_number)
    return _send(
        seller_id,
        NotificationMessage(
            notification_type="SHIPPING_LABEL_READY",
            title="Shipping label ready",
            body=f"The {label.carrier} label for order {number} is ready. Tracking: {label.tracking_number}.",
            data={"order_id": str(order.id), "pdf_url": label.pdf_url, "tracking_number": label.tracking_number},
        ),
        [PUSH, EMAIL],
    )


def payout_received(user_id, amount_cents: int, transfer_id: str) -> dict:
    return _send(
        user_id,
        NotificationMessage(
            notification_type="PAYOUT_RECEIVED",
            title="Payout on its way",
            body=f"{format_cents(amount_cents)} has been transferred to your account.",
            data={"transfer_id": transfer_id, "amount_cents": amount_cents},
        ),
        [PUSH, EMAIL],
    )


def payout_reversed(user_id, amount_cents: int, reversal_id: str) -> dict:
    return _send(
        user_id,
        NotificationMessage(
            notification_type="PAYOUT_REVERSED",
            title="Payout reversed",
            body=f"A payout of {format_cents(amount_cents)} was reversed. Contact support if this is unexpected.",
            urgent=True,
            data={"reversal_id": reversal_id, "amount_cents": amount_cents},
        ),
        [PUSH, EMAIL],
    )
