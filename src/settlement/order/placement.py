"""Order placement — the one atomic step of checkout settlement.

Everything in ``PlaceOrderHandler`` commits or rolls back together: stock
decrements, reservation confirmations, the order with its items, and the
order's conversation. If any line is out of stock, nothing is written.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from settlement.cart.decoder import CartLine
from settlement.domain import settlement
from settlement.ledger.idempotency import find_order_for_session
from settlement.member.member import find_member
from settlement.order.conversation import Conversation
from settlement.order.numbering import display_order_number, get_number_generator
from settlement.order.order import DeliveryMode, Order
from settlement.stock.product import Product
from settlement.stock.reservation import pending_reservation_for

logger = structlog.get_logger(__name__)


@settlement.command(part_of="Order")
class PlaceOrder:
    session_id = String(required=True, max_length=255)
    buyer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity, price_cents, seller_id}
    delivery_mode = String(max_length=20, default=DeliveryMode.PICKUP.value)
    address = String(max_length=500)
    notes = Text()
    pickup_date = DateTime()
    delivery_date = DateTime()
    total_amount_cents = Integer(default=0)
    delivery_fee_cents = Integer(default=0)
    payment_reference = String(max_length=255)


def serialize_lines(lines: list[CartLine]) -> str:
    return json.dumps(
        [
            {
                "product_id": line.product_id,
                "quantity": line.quantity,
                "price_cents": line.price_cents,
                "seller_id": line.seller_id,
            }
            for line in lines
        ]
    )


def _load_product(repo, product_id: str) -> Product:
    try:
        return repo.get(product_id)
    except ObjectNotFoundError:
        raise ValidationError({"product_id": [f"Product {product_id} not found"]})


def _pickup_message(seller) -> str:
    text = f"Pickup address: {seller.pickup_address()}"
    if seller.phone:
        text += f"\nPhone: {seller.phone}"
    return text


@settlement.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        existing = find_order_for_session(command.session_id)
        if existing is not None:
            return str(existing.id)

        records = json.loads(command.items) if isinstance(command.items, str) else command.items
        lines = [
            CartLine(
                product_id=str(r["product_id"]),
                quantity=int(r["quantity"]),
                price_cents=int(r["price_cents"]),
                seller_id=r.get("seller_id"),
            )
            for r in records
        ]

        # One decrement per product even when the cart repeats it
        quantities: dict[str, int] = {}
        for line in lines:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

        product_repo = current_domain.repository_for(Product)
        products = {}
        for product_id, quantity in quantities.items():
            product = _load_product(product_repo, product_id)
            product.decrement_stock(quantity)
            product_repo.add(product)
            products[product_id] = product

            reservation = pending_reservation_for(command.session_id, product_id)
            if reservation is not None:
                reservation.confirm()
                current_domain.repository_for(type(reservation)).add(reservation)

        # The product's seller is authoritative for money; the cart's is only a hint
        resolved = [
            CartLine(
                product_id=line.product_id,
                quantity=line.quantity,
                price_cents=line.price_cents,
                seller_id=str(products[line.product_id].seller_id),
            )
            for line in lines
        ]

        order = Order.place(
            order_number=get_number_generator().product_order_number(),
            buyer_id=command.buyer_id,
            session_id=command.session_id,
            delivery_mode=command.delivery_mode or DeliveryMode.PICKUP.value,
            total_amount_cents=command.total_amount_cents or 0,
            lines=resolved,
            address=command.address,
            pickup_date=command.pickup_date,
            delivery_date=command.delivery_date,
            notes=command.notes,
            delivery_fee_cents=command.delivery_fee_cents or 0,
            payment_reference=command.payment_reference,
        )
        current_domain.repository_for(Order).add(order)

        seller_ids = order.seller_ids()

        conversation = Conversation.open_for_order(
            order_id=order.id,
            title=f"Order {display_order_number(order.order_number)}",
            buyer_id=command.buyer_id,
            seller_ids=seller_ids,
        )
        if order.delivery_mode == DeliveryMode.PICKUP.value:
            for seller_id in seller_ids:
                seller = find_member(seller_id)
                if seller is not None:
                    conversation.post_system_message(_pickup_message(seller), sender_id=seller_id)
        current_domain.repository_for(Conversation).add(conversation)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            session_id=command.session_id,
            delivery_mode=order.delivery_mode,
            item_count=len(lines),
        )
        return str(order.id)
