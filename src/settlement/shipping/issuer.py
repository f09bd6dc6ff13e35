"""Shipping Label Issuer — one carrier label per shipping order.

The parcel is estimated from the item count: 1 kg per item, a footprint that
grows with the square root of the count, and 5 cm of height per item.
"""

import math

import structlog
from protean.utils.globals import current_domain

from settlement.member.member import find_member
from settlement.money import round_half_up
from settlement.notification import fanout
from settlement.order.numbering import display_order_number
from settlement.order.order import Order
from settlement.shipping.carrier import get_carrier
from settlement.shipping.carrier.port import LabelRequest, Parcel, Party
from settlement.shipping.label import ShippingLabel, label_for_order

logger = structlog.get_logger(__name__)


def estimate_parcel(item_count: int) -> Parcel:
    return Parcel(
        weight_kg=item_count * 1.0,
        length_cm=max(30, math.ceil(math.sqrt(item_count)) * 10),
        width_cm=20,
        height_cm=max(10, item_count * 5),
    )


def _party(member, fallback_name: str, fallback_address: str = "") -> Party:
    return Party(
        name=member.name or fallback_name,
        address=member.address or fallback_address,
        postal_code=member.postal_code,
        city=member.city or "",
        country=member.country,
        email=member.email,
        phone=member.phone,
    )


def issue_label(order: Order) -> ShippingLabel | None:
    """Request a label for a shipping order unless it already has one."""
    if not order.is_shipping:
        return None

    if label_for_order(order.id) is not None:
        logger.info("Shipping label already exists", order_id=str(order.id))
        return None

    if not order.items:
        return None

    seller_id = order.items[0].seller_id
    seller = find_member(seller_id)
    buyer = find_member(order.buyer_id)
    if seller is None or buyer is None or not seller.has_postal_data or not buyer.has_postal_data:
        logger.warning(
            "Missing postal data, shipping label not created",
            order_id=str(order.id),
            seller_complete=bool(seller and seller.has_postal_data),
            buyer_complete=bool(buyer and buyer.has_postal_data),
        )
        return None

    request = LabelRequest(
        order_id=str(order.id),
        sender=_party(seller, "Seller"),
        recipient=_party(buyer, "Buyer", order.delivery_address or ""),
        parcel=estimate_parcel(sum(item.quantity for item in order.items)),
        description=f"Order {display_order_number(order.order_number)}",
    )
    result = get_carrier().create_label(request)
    if "error" in result:
        logger.warning("Carrier could not create label", order_id=str(order.id), error=result["error"])
        return None

    price_cents = round_half_up(float(result["price"]) * 100)
    label = ShippingLabel(
        order_id=order.id,
        carrier_label_id=result["label_id"],
        pdf_url=result["pdf_url"],
        tracking_number=result["tracking_number"],
        carrier=result["carrier"],
        price_cents=price_cents,
    )
    current_domain.repository_for(ShippingLabel).add(label)

    order_repo = current_domain.repository_for(Order)
    fresh = order_repo.get(order.id)
    fresh.attach_shipping_label(result["label_id"], result["tracking_number"], result["carrier"], price_cents)
    order_repo.add(fresh)

    logger.info("Shipping label created", order_id=str(order.id), label_id=result["label_id"])
    fanout.shipping_label_ready(seller_id, fresh, label)
    return label
