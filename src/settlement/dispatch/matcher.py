"""Courier Dispatch Matcher.

For a delivery-mode order, creates one unassigned DeliveryOrder per product
whose seller has coordinates and broadcasts it to every active courier who
is within their own radius of *both* the seller and the buyer.
"""

from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from settlement.cart.decoder import CheckoutParameters, Coordinates
from settlement.config import DispatchPolicy
from settlement.dispatch.delivery_order import DeliveryOrder
from settlement.dispatch.geo import distance_km
from settlement.member.courier import CourierProfile
from settlement.member.member import find_member
from settlement.notification import fanout

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CandidateCourier:
    user_id: str
    latitude: float
    longitude: float
    max_distance_km: float


@dataclass(frozen=True)
class DispatchResult:
    delivery_order_id: str
    notified_courier_ids: list[str]


def is_eligible(courier: CandidateCourier, seller: Coordinates, buyer: Coordinates) -> bool:
    to_seller = distance_km(courier.latitude, courier.longitude, seller.lat, seller.lng)
    to_buyer = distance_km(courier.latitude, courier.longitude, buyer.lat, buyer.lng)
    return to_seller <= courier.max_distance_km and to_buyer <= courier.max_distance_km


def candidate_couriers() -> list[CandidateCourier]:
    """Active couriers whose member record has coordinates."""
    profiles = current_domain.repository_for(CourierProfile)._dao.query.filter(is_active=True).all().items
    candidates = []
    for profile in profiles:
        member = find_member(profile.user_id)
        if member is None or not member.has_coordinates:
            continue
        candidates.append(
            CandidateCourier(
                user_id=str(profile.user_id),
                latitude=member.latitude,
                longitude=member.longitude,
                max_distance_km=profile.max_distance_km,
            )
        )
    return candidates


def dispatch_order(order, params: CheckoutParameters, policy: DispatchPolicy) -> list[DispatchResult]:
    if params.buyer_coordinates is None:
        logger.info("No buyer coordinates, skipping courier dispatch", order_id=str(order.id))
        return []

    buyer = params.buyer_coordinates
    couriers = candidate_couriers()
    fee_cents = params.delivery_fee_cents or policy.default_delivery_fee_cents
    repo = current_domain.repository_for(DeliveryOrder)

    results = []
    for item in order.items:
        seller = find_member(item.seller_id)
        if seller is None or not seller.has_coordinates:
            logger.info(
                "Seller has no coordinates, no delivery order created",
                order_id=str(order.id),
                product_id=str(item.product_id),
            )
            continue

        delivery_order = DeliveryOrder(
            order_id=order.id,
            product_id=item.product_id,
            delivery_address=params.address or "",
            delivery_fee_cents=fee_cents,
            estimated_minutes=policy.default_estimated_minutes if params.delivery_date else None,
        )
        repo.add(delivery_order)

        seller_point = Coordinates(lat=seller.latitude, lng=seller.longitude)
        notified = []
        for courier in couriers:
            if not is_eligible(courier, seller_point, buyer):
                continue
            to_buyer = distance_km(courier.latitude, courier.longitude, buyer.lat, buyer.lng)
            fanout.delivery_available(
                courier.user_id,
                delivery_order,
                to_buyer,
                delivery_order.estimated_minutes or policy.default_estimated_minutes,
            )
            notified.append(courier.user_id)

        logger.info(
            "Delivery order dispatched",
            order_id=str(order.id),
            delivery_order_id=str(delivery_order.id),
            eligible_couriers=len(notified),
        )
        results.append(DispatchResult(delivery_order_id=str(delivery_order.id), notified_courier_ids=notified))
    return results
