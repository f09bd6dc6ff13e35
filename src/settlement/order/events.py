"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from settlement.domain import settlement


@settlement.event(part_of="Order")
class OrderPlaced:
    """A paid checkout became an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    session_id = String()
    kind = String(required=True)
    delivery_mode = String(required=True)
    total_amount_cents = Integer(required=True)
    item_count = Integer(default=0)
    placed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class ShippingLabelAttached:
    """A carrier label was issued and its tracking data copied onto the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    label_id = String(required=True)
    tracking_number = String()
    carrier = String()
    label_cost_cents = Integer(default=0)
