"""Product stock — the source of truth for oversell prevention.

Only the order placement unit of work decrements stock. A product whose
``stock`` is null is not stock-managed; its ``max_stock`` (when set) still
caps a single purchase but nothing is decremented.

Concurrent placements against the same product are serialized by the
repository's version check on write: the second writer's unit of work fails
and rolls back everything it did, and the event is redelivered against the
fresh stock level.
"""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String

from settlement.domain import settlement


@settlement.aggregate
class Product:
    seller_id = Identifier(required=True)
    title = String(max_length=255)
    stock = Integer()
    max_stock = Integer()

    @invariant.post
    def stock_cannot_be_negative(self):
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": [f"Stock went negative for product {self.id}"]})

    @property
    def is_stock_managed(self) -> bool:
        return self.stock is not None

    @property
    def available(self) -> int | None:
        if self.stock is not None:
            return self.stock
        return self.max_stock

    def decrement_stock(self, quantity: int) -> None:
        """Take ``quantity`` units out of stock, refusing to oversell."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        available = self.available
        if available is not None:
            if available <= 0:
                raise ValidationError(
                    {"stock": [f"Product {self.id} is out of stock. Available: {available}, Requested: {quantity}"]}
                )
            if available < quantity:
                raise ValidationError(
                    {"stock": [f"Insufficient stock for product {self.id}. Available: {available}, Requested: {quantity}"]}
                )

        if self.is_stock_managed:
            self.stock = self.stock - quantity
