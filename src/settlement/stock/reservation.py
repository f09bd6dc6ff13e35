"""StockReservation — a hold placed at cart time, confirmed once paid."""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


class ReservationStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


@settlement.aggregate
class StockReservation:
    session_id = String(required=True, max_length=255)
    product_id = Identifier(required=True)
    quantity = Integer(min_value=1)
    status = String(
        max_length=20,
        choices=ReservationStatus,
        default=ReservationStatus.PENDING.value,
    )

    def confirm(self) -> None:
        if ReservationStatus(self.status) != ReservationStatus.PENDING:
            raise ValidationError({"status": [f"Cannot confirm reservation in {self.status} state"]})
        self.status = ReservationStatus.CONFIRMED.value

    def cancel(self) -> None:
        if ReservationStatus(self.status) != ReservationStatus.PENDING:
            raise ValidationError({"status": [f"Cannot cancel reservation in {self.status} state"]})
        self.status = ReservationStatus.CANCELLED.value


def pending_reservation_for(session_id: str, product_id: str) -> StockReservation | None:
    reservations = (
        current_domain.repository_for(StockReservation)
        ._dao.query.filter(session_id=session_id, product_id=product_id)
        .all()
        .items
    )
    return next(
        (r for r in reservations if r.status == ReservationStatus.PENDING.value),
        None,
    )
