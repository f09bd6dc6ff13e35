"""Member — contact, postal and location data for buyers, sellers and couriers."""

from protean.fields import Float, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


@settlement.aggregate
class Member:
    """A platform user as the settlement pipeline sees them.

    Coordinates are used for courier matching, postal fields for shipping
    labels and pickup messages, and ``payout_account_id`` is the connected
    processor account that transfers are sent to.
    """

    name: String(max_length=255)
    email: String(max_length=255)
    phone: String(max_length=50)
    address: String(max_length=500)
    postal_code: String(max_length=20)
    city: String(max_length=100)
    country: String(max_length=100)
    latitude: Float(min_value=-90.0, max_value=90.0)
    longitude: Float(min_value=-180.0, max_value=180.0)
    payout_account_id: String(max_length=255)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_postal_data(self) -> bool:
        return bool(self.postal_code) and bool(self.country)

    def pickup_address(self) -> str:
        parts = [self.address, self.postal_code, self.city]
        return ", ".join(p for p in parts if p) or "Address not available"


def find_member(user_id) -> Member | None:
    if not user_id:
        return None
    return current_domain.repository_for(Member)._dao.query.filter(id=str(user_id)).all().first
