"""Carrier port — abstract interface for shipping label providers.

The issuer programs against the port; adapters are swapped via the
CARRIER_ADAPTER environment variable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Party:
    name: str
    address: str
    postal_code: str
    city: str
    country: str
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class Parcel:
    weight_kg: float
    length_cm: int
    width_cm: int
    height_cm: int


@dataclass(frozen=True)
class LabelRequest:
    order_id: str
    sender: Party
    recipient: Party
    parcel: Parcel
    description: str | None = None


class CarrierPort(ABC):
    """Abstract interface for carrier adapters."""

    @abstractmethod
    def create_label(self, request: LabelRequest) -> dict:
        """Create a shipping label.

        Returns:
            dict with keys: label_id, pdf_url, tracking_number, carrier,
            price (in currency units); or a dict with an ``error`` key.
        """
        ...
