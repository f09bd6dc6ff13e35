"""Cart Decoder — rebuilds the paid cart from checkout session metadata.

Checkout metadata is a small key/value side channel, so the storefront
writes the cart in one of two shapes:

* ``items``: a JSON list of ``{productId, quantity, priceCents, sellerId}``.
* ``items_compact_1``, ``items_compact_2``, ...: chunks that are joined with
  ``;`` in ascending *string* order of their keys (``items_compact_10`` sorts
  before ``items_compact_2``), each record being
  ``productId|quantity|priceCents|sellerId``.

The JSON form wins when it yields at least one line; otherwise the compact
form is tried.
"""

import json
from dataclasses import dataclass
from datetime import datetime

import structlog

from settlement.errors import EmptyCartError, MissingBuyerError

logger = structlog.get_logger(__name__)

COMPACT_PREFIX = "items_compact_"


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    price_cents: int
    seller_id: str | None = None

    @property
    def total_cents(self) -> int:
        return self.price_cents * self.quantity


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class CheckoutParameters:
    """Delivery and money fields the storefront attaches to a checkout."""

    buyer_id: str
    raw_delivery_mode: str | None
    delivery_mode: str
    address: str | None = None
    notes: str | None = None
    pickup_date: datetime | None = None
    delivery_date: datetime | None = None
    amount_paid_cents: int = 0
    products_total_cents: int = 0
    delivery_fee_cents: int = 0
    delivery_platform_cut_cents: int | None = None
    processor_fee_cents: int = 0
    sms_notification: bool = False
    buyer_coordinates: Coordinates | None = None


def map_delivery_mode(raw_mode: str | None) -> str:
    """Collapse the storefront's delivery options onto the stored modes."""
    if raw_mode == "SHIPPING":
        return "SHIPPING"
    if raw_mode in ("LOCAL_DELIVERY", "TEEN_DELIVERY", "DELIVERY"):
        return "DELIVERY"
    return "PICKUP"


def _to_int(value) -> int:
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(float(text))
    except ValueError:
        return 0


def _is_valid(line: CartLine) -> bool:
    return bool(line.product_id) and line.quantity > 0 and line.price_cents > 0


def _decode_json(raw: str) -> list[CartLine]:
    try:
        records = json.loads(raw)
    except (TypeError, ValueError) as exc:
        logger.warning("Cart JSON could not be parsed, trying compact encoding", error=str(exc))
        return []

    if not isinstance(records, list):
        logger.warning("Cart JSON is not a list, trying compact encoding")
        return []

    lines = []
    for record in records:
        if not isinstance(record, dict):
            continue
        lines.append(
            CartLine(
                product_id=str(record.get("productId") or ""),
                quantity=_to_int(record.get("quantity")),
                price_cents=_to_int(record.get("priceCents")),
                seller_id=record.get("sellerId") or None,
            )
        )
    return lines


def _decode_compact(metadata: dict) -> list[CartLine]:
    chunk_keys = sorted(key for key in metadata if key.startswith(COMPACT_PREFIX))
    chunks = [metadata[key] for key in chunk_keys if metadata[key]]
    if not chunks:
        return []

    lines = []
    for entry in ";".join(chunks).split(";"):
        if not entry:
            continue
        fields = entry.split("|")
        fields += [""] * (4 - len(fields))
        product_id, quantity, price_cents, seller_id = fields[:4]
        lines.append(
            CartLine(
                product_id=product_id,
                quantity=_to_int(quantity or "0"),
                price_cents=_to_int(price_cents or "0"),
                seller_id=seller_id or None,
            )
        )
    return lines


def decode_cart(metadata: dict) -> list[CartLine]:
    """Return the valid cart lines in checkout order.

    Lines without a product id, or with a non-positive quantity or price,
    are dropped. An empty list is returned rather than raised so that the
    caller can first check whether the session already produced an order.
    """
    lines: list[CartLine] = []
    if metadata.get("items"):
        lines = [line for line in _decode_json(metadata["items"]) if _is_valid(line)]

    if not lines:
        lines = [line for line in _decode_compact(metadata) if _is_valid(line)]

    return lines


def require_lines(lines: list[CartLine], session_id: str) -> list[CartLine]:
    if not lines:
        raise EmptyCartError(f"No valid items in metadata for session {session_id}")
    return lines


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring unparsable date in checkout metadata", value=value)
        return None


def _parse_coordinates(raw: str | None) -> Coordinates | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
        lat, lng = data.get("lat"), data.get("lng")
    except (TypeError, ValueError, AttributeError):
        logger.warning("Ignoring unparsable buyer coordinates", raw=raw)
        return None
    if lat is None or lng is None:
        return None
    return Coordinates(lat=float(lat), lng=float(lng))


def _parse_platform_cut(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        cut = json.loads(raw).get("homecheffCut")
    except (TypeError, ValueError, AttributeError):
        logger.warning("Ignoring unparsable delivery fee breakdown", raw=raw)
        return None
    return int(cut) if cut is not None else None


def decode_parameters(metadata: dict, session_id: str) -> CheckoutParameters:
    """Extract the buyer reference and delivery/money fields."""
    buyer_id = metadata.get("buyerId")
    if not buyer_id:
        raise MissingBuyerError(f"Missing buyerId in metadata for session {session_id}")

    raw_mode = metadata.get("deliveryMode")
    return CheckoutParameters(
        buyer_id=buyer_id,
        raw_delivery_mode=raw_mode,
        delivery_mode=map_delivery_mode(raw_mode),
        address=metadata.get("address") or None,
        notes=metadata.get("notes") or None,
        pickup_date=_parse_datetime(metadata.get("pickupDate")),
        delivery_date=_parse_datetime(metadata.get("deliveryDate")),
        amount_paid_cents=_to_int(metadata.get("amountPaidCents") or 0),
        products_total_cents=_to_int(metadata.get("productsTotalCents") or 0),
        delivery_fee_cents=_to_int(metadata.get("deliveryFeeCents") or 0),
        delivery_platform_cut_cents=_parse_platform_cut(metadata.get("deliveryFeeBreakdown")),
        processor_fee_cents=_to_int(metadata.get("stripeFeeCents") or 0),
        sms_notification=metadata.get("enableSmsNotification") == "true",
        buyer_coordinates=_parse_coordinates(metadata.get("coordinates")),
    )
