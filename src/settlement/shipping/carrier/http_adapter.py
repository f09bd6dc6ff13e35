"""HTTP carrier adapter — talks to the label provider's REST API with httpx."""

import os

import httpx
import structlog

from settlement.shipping.carrier.port import CarrierPort, LabelRequest

logger = structlog.get_logger(__name__)


def _party(party) -> dict:
    return {
        "name": party.name,
        "address": party.address,
        "postalCode": party.postal_code,
        "city": party.city,
        "country": party.country,
        "email": party.email,
        "phone": party.phone,
    }


class HttpCarrier(CarrierPort):
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or os.environ.get("CARRIER_API_URL", "")).rstrip("/")
        self.api_key = api_key or os.environ.get("CARRIER_API_KEY", "")
        self.timeout_seconds = timeout_seconds or float(os.environ.get("CARRIER_TIMEOUT_SECONDS", "15"))
        self.transport = transport

    def create_label(self, request: LabelRequest) -> dict:
        if not self.base_url or not self.api_key:
            return {"error": "Carrier API is not configured"}

        body = {
            "orderId": request.order_id,
            "sender": _party(request.sender),
            "recipient": _party(request.recipient),
            "weight": request.parcel.weight_kg,
            "dimensions": {
                "length": request.parcel.length_cm,
                "width": request.parcel.width_cm,
                "height": request.parcel.height_cm,
            },
            "description": request.description,
        }
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}/v1/shipping/labels",
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Carrier rejected label request", order_id=request.order_id, status=e.response.status_code)
            return {"error": f"Carrier returned {e.response.status_code}"}
        except httpx.HTTPError as e:
            logger.error("Carrier request failed", order_id=request.order_id, error=str(e))
            return {"error": str(e)}

        return {
            "label_id": data.get("labelId"),
            "pdf_url": data.get("pdfUrl"),
            "tracking_number": data.get("trackingNumber"),
            "carrier": data.get("carrier"),
            "price": data.get("price") or 0,
        }
