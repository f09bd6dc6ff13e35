"""Fake carrier adapter — deterministic labels for testing and development."""

from uuid import uuid4

from settlement.shipping.carrier.port import CarrierPort, LabelRequest


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.price = 6.95
        self.requests: list[LabelRequest] = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "Carrier unavailable", price: float = 6.95):
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.price = price

    def create_label(self, request: LabelRequest) -> dict:
        self.requests.append(request)
        if not self.should_succeed:
            return {"error": self.failure_reason}

        label_id = f"lbl-{uuid4().hex[:8]}"
        return {
            "label_id": label_id,
            "pdf_url": f"https://fake-carrier.example.com/labels/{label_id}.pdf",
            "tracking_number": f"FAKE-{uuid4().hex[:12].upper()}",
            "carrier": "PostNL",
            "price": self.price,
        }
