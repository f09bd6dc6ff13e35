"""Tests for the processor and carrier registries and their real adapters."""

import hashlib
import hmac
import json
import time

import httpx
import pytest
import stripe

from settlement.errors import InvalidSignatureError
from settlement.processor import get_processor, reset_processor
from settlement.processor.fake_adapter import FakeProcessor
from settlement.processor.stripe_adapter import StripeProcessor
from settlement.shipping.carrier import get_carrier, reset_carrier
from settlement.shipping.carrier.fake_adapter import FakeCarrier
from settlement.shipping.carrier.http_adapter import HttpCarrier
from settlement.shipping.carrier.port import LabelRequest, Parcel, Party

WEBHOOK_SECRET = "whsec_test_secret"


class _Resource(dict):
    """A processor resource: dict access plus an ``id`` attribute."""

    @property
    def id(self):
        return self["id"]


def _label_request():
    return LabelRequest(
        order_id="order-1",
        sender=Party(name="Seller", address="Kalverstraat 1", postal_code="1012NX", city="Amsterdam", country="NL"),
        recipient=Party(name="Buyer", address="Damrak 10", postal_code="1012LG", city="Amsterdam", country="NL"),
        parcel=Parcel(weight_kg=1.0, length_cm=30, width_cm=20, height_cm=10),
        description="Order order-1",
    )


def _sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture()
def stripe_processor(monkeypatch):
    monkeypatch.setattr(stripe, "api_key", None)
    monkeypatch.setattr(stripe, "default_http_client", None)
    return StripeProcessor(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET, timeout_seconds=5)


class TestProcessorRegistry:
    def test_fake_by_default(self, monkeypatch):
        monkeypatch.delenv("PAYMENT_PROCESSOR", raising=False)
        reset_processor()
        assert isinstance(get_processor(), FakeProcessor)

    def test_stripe_selected_by_environment(self, monkeypatch):
        monkeypatch.setattr(stripe, "api_key", None)
        monkeypatch.setattr(stripe, "default_http_client", None)
        monkeypatch.setenv("PAYMENT_PROCESSOR", "stripe")
        reset_processor()
        assert isinstance(get_processor(), StripeProcessor)

    def test_unknown_processor(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_PROCESSOR", "paypal")
        reset_processor()
        with pytest.raises(ValueError):
            get_processor()


class TestStripeProcessor:
    def test_signed_event_is_decoded(self, stripe_processor):
        payload = json.dumps({"id": "evt_1", "type": "balance.available", "data": {"object": {}}})

        event = stripe_processor.construct_event(payload, _sign(payload))

        assert event["id"] == "evt_1"
        assert event["type"] == "balance.available"

    def test_wrong_secret_is_rejected(self, stripe_processor):
        payload = json.dumps({"id": "evt_1", "type": "balance.available", "data": {"object": {}}})
        with pytest.raises(InvalidSignatureError):
            stripe_processor.construct_event(payload, _sign(payload, secret="whsec_other"))

    def test_garbled_header_is_rejected(self, stripe_processor):
        with pytest.raises(InvalidSignatureError):
            stripe_processor.construct_event('{"id": "evt_1"}', "not-a-signature")

    def test_transfer(self, stripe_processor, monkeypatch):
        calls = []

        def create(**params):
            calls.append(params)
            return _Resource(id="tr_123")

        monkeypatch.setattr(stripe.Transfer, "create", create)

        result = stripe_processor.create_transfer(
            880, "eur", "acct_seller_1", transfer_group="order-1", metadata={"order_id": "order-1", "quantity": 2}
        )

        assert result.success is True
        assert result.transfer_id == "tr_123"
        assert calls[0]["amount"] == 880
        assert calls[0]["destination"] == "acct_seller_1"
        assert calls[0]["transfer_group"] == "order-1"
        assert calls[0]["metadata"] == {"order_id": "order-1", "quantity": "2"}

    def test_transfer_failure_is_a_result(self, stripe_processor, monkeypatch):
        def create(**params):
            raise stripe.InvalidRequestError("No such destination", "destination")

        monkeypatch.setattr(stripe.Transfer, "create", create)

        result = stripe_processor.create_transfer(880, "eur", "acct_missing")

        assert result.success is False
        assert "No such destination" in result.failure_reason

    def test_subscription_snapshot(self, stripe_processor, monkeypatch):
        subscription = _Resource(
            id="sub_1",
            status="active",
            customer="cus_1",
            current_period_end=1893456000,
            items={"data": [{"price": {"id": "price_pro"}}]},
            metadata={"plan": "PRO"},
        )
        monkeypatch.setattr(stripe.Subscription, "retrieve", lambda subscription_id: subscription)

        snapshot = stripe_processor.retrieve_subscription("sub_1")

        assert snapshot.is_active
        assert snapshot.customer_id == "cus_1"
        assert snapshot.price_id == "price_pro"
        assert snapshot.current_period_end.year == 2030
        assert snapshot.metadata == {"plan": "PRO"}

    def test_subscription_lookup_failure(self, stripe_processor, monkeypatch):
        def retrieve(subscription_id):
            raise stripe.APIConnectionError("Network down")

        monkeypatch.setattr(stripe.Subscription, "retrieve", retrieve)
        assert stripe_processor.retrieve_subscription("sub_1") is None

    def test_charge_snapshot_with_expanded_invoice(self, stripe_processor, monkeypatch):
        charge = _Resource(id="ch_1", amount=2900, amount_refunded=1000, invoice={"id": "in_1"})
        monkeypatch.setattr(stripe.Charge, "retrieve", lambda charge_id: charge)

        snapshot = stripe_processor.retrieve_charge("ch_1")

        assert snapshot.amount == 2900
        assert snapshot.amount_refunded == 1000
        assert snapshot.invoice_id == "in_1"


class TestCarrierRegistry:
    def test_fake_by_default(self, monkeypatch):
        monkeypatch.delenv("CARRIER_ADAPTER", raising=False)
        reset_carrier()
        assert isinstance(get_carrier(), FakeCarrier)

    def test_http_selected_by_environment(self, monkeypatch):
        monkeypatch.setenv("CARRIER_ADAPTER", "http")
        reset_carrier()
        assert isinstance(get_carrier(), HttpCarrier)

    def test_unknown_carrier(self, monkeypatch):
        monkeypatch.setenv("CARRIER_ADAPTER", "pigeon")
        reset_carrier()
        with pytest.raises(ValueError):
            get_carrier()


class TestHttpCarrier:
    def test_label_is_mapped_from_the_response(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                201,
                json={
                    "labelId": "lbl_1",
                    "pdfUrl": "https://labels.example.com/lbl_1.pdf",
                    "trackingNumber": "3SABC123",
                    "carrier": "PostNL",
                    "price": 6.95,
                },
            )

        carrier = HttpCarrier("https://carrier.example.com/", "key_1", 5, transport=httpx.MockTransport(handler))

        result = carrier.create_label(_label_request())

        assert result == {
            "label_id": "lbl_1",
            "pdf_url": "https://labels.example.com/lbl_1.pdf",
            "tracking_number": "3SABC123",
            "carrier": "PostNL",
            "price": 6.95,
        }
        assert str(requests[0].url) == "https://carrier.example.com/v1/shipping/labels"
        assert requests[0].headers["Authorization"] == "Bearer key_1"
        body = json.loads(requests[0].content)
        assert body["recipient"]["postalCode"] == "1012LG"
        assert body["dimensions"] == {"length": 30, "width": 20, "height": 10}

    def test_rejected_request(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "Bad postal code"}))
        carrier = HttpCarrier("https://carrier.example.com", "key_1", 5, transport=transport)

        assert carrier.create_label(_label_request()) == {"error": "Carrier returned 422"}

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        carrier = HttpCarrier("https://carrier.example.com", "key_1", 5, transport=httpx.MockTransport(handler))

        assert carrier.create_label(_label_request()) == {"error": "Connection refused"}

    def test_unconfigured(self, monkeypatch):
        monkeypatch.delenv("CARRIER_API_URL", raising=False)
        monkeypatch.delenv("CARRIER_API_KEY", raising=False)
        assert HttpCarrier().create_label(_label_request()) == {"error": "Carrier API is not configured"}
