"""FastAPI routes for the Settlement domain: processor webhook and delivery."""

import os

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from settlement.api.schemas import (
    AcknowledgmentResponse,
    CarrierConfigResponse,
    ConfigureCarrierRequest,
    ConfigureProcessorRequest,
    DeliveryResponse,
    ProcessorConfigResponse,
)
from settlement.config import FeeSchedule
from settlement.errors import InvalidSignatureError
from settlement.order.delivery import deliver_order
from settlement.order.order import Order
from settlement.processor import get_processor
from settlement.processor.fake_adapter import FakeProcessor
from settlement.shipping.carrier import get_carrier
from settlement.shipping.carrier.fake_adapter import FakeCarrier
from settlement.webhook.pipeline import handle_event

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/processor")
async def processor_webhook(
    request: Request,
    stripe_signature: str = Header(default=""),
) -> JSONResponse:
    """Receive a payment processor event.

    The status code tells the processor whether to redeliver: 200 stops it,
    400 marks the event as undeliverable, 500 asks for a retry.
    """
    payload = await request.body()
    processor = get_processor()
    try:
        event = processor.construct_event(payload, stripe_signature)
    except InvalidSignatureError as e:
        logger.warning("Rejected webhook with invalid signature", error=str(e))
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    ack = handle_event(event, processor=processor)
    return JSONResponse(
        status_code=ack.status_code,
        content=AcknowledgmentResponse(status="ok" if ack.is_success else "error", message=ack.message).model_dump(),
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/{order_id}/delivered", response_model=DeliveryResponse)
async def record_delivery(order_id: str) -> DeliveryResponse:
    """Mark an order delivered and release escrow held until delivery."""
    try:
        released = deliver_order(order_id, get_processor(), FeeSchedule.from_env())
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    except ValidationError as e:
        raise HTTPException(status_code=409, detail=e.messages)

    order = current_domain.repository_for(Order).get(order_id)
    return DeliveryResponse(order_id=order_id, status=order.status, escrow_released=released)


# ---------------------------------------------------------------------------
# Sandbox Router (test doubles, non-production only)
# ---------------------------------------------------------------------------
sandbox_router = APIRouter(tags=["sandbox"])


def _refuse_in_production(what: str) -> None:
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail=f"{what} configuration not available in production")


@sandbox_router.post("/processor/configure", response_model=ProcessorConfigResponse)
async def configure_processor(body: ConfigureProcessorRequest) -> ProcessorConfigResponse:
    """Toggle FakeProcessor transfer outcomes for manual API testing."""
    _refuse_in_production("Processor")

    processor = get_processor()
    if not isinstance(processor, FakeProcessor):
        raise HTTPException(status_code=400, detail="Processor configuration only available for FakeProcessor")

    processor.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return ProcessorConfigResponse(
        processor=type(processor).__name__,
        should_succeed=processor.should_succeed,
        failure_reason=processor.failure_reason,
    )


@sandbox_router.post("/carrier/configure", response_model=CarrierConfigResponse)
async def configure_carrier(body: ConfigureCarrierRequest) -> CarrierConfigResponse:
    """Toggle FakeCarrier label outcomes for manual API testing."""
    _refuse_in_production("Carrier")

    carrier = get_carrier()
    if not isinstance(carrier, FakeCarrier):
        raise HTTPException(status_code=400, detail="Carrier configuration only available for FakeCarrier")

    carrier.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason, price=body.price)
    return CarrierConfigResponse(
        carrier=type(carrier).__name__,
        should_succeed=carrier.should_succeed,
        failure_reason=carrier.failure_reason,
        price=carrier.price,
    )
