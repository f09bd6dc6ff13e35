"""Pydantic request/response schemas for the Settlement API.

The processor webhook body is read raw (signature verification needs the
exact bytes), so only the acknowledgment and the operator endpoints have
schemas here.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------
class AcknowledgmentResponse(BaseModel):
    status: str
    message: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class DeliveryResponse(BaseModel):
    order_id: str
    status: str
    escrow_released: int


# ---------------------------------------------------------------------------
# Test doubles (non-production only)
# ---------------------------------------------------------------------------
class ConfigureProcessorRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Transfer declined"


class ProcessorConfigResponse(BaseModel):
    processor: str
    should_succeed: bool
    failure_reason: str


class ConfigureCarrierRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Carrier unavailable"
    price: float = Field(default=6.95, ge=0)


class CarrierConfigResponse(BaseModel):
    carrier: str
    should_succeed: bool
    failure_reason: str
    price: float
