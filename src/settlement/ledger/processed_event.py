"""ProcessedEvent: durable proof that a provider event produced its effects."""

from datetime import UTC, datetime

from protean.fields import DateTime, String

from settlement.domain import settlement


@settlement.aggregate
class ProcessedEvent:
    event_id = String(required=True, max_length=255, unique=True)
    event_type = String(max_length=100)
    processed_at = DateTime(default=lambda: datetime.now(UTC))
