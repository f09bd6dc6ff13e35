"""Notification — the saved in-app copy of a message sent to a member."""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text

from settlement.domain import settlement


class NotificationChannel(Enum):
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class NotificationStatus(Enum):
    PENDING = "Pending"
    SENT = "Sent"
    FAILED = "Failed"


@settlement.aggregate
class Notification:
    recipient_id = Identifier(required=True)
    notification_type = String(max_length=50)
    title = String(required=True, max_length=255)
    body = Text(required=True)
    channels = String(max_length=100)  # comma-separated NotificationChannel values
    urgent = Boolean(default=False)
    data = Text()  # JSON
    status = String(max_length=20, choices=NotificationStatus, default=NotificationStatus.PENDING.value)
    failure_reason = Text()
    created_at = DateTime(default=lambda: datetime.now(UTC))
    sent_at = DateTime()

    @classmethod
    def record(cls, recipient_id, notification_type, title, body, channels, urgent=False, data=None):
        return cls(
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            body=body,
            channels=",".join(channels),
            urgent=urgent,
            data=json.dumps(data) if data else None,
        )

    def mark_sent(self) -> None:
        if self.status != NotificationStatus.PENDING.value:
            raise ValidationError({"status": [f"Cannot mark {self.status} notification as sent"]})
        self.status = NotificationStatus.SENT.value
        self.sent_at = datetime.now(UTC)

    def mark_failed(self, reason: str) -> None:
        if self.status != NotificationStatus.PENDING.value:
            raise ValidationError({"status": [f"Cannot mark {self.status} notification as failed"]})
        self.status = NotificationStatus.FAILED.value
        self.failure_reason = reason
