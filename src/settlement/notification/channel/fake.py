"""Fake channel adapters — record every message in memory for test assertions."""

from uuid import uuid4

from settlement.notification.channel.port import EmailPort, PushPort, SMSPort


class _RecordingAdapter:
    prefix = "msg"

    def __init__(self):
        self.sent_messages: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def _record(self, **message) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"{self.prefix}-{uuid4().hex[:12]}"
        self.sent_messages.append({"message_id": message_id, **message})
        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        self.sent_messages.clear()
        self.should_succeed = True
        self.failure_reason = "Delivery failed"


class FakePushAdapter(_RecordingAdapter, PushPort):
    prefix = "push"

    def send(self, user_id: str, title: str, body: str, data: dict | None = None) -> dict:
        return self._record(user_id=user_id, title=title, body=body, data=data)


class FakeEmailAdapter(_RecordingAdapter, EmailPort):
    prefix = "email"

    def send(self, to: str, subject: str, body: str) -> dict:
        return self._record(to=to, subject=subject, body=body)


class FakeSMSAdapter(_RecordingAdapter, SMSPort):
    prefix = "sms"

    def send(self, to: str, body: str) -> dict:
        return self._record(to=to, body=body)
