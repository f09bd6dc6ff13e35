"""NotificationService — routes one message to a member over several channels.

Sending is best-effort from the caller's point of view: a channel that
fails, or a member without an email address or phone number, is logged and
skipped. ``send`` never raises.
"""

from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from settlement.member.member import find_member
from settlement.notification.channel import get_channel
from settlement.notification.notification import Notification, NotificationChannel

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    notification_type: str
    title: str
    body: str
    urgent: bool = False
    data: dict = field(default_factory=dict)


class NotificationService:
    def send(
        self,
        user_id: str,
        message: NotificationMessage,
        channels: list[str],
        save_to_database: bool = False,
    ) -> dict[str, dict]:
        """Send ``message`` on each channel; returns the result per channel."""
        results: dict[str, dict] = {}
        try:
            member = find_member(user_id)
            for channel in channels:
                results[channel] = self._send_on_channel(channel, user_id, member, message)

            if save_to_database:
                self._save(user_id, message, channels, results)
        except Exception as e:
            logger.error(
                "Notification failed",
                user_id=str(user_id),
                notification_type=message.notification_type,
                error=str(e),
            )
        return results

    def _send_on_channel(self, channel: str, user_id: str, member, message: NotificationMessage) -> dict:
        try:
            adapter = get_channel(channel)
            if channel == NotificationChannel.PUSH.value:
                result = adapter.send(str(user_id), message.title, message.body, data=message.data)
            elif channel == NotificationChannel.EMAIL.value:
                if member is None or not member.email:
                    return {"status": "skipped", "error": "No email address"}
                result = adapter.send(member.email, message.title, message.body)
            elif channel == NotificationChannel.SMS.value:
                if member is None or not member.phone:
                    return {"status": "skipped", "error": "No phone number"}
                result = adapter.send(member.phone, message.body)
            else:
                raise ValueError(f"Unknown channel type: {channel}")
        except Exception as e:
            logger.error("Channel dispatch failed", channel=channel, user_id=str(user_id), error=str(e))
            return {"status": "failed", "error": str(e)}

        if result.get("status") != "sent":
            logger.warning("Channel reported failure", channel=channel, user_id=str(user_id), error=result.get("error"))
        return result

    def _save(self, user_id, message: NotificationMessage, channels: list[str], results: dict[str, dict]) -> None:
        notification = Notification.record(
            recipient_id=user_id,
            notification_type=message.notification_type,
            title=message.title,
            body=message.body,
            channels=channels,
            urgent=message.urgent,
            data=message.data,
        )
        if any(r.get("status") == "sent" for r in results.values()):
            notification.mark_sent()
        else:
            errors = "; ".join(r.get("error") or "unknown" for r in results.values())
            notification.mark_failed(errors or "No channel delivered")
        current_domain.repository_for(Notification).add(notification)
