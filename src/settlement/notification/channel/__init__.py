"""Channel adapter registry — one singleton adapter per notification channel.

Fake adapters are used by default; transports for real providers are
registered with ``set_channel()`` at application start.
"""

from settlement.notification.notification import NotificationChannel

_channel_instances: dict[str, object] = {}


def get_channel(channel_type: str):
    """Return the adapter for ``channel_type`` ("push", "email" or "sms")."""
    if channel_type not in _channel_instances:
        from settlement.notification.channel.fake import FakeEmailAdapter, FakePushAdapter, FakeSMSAdapter

        if channel_type == NotificationChannel.PUSH.value:
            _channel_instances[channel_type] = FakePushAdapter()
        elif channel_type == NotificationChannel.EMAIL.value:
            _channel_instances[channel_type] = FakeEmailAdapter()
        elif channel_type == NotificationChannel.SMS.value:
            _channel_instances[channel_type] = FakeSMSAdapter()
        else:
            raise ValueError(f"Unknown channel type: {channel_type}")

    return _channel_instances[channel_type]


def set_channel(channel_type: str, adapter) -> None:
    _channel_instances[channel_type] = adapter


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    _channel_instances.clear()
