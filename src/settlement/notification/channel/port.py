"""Channel ports — one abstract interface per transport.

Every ``send`` returns a dict with ``message_id``, ``status`` ("sent" or
"failed") and, on failure, ``error``.
"""

from abc import ABC, abstractmethod


class PushPort(ABC):
    @abstractmethod
    def send(self, user_id: str, title: str, body: str, data: dict | None = None) -> dict: ...


class EmailPort(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> dict: ...


class SMSPort(ABC):
    @abstractmethod
    def send(self, to: str, body: str) -> dict: ...
