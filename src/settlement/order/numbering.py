"""Order-number generation.

Product orders are numbered ``ORD-YYYYMMDD-XXXXXX`` and subscription revenue
orders ``SUB-YYYYMMDD-XXXXXX``. The generator is swappable the same way the
processor and carrier adapters are, so tests can pin numbers.
"""

import secrets
import string
from abc import ABC, abstractmethod
from datetime import UTC, datetime

_ALPHABET = string.ascii_uppercase + string.digits


class OrderNumberGenerator(ABC):
    @abstractmethod
    def product_order_number(self) -> str: ...

    @abstractmethod
    def subscription_order_number(self) -> str: ...


class DatedOrderNumberGenerator(OrderNumberGenerator):
    """Date prefix plus six random alphanumerics."""

    def _number(self, prefix: str) -> str:
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
        return f"{prefix}-{datetime.now(UTC):%Y%m%d}-{suffix}"

    def product_order_number(self) -> str:
        return self._number("ORD")

    def subscription_order_number(self) -> str:
        return self._number("SUB")


def display_order_number(order_number: str) -> str:
    """Short form shown to people: ``ORD-20240101-AB12CD`` → ``#AB12CD``."""
    if not order_number:
        return ""
    return f"#{order_number.rsplit('-', 1)[-1]}"


_current_generator: OrderNumberGenerator | None = None


def get_number_generator() -> OrderNumberGenerator:
    global _current_generator
    if _current_generator is None:
        _current_generator = DatedOrderNumberGenerator()
    return _current_generator


def set_number_generator(generator: OrderNumberGenerator) -> None:
    global _current_generator
    _current_generator = generator


def reset_number_generator() -> None:
    global _current_generator
    _current_generator = None
