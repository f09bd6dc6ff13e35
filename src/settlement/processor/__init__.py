"""Payment processor factory.

Provides get_processor() / set_processor() to swap implementations:
- FakeProcessor for development and testing (default)
- StripeProcessor when PAYMENT_PROCESSOR=stripe
"""

import os

from settlement.processor.fake_adapter import FakeProcessor
from settlement.processor.port import PaymentProcessor

_current_processor: PaymentProcessor | None = None


def get_processor() -> PaymentProcessor:
    """Return the current payment processor, built from PAYMENT_PROCESSOR on first use."""
    global _current_processor
    if _current_processor is None:
        adapter = os.environ.get("PAYMENT_PROCESSOR", "fake")
        if adapter == "fake":
            _current_processor = FakeProcessor()
        elif adapter == "stripe":
            from settlement.processor.stripe_adapter import StripeProcessor

            _current_processor = StripeProcessor()
        else:
            raise ValueError(f"Unknown payment processor: {adapter}")
    return _current_processor


def set_processor(processor: PaymentProcessor) -> None:
    """Override the active payment processor (useful for tests)."""
    global _current_processor
    _current_processor = processor


def reset_processor() -> None:
    """Reset to the default processor."""
    global _current_processor
    _current_processor = None
