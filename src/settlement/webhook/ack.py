"""Acknowledgment returned to the processor for every delivered event.

200 tells the processor to stop (new or duplicate events), 400 that the
event can never succeed, 500 that redelivery is wanted.
"""

from dataclasses import dataclass

from settlement.errors import ErrorClass


@dataclass(frozen=True)
class Acknowledgment:
    status_code: int
    message: str

    @property
    def is_success(self) -> bool:
        return self.status_code == 200

    @classmethod
    def ok(cls, message: str = "ok") -> "Acknowledgment":
        return cls(200, message)

    @classmethod
    def terminal(cls, message: str) -> "Acknowledgment":
        return cls(400, message)

    @classmethod
    def retriable(cls, message: str) -> "Acknowledgment":
        return cls(500, message)

    @classmethod
    def for_error(cls, error_class: ErrorClass, message: str) -> "Acknowledgment":
        if error_class == ErrorClass.RETRIABLE:
            return cls.retriable(f"{message} (retriable)")
        return cls.terminal(f"{message} (non-retriable)")
