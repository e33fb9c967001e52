from __future__ import annotations

from typing import Any


class PosError(Exception):
    """Base class for every rejected POS operation.

    Each error carries a machine-readable ``kind`` and a human-readable
    message. None of them is fatal: the caller decides whether to retry,
    prompt the operator or give up.
    """

    kind = "pos_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        payload.update(self.details())
        return payload


class ValidationError(PosError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(ValidationError):
    kind = "not_found"
    status_code = 404


class InsufficientStock(PosError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, shortfalls: list, message: str = "Insufficient stock for some ingredients") -> None:
        super().__init__(message)
        self.shortfalls = list(shortfalls)

    def details(self) -> dict[str, Any]:
        return {"shortfalls": [shortfall.to_dict() for shortfall in self.shortfalls]}


class InvalidTransition(PosError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, requested: str, message: str | None = None) -> None:
        super().__init__(message or f"Cannot move order from {current} to {requested}")
        self.current = current
        self.requested = requested

    def details(self) -> dict[str, Any]:
        return {"current_status": self.current, "requested_status": self.requested}


class PaymentDeclined(PosError):
    kind = "payment_declined"
    status_code = 402

    def __init__(self, message: str, transaction=None) -> None:
        super().__init__(message)
        self.transaction = transaction

    def details(self) -> dict[str, Any]:
        if self.transaction is None:
            return {}
        return {"transaction": self.transaction.to_dict()}


class PartialPaymentFailure(PaymentDeclined):
    kind = "partial_payment"
    status_code = 402
