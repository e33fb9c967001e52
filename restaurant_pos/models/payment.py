from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

CASH = "cash"
CARD = "card"
DIGITAL_WALLET = "digital_wallet"
GIFT_CARD = "gift_card"
SPLIT = "split"

PAYMENT_METHODS = frozenset({CASH, CARD, DIGITAL_WALLET, GIFT_CARD})
GATEWAY_METHODS = frozenset({CARD, DIGITAL_WALLET, GIFT_CARD})

# leg and transaction statuses
PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
SKIPPED = "skipped"
PARTIAL = "partial"
REFUNDED = "refunded"


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    reference: str | None = None
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentLeg:
    id: str
    method: str
    amount: float
    tip: float = 0.0
    tendered: float | None = None
    status: str = PENDING
    change: float | None = None
    reference: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def charge_amount(self) -> float:
        return self.amount + self.tip

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "amount": round(self.amount, 2),
            "tip": round(self.tip, 2),
            "tendered": self.tendered,
            "status": self.status,
            "change": round(self.change, 2) if self.change is not None else None,
            "reference": self.reference,
            "error": self.error,
        }


@dataclass
class Refund:
    id: str
    transaction_id: str
    amount: float
    created_at: datetime
    reason: str = ""


@dataclass
class Transaction:
    id: str
    order_id: int
    amount: float
    method: str
    legs: list[PaymentLeg]
    created_at: datetime
    tip: float = 0.0
    status: str = PROCESSING
    completed_at: datetime | None = None
    refunds: list[Refund] = field(default_factory=list)
    idempotency_key: str | None = None

    @property
    def total(self) -> float:
        return self.amount + self.tip

    @property
    def paid_amount(self) -> float:
        return sum(leg.charge_amount for leg in self.legs if leg.status == COMPLETED)

    @property
    def refunded_amount(self) -> float:
        return sum(refund.amount for refund in self.refunds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "amount": round(self.amount, 2),
            "tip": round(self.tip, 2),
            "total": round(self.total, 2),
            "paid_amount": round(self.paid_amount, 2),
            "refunded_amount": round(self.refunded_amount, 2),
            "status": self.status,
            "legs": [leg.to_dict() for leg in self.legs],
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
