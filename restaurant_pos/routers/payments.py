from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_context, get_idempotency_key, http_error
from restaurant_pos.models.payment import Refund
from restaurant_pos.services.context import PosContext

router = APIRouter(prefix="/api/payments", tags=["payments"])


class PaymentCreate(BaseModel):
    order_id: int
    method: str
    amount: Optional[float] = Field(default=None, gt=0)
    tip: float = Field(0.0, ge=0)
    tendered: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SplitLegIn(BaseModel):
    method: str
    amount: float = Field(..., gt=0)
    tendered: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SplitPaymentCreate(BaseModel):
    order_id: int
    legs: List[SplitLegIn]
    tip: float = Field(0.0, ge=0)


class RetryIn(BaseModel):
    tendered: Dict[str, float] = Field(default_factory=dict)
    metadata: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class RefundIn(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    reason: str = ""


def _refund_to_dict(refund: Refund) -> Dict[str, Any]:
    return {
        "id": refund.id,
        "transaction_id": refund.transaction_id,
        "amount": round(refund.amount, 2),
        "reason": refund.reason,
        "created_at": refund.created_at.isoformat(),
    }


@router.post("", status_code=201)
async def create_payment(
    payload: PaymentCreate,
    context: PosContext = Depends(get_context),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
):
    try:
        transaction = await context.payments.process_payment(
            payload.order_id,
            payload.method,
            amount=payload.amount,
            tip=payload.tip,
            tendered=payload.tendered,
            metadata=payload.metadata,
            idempotency_key=idempotency_key,
        )
    except PosError as exc:
        raise http_error(exc) from exc
    return transaction.to_dict()


@router.post("/split", status_code=201)
async def create_split_payment(
    payload: SplitPaymentCreate,
    context: PosContext = Depends(get_context),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
):
    try:
        transaction = await context.payments.process_split_payment(
            payload.order_id,
            [leg.model_dump() for leg in payload.legs],
            tip=payload.tip,
            idempotency_key=idempotency_key,
        )
    except PosError as exc:
        raise http_error(exc) from exc
    return transaction.to_dict()


@router.post("/{transaction_id}/retry")
async def retry_payment(transaction_id: str, payload: RetryIn, context: PosContext = Depends(get_context)):
    try:
        transaction = await context.payments.retry_failed_legs(
            transaction_id,
            tendered_by_leg=payload.tendered,
            metadata_by_leg=payload.metadata,
        )
    except PosError as exc:
        raise http_error(exc) from exc
    return transaction.to_dict()


@router.post("/{transaction_id}/refund")
async def refund_payment(transaction_id: str, payload: RefundIn, context: PosContext = Depends(get_context)):
    try:
        refund = await context.payments.refund(transaction_id, amount=payload.amount, reason=payload.reason)
    except PosError as exc:
        raise http_error(exc) from exc
    transaction = context.payments.get_transaction(transaction_id)
    return {"refund": _refund_to_dict(refund), "transaction": transaction.to_dict()}


@router.get("")
def list_payments(order_id: Optional[int] = Query(None), context: PosContext = Depends(get_context)):
    return [transaction.to_dict() for transaction in context.payments.list_transactions(order_id)]


@router.get("/{transaction_id}")
def get_payment(transaction_id: str, context: PosContext = Depends(get_context)):
    try:
        transaction = context.payments.get_transaction(transaction_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return transaction.to_dict()
