from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from threading import Lock
from typing import Any, Iterable, Protocol

from restaurant_pos.core.clock import Clock, utcnow
from restaurant_pos.core.config import Settings
from restaurant_pos.core.errors import (
    InvalidTransition,
    NotFoundError,
    PartialPaymentFailure,
    PaymentDeclined,
    ValidationError,
)
from restaurant_pos.models.order import PAID, SERVED, Order
from restaurant_pos.models.payment import (
    CARD,
    CASH,
    COMPLETED,
    FAILED,
    GATEWAY_METHODS,
    GIFT_CARD,
    PARTIAL,
    PAYMENT_METHODS,
    PENDING,
    REFUNDED,
    SKIPPED,
    SPLIT,
    GatewayResult,
    PaymentLeg,
    Refund,
    Transaction,
)
from restaurant_pos.services.event_bus import PAYMENT_COMPLETED, PAYMENT_FAILED, EventBus
from restaurant_pos.services.idempotency import IdempotencyRegistry
from restaurant_pos.services.orders import OrderStore

logger = logging.getLogger(__name__)

EXACT_AMOUNT_TOLERANCE = 0.005
SPLIT_TOTAL_TOLERANCE = 0.01

STOP_ON_FAILURE = "stop_on_failure"

_METHOD_ALIASES = {
    "credit": CARD,
    "debit": CARD,
    "credit_card": CARD,
    "debit_card": CARD,
    "wallet": "digital_wallet",
    "digital": "digital_wallet",
    "giftcard": GIFT_CARD,
}


def normalize_payment_method(value: str | None) -> str:
    method = (value or "").strip().lower()
    method = _METHOD_ALIASES.get(method, method)
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method: {value}")
    return method


class PaymentGateway(Protocol):
    async def charge(
        self,
        *,
        amount: float,
        method: str,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> GatewayResult:
        ...

    async def refund(
        self,
        *,
        reference: str,
        amount: float,
        metadata: dict[str, Any] | None = None,
    ) -> GatewayResult:
        ...


class TerminalGateway(PaymentGateway):
    """Deterministic card terminal.

    Cards and wallets are approved unless their token is listed in
    ``declined_tokens``. Gift cards draw down the registered balances.
    """

    def __init__(
        self,
        declined_tokens: Iterable[str] = (),
        gift_cards: dict[str, float] | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        self.declined_tokens = set(declined_tokens)
        self.gift_cards: dict[str, float] = dict(gift_cards or {})
        self.latency_seconds = latency_seconds
        self._charges: dict[str, dict[str, Any]] = {}
        self._lock = Lock()

    async def charge(
        self,
        *,
        amount: float,
        method: str,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> GatewayResult:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        metadata = metadata or {}
        if amount <= 0:
            return GatewayResult(success=False, error="Invalid amount")
        if method not in GATEWAY_METHODS:
            return GatewayResult(success=False, error=f"Method {method} is not handled by the terminal")

        with self._lock:
            if method == GIFT_CARD:
                card_number = str(metadata.get("card_number") or "")
                balance = self.gift_cards.get(card_number)
                if balance is None:
                    return GatewayResult(success=False, error="Unknown gift card")
                if balance + EXACT_AMOUNT_TOLERANCE < amount:
                    return GatewayResult(success=False, error="Insufficient gift card balance", data={"balance": balance})
                self.gift_cards[card_number] = balance - amount
            elif metadata.get("token") in self.declined_tokens:
                return GatewayResult(success=False, error="Card declined")

            gateway_reference = f"txn-{uuid.uuid4().hex[:10]}"
            self._charges[gateway_reference] = {"amount": amount, "method": method, "metadata": dict(metadata)}
        return GatewayResult(success=True, reference=gateway_reference, data={"order_reference": reference})

    async def refund(
        self,
        *,
        reference: str,
        amount: float,
        metadata: dict[str, Any] | None = None,
    ) -> GatewayResult:
        with self._lock:
            charge = self._charges.get(reference)
            if charge is None:
                return GatewayResult(success=False, error="Unknown charge reference")
            if amount > charge["amount"] + EXACT_AMOUNT_TOLERANCE:
                return GatewayResult(success=False, error="Refund exceeds charge")
            charge["amount"] -= amount
            if charge["method"] == GIFT_CARD:
                card_number = str(charge["metadata"].get("card_number") or "")
                self.gift_cards[card_number] = self.gift_cards.get(card_number, 0.0) + amount
        return GatewayResult(success=True, reference=f"rfd-{uuid.uuid4().hex[:10]}")


class PaymentProcessor:
    def __init__(
        self,
        settings: Settings,
        orders: OrderStore,
        events: EventBus,
        gateway: PaymentGateway | None = None,
        idempotency: IdempotencyRegistry | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._orders = orders
        self._events = events
        self.gateway: PaymentGateway = gateway or TerminalGateway()
        self._idempotency = idempotency or IdempotencyRegistry()
        self._clock = clock
        self._transactions: dict[str, Transaction] = {}
        self._in_flight: set[int] = set()
        self._lock = Lock()
        self._tx_seq = itertools.count(1)
        self._leg_seq = itertools.count(1)

    # -- helpers ----------------------------------------------------------

    def _payable_order(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order.status != SERVED:
            raise InvalidTransition(order.status, PAID, f"Order {order.order_number} must be served before payment")
        return order

    def _ensure_no_open_split(self, order: Order) -> None:
        with self._lock:
            open_split = next(
                (tx for tx in self._transactions.values() if tx.order_id == order.id and tx.status == PARTIAL),
                None,
            )
        if open_split is not None:
            raise ValidationError(
                f"Order {order.order_number} is partially paid by {open_split.id}; retry its failed legs instead"
            )

    def _claim(self, order_id: int) -> None:
        with self._lock:
            if order_id in self._in_flight:
                raise ValidationError(f"A payment for order {order_id} is already in progress")
            self._in_flight.add(order_id)

    def _release(self, order_id: int) -> None:
        with self._lock:
            self._in_flight.discard(order_id)

    def _new_leg(self, method: str, amount: float, tip: float = 0.0, tendered=None, metadata=None) -> PaymentLeg:
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        if tip < 0:
            raise ValidationError("Tip must not be negative")
        return PaymentLeg(
            id=f"LEG{next(self._leg_seq):05d}",
            method=method,
            amount=float(amount),
            tip=float(tip),
            tendered=float(tendered) if tendered is not None else None,
            metadata=dict(metadata or {}),
        )

    def _record(self, order: Order, method: str, legs: list[PaymentLeg], tip: float, key: str | None) -> Transaction:
        transaction = Transaction(
            id=f"TX{next(self._tx_seq):05d}",
            order_id=order.id,
            amount=order.totals.total,
            method=method,
            legs=legs,
            created_at=self._clock(),
            tip=tip,
            idempotency_key=key,
        )
        with self._lock:
            self._transactions[transaction.id] = transaction
        return transaction

    async def _process_leg(self, leg: PaymentLeg, transaction: Transaction) -> None:
        if leg.method == CASH:
            tendered = leg.tendered if leg.tendered is not None else leg.charge_amount
            change = tendered - leg.charge_amount
            leg.tendered = tendered
            if change < 0:
                leg.status = FAILED
                leg.change = change
                leg.error = f"Insufficient cash: {abs(change):.2f} short"
                return
            leg.status = COMPLETED
            leg.change = change
            leg.error = None
            return

        try:
            result = await asyncio.wait_for(
                self.gateway.charge(
                    amount=leg.charge_amount,
                    method=leg.method,
                    reference=f"{transaction.id}:{leg.id}",
                    metadata=leg.metadata,
                ),
                timeout=self._settings.payment_gateway_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("payment gateway timeout transaction_id=%s leg_id=%s", transaction.id, leg.id)
            result = GatewayResult(success=False, error="Payment gateway timeout")
        if result.success:
            leg.status = COMPLETED
            leg.reference = result.reference
            leg.error = None
        else:
            leg.status = FAILED
            leg.error = result.error or "Payment declined"

    def _settle(self, transaction: Transaction) -> None:
        statuses = [leg.status for leg in transaction.legs]
        if all(status == COMPLETED for status in statuses):
            transaction.status = COMPLETED
        elif any(status == COMPLETED for status in statuses):
            transaction.status = PARTIAL
        else:
            transaction.status = FAILED

    def _finish(self, transaction: Transaction, order: Order) -> Transaction:
        self._settle(transaction)
        if transaction.status == COMPLETED:
            transaction.completed_at = self._clock()
            self._orders.transition(order.id, PAID, f"Paid by {transaction.method}")
            logger.info(
                "payment completed transaction_id=%s order_id=%s amount=%s",
                transaction.id,
                order.id,
                round(transaction.total, 2),
            )
            self._events.emit(
                PAYMENT_COMPLETED,
                {
                    "transaction_id": transaction.id,
                    "order_id": order.id,
                    "amount": transaction.total,
                    "method": transaction.method,
                },
            )
            return transaction

        errors = [leg.error for leg in transaction.legs if leg.error]
        logger.warning(
            "payment not completed transaction_id=%s order_id=%s status=%s",
            transaction.id,
            order.id,
            transaction.status,
        )
        self._events.emit(
            PAYMENT_FAILED,
            {
                "transaction_id": transaction.id,
                "order_id": order.id,
                "status": transaction.status,
                "errors": errors,
            },
        )
        if transaction.status == PARTIAL:
            raise PartialPaymentFailure("Split payment partially completed", transaction)
        raise PaymentDeclined(errors[0] if errors else "Payment declined", transaction)

    # -- operations -------------------------------------------------------

    async def process_payment(
        self,
        order_id: int,
        method: str,
        amount: float | None = None,
        tip: float = 0.0,
        tendered: float | None = None,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> Transaction:
        async def _run() -> Transaction:
            order = self._payable_order(order_id)
            self._ensure_no_open_split(order)
            payment_method = normalize_payment_method(method)
            total = order.totals.total
            charge = total if amount is None else float(amount)
            cash_tendered = tendered
            if payment_method == CASH:
                if charge + EXACT_AMOUNT_TOLERANCE < total:
                    raise ValidationError("Cash amount must cover the order total")
                # cash handed over beyond the bill is tendered, not charged
                if charge > total and cash_tendered is None:
                    cash_tendered = charge
                charge = total
            elif abs(charge - total) > EXACT_AMOUNT_TOLERANCE:
                raise ValidationError("Amount must equal the order total")

            leg = self._new_leg(payment_method, charge, tip=tip, tendered=cash_tendered, metadata=metadata)
            self._claim(order.id)
            try:
                transaction = self._record(order, payment_method, [leg], tip, idempotency_key)
                transaction.amount = charge
                await self._process_leg(leg, transaction)
                return self._finish(transaction, order)
            finally:
                self._release(order.id)

        return await self._idempotency.run_async("payment", idempotency_key, _run)

    async def process_split_payment(
        self,
        order_id: int,
        legs: Iterable[dict[str, Any]],
        tip: float = 0.0,
        idempotency_key: str | None = None,
    ) -> Transaction:
        """Charge an order across several legs.

        The tip rides on the first leg. Legs already approved stay approved
        when a later one fails; use ``retry_failed_legs`` to finish the bill.
        """

        async def _run() -> Transaction:
            order = self._payable_order(order_id)
            self._ensure_no_open_split(order)
            raw_legs = list(legs)
            if not raw_legs:
                raise ValidationError("Split payment needs at least one leg")
            if tip < 0:
                raise ValidationError("Tip must not be negative")
            payment_legs = [
                self._new_leg(
                    normalize_payment_method(raw.get("method")),
                    float(raw.get("amount") or 0),
                    tip=tip if index == 0 else 0.0,
                    tendered=raw.get("tendered"),
                    metadata=raw.get("metadata"),
                )
                for index, raw in enumerate(raw_legs)
            ]
            legs_total = sum(leg.amount for leg in payment_legs)
            if abs(legs_total - order.totals.total) > SPLIT_TOTAL_TOLERANCE:
                raise ValidationError(
                    f"Split legs add up to {legs_total:.2f}, order total is {order.totals.total:.2f}"
                )

            self._claim(order.id)
            try:
                transaction = self._record(order, SPLIT, payment_legs, tip, idempotency_key)
                await self._run_legs(transaction, payment_legs)
                try:
                    return self._finish(transaction, order)
                except PartialPaymentFailure:
                    self._idempotency.remember("split_payment", idempotency_key, transaction)
                    raise
            finally:
                self._release(order.id)

        transaction = await self._idempotency.run_async("split_payment", idempotency_key, _run)
        if transaction.status == PARTIAL:
            raise PartialPaymentFailure("Split payment partially completed", transaction)
        return transaction

    async def _run_legs(self, transaction: Transaction, legs: list[PaymentLeg]) -> None:
        stop = self._settings.split_payment_policy == STOP_ON_FAILURE
        failed = False
        for leg in legs:
            if failed and stop:
                leg.status = SKIPPED
                leg.error = "Skipped after an earlier leg failed"
                continue
            leg.status = PENDING
            await self._process_leg(leg, transaction)
            if leg.status == FAILED:
                failed = True

    async def retry_failed_legs(
        self,
        transaction_id: str,
        tendered_by_leg: dict[str, float] | None = None,
        metadata_by_leg: dict[str, dict[str, Any]] | None = None,
    ) -> Transaction:
        transaction = self.get_transaction(transaction_id)
        if transaction.method != SPLIT or transaction.status not in (PARTIAL, FAILED):
            raise ValidationError(f"Transaction {transaction_id} has no legs to retry")
        order = self._payable_order(transaction.order_id)
        retry = [leg for leg in transaction.legs if leg.status in (FAILED, SKIPPED)]
        for leg in retry:
            if tendered_by_leg and leg.id in tendered_by_leg:
                leg.tendered = float(tendered_by_leg[leg.id])
            if metadata_by_leg and leg.id in metadata_by_leg:
                leg.metadata = dict(metadata_by_leg[leg.id])
        self._claim(order.id)
        try:
            await self._run_legs(transaction, retry)
            return self._finish(transaction, order)
        finally:
            self._release(order.id)

    async def refund(self, transaction_id: str, amount: float | None = None, reason: str = "") -> Refund:
        transaction = self.get_transaction(transaction_id)
        if transaction.status != COMPLETED:
            raise ValidationError(f"Transaction {transaction_id} is {transaction.status} and cannot be refunded")
        refundable = transaction.paid_amount - transaction.refunded_amount
        refund_amount = refundable if amount is None else float(amount)
        if refund_amount <= 0:
            raise ValidationError("Refund amount must be greater than zero")
        if refund_amount > refundable + EXACT_AMOUNT_TOLERANCE:
            raise ValidationError(f"Refund exceeds refundable amount {refundable:.2f}")

        remaining = refund_amount
        for leg in transaction.legs:
            if remaining <= EXACT_AMOUNT_TOLERANCE:
                break
            if leg.status != COMPLETED:
                continue
            already = float(leg.metadata.get("refunded", 0.0))
            portion = min(remaining, leg.charge_amount - already)
            if portion <= 0:
                continue
            if leg.method in GATEWAY_METHODS and leg.reference:
                try:
                    result = await asyncio.wait_for(
                        self.gateway.refund(reference=leg.reference, amount=portion, metadata=leg.metadata),
                        timeout=self._settings.payment_gateway_timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    result = GatewayResult(success=False, error="Payment gateway timeout")
                if not result.success:
                    raise PaymentDeclined(result.error or "Refund declined", transaction)
            leg.metadata["refunded"] = already + portion
            remaining -= portion

        refund = Refund(
            id=f"RF{uuid.uuid4().hex[:8]}",
            transaction_id=transaction.id,
            amount=refund_amount,
            created_at=self._clock(),
            reason=reason or "",
        )
        transaction.refunds.append(refund)
        if transaction.refunded_amount >= transaction.paid_amount - EXACT_AMOUNT_TOLERANCE:
            transaction.status = REFUNDED
        logger.info("payment refunded transaction_id=%s amount=%s", transaction.id, round(refund_amount, 2))
        return refund

    # -- queries ----------------------------------------------------------

    def get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self._transactions.get(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    def list_transactions(self, order_id: int | None = None) -> list[Transaction]:
        with self._lock:
            transactions = list(self._transactions.values())
        if order_id is not None:
            transactions = [transaction for transaction in transactions if transaction.order_id == order_id]
        return transactions
