from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from restaurant_pos.core.errors import ValidationError
from restaurant_pos.models.inventory import ORDER_SALE
from restaurant_pos.models.order import CANCELLED, PAID, Order
from restaurant_pos.models.payment import COMPLETED, REFUNDED
from restaurant_pos.services.catalog import InMemoryCatalog
from restaurant_pos.services.inventory import InventoryLedger
from restaurant_pos.services.orders import OrderStore
from restaurant_pos.services.payments import PaymentProcessor
from restaurant_pos.services.pricing import line_total

DIMENSIONS = ("category", "staff", "table")


def granularity_format(granularity: str) -> str:
    if granularity == "day":
        return "%Y-%m-%d"
    if granularity == "week":
        return "%Y-W%W"
    if granularity == "month":
        return "%Y-%m"
    raise ValidationError(f"Invalid granularity: {granularity}")


def date_range(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_date, time.max, tzinfo=timezone.utc)
    if start > end:
        raise ValidationError("Invalid date range")
    return start, end


def _within(moment: datetime | None, start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment <= end


class Reporting:
    """Read-only aggregates over orders, transactions and stock movements."""

    def __init__(
        self,
        orders: OrderStore,
        payments: PaymentProcessor,
        inventory: InventoryLedger,
        catalog: InMemoryCatalog,
    ) -> None:
        self._orders = orders
        self._payments = payments
        self._inventory = inventory
        self._catalog = catalog

    def _paid_orders(self, start: datetime, end: datetime) -> list[Order]:
        return [
            order
            for order in self._orders.all_orders()
            if order.status == PAID and _within(order.paid_at, start, end)
        ]

    def summary(self, start: datetime, end: datetime) -> dict[str, Any]:
        created = [order for order in self._orders.all_orders() if _within(order.created_at, start, end)]
        paid = self._paid_orders(start, end)
        paid_ids = {order.id for order in paid}
        settled = [
            transaction
            for transaction in self._payments.list_transactions()
            if transaction.order_id in paid_ids and transaction.status in (COMPLETED, REFUNDED)
        ]
        gross_sales = sum(order.totals.total for order in paid)
        refunds = sum(transaction.refunded_amount for transaction in settled)
        return {
            "orders_count": len(created),
            "paid_orders": len(paid),
            "cancelled_orders": sum(1 for order in created if order.status == CANCELLED),
            "gross_sales": gross_sales,
            "subtotal": sum(order.totals.subtotal for order in paid),
            "discounts": sum(order.totals.discount for order in paid),
            "tax": sum(order.totals.tax for order in paid),
            "service_charge": sum(order.totals.service_charge for order in paid),
            "tips": sum(transaction.tip for transaction in settled),
            "refunds": refunds,
            "net_sales": gross_sales - refunds,
            "average_order_value": gross_sales / len(paid) if paid else 0.0,
        }

    def top_items(self, start: datetime, end: datetime, limit: int = 10) -> list[dict[str, Any]]:
        totals: dict[int, dict[str, Any]] = {}
        for order in self._paid_orders(start, end):
            for line in order.lines:
                entry = totals.setdefault(
                    line.item_id,
                    {"item_id": line.item_id, "name": line.name, "quantity": 0, "revenue": 0.0},
                )
                entry["quantity"] += line.quantity
                entry["revenue"] += line_total(line)
        ranked = sorted(totals.values(), key=lambda entry: (-entry["quantity"], -entry["revenue"], entry["item_id"]))
        return ranked[:limit]

    def breakdown(self, dimension: str, start: datetime, end: datetime) -> list[dict[str, Any]]:
        if dimension not in DIMENSIONS:
            raise ValidationError(f"Invalid dimension: {dimension}")
        buckets: dict[Any, dict[str, Any]] = {}
        for order in self._paid_orders(start, end):
            if dimension == "category":
                for line in order.lines:
                    category = self._catalog.get_category(line.category_id) if line.category_id else None
                    entry = buckets.setdefault(
                        line.category_id,
                        {
                            "key": line.category_id,
                            "label": category.name if category else "Uncategorized",
                            "revenue": 0.0,
                            "orders": set(),
                        },
                    )
                    entry["revenue"] += line_total(line)
                    entry["orders"].add(order.id)
                continue
            key = order.staff_id if dimension == "staff" else order.table_id
            entry = buckets.setdefault(
                key,
                {"key": key, "label": str(key) if key is not None else "unassigned", "revenue": 0.0, "orders": set()},
            )
            entry["revenue"] += order.totals.total
            entry["orders"].add(order.id)

        result = []
        for entry in buckets.values():
            orders = entry.pop("orders")
            entry["order_count"] = len(orders)
            result.append(entry)
        return sorted(result, key=lambda entry: -entry["revenue"])

    def timeseries(self, start: datetime, end: datetime, granularity: str = "day") -> list[dict[str, Any]]:
        fmt = granularity_format(granularity)
        revenue: dict[str, float] = defaultdict(float)
        counts: dict[str, int] = defaultdict(int)
        cogs: dict[str, float] = defaultdict(float)
        for order in self._paid_orders(start, end):
            bucket = order.paid_at.strftime(fmt)
            revenue[bucket] += order.totals.total
            counts[bucket] += 1
        for movement in self._inventory.movements(reason=ORDER_SALE):
            if _within(movement.timestamp, start, end):
                cogs[movement.timestamp.strftime(fmt)] += movement.cost

        def _point(bucket: str) -> dict[str, Any]:
            return {
                "date": bucket,
                "revenue": revenue.get(bucket, 0.0),
                "orders_count": counts.get(bucket, 0),
                "cogs": cogs.get(bucket, 0.0),
                "gross_profit": revenue.get(bucket, 0.0) - cogs.get(bucket, 0.0),
            }

        if granularity == "day":
            points = []
            current = start.date()
            while current <= end.date():
                points.append(_point(current.strftime(fmt)))
                current += timedelta(days=1)
            return points
        return [_point(bucket) for bucket in sorted(set(revenue) | set(cogs))]

    def hourly(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        points = [{"hour": hour, "orders_count": 0, "revenue": 0.0} for hour in range(24)]
        for order in self._paid_orders(start, end):
            point = points[order.paid_at.hour]
            point["orders_count"] += 1
            point["revenue"] += order.totals.total
        return points

    def inventory_cost(self, start: datetime, end: datetime) -> dict[str, Any]:
        by_ingredient: dict[str, float] = defaultdict(float)
        cost_of_goods = 0.0
        for movement in self._inventory.movements(reason=ORDER_SALE):
            if _within(movement.timestamp, start, end):
                cost_of_goods += movement.cost
                by_ingredient[movement.inventory_id] += movement.cost
        waste_cost = sum(
            entry.cost for entry in self._inventory.waste_entries() if _within(entry.recorded_at, start, end)
        )
        return {
            "cost_of_goods": cost_of_goods,
            "waste_cost": waste_cost,
            "total_cost": cost_of_goods + waste_cost,
            "by_ingredient": dict(sorted(by_ingredient.items())),
        }
