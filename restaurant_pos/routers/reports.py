from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_context, http_error
from restaurant_pos.services.context import PosContext
from restaurant_pos.services.pricing import round_currency
from restaurant_pos.services.reports import date_range

router = APIRouter(prefix="/api/reports", tags=["reports"])

DEFAULT_WINDOW_DAYS = 7
MONEY_FIELDS = (
    "gross_sales",
    "subtotal",
    "discounts",
    "tax",
    "service_charge",
    "tips",
    "refunds",
    "net_sales",
    "average_order_value",
    "revenue",
    "cogs",
    "gross_profit",
    "cost_of_goods",
    "waste_cost",
    "total_cost",
)


def _parse_date(value: str) -> date:
    try:
        parsed = datetime.fromisoformat(value)
        return parsed.date()
    except ValueError:
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid date") from exc


def _resolve_range(from_str: Optional[str], to_str: Optional[str], now: datetime) -> tuple[datetime, datetime]:
    today = now.date()
    end_date = _parse_date(to_str) if to_str else today
    start_date = _parse_date(from_str) if from_str else end_date - timedelta(days=DEFAULT_WINDOW_DAYS - 1)
    try:
        return date_range(start_date, end_date)
    except PosError as exc:
        raise http_error(exc) from exc


def _round_money(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: round_currency(value) if key in MONEY_FIELDS else value for key, value in row.items()}


def _round_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [_round_money(row) for row in rows]


@router.get("/summary")
def sales_summary(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None, alias="to"),
    context: PosContext = Depends(get_context),
):
    start, end = _resolve_range(from_, to, context.clock())
    payload = _round_money(context.reports.summary(start, end))
    payload["from"] = start.date().isoformat()
    payload["to"] = end.date().isoformat()
    return payload


@router.get("/top-items")
def top_items(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None, alias="to"),
    limit: int = Query(10, ge=1, le=100),
    context: PosContext = Depends(get_context),
):
    start, end = _resolve_range(from_, to, context.clock())
    return _round_rows(context.reports.top_items(start, end, limit=limit))


@router.get("/breakdown/{dimension}")
def sales_breakdown(
    dimension: str,
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None, alias="to"),
    context: PosContext = Depends(get_context),
):
    start, end = _resolve_range(from_, to, context.clock())
    try:
        rows = context.reports.breakdown(dimension, start, end)
    except PosError as exc:
        raise http_error(exc) from exc
    return _round_rows(rows)


@router.get("/timeseries")
def sales_timeseries(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None, alias="to"),
    granularity: str = Query("day"),
    context: PosContext = Depends(get_context),
):
    start, end = _resolve_range(from_, to, context.clock())
    try:
        points = context.reports.timeseries(start, end, granularity=granularity)
    except PosError as exc:
        raise http_error(exc) from exc
    return {"granularity": granularity, "points": _round_rows(points)}


@router.get("/hourly")
def hourly_sales(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None, alias="to"),
    context: PosContext = Depends(get_context),
):
    start, end = _resolve_range(from_, to, context.clock())
    return _round_rows(context.reports.hourly(start, end))


@router.get("/inventory-cost")
def inventory_cost(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None, alias="to"),
    context: PosContext = Depends(get_context),
):
    start, end = _resolve_range(from_, to, context.clock())
    payload = _round_money(context.reports.inventory_cost(start, end))
    payload["by_ingredient"] = {key: round_currency(value) for key, value in payload["by_ingredient"].items()}
    return payload
