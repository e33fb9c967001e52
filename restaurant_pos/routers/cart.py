from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_cart, get_context, get_idempotency_key, get_staff_id, http_error
from restaurant_pos.routers.orders import order_to_dict
from restaurant_pos.services.cart import Cart
from restaurant_pos.services.context import PosContext
from restaurant_pos.services.pricing import line_total, round_currency, totals_to_dict

router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartLineIn(BaseModel):
    item_id: int
    quantity: int = 1
    modifier_ids: List[int] = Field(default_factory=list)
    note: str = ""


class CartLineUpdate(BaseModel):
    quantity: int


class DiscountIn(BaseModel):
    kind: str
    value: float
    name: str = ""


class CheckoutIn(BaseModel):
    mode: Optional[str] = None
    table_id: Optional[int] = None
    staff_id: Optional[str] = None


def _cart_to_dict(cart: Cart) -> Dict[str, Any]:
    lines = cart.order_lines()
    return {
        "terminal_id": cart.terminal_id,
        "lines": [
            {
                "id": line.id,
                "item_id": line.item_id,
                "name": line.name,
                "unit_price": line.unit_price,
                "quantity": line.quantity,
                "modifiers": [{"id": modifier.id, "name": modifier.name, "price": modifier.price} for modifier in line.modifiers],
                "note": line.note,
                "line_total": round_currency(line_total(line)),
            }
            for line in lines
        ],
        "discount": (
            {"kind": cart.discount.kind, "value": cart.discount.value, "name": cart.discount.name}
            if cart.discount
            else None
        ),
        "item_count": cart.item_count,
        "totals": totals_to_dict(cart.totals()),
    }


@router.get("")
def get_cart_view(cart: Cart = Depends(get_cart)):
    return _cart_to_dict(cart)


@router.post("/lines")
def add_cart_line(body: CartLineIn, cart: Cart = Depends(get_cart)):
    try:
        cart.add_line(body.item_id, body.quantity, body.modifier_ids, body.note)
    except PosError as exc:
        raise http_error(exc) from exc
    return _cart_to_dict(cart)


@router.patch("/lines/{line_id}")
def update_cart_line(line_id: int, body: CartLineUpdate, cart: Cart = Depends(get_cart)):
    try:
        cart.set_line_quantity(line_id, body.quantity)
    except PosError as exc:
        raise http_error(exc) from exc
    return _cart_to_dict(cart)


@router.delete("/lines/{line_id}")
def remove_cart_line(line_id: int, cart: Cart = Depends(get_cart)):
    try:
        cart.remove_line(line_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return _cart_to_dict(cart)


@router.post("/discount")
def apply_discount(body: DiscountIn, cart: Cart = Depends(get_cart)):
    try:
        cart.apply_discount(body.kind.strip().lower(), body.value, body.name)
    except PosError as exc:
        raise http_error(exc) from exc
    return _cart_to_dict(cart)


@router.delete("/discount")
def remove_discount(cart: Cart = Depends(get_cart)):
    cart.remove_discount()
    return _cart_to_dict(cart)


@router.delete("")
def clear_cart(cart: Cart = Depends(get_cart)):
    cart.clear()
    return _cart_to_dict(cart)


@router.post("/checkout", status_code=201)
def checkout(
    body: CheckoutIn,
    cart: Cart = Depends(get_cart),
    context: PosContext = Depends(get_context),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    header_staff_id: Optional[str] = Depends(get_staff_id),
):
    try:
        order = context.idempotency.run(
            "checkout",
            idempotency_key,
            lambda: cart.checkout(
                context.orders,
                mode=body.mode,
                table_id=body.table_id,
                staff_id=body.staff_id or header_staff_id,
                idempotency_key=idempotency_key,
            ),
        )
    except PosError as exc:
        raise http_error(exc) from exc
    return order_to_dict(order)
