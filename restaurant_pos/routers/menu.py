from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from restaurant_pos.core.errors import PosError
from restaurant_pos.deps import get_context, http_error
from restaurant_pos.models.catalog import Category, MenuItem, Modifier
from restaurant_pos.services.context import PosContext

router = APIRouter(prefix="/api/menu", tags=["menu"])


class AvailabilityUpdate(BaseModel):
    is_available: bool


class PriceUpdate(BaseModel):
    price: float = Field(ge=0)


def _category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "is_active": category.is_active,
        "sort_order": category.sort_order,
    }


def _modifier_to_dict(modifier: Modifier) -> Dict[str, Any]:
    return {"id": modifier.id, "item_id": modifier.item_id, "name": modifier.name, "price": modifier.price}


def _item_to_dict(item: MenuItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "category_id": item.category_id,
        "name": item.name,
        "description": item.description,
        "price": item.price,
        "is_available": item.is_available,
        "prep_time": item.prep_time,
        "station": item.station,
        "modifier_ids": list(item.modifier_ids),
    }


@router.get("/categories")
def list_categories(
    include_inactive: bool = Query(False),
    context: PosContext = Depends(get_context),
):
    return [_category_to_dict(category) for category in context.catalog.list_categories(active_only=not include_inactive)]


@router.get("/items")
def list_items(
    q: Optional[str] = Query(None),
    category_id: Optional[int] = Query(None),
    context: PosContext = Depends(get_context),
):
    if q or category_id is not None:
        items = context.catalog.search(q or "", category_id=category_id)
    else:
        items = context.catalog.list_menu_items()
    return [_item_to_dict(item) for item in items]


@router.get("/items/{item_id}")
def get_item(item_id: int, context: PosContext = Depends(get_context)):
    try:
        item = context.catalog.get_menu_item(item_id)
    except PosError as exc:
        raise http_error(exc) from exc
    payload = _item_to_dict(item)
    payload["modifiers"] = [_modifier_to_dict(modifier) for modifier in context.catalog.list_modifiers(item_id)]
    return payload


@router.get("/items/{item_id}/modifiers")
def list_modifiers(item_id: int, context: PosContext = Depends(get_context)):
    try:
        modifiers = context.catalog.list_modifiers(item_id)
    except PosError as exc:
        raise http_error(exc) from exc
    return [_modifier_to_dict(modifier) for modifier in modifiers]


@router.patch("/items/{item_id}/availability")
def update_availability(item_id: int, body: AvailabilityUpdate, context: PosContext = Depends(get_context)):
    try:
        item = context.catalog.set_availability(item_id, body.is_available)
    except PosError as exc:
        raise http_error(exc) from exc
    return _item_to_dict(item)


@router.patch("/items/{item_id}/price")
def update_price(item_id: int, body: PriceUpdate, context: PosContext = Depends(get_context)):
    try:
        item = context.catalog.update_price(item_id, body.price)
    except PosError as exc:
        raise http_error(exc) from exc
    return _item_to_dict(item)
