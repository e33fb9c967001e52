from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from restaurant_pos.deps import get_context
from restaurant_pos.services.context import PosContext

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("")
def recent_events(
    limit: int = Query(50, ge=1, le=500),
    event: Optional[str] = Query(None),
    context: PosContext = Depends(get_context),
):
    return [
        {"event": entry["event"], "payload": entry["payload"], "emitted_at": entry["emitted_at"].isoformat()}
        for entry in context.events.recent(limit=limit, event_name=event)
    ]
