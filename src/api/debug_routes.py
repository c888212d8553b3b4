"""Operator endpoints exposing recent collection events and metrics."""

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_event_store, verify_collector_auth
from src.utils.event_store import COLLECTION_EVENTS, EventStore
from src.utils.metrics import MetricsCalculator

debug_router = APIRouter()


@debug_router.get("/debug/collector")
def collector_debug(
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    trace_id: str | None = Query(None, description="Only events of one collection cycle"),
    _: str = Depends(verify_collector_auth),
    event_store: EventStore = Depends(get_event_store),
):
    """
    Recent collection events, aggregated metrics and scheduler state.

    Args:
        request: FastAPI request (for app state)
        limit: Maximum number of events to return
        trace_id: Optional collection cycle to filter by
        event_store: Application event store
    """
    if trace_id:
        events = event_store.for_trace(trace_id)[-limit:]
    else:
        events = event_store.recent(limit, event_types=COLLECTION_EVENTS)

    metrics = MetricsCalculator(event_store, start_time=request.app.state.started_at).calculate()

    scheduler = getattr(request.app.state, "scheduler", None)
    fx_cell = getattr(request.app.state, "fx_cell", None)

    return {
        "metrics": metrics.to_dict(),
        "events": [event.to_dict() for event in events],
        "scheduler": scheduler.get_status() if scheduler else {"running": False},
        "fxRate": fx_cell.get() if fx_cell else None,
    }
