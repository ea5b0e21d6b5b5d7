"""Activity log and health endpoints."""

from fastapi import APIRouter, Depends, Query, Request

from devboard.api.deps import get_store
from devboard.models.activity import LogEntry
from devboard.services.store import DeviceStore

router = APIRouter(tags=["system"])


@router.get("/logs", response_model=list[LogEntry])
async def recent_logs(
    limit: int = Query(default=50, ge=0),
    store: DeviceStore = Depends(get_store),
):
    """Most recent activity, newest first."""
    return store.recent_logs(limit)


@router.get("/health")
async def health(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "devices": len(state.store.list_devices()),
        "connections": state.broadcaster.connection_count,
        "refresher_running": state.refresher.running,
    }
