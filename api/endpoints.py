"""
API Endpoints for profile fetching.

This module is the presentation-layer adapter over `FetchService`. It turns
HTTP requests into the orchestrator's inbound messages and exposes its state
and terminal messages to clients.

Endpoints Provided:
- `POST /fetch`: Begin fetching a profile by identifier (returns immediately).
- `DELETE /fetch`: Cancel the fetch in flight.
- `GET /fetch`: Current view (status, profile, resolved asset paths, errors).
- `GET /fetch/assets/{kind}`: Serve an asset already resolved in the view.
- `/ws/fetch`: WebSocket stream of terminal fetch messages.

None of these endpoints perform network or cache I/O themselves; asset paths
come from the view the orchestrator published.
"""

import logging
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from pydantic import BaseModel
from services.fetch_service import FetchCompleted, FetchService
from core.logging_config import log_function_call
from core.models import AssetKind
from .dependencies import get_fetch_service

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/fetch", tags=["Profile Fetch"])
websocket_router = APIRouter(tags=["WebSocket Communication"])


class FetchRequest(BaseModel):
    identifier: str


class CancelResponse(BaseModel):
    cancelled: bool
    view: Dict[str, Any]


@router.post("", status_code=202)
@log_function_call(logger)
async def begin_fetch(
    request: FetchRequest,
    fetch_svc: FetchService = Depends(get_fetch_service),
) -> Dict[str, Any]:
    """Start fetching the profile for an identifier"""
    fetch_svc.begin_fetch(request.identifier)
    return fetch_svc.view.model_dump(mode="json")


@router.delete("", response_model=CancelResponse)
@log_function_call(logger)
async def cancel_fetch(fetch_svc: FetchService = Depends(get_fetch_service)):
    """Cancel the fetch in flight, if any"""
    cancelled = fetch_svc.cancel_fetch()
    return CancelResponse(cancelled=cancelled, view=fetch_svc.view.model_dump(mode="json"))


@router.get("")
async def get_fetch_state(
    fetch_svc: FetchService = Depends(get_fetch_service),
) -> Dict[str, Any]:
    """Current fetch state as seen by the presentation layer"""
    return fetch_svc.view.model_dump(mode="json")


@router.get("/assets/{kind}")
async def get_asset(
    kind: AssetKind, fetch_svc: FetchService = Depends(get_fetch_service)
):
    """Serve an asset resolved by the last completed fetch"""
    asset = fetch_svc.view.assets.get(kind)
    if asset is None:
        raise HTTPException(status_code=404, detail=f"No {kind.value} available")
    return FileResponse(asset.local_path, media_type=f"image/{asset.extension}")


@websocket_router.websocket("/ws/fetch")
async def fetch_events(
    websocket: WebSocket, fetch_svc: FetchService = Depends(get_fetch_service)
):
    """Push each terminal fetch message to the connected client"""
    await websocket.accept()

    async def forward(message: FetchCompleted):
        await websocket.send_json(
            {"type": "fetch_completed", "data": message.result.model_dump(mode="json")}
        )

    fetch_svc.subscribe(forward)
    logger.info("Fetch event stream connected")
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Fetch event stream disconnected")
    finally:
        fetch_svc.unsubscribe(forward)
