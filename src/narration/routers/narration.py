from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status

from ..config import Settings
from ..schemas.narration import (
    DocumentTextRequest,
    DocumentViewResponse,
    NarrationStatus,
    ReadingTimeResponse,
)
from ..services.document_views import DocumentView, DocumentViewRegistry
from ..services.narration_session import NarrationConnectionManager, WebSocketAudioPlayer
from ..services.tts import ReadingTime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/narration", tags=["narration"])


def get_registry(request: Request) -> DocumentViewRegistry:
    return request.app.state.document_views


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_view(
    view_id: str, registry: DocumentViewRegistry = Depends(get_registry)
) -> DocumentView:
    view = registry.get(view_id)
    if view is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown document view: {view_id}",
        )
    return view


def _reading_time_response(reading_time: ReadingTime, settings: Settings) -> ReadingTimeResponse:
    return ReadingTimeResponse(
        minutes=reading_time.minutes,
        seconds=reading_time.seconds,
        words=reading_time.words,
        label=reading_time.label(settings.reading_time_format),
    )


def _view_response(view: DocumentView, settings: Settings) -> DocumentViewResponse:
    return DocumentViewResponse(
        view_id=view.view_id,
        reading_time=_reading_time_response(view.controller.reading_time, settings),
        status=view.controller.status(),
    )


@router.post("/views", response_model=DocumentViewResponse, status_code=status.HTTP_201_CREATED)
async def open_view(
    payload: DocumentTextRequest,
    registry: DocumentViewRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
) -> DocumentViewResponse:
    """Register a mounted article view with its rendered text."""
    return _view_response(registry.open(payload.text), settings)


@router.get("/views/{view_id}", response_model=DocumentViewResponse)
async def get_view_status(
    view: DocumentView = Depends(get_view),
    settings: Settings = Depends(get_app_settings),
) -> DocumentViewResponse:
    return _view_response(view, settings)


@router.put("/views/{view_id}", response_model=DocumentViewResponse)
async def update_view_text(
    payload: DocumentTextRequest,
    view: DocumentView = Depends(get_view),
    settings: Settings = Depends(get_app_settings),
) -> DocumentViewResponse:
    """The article re-rendered; the next narration uses the new text."""
    view.controller.update_text(payload.text)
    return _view_response(view, settings)


@router.post("/views/{view_id}/toggle", response_model=NarrationStatus)
async def toggle_narration(view: DocumentView = Depends(get_view)) -> NarrationStatus:
    return await view.controller.toggle()


@router.delete("/views/{view_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_view(
    view_id: str,
    registry: DocumentViewRegistry = Depends(get_registry),
) -> None:
    """The article view unmounted; stop narration and forget the view."""
    if not await registry.close(view_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown document view: {view_id}",
        )


def _paragraph_index(data: dict) -> Optional[int]:
    value = data.get("paragraph_index")
    # bool is an int subclass; true/false is never a paragraph
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


async def _handle_client_message(view: DocumentView, data: dict) -> None:
    kind = data.get("type")
    player = view.player

    if kind == "toggle":
        await view.controller.toggle()
    elif kind in ("audio_ended", "audio_error"):
        index = _paragraph_index(data)
        if index is None:
            logger.warning(
                f"Ignoring {kind} with invalid paragraph_index: {data.get('paragraph_index')!r}"
            )
        elif isinstance(player, WebSocketAudioPlayer):
            if kind == "audio_ended":
                player.report_ended(index)
            else:
                player.report_error(index, str(data.get("detail") or ""))
    else:
        logger.warning(f"Unknown narration message type: {kind}")


@router.websocket("/views/{view_id}/ws")
async def narration_socket(websocket: WebSocket, view_id: str) -> None:
    """
    Bidirectional channel for one article view.

    Outbound: ``status`` on every state change, ``audio`` for each
    paragraph, ``pause`` on stop. Inbound: ``toggle``, ``audio_ended`` and
    ``audio_error``. Losing the last socket while narrating stops narration.
    """
    registry: DocumentViewRegistry = websocket.app.state.document_views
    manager: NarrationConnectionManager = websocket.app.state.narration_connections

    view = registry.get(view_id)
    if view is None:
        await websocket.close(code=4404, reason="Unknown document view")
        return

    connection = await manager.connect(websocket, view_id)
    connection.outbox.put_nowait(
        {"type": "status", **view.controller.status().model_dump(mode="json")}
    )
    sender = asyncio.create_task(manager.pump(connection))

    try:
        while True:
            data = await websocket.receive_json()
            connection.update_activity()
            if not isinstance(data, dict):
                logger.warning("Ignoring non-object narration message")
                continue
            await _handle_client_message(view, data)
    except WebSocketDisconnect:
        logger.info(f"Narration socket for view {view_id} disconnected")
    finally:
        sender.cancel()
        with suppress(asyncio.CancelledError):
            await sender
        manager.disconnect(connection)
        if not manager.has_connections(view_id) and view.controller.active:
            await view.controller.stop()


__all__ = ["router"]
