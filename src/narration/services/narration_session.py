import asyncio
import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from narration.errors import PlaybackError
from narration.services.tts.audio_player import AudioPlayer
from narration.services.tts.audio_resource import AudioResource

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NarrationConnection:
    """Tracks a single article view socket and its outbound queue."""

    view_id: str
    websocket: WebSocket
    outbox: "asyncio.Queue[dict[str, Any]]" = field(default_factory=asyncio.Queue)
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = _utcnow()


class NarrationConnectionManager:
    """
    Manages article view WebSockets, grouped by document view.

    Messages are published synchronously into each connection's outbox and
    drained by the socket handler, so the playback controller can report
    state changes without awaiting network writes.
    """

    def __init__(self) -> None:
        self.active_connections: Dict[str, List[NarrationConnection]] = {}

    async def connect(self, websocket: WebSocket, view_id: str) -> NarrationConnection:
        """Accept a new WebSocket connection for a document view."""
        await websocket.accept()
        connection = NarrationConnection(view_id=view_id, websocket=websocket)
        self.active_connections.setdefault(view_id, []).append(connection)
        logger.info(f"Narration client connected to view {view_id}")
        return connection

    def disconnect(self, connection: NarrationConnection) -> None:
        """Remove a connection; drops the view entry once empty."""
        connections = self.active_connections.get(connection.view_id, [])
        if connection in connections:
            connections.remove(connection)
            logger.info(f"Narration client disconnected from view {connection.view_id}")
        if not connections:
            self.active_connections.pop(connection.view_id, None)

    def has_connections(self, view_id: str) -> bool:
        return bool(self.active_connections.get(view_id))

    def publish(self, view_id: str, message: dict[str, Any]) -> int:
        """Queue a JSON message for every socket of a view. Returns recipients."""
        connections = list(self.active_connections.get(view_id, []))
        for connection in connections:
            connection.outbox.put_nowait(message)
        logger.debug(f"Queued {message.get('type')} for {len(connections)} client(s) of view {view_id}")
        return len(connections)

    async def close_view(self, view_id: str, code: int = 1000, reason: str = "") -> int:
        """Close every socket of a view. Returns the number of sockets closed."""
        connections = self.active_connections.pop(view_id, [])
        for connection in connections:
            try:
                await connection.websocket.close(code=code, reason=reason)
            except Exception as exc:
                logger.debug(f"Socket for view {view_id} already closed: {exc}")
        if connections:
            logger.info(f"Closed {len(connections)} narration socket(s) for view {view_id}")
        return len(connections)

    async def pump(self, connection: NarrationConnection) -> None:
        """Send queued messages until cancelled or the socket fails."""
        while True:
            message = await connection.outbox.get()
            try:
                await connection.websocket.send_json(message)
            except Exception as exc:
                logger.warning(f"Error sending to view {connection.view_id}: {exc}")
                self.disconnect(connection)
                return
            connection.update_activity()


class WebSocketAudioPlayer(AudioPlayer):
    """
    Play audio in the connected article view.

    The encoded audio is shipped to every socket of the view and playback
    is considered finished when a client reports ``audio_ended`` for that
    paragraph (or failed on ``audio_error``).
    """

    def __init__(self, manager: NarrationConnectionManager, view_id: str):
        self._manager = manager
        self._view_id = view_id
        self._pending: Optional[tuple[int, "asyncio.Future[None]"]] = None

    @property
    def waiting_for(self) -> Optional[int]:
        return self._pending[0] if self._pending else None

    async def play(self, resource: AudioResource) -> None:
        index = resource.paragraph_index
        finished: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._pending = (index, finished)

        recipients = self._manager.publish(
            self._view_id,
            {
                "type": "audio",
                "paragraph_index": index,
                "content_type": resource.content_type,
                "data": base64.b64encode(resource.data).decode("utf-8"),
            },
        )
        try:
            if recipients == 0:
                raise PlaybackError(f"No article view connected for {self._view_id}")
            await finished
        finally:
            if self._pending is not None and self._pending[1] is finished:
                self._pending = None

    def report_ended(self, paragraph_index: int) -> bool:
        """Resolve the pending playback. Stale reports are ignored."""
        pending = self._pending
        if pending is None or pending[0] != paragraph_index or pending[1].done():
            logger.debug(f"Ignoring audio_ended for paragraph {paragraph_index}")
            return False
        pending[1].set_result(None)
        return True

    def report_error(self, paragraph_index: int, detail: str) -> bool:
        pending = self._pending
        if pending is None or pending[0] != paragraph_index or pending[1].done():
            return False
        pending[1].set_exception(PlaybackError(detail or "Client failed to play audio"))
        return True

    async def pause(self) -> None:
        pending = self._pending
        if pending is not None and not pending[1].done():
            pending[1].cancel()
        self._pending = None
        self._manager.publish(self._view_id, {"type": "pause"})


__all__ = [
    "NarrationConnection",
    "NarrationConnectionManager",
    "WebSocketAudioPlayer",
]
