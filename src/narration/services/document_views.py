"""Registry of open document views and their narration controllers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from narration.config import Settings
from narration.services.narration_session import (
    NarrationConnectionManager,
    WebSocketAudioPlayer,
)
from narration.services.tts import (
    NarrationController,
    ParagraphSegmenter,
    TextSanitizer,
)
from narration.services.tts.audio_player import AudioPlayer, SubprocessAudioPlayer
from narration.services.tts.pipeline_controller import SpeechSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class DocumentView:
    """One mounted article view with its own narration pipeline."""

    view_id: str
    controller: NarrationController
    player: AudioPlayer
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ViewFactory = Callable[[str, str], DocumentView]


def build_view_factory(
    settings: Settings,
    synthesizer: SpeechSynthesizer,
    manager: NarrationConnectionManager,
) -> ViewFactory:
    """Return a factory wiring a controller for ``(view_id, text)`` from settings."""

    sanitizer = TextSanitizer(settings.citation_labels)
    segmenter = ParagraphSegmenter(settings.min_paragraph_chars)

    def _factory(view_id: str, text: str) -> DocumentView:
        player: AudioPlayer
        if settings.player_backend == "local":
            player = SubprocessAudioPlayer(
                settings.player_command,
                temp_dir=settings.audio_temp_dir,
            )
        else:
            player = WebSocketAudioPlayer(manager, view_id)

        controller = NarrationController(
            synthesizer,
            player,
            text=text,
            sanitizer=sanitizer,
            segmenter=segmenter,
            words_per_minute=settings.words_per_minute,
            start_label=settings.start_label,
            stop_label=settings.stop_label,
        )
        controller.add_listener(
            lambda status: manager.publish(
                view_id, {"type": "status", **status.model_dump(mode="json")}
            )
        )
        return DocumentView(view_id=view_id, controller=controller, player=player)

    return _factory


class DocumentViewRegistry:
    """Tracks open views; closing a view is an implicit narration stop."""

    def __init__(
        self,
        factory: ViewFactory,
        connections: Optional[NarrationConnectionManager] = None,
    ):
        self._factory = factory
        self._connections = connections
        self._views: Dict[str, DocumentView] = {}

    def __len__(self) -> int:
        return len(self._views)

    def open(self, text: str) -> DocumentView:
        view_id = uuid.uuid4().hex
        view = self._factory(view_id, text)
        self._views[view_id] = view
        logger.info(
            f"Opened document view {view_id} "
            f"({len(view.controller.paragraphs)} paragraphs, {view.controller.reading_time})"
        )
        return view

    def get(self, view_id: str) -> Optional[DocumentView]:
        return self._views.get(view_id)

    async def close(self, view_id: str) -> bool:
        view = self._views.pop(view_id, None)
        if view is None:
            return False
        await view.controller.close()
        if self._connections is not None:
            await self._connections.close_view(view_id, code=1001, reason="Document view closed")
        logger.info(f"Closed document view {view_id}")
        return True

    async def close_all(self) -> None:
        view_ids = list(self._views)
        if not view_ids:
            return
        results = await asyncio.gather(
            *(self.close(view_id) for view_id in view_ids),
            return_exceptions=True,
        )
        for view_id, result in zip(view_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Error closing document view {view_id}: {result}")


__all__ = [
    "DocumentView",
    "DocumentViewRegistry",
    "ViewFactory",
    "build_view_factory",
]
