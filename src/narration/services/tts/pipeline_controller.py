"""
Playback Pipeline Controller for Article Narration.

This module owns the narration state machine for one document view. It
turns the article text into paragraphs, synthesizes them one request at a
time, and plays them strictly in document order with a single paragraph of
look-ahead.

Architecture:
    paragraphs → synthesize(P0) → play(P0) ─┬─▶ play(P1) ─┬─▶ ...
                                             │             │
                        synthesize(P1) ──────┘  synthesize(P2)
                        (prefetch, into `next`)

States:
    idle ──toggle──▶ loading ──P0 ready──▶ playing ──last paragraph──▶ idle
      ▲                 │                    │
      └──── stopped ◀───┴──────toggle────────┘
                 (also: synthesis/playback failure, with error set)

Two buffer slots hold the audio: ``current`` (playing) and ``next``
(prefetched while ``current`` plays). Only the controller writes them,
and every resource is released when its slot is cleared, whichever way
the session ends.

Usage:
    controller = NarrationController(synthesizer, player, text=article_text)
    controller.add_listener(lambda status: print(status.state))

    await controller.toggle()   # start
    await controller.toggle()   # stop, from any point
"""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from narration.errors import PlaybackError, SynthesisCancelled, SynthesisError
from narration.schemas.narration import NarrationStatus, PipelineState
from narration.services.tts.audio_player import AudioPlayer
from narration.services.tts.audio_resource import AudioResource
from narration.services.tts.cancellation import CancellationToken
from narration.services.tts.reading_time import (
    DEFAULT_WORDS_PER_MINUTE,
    ReadingTime,
    estimate_reading_time,
)
from narration.services.tts.text_sanitizer import TextSanitizer
from narration.services.tts.text_segmenter import ParagraphSegmenter

logger = logging.getLogger(__name__)

StatusListener = Callable[[NarrationStatus], None]


class SpeechSynthesizer(Protocol):
    async def synthesize(
        self,
        text: str,
        token: CancellationToken,
        *,
        paragraph_index: int = 0,
    ) -> AudioResource: ...


@dataclass
class BufferSlots:
    """The two audio slots of a playback session."""

    current: Optional[AudioResource] = None
    next: Optional[AudioResource] = None

    def stage(self, resource: AudioResource) -> bool:
        """Hold a prefetched resource in ``next`` while ``current`` plays."""
        if self.current is None:
            return False
        if self.next is not None and self.next is not resource:
            self.next.release()
        self.next = resource
        return True

    def finish_current(self) -> None:
        if self.current is not None:
            self.current.release()
            self.current = None

    def promote(self, resource: AudioResource) -> None:
        """Move ``resource`` into ``current``, clearing ``next`` if it held it."""
        if self.next is resource:
            self.next = None
        self.finish_current()
        self.current = resource

    def clear(self) -> None:
        for resource in (self.current, self.next):
            if resource is not None:
                resource.release()
        self.current = None
        self.next = None


@dataclass
class PlaybackSession:
    """One start-to-stop run over a fixed list of paragraphs."""

    paragraphs: List[str]
    token: CancellationToken = field(default_factory=CancellationToken)
    slots: BufferSlots = field(default_factory=BufferSlots)
    index: int = 0
    task: Optional["asyncio.Task[None]"] = None


class NarrationController:
    """
    Narration state machine for a single document view.

    Attributes:
        synthesizer: Produces an AudioResource per paragraph
        player: Plays resources and reports completion
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        player: AudioPlayer,
        *,
        text: str = "",
        sanitizer: Optional[TextSanitizer] = None,
        segmenter: Optional[ParagraphSegmenter] = None,
        words_per_minute: int = DEFAULT_WORDS_PER_MINUTE,
        start_label: str = "Listen to this article",
        stop_label: str = "Stop listening",
    ):
        self.synthesizer = synthesizer
        self.player = player
        self._sanitizer = sanitizer or TextSanitizer()
        self._segmenter = segmenter or ParagraphSegmenter()
        self._words_per_minute = words_per_minute
        self._start_label = start_label
        self._stop_label = stop_label

        self._lock = asyncio.Lock()
        self._listeners: List[StatusListener] = []
        self._state = PipelineState.IDLE
        self._error: Optional[str] = None
        self._session: Optional[PlaybackSession] = None
        self._closed = False

        self._paragraphs: List[str] = []
        self._reading_time = estimate_reading_time("", words_per_minute)
        self.update_text(text)

    # ------------------------------------------------------------------
    # Document snapshot
    # ------------------------------------------------------------------

    def update_text(self, text: str) -> ReadingTime:
        """
        Replace the article snapshot after a (re-)render.

        The new paragraphs are used by the next session; a running session
        keeps narrating the snapshot it started with.
        """
        sanitized = self._sanitizer.sanitize(text)
        self._paragraphs = self._segmenter.segment(sanitized)
        self._reading_time = estimate_reading_time(sanitized, self._words_per_minute)
        logger.debug(
            f"Narration snapshot: {len(self._paragraphs)} paragraphs, "
            f"{self._reading_time.words} words ({self._reading_time})"
        )
        return self._reading_time

    @property
    def paragraphs(self) -> List[str]:
        return list(self._paragraphs)

    @property
    def reading_time(self) -> ReadingTime:
        return self._reading_time

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state in (PipelineState.LOADING, PipelineState.PLAYING)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def slots(self) -> Optional[BufferSlots]:
        return self._session.slots if self._session else None

    def status(self) -> NarrationStatus:
        session = self._session
        return NarrationStatus(
            state=self._state,
            active=self.active,
            paragraph_index=session.index if session and self.active else None,
            paragraph_count=len(session.paragraphs) if session else len(self._paragraphs),
            toggle_label=self._stop_label if self.active else self._start_label,
            error=self._error,
        )

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    def _set_state(self, state: PipelineState) -> None:
        if state != self._state:
            logger.info(f"Narration state {self._state.value} → {state.value}")
        self._state = state
        self._notify()

    def _notify(self) -> None:
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as exc:
                logger.error(f"Narration status listener failed: {exc}", exc_info=True)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def toggle(self) -> NarrationStatus:
        """Start narration when idle/stopped, stop it when loading/playing."""
        async with self._lock:
            if self.active:
                await self._stop()
            else:
                self._start()
            return self.status()

    async def start(self) -> NarrationStatus:
        async with self._lock:
            if not self.active:
                self._start()
            return self.status()

    async def stop(self) -> NarrationStatus:
        async with self._lock:
            await self._stop()
            return self.status()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Implicit stop for an unmounted view. The controller cannot be restarted."""
        async with self._lock:
            self._closed = True
            await self._stop()
        self._listeners.clear()
        await self.player.aclose()

    async def wait_finished(self) -> None:
        """Wait for the running session, if any, to end on its own."""
        session = self._session
        if session is not None and session.task is not None:
            await asyncio.wait({session.task})

    def _start(self) -> None:
        if self._closed:
            logger.warning("Ignoring start request for a closed narration view")
            return

        paragraphs = list(self._paragraphs)
        self._error = None
        if not paragraphs:
            logger.info("Nothing to narrate in this document")
            self._set_state(PipelineState.IDLE)
            return

        session = PlaybackSession(paragraphs=paragraphs)
        self._session = session
        self._set_state(PipelineState.LOADING)
        session.task = asyncio.create_task(self._run(session), name="narration-session")

    async def _stop(self) -> None:
        session = self._session
        if session is None:
            if self._state == PipelineState.STOPPED:
                self._set_state(PipelineState.IDLE)
            return

        session.token.cancel()
        await self.player.pause()

        task = session.task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        session.slots.clear()
        if self._session is session:
            self._session = None
        logger.info("Narration stopped")
        self._set_state(PipelineState.STOPPED)
        self._set_state(PipelineState.IDLE)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run(self, session: PlaybackSession) -> None:
        paragraphs = session.paragraphs
        slots = session.slots
        prefetch: Optional["asyncio.Task[AudioResource]"] = None

        try:
            slots.current = await self.synthesizer.synthesize(
                paragraphs[0], session.token, paragraph_index=0
            )

            for index in range(len(paragraphs)):
                session.index = index
                if index + 1 < len(paragraphs):
                    prefetch = asyncio.create_task(self._prefetch(session, index + 1))

                self._set_state(PipelineState.PLAYING)
                await self.player.play(slots.current)
                slots.finish_current()

                if prefetch is not None:
                    # A deferred prefetch failure surfaces here, not mid-playback
                    upcoming = await prefetch
                    prefetch = None
                    slots.promote(upcoming)

        except SynthesisCancelled:
            logger.debug("Narration session cancelled")
            return
        except (SynthesisError, PlaybackError) as exc:
            logger.error(f"Narration failed at paragraph {session.index}: {exc}")
            self._fail(session, exc)
            return
        except Exception as exc:
            logger.error(
                f"Unexpected narration failure at paragraph {session.index}: {exc}",
                exc_info=True,
            )
            self._fail(session, exc)
            return
        finally:
            if prefetch is not None:
                await self._discard_prefetch(prefetch)
            slots.clear()

        logger.info(f"Narration finished: {len(paragraphs)} paragraphs")
        if self._session is session:
            self._session = None
            self._set_state(PipelineState.IDLE)

    async def _prefetch(self, session: PlaybackSession, index: int) -> AudioResource:
        resource = await self.synthesizer.synthesize(
            session.paragraphs[index], session.token, paragraph_index=index
        )
        if session.token.cancelled:
            resource.release()
            raise SynthesisCancelled("Narration session was cancelled")
        session.slots.stage(resource)
        return resource

    @staticmethod
    async def _discard_prefetch(prefetch: "asyncio.Task[AudioResource]") -> None:
        if not prefetch.done():
            prefetch.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await prefetch
            return
        if prefetch.cancelled():
            return
        if prefetch.exception() is None:
            prefetch.result().release()

    def _fail(self, session: PlaybackSession, exc: Exception) -> None:
        if self._session is not session:
            return
        session.token.cancel()
        self._session = None
        self._error = str(exc) or exc.__class__.__name__
        self._set_state(PipelineState.STOPPED)


__all__ = [
    "BufferSlots",
    "NarrationController",
    "PlaybackSession",
    "SpeechSynthesizer",
]
