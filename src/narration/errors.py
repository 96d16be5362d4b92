"""Exception hierarchy for the narration pipeline."""

from __future__ import annotations

from typing import Any


class NarrationError(RuntimeError):
    """Base class for narration failures."""


class SynthesisError(NarrationError):
    """Wrap transport or API failures when requesting synthesized speech."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class SynthesisCancelled(NarrationError):
    """The session's cancellation token fired before synthesis completed."""


class PlaybackError(NarrationError):
    """The playback layer refused or failed to play an audio resource."""


__all__ = [
    "NarrationError",
    "PlaybackError",
    "SynthesisCancelled",
    "SynthesisError",
]
