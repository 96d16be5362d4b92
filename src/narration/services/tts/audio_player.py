"""Playback backends driven by the narration controller."""

from __future__ import annotations

import abc
import asyncio
import logging
import shutil
from contextlib import suppress
from pathlib import Path
from typing import Optional, Sequence

from narration.errors import PlaybackError
from narration.services.tts.audio_resource import AudioResource

logger = logging.getLogger(__name__)

# Players that accept an MP3 path and exit when playback finishes
DEFAULT_PLAYER_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("afplay",),
    ("mpg123", "-q"),
    ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"),
    ("paplay",),
)


class AudioPlayer(abc.ABC):
    """Plays one AudioResource at a time for a single document view."""

    @abc.abstractmethod
    async def play(self, resource: AudioResource) -> None:
        """Start playback and return once it has finished.

        Raises PlaybackError if the resource cannot be played.
        """

    @abc.abstractmethod
    async def pause(self) -> None:
        """Silence whatever is currently playing."""

    async def aclose(self) -> None:
        await self.pause()


def resolve_player_command(command: Optional[Sequence[str]] = None) -> list[str]:
    """Return the argv prefix for the local player, audio path excluded."""
    if command:
        return list(command)
    for candidate in DEFAULT_PLAYER_COMMANDS:
        if shutil.which(candidate[0]):
            return list(candidate)
    raise PlaybackError("No local audio player found (afplay, mpg123, ffplay or paplay)")


class SubprocessAudioPlayer(AudioPlayer):
    """
    Play audio on the host through an external command-line player.

    Each resource is written to a temp file (removed again when the
    resource is released) and handed to the player process; playback is
    complete when the process exits. pause() terminates the process.
    """

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        *,
        temp_dir: Optional[Path] = None,
        terminate_timeout: float = 2.0,
    ):
        self._command = list(command) if command else None
        self._temp_dir = temp_dir
        self._terminate_timeout = terminate_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._paused = False

    @property
    def playing(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def play(self, resource: AudioResource) -> None:
        argv = resolve_player_command(self._command)
        try:
            path = resource.write_file(self._temp_dir)
        except OSError as exc:
            raise PlaybackError(f"Failed to write audio for paragraph {resource.paragraph_index}: {exc}") from exc
        self._paused = False

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                str(path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise PlaybackError(f"Failed to start {argv[0]}: {exc}") from exc

        self._process = process
        logger.debug(f"Playing paragraph {resource.paragraph_index} with {argv[0]} (pid {process.pid})")
        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            await self._terminate(process)
            raise
        finally:
            if self._process is process:
                self._process = None

        if process.returncode != 0 and not self._paused:
            detail = (stderr or b"").decode("utf-8", errors="replace").strip()
            raise PlaybackError(
                f"{argv[0]} exited with code {process.returncode}: {detail or 'no stderr'}"
            )

    async def pause(self) -> None:
        self._paused = True
        process = self._process
        if process is not None:
            await self._terminate(process)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        with suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._terminate_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Audio player {process.pid} ignored SIGTERM, killing")
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()


__all__ = [
    "AudioPlayer",
    "DEFAULT_PLAYER_COMMANDS",
    "SubprocessAudioPlayer",
    "resolve_player_command",
]
