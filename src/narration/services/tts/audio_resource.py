"""Locally materialized audio for one synthesized paragraph."""

from __future__ import annotations

import logging
import mimetypes
import tempfile
from pathlib import Path
from typing import Optional

from narration.errors import PlaybackError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/pcm": ".pcm",
}


class AudioResource:
    """
    Playable audio bytes bound to a single paragraph.

    The bytes are fully downloaded before the resource exists, so playing it
    never touches the network. A resource is owned by exactly one buffer
    slot; whoever clears that slot calls :meth:`release`, which drops the
    byte buffer and deletes any temp file written for a local player.
    """

    def __init__(
        self,
        data: bytes,
        *,
        content_type: str = "audio/mpeg",
        paragraph_index: int = 0,
        text: str = "",
    ):
        self._data: Optional[bytes] = data
        self.content_type = content_type
        self.paragraph_index = paragraph_index
        self.text = text
        self.size = len(data)
        self._path: Optional[Path] = None

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.size} bytes"
        return f"AudioResource(paragraph={self.paragraph_index}, {state})"

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise PlaybackError(f"Audio for paragraph {self.paragraph_index} was already released")
        return self._data

    @property
    def suffix(self) -> str:
        return _EXTENSIONS.get(self.content_type) or mimetypes.guess_extension(self.content_type) or ".bin"

    def write_file(self, directory: Optional[Path] = None) -> Path:
        """Write the bytes to a temp file once and return its path."""
        if self._path is not None:
            return self._path

        data = self.data
        if directory is not None:
            directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            prefix=f"narration-{self.paragraph_index:04d}-",
            suffix=self.suffix,
            dir=directory,
            delete=False,
        ) as handle:
            handle.write(data)
            self._path = Path(handle.name)
        return self._path

    def release(self) -> None:
        """Free the byte buffer and remove the temp file. Safe to call twice."""
        if self._data is None:
            return
        self._data = None
        if self._path is not None:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(f"Failed to remove narration audio file {self._path}: {exc}")
            self._path = None
        logger.debug(f"Released audio for paragraph {self.paragraph_index} ({self.size} bytes)")


__all__ = ["AudioResource"]
