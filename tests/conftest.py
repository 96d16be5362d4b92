import asyncio
import pathlib
import signal
import sys
import time

import psutil
import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from narration.errors import PlaybackError  # noqa: E402
from narration.services.tts import AudioResource, CancellationToken  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def cleanup_processes():
    """Terminate any audio player processes left behind by the tests."""
    yield

    try:
        children = psutil.Process().children(recursive=True)
    except psutil.Error as e:
        print(f"[CLEANUP] Unable to list child processes: {e}")
        return

    for child in children:
        try:
            print(f"[CLEANUP] Terminating process {child.pid} ({child.name()})")
            child.send_signal(signal.SIGTERM)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    if children:
        time.sleep(0.3)

    for child in children:
        try:
            if child.is_running():
                child.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass


class RecordingPlayer:
    """AudioPlayer double that records start/end events.

    Playback finishes after ``play_delay`` seconds unless ``manual`` is set,
    in which case each call waits until :meth:`finish` is called.
    """

    def __init__(self, play_delay: float = 0.0, manual: bool = False):
        self.play_delay = play_delay
        self.manual = manual
        self.events: list[tuple[str, int]] = []
        self.pauses = 0
        self.playing: AudioResource | None = None
        self.fail_on: set[int] = set()
        self.errors: dict[int, Exception] = {}
        self._release: dict[int, asyncio.Event] = {}

    async def play(self, resource: AudioResource) -> None:
        index = resource.paragraph_index
        assert not resource.released
        self.events.append(("start", index))
        self.playing = resource
        try:
            if index in self.fail_on:
                raise PlaybackError(f"cannot play {index}")
            if index in self.errors:
                raise self.errors[index]
            if self.manual:
                await self._release.setdefault(index, asyncio.Event()).wait()
            else:
                await asyncio.sleep(self.play_delay)
        finally:
            self.playing = None
        self.events.append(("end", index))

    def finish(self, index: int) -> None:
        self._release.setdefault(index, asyncio.Event()).set()

    async def pause(self) -> None:
        self.pauses += 1

    async def aclose(self) -> None:
        await self.pause()

    @property
    def started(self) -> list[int]:
        return [index for kind, index in self.events if kind == "start"]


class FakeSynthesizer:
    """Synthesizer double with per-paragraph gates and failures."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.requests: list[int] = []
        self.in_flight = 0
        self.cancelled = 0
        self.resources: list[AudioResource] = []
        self.failures: dict[int, Exception] = {}
        self.gates: dict[int, asyncio.Event] = {}

    def gate(self, index: int) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[index] = event
        return event

    async def synthesize(
        self, text: str, token: CancellationToken, *, paragraph_index: int = 0
    ) -> AudioResource:
        token.raise_if_cancelled()
        return await token.guard(self._synthesize(text, paragraph_index))

    async def _synthesize(self, text: str, index: int) -> AudioResource:
        self.requests.append(index)
        self.in_flight += 1
        try:
            if index in self.gates:
                await self.gates[index].wait()
            else:
                await asyncio.sleep(self.delay)
            if index in self.failures:
                raise self.failures[index]
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1
        resource = AudioResource(f"audio-{index}".encode(), paragraph_index=index, text=text)
        self.resources.append(resource)
        return resource


@pytest.fixture
def player() -> RecordingPlayer:
    return RecordingPlayer()


@pytest.fixture
def manual_player() -> RecordingPlayer:
    return RecordingPlayer(manual=True)


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()
