import asyncio

import pytest

from narration.config import Settings
from narration.errors import PlaybackError
from narration.services.document_views import DocumentViewRegistry, build_view_factory
from narration.services.narration_session import (
    NarrationConnectionManager,
    WebSocketAudioPlayer,
)
from narration.services.tts import AudioResource


class FakeWebSocket:
    def __init__(self, fail_send: bool = False):
        self.accepted = False
        self.sent: list[dict] = []
        self.fail_send = fail_send
        self.closed_with: int | None = None

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = code

    async def send_json(self, message: dict) -> None:
        if self.fail_send:
            raise RuntimeError("socket closed")
        self.sent.append(message)


async def next_message(connection) -> dict:
    return await asyncio.wait_for(connection.outbox.get(), timeout=1)


@pytest.mark.asyncio
async def test_publish_reaches_every_socket_of_a_view() -> None:
    manager = NarrationConnectionManager()
    first = await manager.connect(FakeWebSocket(), "view-a")
    second = await manager.connect(FakeWebSocket(), "view-a")
    other = await manager.connect(FakeWebSocket(), "view-b")

    recipients = manager.publish("view-a", {"type": "status", "state": "idle"})

    assert recipients == 2
    assert first.websocket.accepted
    assert (await next_message(first))["state"] == "idle"
    assert (await next_message(second))["state"] == "idle"
    assert other.outbox.empty()

    manager.disconnect(first)
    manager.disconnect(second)
    assert not manager.has_connections("view-a")
    assert manager.publish("view-a", {"type": "pause"}) == 0


@pytest.mark.asyncio
async def test_pump_drops_connection_when_send_fails() -> None:
    manager = NarrationConnectionManager()
    connection = await manager.connect(FakeWebSocket(fail_send=True), "view-a")
    manager.publish("view-a", {"type": "pause"})

    await asyncio.wait_for(manager.pump(connection), timeout=1)

    assert not manager.has_connections("view-a")


@pytest.mark.asyncio
async def test_play_without_connected_view_fails() -> None:
    player = WebSocketAudioPlayer(NarrationConnectionManager(), "view-a")

    with pytest.raises(PlaybackError):
        await player.play(AudioResource(b"audio"))

    assert player.waiting_for is None


@pytest.mark.asyncio
async def test_play_ships_audio_and_waits_for_client_report() -> None:
    manager = NarrationConnectionManager()
    connection = await manager.connect(FakeWebSocket(), "view-a")
    player = WebSocketAudioPlayer(manager, "view-a")

    task = asyncio.create_task(player.play(AudioResource(b"\x00\x01", paragraph_index=2)))
    message = await next_message(connection)

    assert message == {
        "type": "audio",
        "paragraph_index": 2,
        "content_type": "audio/mpeg",
        "data": "AAE=",
    }
    assert player.waiting_for == 2
    # Reports for other paragraphs are stale
    assert player.report_ended(1) is False
    assert not task.done()

    assert player.report_ended(2) is True
    await asyncio.wait_for(task, timeout=1)
    assert player.waiting_for is None
    assert player.report_ended(2) is False


@pytest.mark.asyncio
async def test_client_error_fails_playback() -> None:
    manager = NarrationConnectionManager()
    connection = await manager.connect(FakeWebSocket(), "view-a")
    player = WebSocketAudioPlayer(manager, "view-a")

    task = asyncio.create_task(player.play(AudioResource(b"audio")))
    await next_message(connection)
    player.report_error(0, "decode failed")

    with pytest.raises(PlaybackError, match="decode failed"):
        await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_pause_abandons_playback_and_notifies_view() -> None:
    manager = NarrationConnectionManager()
    connection = await manager.connect(FakeWebSocket(), "view-a")
    player = WebSocketAudioPlayer(manager, "view-a")

    task = asyncio.create_task(player.play(AudioResource(b"audio")))
    await next_message(connection)
    await player.pause()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert await next_message(connection) == {"type": "pause"}
    assert player.waiting_for is None


@pytest.mark.asyncio
async def test_closing_view_closes_sockets_and_blocks_restart(synthesizer) -> None:
    manager = NarrationConnectionManager()
    registry = DocumentViewRegistry(
        build_view_factory(Settings(player_backend="websocket"), synthesizer, manager),
        manager,
    )
    view = registry.open("One.\nTwo.")
    socket = FakeWebSocket()
    await manager.connect(socket, view.view_id)
    await view.controller.toggle()

    assert await registry.close(view.view_id) is True

    assert socket.closed_with == 1001
    assert not manager.has_connections(view.view_id)
    assert view.controller.closed
    requests = list(synthesizer.requests)

    # A socket that still holds the view cannot bring it back to life
    status = await view.controller.toggle()
    await asyncio.sleep(0.01)

    assert status.active is False
    assert synthesizer.requests == requests
    assert registry.get(view.view_id) is None
    assert await registry.close(view.view_id) is False
