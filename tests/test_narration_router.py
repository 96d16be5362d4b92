import pytest
from fastapi import FastAPI, WebSocketDisconnect
from fastapi.testclient import TestClient

from narration.config import Settings
from narration.routers import narration as narration_router
from narration.services.document_views import DocumentViewRegistry, build_view_factory
from narration.services.narration_session import NarrationConnectionManager

ARTICLE = "# Title\n\nSome **bold** words here.\n- a bullet item"


def make_app(synthesizer, **overrides) -> FastAPI:
    settings = Settings(
        player_backend="websocket", start_label="Listen", stop_label="Stop", **overrides
    )
    connections = NarrationConnectionManager()

    app = FastAPI()
    app.state.settings = settings
    app.state.narration_connections = connections
    app.state.document_views = DocumentViewRegistry(
        build_view_factory(settings, synthesizer, connections),
        connections,
    )
    app.include_router(narration_router.router)
    return app


def test_open_view_reports_reading_time_and_idle_status(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        response = client.post("/api/narration/views", json={"text": ARTICLE})

    assert response.status_code == 201
    body = response.json()
    assert body["view_id"]
    assert body["reading_time"] == {"minutes": 0, "seconds": 0, "words": 8, "label": "0 min read"}
    assert body["status"]["state"] == "idle"
    assert body["status"]["active"] is False
    assert body["status"]["paragraph_count"] == 3
    assert body["status"]["toggle_label"] == "Listen"


def test_unknown_view_is_rejected(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        assert client.get("/api/narration/views/missing").status_code == 404
        assert client.post("/api/narration/views/missing/toggle").status_code == 404
        assert client.delete("/api/narration/views/missing").status_code == 404


def test_rerender_replaces_snapshot(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        view_id = client.post("/api/narration/views", json={"text": ARTICLE}).json()["view_id"]

        response = client.put(f"/api/narration/views/{view_id}", json={"text": "One.\nTwo."})

    assert response.status_code == 200
    assert response.json()["status"]["paragraph_count"] == 2
    assert response.json()["reading_time"]["words"] == 2


def test_toggle_flips_between_loading_and_idle(synthesizer) -> None:
    synthesizer.gate(0)
    with TestClient(make_app(synthesizer)) as client:
        view_id = client.post("/api/narration/views", json={"text": ARTICLE}).json()["view_id"]

        started = client.post(f"/api/narration/views/{view_id}/toggle").json()
        stopped = client.post(f"/api/narration/views/{view_id}/toggle").json()

    assert started["state"] == "loading"
    assert started["active"] is True
    assert started["toggle_label"] == "Stop"
    assert stopped["state"] == "idle"
    assert stopped["toggle_label"] == "Listen"


def test_delete_closes_view(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        view_id = client.post("/api/narration/views", json={"text": ARTICLE}).json()["view_id"]

        assert client.delete(f"/api/narration/views/{view_id}").status_code == 204
        assert client.get(f"/api/narration/views/{view_id}").status_code == 404


def test_socket_for_unknown_view_is_closed(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect("/api/narration/views/missing/ws") as websocket:
                websocket.receive_json()

    assert excinfo.value.code == 4404


def test_socket_narrates_paragraph_and_reports_status(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        view_id = client.post("/api/narration/views", json={"text": "Only paragraph."}).json()["view_id"]

        with client.websocket_connect(f"/api/narration/views/{view_id}/ws") as websocket:
            assert websocket.receive_json()["state"] == "idle"

            websocket.send_json({"type": "toggle"})
            assert websocket.receive_json()["state"] == "loading"
            assert websocket.receive_json()["state"] == "playing"

            audio = websocket.receive_json()
            assert audio["type"] == "audio"
            assert audio["paragraph_index"] == 0
            assert audio["content_type"] == "audio/mpeg"

            websocket.send_json({"type": "audio_ended", "paragraph_index": 0})
            final = websocket.receive_json()

    assert final["type"] == "status"
    assert final["state"] == "idle"
    assert synthesizer.requests == [0]


def test_socket_ignores_malformed_paragraph_index(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        view_id = client.post("/api/narration/views", json={"text": "Only paragraph."}).json()["view_id"]

        with client.websocket_connect(f"/api/narration/views/{view_id}/ws") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "toggle"})
            assert websocket.receive_json()["state"] == "loading"
            assert websocket.receive_json()["state"] == "playing"
            assert websocket.receive_json()["type"] == "audio"

            websocket.send_json({"type": "audio_ended", "paragraph_index": "x"})
            websocket.send_json({"type": "audio_ended", "paragraph_index": None})
            websocket.send_json({"type": "audio_error", "paragraph_index": True, "detail": "bad"})
            websocket.send_json({"type": "audio_ended"})

            # The session survives and still completes on a valid report
            websocket.send_json({"type": "audio_ended", "paragraph_index": 0})
            final = websocket.receive_json()

    assert final["type"] == "status"
    assert final["state"] == "idle"
    assert final["error"] is None


def test_deleting_view_closes_its_sockets(synthesizer) -> None:
    with TestClient(make_app(synthesizer)) as client:
        view_id = client.post("/api/narration/views", json={"text": ARTICLE}).json()["view_id"]

        with client.websocket_connect(f"/api/narration/views/{view_id}/ws") as websocket:
            websocket.receive_json()
            assert client.delete(f"/api/narration/views/{view_id}").status_code == 204

            with pytest.raises(WebSocketDisconnect) as excinfo:
                while True:
                    websocket.receive_json()

    assert excinfo.value.code == 1001
    assert synthesizer.requests == []


def test_reading_time_label_uses_app_settings(synthesizer) -> None:
    app = make_app(synthesizer, reading_time_format="{minutes}분 {seconds}초")
    with TestClient(app) as client:
        response = client.post("/api/narration/views", json={"text": " ".join(["word"] * 100)})

    assert response.json()["reading_time"]["label"] == "0분 30초"
