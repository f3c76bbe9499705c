"""Tests for the FastAPI session API.

WHY: Validates every endpoint: happy paths, error cases, and the
interaction between the background pipeline and timeline queries.

HOW: Two TestClient fixtures. `client` patches the background runner so
sessions stay pending and tests can drive state directly through the
store. `live_client` lets the real pipeline run with the offline echo
backend; TestClient executes background tasks before returning, so the
session has finished by the time the POST response is in hand.

RULES:
- All tests use the FastAPI TestClient (synchronous)
- No translation service is ever called (echo backend or patched runner)
- The session store is cleared before and after each test
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import frag, unit
import overlay_translator.server.app as app_module
from overlay_translator.recognition.source import RecognitionChunk
from overlay_translator.server.app import _run_session_sync, app, session_store
from overlay_translator.server.sessions import SessionStatus


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_session_store():
    """Clear all sessions before each test to ensure isolation."""
    session_store._sessions.clear()
    yield
    session_store._sessions.clear()


@pytest.fixture
def client():
    """TestClient whose background runner does nothing."""
    with patch(
        "overlay_translator.server.app._run_session_sync",
        new=lambda session_id, store, chunks: None,
    ):
        yield TestClient(app)


@pytest.fixture
def live_client():
    """TestClient that runs the real pipeline in the background."""
    return TestClient(app)


def _speech_body(**overrides):
    body = {
        "mode": "speech",
        "target_language": "en",
        "backend": "echo",
        "chunks": [
            {"fragments": [
                {"text": "Guten", "start_offset": 0.0, "duration": 0.4},
                {"text": "Tag", "start_offset": 0.5, "duration": 0.4},
            ]},
            {"fragments": [
                {"text": "Tschüss", "start_offset": 8.0, "duration": 0.6},
            ]},
        ],
    }
    body.update(overrides)
    return body


def _frames_body():
    return {
        "mode": "frames",
        "backend": "echo",
        "chunks": [{"fragments": [
            {
                "text": "AUSGANG", "start_offset": 2.0, "duration": 0.33, "confidence": 0.9,
                "position": {"x": 0.4, "y": 0.1, "width": 0.2, "height": 0.06},
            },
            {"text": "~~", "start_offset": 2.0, "duration": 0.33, "confidence": 0.1},
        ]}],
    }


# ---------------------------------------------------------------------------
# POST /sessions
# ---------------------------------------------------------------------------


class TestCreateSession:
    """Tests for POST /sessions."""

    def test_returns_201_with_pending_status(self, client):
        response = client.post("/sessions", json=_speech_body())

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert session_store.get_session(data["id"]) is not None

    def test_config_is_recorded(self, client):
        session_id = client.post("/sessions", json=_speech_body(target_language="de")).json()["id"]
        config = session_store.get_session(session_id).config

        assert config["mode"] == "speech"
        assert config["target_language"] == "de"
        assert config["backend"] == "echo"
        assert config["chunk_count"] == 2
        assert config["max_phrase_duration"] == 5.0

    def test_invalid_confidence_is_rejected(self, client):
        body = _speech_body(chunks=[{"fragments": [
            {"text": "a", "start_offset": 0.0, "confidence": 1.5},
        ]}])
        assert client.post("/sessions", json=body).status_code == 422

    def test_unknown_mode_is_rejected(self, client):
        assert client.post("/sessions", json=_speech_body(mode="radio")).status_code == 422

    def test_http_backend_without_endpoint_is_400(self, client, monkeypatch):
        monkeypatch.delenv("TRANSLATION_BASE_URL", raising=False)
        response = client.post("/sessions", json=_speech_body(backend="http"))

        assert response.status_code == 400
        assert "TRANSLATION_BASE_URL" in response.json()["detail"]

    def test_out_of_order_fragments_are_rejected(self, client):
        body = _speech_body(chunks=[{"fragments": [
            {"text": "zwei", "start_offset": 2.0},
            {"text": "eins", "start_offset": 1.0},
        ]}])
        response = client.post("/sessions", json=body)

        assert response.status_code == 422
        assert "ordered by start_offset" in response.text
        assert len(session_store) == 0

    def test_equal_start_offsets_are_accepted(self, client):
        body = _speech_body(chunks=[{"fragments": [
            {"text": "a", "start_offset": 1.0},
            {"text": "b", "start_offset": 1.0},
        ]}])
        assert client.post("/sessions", json=body).status_code == 201

    def test_too_many_sessions_is_429(self, client, monkeypatch):
        monkeypatch.setattr(session_store, "max_sessions", 1)
        assert client.post("/sessions", json=_speech_body()).status_code == 201

        response = client.post("/sessions", json=_speech_body())
        assert response.status_code == 429


# ---------------------------------------------------------------------------
# Background pipeline
# ---------------------------------------------------------------------------


class TestSessionRun:
    """The real pipeline behind POST /sessions."""

    def test_speech_session_completes(self, live_client):
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        data = live_client.get("/sessions/{}".format(session_id)).json()

        assert data["status"] == "completed"
        assert data["chunks_processed"] == 2
        assert data["unit_count"] == 2
        assert data["translated_count"] == 2
        assert data["progress"] == 1.0
        assert data["error"] is None

    def test_query_by_time(self, live_client):
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        data = live_client.get("/sessions/{}/units".format(session_id), params={"time": 0.3}).json()

        assert data["time"] == 0.3
        assert len(data["units"]) == 1
        item = data["units"][0]
        assert item["originalText"] == "Guten Tag"
        assert item["translatedText"] == "Guten Tag (TR)"
        assert item["position"] == {"x": 0.2, "y": 0.8, "width": 0.6, "height": 0.1}

    def test_query_past_the_end_returns_last_unit(self, live_client):
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        data = live_client.get("/sessions/{}/units".format(session_id), params={"time": 99.0}).json()
        assert [u["originalText"] for u in data["units"]] == ["Tschüss"]

    def test_list_all_units(self, live_client):
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        data = live_client.get("/sessions/{}/units".format(session_id)).json()

        assert data["time"] is None
        assert [u["timeStart"] for u in data["units"]] == [0.0, 8.0]

    def test_frames_session_filters_and_keeps_boxes(self, live_client):
        session_id = live_client.post("/sessions", json=_frames_body()).json()["id"]
        data = live_client.get("/sessions/{}/units".format(session_id), params={"time": 2.0}).json()

        assert [u["originalText"] for u in data["units"]] == ["AUSGANG"]
        assert data["units"][0]["position"] == {"x": 0.4, "y": 0.1, "width": 0.2, "height": 0.06}

    def test_unexpected_error_marks_session_failed(self, live_client, monkeypatch):
        def _broken_backend(name=None):
            raise RuntimeError("engine exploded")

        monkeypatch.setattr(app_module, "build_backend", _broken_backend)
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        data = live_client.get("/sessions/{}".format(session_id)).json()

        assert data["status"] == "failed"
        assert data["error"] == "engine exploded"

    def test_cancelled_before_run_ends_cancelled(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        session_store.cancel_session(session_id)

        chunk = RecognitionChunk(
            index=0, window_start=0.0, window_end=1.0,
            fragments=[frag("Hallo", 0.0, 0.5)], total=1,
        )
        _run_session_sync(session_id, session_store, [chunk])

        session = session_store.get_session(session_id)
        assert session.status == SessionStatus.CANCELLED
        assert session.completed_at is not None

    def test_cancelled_session_without_chunks_ends_cancelled(self, client):
        session_id = client.post("/sessions", json=_speech_body(chunks=[])).json()["id"]
        session_store.cancel_session(session_id)

        _run_session_sync(session_id, session_store, [])

        session = session_store.get_session(session_id)
        assert session.status == SessionStatus.CANCELLED
        assert session.chunks_processed == 0

    def test_session_without_chunks_completes(self, client):
        session_id = client.post("/sessions", json=_speech_body(chunks=[])).json()["id"]
        _run_session_sync(session_id, session_store, [])
        assert session_store.get_session(session_id).status == SessionStatus.COMPLETED


# ---------------------------------------------------------------------------
# GET /sessions/{id} and /units
# ---------------------------------------------------------------------------


class TestGetSession:
    """Tests for GET /sessions/{id} and GET /sessions/{id}/units."""

    def test_pending_session(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        response = client.get("/sessions/{}".format(session_id))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["unit_count"] == 0
        assert data["progress"] == 0.0

    def test_unknown_session_is_404(self, client):
        response = client.get("/sessions/nope")
        assert response.status_code == 404
        assert "nope" in response.json()["detail"]

    def test_units_of_unknown_session_is_404(self, client):
        assert client.get("/sessions/nope/units", params={"time": 1.0}).status_code == 404

    def test_query_empty_timeline(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        data = client.get("/sessions/{}/units".format(session_id), params={"time": 1.0}).json()
        assert data["units"] == []

    def test_query_sees_units_stored_directly(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        session = session_store.get_session(session_id)
        session.store.append([unit("EXIT", 2.0), unit("Sale", 2.0), unit("Open", 3.0)])

        data = client.get("/sessions/{}/units".format(session_id), params={"time": 2.2}).json()
        assert [u["originalText"] for u in data["units"]] == ["EXIT", "Sale"]


# ---------------------------------------------------------------------------
# POST /sessions/{id}/cancel and DELETE /sessions/{id}
# ---------------------------------------------------------------------------


class TestCancelAndDelete:
    """Tests for cancellation and deletion."""

    def test_cancel_returns_202_and_sets_flag(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        response = client.post("/sessions/{}/cancel".format(session_id))

        assert response.status_code == 202
        assert response.json()["id"] == session_id
        assert session_store.get_session(session_id).cancel_flag.is_cancelled

    def test_cancel_unknown_is_404(self, client):
        assert client.post("/sessions/nope/cancel").status_code == 404

    def test_delete_returns_204(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        response = client.delete("/sessions/{}".format(session_id))

        assert response.status_code == 204
        assert client.get("/sessions/{}".format(session_id)).status_code == 404

    def test_delete_unknown_is_404(self, client):
        assert client.delete("/sessions/nope").status_code == 404


# ---------------------------------------------------------------------------
# GET /sessions/{id}/export/{format}
# ---------------------------------------------------------------------------


class TestExport:
    """Tests for timeline export."""

    def test_json_fixture_export(self, live_client):
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        response = live_client.get("/sessions/{}/export/json_fixture".format(session_id))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert '{}-units.json'.format(session_id) in response.headers["content-disposition"]
        document = response.json()
        assert document["targetLanguage"] == "en"
        assert document["unitCount"] == 2

    def test_plain_text_export(self, live_client):
        session_id = live_client.post("/sessions", json=_speech_body()).json()["id"]
        response = live_client.get("/sessions/{}/export/plain_text".format(session_id))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text.splitlines()[0] == "[00:00.000] Guten Tag => Guten Tag (TR)"

    def test_unknown_format_is_404(self, client):
        session_id = client.post("/sessions", json=_speech_body()).json()["id"]
        response = client.get("/sessions/{}/export/srt".format(session_id))

        assert response.status_code == 404
        assert "json_fixture" in response.json()["detail"]

    def test_unknown_session_is_404(self, client):
        assert client.get("/sessions/nope/export/json_fixture").status_code == 404


# ---------------------------------------------------------------------------
# GET /formats and GET /health
# ---------------------------------------------------------------------------


class TestFormatsAndHealth:
    """Tests for the informational endpoints."""

    def test_list_formats(self, client):
        data = client.get("/formats").json()
        assert [f["key"] for f in data] == ["json_fixture", "plain_text"]
        assert [f["suffix"] for f in data] == ["-units.json", "-timeline.txt"]

    def test_health(self, client):
        client.post("/sessions", json=_speech_body())
        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert data["sessions"] == 1


# ---------------------------------------------------------------------------
# OpenAPI
# ---------------------------------------------------------------------------


class TestOpenAPI:
    """The generated schema documents every endpoint."""

    def test_all_endpoints_in_schema(self, client):
        paths = client.get("/openapi.json").json()["paths"]
        for path in (
            "/sessions",
            "/sessions/{session_id}",
            "/sessions/{session_id}/units",
            "/sessions/{session_id}/cancel",
            "/sessions/{session_id}/export/{format_key}",
            "/formats",
            "/health",
        ):
            assert path in paths

    def test_endpoints_have_descriptions_and_tags(self, client):
        paths = client.get("/openapi.json").json()["paths"]
        for path, methods in paths.items():
            for method, operation in methods.items():
                assert operation.get("description"), "{} {}".format(method, path)
                assert operation.get("tags"), "{} {}".format(method, path)
