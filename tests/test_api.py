"""
Tests for the HTTP surface.

Tests cover:
    - SSE framing of the diagram stream
    - Request validation (empty input, bad image, missing params)
    - Error -> status mapping for mind maps and model listing
    - Global exception handler and health check
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from smartdraw.api.v1.endpoints import diagram as endpoints
from smartdraw.core.config import settings
from smartdraw.core.exceptions import (
    ProviderConfigError,
    TransportError,
    UnrepairableJSONError,
)
from smartdraw.main import app
from smartdraw.schemas.mindmap import Mindmap, MindmapNode, MindmapResponse


PROVIDER = {"type": "openai", "baseUrl": "https://llm.test/v1", "apiKey": "sk", "model": "m"}


@pytest.fixture
def client():
    return TestClient(app)


def _sse_payloads(text: str):
    return [line[len("data: "):] for line in text.splitlines() if line.startswith("data: ")]


def _raising(exc):
    async def _fake(*args, **kwargs):
        raise exc
    return _fake


# ============================================================
# DIAGRAM STREAM
# ============================================================

class TestDiagramEndpoint:

    def test_events_framed_as_sse(self, client, monkeypatch):
        seen = {}

        async def fake_stream(config, user_input, chart_type, image):
            seen.update(config=config, chart_type=chart_type)
            yield json.dumps({"type": "chunk", "content": "["})
            yield json.dumps({"type": "result", "data": {"elements": [], "code": "[]"}})

        monkeypatch.setattr(endpoints, "generate_diagram_stream", fake_stream)

        response = client.post(
            "/api/v1/diagram/generate",
            json={"config": PROVIDER, "userInput": "a flow", "chartType": "flowchart"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        payloads = _sse_payloads(response.text)
        assert json.loads(payloads[0]) == {"type": "chunk", "content": "["}
        assert json.loads(payloads[1])["type"] == "result"
        assert payloads[-1] == "[DONE]"
        assert seen["config"].model == "m"
        assert seen["chart_type"] == "flowchart"

    def test_generator_crash_becomes_error_event(self, client, monkeypatch):
        async def broken_stream(*args):
            yield json.dumps({"type": "chunk", "content": "x"})
            raise RuntimeError("boom")

        monkeypatch.setattr(endpoints, "generate_diagram_stream", broken_stream)

        payloads = _sse_payloads(client.post("/api/v1/diagram/generate", json={"userInput": "x"}).text)

        assert json.loads(payloads[1]) == {"type": "error", "kind": "internal", "message": "boom"}
        assert payloads[-1] == "[DONE]"

    async def test_wrapper_closes_inner_stream_when_abandoned(self):
        closed = []

        async def events():
            try:
                yield "1"
                yield "2"
            finally:
                closed.append(True)

        wrapper = endpoints._sse_wrapper(events())
        assert await wrapper.__anext__() == "data: 1\n\n"
        await wrapper.aclose()

        assert closed == [True]

    def test_blank_input_rejected(self, client):
        assert client.post("/api/v1/diagram/generate", json={"userInput": "   "}).status_code == 400

    def test_invalid_image_rejected(self, client):
        response = client.post(
            "/api/v1/diagram/generate",
            json={"userInput": "redraw", "image": {"data": "not-base64!!", "mimeType": "image/png"}},
        )
        assert response.status_code == 400
        assert "base64" in response.json()["detail"]


# ============================================================
# MIND MAP
# ============================================================

class TestMindmapEndpoint:

    def test_success(self, client, monkeypatch):
        async def fake_generate(config, user_input):
            root = MindmapNode(text=user_input)
            return MindmapResponse(mindmap=Mindmap(root=root), elements=[{"type": "rectangle", "id": "node-1"}])

        monkeypatch.setattr(endpoints, "generate_mindmap", fake_generate)

        response = client.post("/api/v1/mindmap", json={"userInput": "Space"})

        assert response.status_code == 200
        assert response.json()["mindmap"]["root"] == {"text": "Space", "children": []}

    def test_elements_keep_renderer_fields_and_omit_absent_ones(self, client, monkeypatch):
        element = {
            "type": "rectangle",
            "id": "node-1",
            "x": 10,
            "y": 20,
            "label": {"text": "Space", "fontSize": 22, "textAlign": "center"},
            "roughness": 1,
        }

        async def fake_generate(config, user_input):
            return MindmapResponse(mindmap=Mindmap(root=MindmapNode(text="Space")), elements=[element])

        monkeypatch.setattr(endpoints, "generate_mindmap", fake_generate)

        response = client.post("/api/v1/mindmap", json={"userInput": "Space"})

        assert response.json()["elements"] == [element]

    @pytest.mark.parametrize("exc, status", [
        (ProviderConfigError("no provider"), 400),
        (TransportError(401, "bad key", "openai"), 502),
        (UnrepairableJSONError("garbage"), 422),
    ])
    def test_error_mapping(self, client, monkeypatch, exc, status):
        monkeypatch.setattr(endpoints, "generate_mindmap", _raising(exc))
        response = client.post("/api/v1/mindmap", json={"userInput": "Space"})
        assert response.status_code == status

    def test_timeout(self, client, monkeypatch):
        async def slow_generate(config, user_input):
            await asyncio.sleep(5)

        monkeypatch.setattr(endpoints, "generate_mindmap", slow_generate)
        monkeypatch.setattr(settings, "AI_TIMEOUT_SECONDS", 0.01)

        assert client.post("/api/v1/mindmap", json={"userInput": "Space"}).status_code == 504

    def test_unexpected_error_uses_envelope(self, monkeypatch):
        monkeypatch.setattr(endpoints, "generate_mindmap", _raising(RuntimeError("kaput")))
        client = TestClient(app, raise_server_exceptions=False)

        response = client.post("/api/v1/mindmap", json={"userInput": "Space"})

        assert response.status_code == 500
        assert response.json() == {
            "status": "error",
            "message": "An internal server error occurred.",
            "detail": "kaput",
        }


# ============================================================
# PROVIDER UTILITIES
# ============================================================

class TestProviderEndpoints:

    def test_models(self, client, monkeypatch):
        async def fake_fetch(provider, base_url, api_key):
            return [{"id": "m1", "name": "Model One"}]

        monkeypatch.setattr(endpoints, "fetch_models", fake_fetch)

        response = client.get("/api/v1/models", params={"type": "openai", "baseUrl": "https://x", "apiKey": "k"})

        assert response.status_code == 200
        assert response.json() == {"models": [{"id": "m1", "name": "Model One"}]}

    def test_models_missing_params(self, client):
        assert client.get("/api/v1/models", params={"type": "openai"}).status_code == 400

    @pytest.mark.parametrize("exc, status", [
        (ProviderConfigError("Unsupported provider type: cohere"), 400),
        (TransportError(None, "connection refused", "openai"), 502),
    ])
    def test_models_error_mapping(self, client, monkeypatch, exc, status):
        monkeypatch.setattr(endpoints, "fetch_models", _raising(exc))
        params = {"type": "openai", "baseUrl": "https://x", "apiKey": "k"}
        assert client.get("/api/v1/models", params=params).status_code == status

    def test_connection_check(self, client, monkeypatch):
        async def fake_check(config):
            return {"success": True, "message": "Connected, found 1 model(s)", "models": [{"id": "m", "name": "m"}]}

        monkeypatch.setattr(endpoints, "check_connection", fake_check)

        response = client.post("/api/v1/configs/test-connection", json={"config": PROVIDER})

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_health(self, client):
        body = client.get("/").json()
        assert body["status"] == "operational"
