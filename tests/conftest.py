"""
Pytest configuration and fixtures for SmartDraw testing.

This module provides:
- Provider configs for both wire formats
- SSE body builders for OpenAI / Anthropic style streams
- httpx clients backed by MockTransport (no network)
"""

import json

import httpx
import pytest

from smartdraw.schemas.diagram import ProviderConfig


# ============================================================
# SSE BUILDERS
# ============================================================

def sse_body(*payloads, done=False) -> bytes:
    """Encode payloads as `data: <json>` frames."""
    lines = [f"data: {json.dumps(p, ensure_ascii=False)}\n\n" for p in payloads]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def openai_delta(text):
    return {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"content": text}}]}


def anthropic_delta(text):
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


@pytest.fixture
def openai_stream():
    def _build(*texts, done=True):
        return sse_body(*[openai_delta(t) for t in texts], done=done)
    return _build


@pytest.fixture
def anthropic_stream():
    def _build(*texts):
        events = [{"type": "message_start", "message": {"id": "msg_1"}}]
        events += [anthropic_delta(t) for t in texts]
        events.append({"type": "message_stop"})
        return sse_body(*events)
    return _build


# ============================================================
# PROVIDER FIXTURES
# ============================================================

@pytest.fixture
def openai_config():
    return ProviderConfig(type="openai", baseUrl="https://llm.test/v1/", apiKey="sk-test", model="gpt-test")


@pytest.fixture
def anthropic_config():
    return ProviderConfig(type="anthropic", baseUrl="https://claude.test/v1", apiKey="ak-test", model="claude-test")


# ============================================================
# HTTP MOCKS
# ============================================================

@pytest.fixture
def mock_client():
    """
    Factory: mock_client(handler) -> httpx.AsyncClient routed to `handler`.
    Every request the handler sees is recorded on `client.requests`.
    """
    def _build(handler):
        requests = []

        def _record(request):
            requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        client.requests = requests
        return client
    return _build


class TrackingStream(httpx.AsyncByteStream):
    """Async body that records how far it was read and whether it was closed."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk

    async def aclose(self):
        self.closed = True


@pytest.fixture
def tracking_stream():
    return TrackingStream
