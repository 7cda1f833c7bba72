"""
SmartDraw — LLM Client
=======================
Streaming chat calls against OpenAI-compatible and Anthropic-compatible
endpoints, plus model listing / connection testing.

  • StreamDecoder — SSE framing + per-provider fragment extraction
  • stream_llm   — async generator of text fragments, transport scoped
  • call_llm     — consume the stream, return the full text
"""

import json
import codecs
import logging
from contextlib import aclosing, asynccontextmanager
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

import httpx

from smartdraw.core.config import settings
from smartdraw.core.exceptions import ProviderConfigError, TransportError
from smartdraw.schemas.diagram import ChatMessage, ProviderConfig, ProviderType

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_DATA_PREFIX = "data:"

FragmentCallback = Callable[[str], None]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# STREAM DECODING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _openai_fragment(payload: Any) -> Optional[str]:
    """choices[0].delta.content"""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


def _anthropic_fragment(payload: Any) -> Optional[str]:
    """delta.text of content_block_delta events"""
    if not isinstance(payload, dict) or payload.get("type") != "content_block_delta":
        return None
    delta = payload.get("delta")
    if not isinstance(delta, dict):
        return None
    text = delta.get("text")
    return text if isinstance(text, str) else None


_EXTRACTORS = {
    ProviderType.openai: _openai_fragment,
    ProviderType.anthropic: _anthropic_fragment,
}

_ANTHROPIC_EVENTS = {
    "message_start",
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_delta",
    "message_stop",
    "ping",
}


def _is_known_event(provider: ProviderType, payload: Any) -> bool:
    """Frames that legitimately carry no text (role deltas, lifecycle events)."""
    if not isinstance(payload, dict):
        return False
    if provider is ProviderType.openai:
        return isinstance(payload.get("choices"), list)
    return payload.get("type") in _ANTHROPIC_EVENTS


class StreamDecoder:
    """
    Incremental decoder for one provider event stream.

    feed() takes raw bytes (or already-decoded text) as they arrive and
    returns the fragments recognised in the complete lines so far; the
    trailing partial line waits for the next read. finish() flushes it.
    Malformed frames are logged and skipped.
    """

    def __init__(self, provider: Union[ProviderType, str]):
        self.provider = ProviderType(provider)
        self._extract = _EXTRACTORS[self.provider]
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.done = False
        self.skipped = 0
        self.unexpected = 0

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        return self._process(lines)

    def finish(self) -> List[str]:
        tail = self._pending + self._utf8.decode(b"", final=True)
        self._pending = ""
        return self._process([tail]) if tail.strip() else []

    def _process(self, lines: Sequence[str]) -> List[str]:
        fragments = []
        for line in lines:
            fragment = self._process_line(line)
            if fragment:
                fragments.append(fragment)
        return fragments

    def _process_line(self, line: str) -> Optional[str]:
        line = line.strip()
        if self.done or not line.startswith(_DATA_PREFIX):
            return None

        data = line[len(_DATA_PREFIX):].strip()
        if data == DONE_SENTINEL:
            if self.provider is ProviderType.openai:
                self.done = True
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            self.skipped += 1
            logger.warning(f"[LLM] Skipping malformed {self.provider.value} SSE frame: {e} ({data[:120]!r})")
            return None

        fragment = self._extract(payload)
        if fragment is None and not _is_known_event(self.provider, payload):
            self.unexpected += 1
            logger.warning(f"[LLM] Ignoring unexpected {self.provider.value} SSE payload: {data[:200]!r}")
        return fragment


async def decode_stream(
    chunks: AsyncIterable[Union[bytes, str]],
    provider: Union[ProviderType, str],
    on_chunk: Optional[FragmentCallback] = None,
) -> str:
    """Decode a whole event stream; returns the concatenated fragments."""
    decoder = StreamDecoder(provider)
    parts: list[str] = []

    def _deliver(fragments: List[str]) -> None:
        for fragment in fragments:
            parts.append(fragment)
            if on_chunk:
                on_chunk(fragment)

    async for chunk in chunks:
        _deliver(decoder.feed(chunk))
    _deliver(decoder.finish())
    return "".join(parts)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REQUEST BUILDING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _openai_message(message: ChatMessage) -> Dict[str, Any]:
    if not message.image:
        return {"role": message.role, "content": message.content}
    image = message.image
    return {
        "role": message.role,
        "content": [
            {"type": "text", "text": message.content},
            {
                "type": "image_url",
                "image_url": {"url": f"data:{image.mime_type};base64,{image.data}", "detail": "high"},
            },
        ],
    }


def _anthropic_message(message: ChatMessage) -> Dict[str, Any]:
    if not message.image:
        return {"role": message.role, "content": message.content}
    image = message.image
    return {
        "role": "assistant" if message.role == "assistant" else "user",
        "content": [
            {"type": "text", "text": message.content},
            {
                "type": "image",
                "source": {"type": "base64", "media_type": image.mime_type, "data": image.data},
            },
        ],
    }


def auth_headers(provider: ProviderType, api_key: str) -> Dict[str, str]:
    if provider is ProviderType.openai:
        return {"Authorization": f"Bearer {api_key}"}
    if provider is ProviderType.anthropic:
        return {"x-api-key": api_key, "anthropic-version": settings.ANTHROPIC_VERSION}
    raise ProviderConfigError(f"Unsupported provider type: {provider}")


def build_chat_request(config: ProviderConfig, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
    """Return the url / headers / json for a streaming chat call."""
    headers = {"Content-Type": "application/json", **auth_headers(config.type, config.api_key)}

    if config.type is ProviderType.openai:
        return {
            "url": f"{config.endpoint_root}/chat/completions",
            "headers": headers,
            "json": {
                "model": config.model,
                "messages": [_openai_message(m) for m in messages],
                "stream": True,
            },
        }

    system = next((m for m in messages if m.role == "system"), None)
    body: Dict[str, Any] = {
        "model": config.model,
        "messages": [_anthropic_message(m) for m in messages if m.role != "system"],
        "max_tokens": settings.ANTHROPIC_MAX_TOKENS,
        "stream": True,
        "temperature": 1,
    }
    if system:
        body["system"] = [{"type": "text", "text": system.content}]
    return {"url": f"{config.endpoint_root}/messages", "headers": headers, "json": body}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TRANSPORT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    """Borrow the caller's client, or own a fresh one for this call only."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS) as owned:
        yield owned


async def stream_llm(
    config: ProviderConfig,
    messages: Sequence[ChatMessage],
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[str]:
    """
    Yield text fragments in arrival order. The response (and a client
    created here) is closed on completion, error, or when the consumer
    stops iterating and the generator is closed.
    """
    request = build_chat_request(config, messages)
    provider = config.type.value
    decoder = StreamDecoder(config.type)

    logger.info(f"[LLM] Streaming from {provider} ({config.model})...")
    async with _client_scope(client) as http:
        try:
            async with http.stream("POST", request["url"], headers=request["headers"], json=request["json"]) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(response.status_code, body, provider)

                async for chunk in response.aiter_bytes():
                    for fragment in decoder.feed(chunk):
                        yield fragment
                for fragment in decoder.finish():
                    yield fragment
        except httpx.HTTPError as e:
            raise TransportError(None, str(e) or type(e).__name__, provider) from e

    if decoder.skipped:
        logger.warning(f"[LLM] {decoder.skipped} malformed frame(s) skipped")
    logger.info(f"[LLM] ✓ {provider} stream finished")


async def call_llm(
    config: ProviderConfig,
    messages: Sequence[ChatMessage],
    on_chunk: Optional[FragmentCallback] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Stream a chat completion and return the complete text."""
    parts: list[str] = []
    async with aclosing(stream_llm(config, messages, client=client)) as fragments:
        async for fragment in fragments:
            parts.append(fragment)
            if on_chunk:
                on_chunk(fragment)
    return "".join(parts)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MODELS / CONNECTION TEST
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _normalise_models(data: Any) -> List[Dict[str, str]]:
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        entries = data["data"]
    elif isinstance(data, dict) and isinstance(data.get("models"), list):
        entries = data["models"]
    elif isinstance(data, list):
        entries = data
    else:
        entries = []

    models = []
    for entry in entries:
        if isinstance(entry, str):
            model_id = name = entry
        elif isinstance(entry, dict):
            model_id = entry.get("id") or entry.get("name") or entry.get("model") or entry.get("slug")
            name = entry.get("name") or entry.get("id") or entry.get("model") or entry.get("slug")
        else:
            continue
        if model_id:
            models.append({"id": str(model_id), "name": str(name)})
    return models


async def fetch_models(
    provider: Union[ProviderType, str],
    base_url: str,
    api_key: str,
    client: Optional[httpx.AsyncClient] = None,
) -> List[Dict[str, str]]:
    """List the models a provider exposes as [{"id", "name"}]."""
    try:
        provider = ProviderType(provider)
    except ValueError:
        raise ProviderConfigError(f"Unsupported provider type: {provider}")

    url = f"{base_url.rstrip('/')}/models"
    async with _client_scope(client) as http:
        try:
            response = await http.get(url, headers=auth_headers(provider, api_key))
        except httpx.HTTPError as e:
            raise TransportError(None, str(e) or type(e).__name__, provider.value) from e

    if not response.is_success:
        raise TransportError(response.status_code, f"Failed to fetch models: {response.text[:500]}", provider.value)
    return _normalise_models(response.json())


async def check_connection(config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    """Probe a provider by listing its models. Never raises."""
    try:
        models = await fetch_models(config.type, config.base_url, config.api_key, client=client)
    except (TransportError, ProviderConfigError, ValueError) as e:
        logger.warning(f"[LLM] Connection test failed: {str(e)[:200]}")
        return {"success": False, "message": f"Connection failed: {e}"}

    if not models:
        return {"success": False, "message": "Connected, but the provider returned no models"}
    return {
        "success": True,
        "message": f"Connected, found {len(models)} model(s)",
        "models": models[:5],
    }
