"""
SmartDraw — AI Engine
======================
Turns a user request into canvas elements:
  1. Diagram generation (streamed, any chart type)
  2. Mind map generation (radial layout)

Pipeline: provider stream → full text → JSON recovery → validation →
layout (mind maps) → connector re-anchoring.

Features:
  - Per-request provider config with server-side fallback
  - Retry on unparseable model output (transport errors are not retried)
  - SSE-ready event stream for diagram generation
"""

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from smartdraw.core.config import settings
from smartdraw.core.exceptions import (
    InvalidMindmapError,
    ProviderConfigError,
    StructuredOutputError,
    TransportError,
)
from smartdraw.schemas.diagram import ChartType, ChatMessage, ImageAttachment, ProviderConfig
from smartdraw.schemas.mindmap import MindmapResponse, validate_mindmap
from smartdraw.services.arrow_optimizer import optimize_arrows
from smartdraw.services.json_recovery import clean_and_parse_json
from smartdraw.services.llm_client import call_llm, stream_llm
from smartdraw.services.mindmap_layout import layout_tree
from smartdraw.services.prompts import (
    DIAGRAM_SYSTEM_PROMPT,
    MINDMAP_SYSTEM_PROMPT,
    build_diagram_prompt,
)

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROVIDER RESOLUTION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def resolve_provider_config(config: Optional[ProviderConfig]) -> ProviderConfig:
    """Use the request's provider, else the server-side one from settings."""
    if config is not None:
        return config

    fields = {
        "type": settings.SERVER_LLM_TYPE,
        "base_url": settings.SERVER_LLM_BASE_URL,
        "api_key": settings.SERVER_LLM_API_KEY,
        "model": settings.SERVER_LLM_MODEL,
    }
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ProviderConfigError(
            "No provider config in request and server LLM config is incomplete "
            f"(missing: {', '.join(missing)})"
        )
    return ProviderConfig(**fields)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# OUTPUT → ELEMENTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def mindmap_elements(parsed: Any) -> tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Validate a parsed mind map and lay it out. Raises InvalidMindmapError."""
    validation = validate_mindmap(parsed)
    if not validation.ok:
        raise InvalidMindmapError(f"Invalid mind map structure: {validation.error}")
    layout = layout_tree(validation.mindmap.root)
    return validation.mindmap.model_dump(), optimize_arrows(layout.elements)


def diagram_elements(parsed: Any) -> List[Dict[str, Any]]:
    """Accept a bare element array or {"elements": [...]}; re-anchor connectors."""
    if isinstance(parsed, dict) and isinstance(parsed.get("elements"), list):
        parsed = parsed["elements"]
    if not isinstance(parsed, list):
        raise StructuredOutputError("AI output is not an element array")
    elements = [el for el in parsed if isinstance(el, dict) and el.get("type")]
    if len(elements) != len(parsed):
        logger.warning(f"[DIAGRAM] Dropped {len(parsed) - len(elements)} element(s) without a type")
    return optimize_arrows(elements)


def build_diagram_result(raw_text: str, chart_type: ChartType = ChartType.auto) -> Dict[str, Any]:
    """Parse the full model output into {"code", "elements"} (+ "mindmap")."""
    parsed = clean_and_parse_json(raw_text)
    result: Dict[str, Any] = {}
    if chart_type == ChartType.mindmap:
        result["mindmap"], elements = mindmap_elements(parsed)
    else:
        elements = diagram_elements(parsed)
    result["elements"] = elements
    result["code"] = json.dumps(elements, indent=2, ensure_ascii=False)
    return result


def build_diagram_messages(
    user_input: str,
    chart_type: ChartType = ChartType.auto,
    image: Optional[ImageAttachment] = None,
) -> List[ChatMessage]:
    system_prompt = MINDMAP_SYSTEM_PROMPT if chart_type == ChartType.mindmap else DIAGRAM_SYSTEM_PROMPT
    return [
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(
            role="user",
            content=build_diagram_prompt(user_input, chart_type, with_image=image is not None),
            image=image,
        ),
    ]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MIND MAP GENERATION WITH RETRY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def generate_mindmap(
    config: Optional[ProviderConfig],
    user_input: str,
    client: Optional[httpx.AsyncClient] = None,
) -> MindmapResponse:
    """
    Generate a mind map and its radial layout.
    Unparseable or structurally invalid output is retried up to
    GENERATION_MAX_RETRIES times; transport errors surface immediately.
    """
    provider = resolve_provider_config(config)
    messages = [
        ChatMessage(role="system", content=MINDMAP_SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_input),
    ]
    max_retries = max(1, settings.GENERATION_MAX_RETRIES)

    logger.info("[MINDMAP] Starting generation...")
    last_error: Optional[StructuredOutputError] = None
    for attempt in range(1, max_retries + 1):
        raw = await call_llm(provider, messages, client=client)
        try:
            mindmap, elements = mindmap_elements(clean_and_parse_json(raw))
        except StructuredOutputError as e:
            last_error = e
            logger.warning(f"[MINDMAP] Attempt {attempt}/{max_retries} failed: {e}")
            continue
        logger.info(f"[MINDMAP] ✓ Generated {len(elements)} elements (attempt {attempt})")
        return MindmapResponse(mindmap=mindmap, elements=elements)

    raise last_error


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SSE STREAMING: DIAGRAM
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _error_event(kind: str, message: str, **extra: Any) -> str:
    return json.dumps({"type": "error", "kind": kind, "message": message, **extra}, ensure_ascii=False)


async def generate_diagram_stream(
    config: Optional[ProviderConfig],
    user_input: str,
    chart_type: ChartType = ChartType.auto,
    image: Optional[ImageAttachment] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncGenerator[str, None]:
    """
    Stream diagram generation as JSON events:
      {"type": "chunk", "content": ...}   once per model fragment
      {"type": "result", "data": {...}}   parsed + optimized elements
      {"type": "error", "kind": ...}      transport / structured_output / config
    """
    logger.info(f"[DIAGRAM] Starting {ChartType(chart_type).value} generation...")
    try:
        provider = resolve_provider_config(config)
        messages = build_diagram_messages(user_input, chart_type, image)

        parts: list[str] = []
        async with aclosing(stream_llm(provider, messages, client=client)) as fragments:
            async for fragment in fragments:
                parts.append(fragment)
                yield json.dumps({"type": "chunk", "content": fragment}, ensure_ascii=False)

        result = build_diagram_result("".join(parts), chart_type)
        logger.info(f"[DIAGRAM] ✓ Generated {len(result['elements'])} elements")
        yield json.dumps({"type": "result", "data": result}, ensure_ascii=False)

    except TransportError as e:
        logger.error(f"[DIAGRAM] Provider request failed: {e}")
        yield _error_event("transport", str(e), status_code=e.status_code)
    except ProviderConfigError as e:
        yield _error_event("config", str(e))
    except StructuredOutputError as e:
        logger.error(f"[DIAGRAM] Model output unusable: {e}")
        yield _error_event("structured_output", f"Failed to parse model output: {e}")
