import json
import asyncio
import logging
from contextlib import aclosing
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from smartdraw.ai_engine import generate_diagram_stream, generate_mindmap
from smartdraw.core.config import settings
from smartdraw.core.exceptions import ProviderConfigError, StructuredOutputError, TransportError
from smartdraw.schemas.diagram import (
    ConnectionTestRequest,
    ConnectionTestResult,
    DiagramRequest,
    ModelListResponse,
)
from smartdraw.schemas.mindmap import MindmapRequest, MindmapResponse
from smartdraw.services.image_service import load_image_attachment
from smartdraw.services.llm_client import check_connection, fetch_models

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ── Helper: SSE Event Stream ─────────────────────────────────────────────────

async def _sse_wrapper(generator):
    """Wraps an async generator of JSON events into SSE format."""
    try:
        async with aclosing(generator) as events:
            async for event in events:
                yield f"data: {event}\n\n"
        yield "data: [DONE]\n\n"
    except Exception as e:
        logger.error(f"SSE stream error: {e}", exc_info=True)
        yield f"data: {json.dumps({'type': 'error', 'kind': 'internal', 'message': str(e)})}\n\n"
        yield "data: [DONE]\n\n"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. DIAGRAM (STREAMED)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/diagram/generate")
async def create_diagram_stream(request: DiagramRequest):
    """Stream diagram generation via Server-Sent Events."""
    if not request.user_input.strip():
        raise HTTPException(status_code=400, detail="Input cannot be empty.")

    image = None
    if request.image is not None:
        try:
            image = load_image_attachment(request.image)
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))

    return StreamingResponse(
        _sse_wrapper(generate_diagram_stream(request.config, request.user_input, request.chart_type, image)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. MIND MAP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap", response_model=MindmapResponse, response_model_exclude_none=True)
async def create_mindmap(request: MindmapRequest):
    """Generate a mind map and its radial canvas layout."""
    if not request.user_input.strip():
        raise HTTPException(status_code=400, detail="Input cannot be empty.")
    try:
        return await asyncio.wait_for(
            generate_mindmap(request.config, request.user_input),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail=f"AI processing timed out after {settings.AI_TIMEOUT_SECONDS}s.")
    except ProviderConfigError as ce:
        raise HTTPException(status_code=400, detail=str(ce))
    except TransportError as te:
        raise HTTPException(status_code=502, detail=str(te))
    except StructuredOutputError as se:
        raise HTTPException(status_code=422, detail=f"Failed to parse model output: {se}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. PROVIDER UTILITIES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.get("/models", response_model=ModelListResponse)
async def list_models(
    type: Optional[str] = Query(default=None),
    base_url: Optional[str] = Query(default=None, alias="baseUrl"),
    api_key: Optional[str] = Query(default=None, alias="apiKey"),
):
    """Fetch the models available from a provider."""
    if not type or not base_url or not api_key:
        raise HTTPException(status_code=400, detail="Missing required parameters: type, baseUrl, apiKey")
    try:
        models = await fetch_models(type, base_url, api_key)
    except ProviderConfigError as ce:
        raise HTTPException(status_code=400, detail=str(ce))
    except TransportError as te:
        raise HTTPException(status_code=502, detail=str(te))
    return {"models": models}


@router.post("/configs/test-connection", response_model=ConnectionTestResult)
async def test_provider_connection(request: ConnectionTestRequest):
    """Check that a provider config can reach its endpoint."""
    return await check_connection(request.config)
