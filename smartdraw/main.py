"""
SmartDraw — Diagram Generation Service
=======================================
FastAPI entry point.
  • Global exception handler — never crashes, always returns JSON
  • /api/v1/diagram/generate — streamed diagram generation (SSE)
  • /api/v1/mindmap — mind map + radial layout
  • /api/v1/models, /api/v1/configs/test-connection — provider utilities
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smartdraw.core.config import settings
from smartdraw.schemas.diagram import ErrorResponse
from smartdraw.api.v1.endpoints.diagram import router as diagram_router

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="SmartDraw — Diagram Generation Service",
    description=(
        "Natural language or an image in → canvas-ready diagram elements out.\n"
        "Streams model output, repairs its JSON and lays out mind maps."
    ),
    version="1.0.0",
    responses={
        400: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)


# ── Global Exception Handler ────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(diagram_router, prefix="/api/v1", tags=["Diagrams"])


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "SmartDraw Diagram Generation Service",
        "version": "1.0.0",
        "server_llm_configured": bool(settings.SERVER_LLM_TYPE and settings.SERVER_LLM_API_KEY),
    }
