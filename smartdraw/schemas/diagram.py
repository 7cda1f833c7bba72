from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ProviderType(str, Enum):
    openai = "openai"
    anthropic = "anthropic"


class ChartType(str, Enum):
    auto = "auto"
    flowchart = "flowchart"
    mindmap = "mindmap"
    orgchart = "orgchart"
    sequence = "sequence"
    uml_class = "class"
    er = "er"
    gantt = "gantt"
    timeline = "timeline"
    tree = "tree"
    network = "network"
    architecture = "architecture"
    dataflow = "dataflow"
    state = "state"
    swimlane = "swimlane"
    concept = "concept"
    fishbone = "fishbone"
    swot = "swot"
    pyramid = "pyramid"
    funnel = "funnel"
    venn = "venn"
    matrix = "matrix"
    infographic = "infographic"


# ── Provider / Messages ──────────────────────────────────────────────────────

class ProviderConfig(BaseModel):
    """Connection details for one LLM provider. Immutable per call."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: ProviderType
    base_url: str = Field(..., alias="baseUrl", min_length=1)
    api_key: str = Field(..., alias="apiKey", min_length=1)
    model: str = Field(..., min_length=1)

    @property
    def endpoint_root(self) -> str:
        return self.base_url.rstrip("/")


class ImageAttachment(BaseModel):
    """Base64 image payload (no data: prefix)."""
    model_config = ConfigDict(populate_by_name=True)

    data: str
    mime_type: str = Field(..., alias="mimeType")


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
    image: Optional[ImageAttachment] = None


# ── Diagram Elements (renderer wire schema) ──────────────────────────────────

Number = Union[int, float]


class ElementLabel(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str
    fontSize: Optional[Number] = None


class ElementRef(BaseModel):
    id: str


class DiagramElement(BaseModel):
    """
    One shape or connector as consumed by the canvas renderer.
    Unknown renderer fields are kept untouched; serialise with
    exclude_none so absent fields stay absent.
    """
    model_config = ConfigDict(extra="allow")

    type: str
    id: Optional[str] = None
    x: Optional[Number] = None
    y: Optional[Number] = None
    width: Optional[Number] = None
    height: Optional[Number] = None
    label: Optional[ElementLabel] = None
    backgroundColor: Optional[str] = None
    strokeColor: Optional[str] = None
    start: Optional[ElementRef] = None
    end: Optional[ElementRef] = None


# ── Requests ─────────────────────────────────────────────────────────────────

class DiagramRequest(BaseModel):
    """Request body for streamed diagram generation."""
    config: Optional[ProviderConfig] = None
    user_input: str = Field(..., min_length=1, alias="userInput")
    chart_type: ChartType = Field(default=ChartType.auto, alias="chartType")
    image: Optional[ImageAttachment] = None

    model_config = ConfigDict(populate_by_name=True)


class ConnectionTestRequest(BaseModel):
    config: ProviderConfig


# ── Responses ────────────────────────────────────────────────────────────────

class ModelInfo(BaseModel):
    id: str
    name: str


class ModelListResponse(BaseModel):
    models: List[ModelInfo]


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    models: Optional[List[ModelInfo]] = None


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    status: str = "error"
    message: str
    detail: Optional[str] = None
