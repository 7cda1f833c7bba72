from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from smartdraw.core.config import settings
from smartdraw.schemas.diagram import DiagramElement, ProviderConfig


# ── Request ──────────────────────────────────────────────────────────────────

class MindmapRequest(BaseModel):
    """Request body for mind map generation."""
    model_config = ConfigDict(populate_by_name=True)

    config: Optional[ProviderConfig] = None
    user_input: str = Field(..., min_length=1, alias="userInput")


# ── Tree ─────────────────────────────────────────────────────────────────────

class MindmapNode(BaseModel):
    """A single node in the mind map tree (recursive)."""
    text: str
    children: List[MindmapNode] = []


class Mindmap(BaseModel):
    root: MindmapNode


# ── Response ─────────────────────────────────────────────────────────────────

class MindmapResponse(BaseModel):
    """Mind map plus the laid-out canvas elements."""
    mindmap: Mindmap
    elements: List[DiagramElement]


# ── Validation ───────────────────────────────────────────────────────────────

class MindmapValidation(BaseModel):
    ok: bool
    mindmap: Optional[Mindmap] = None
    error: Optional[str] = None


def unwrap_mindmap_root(value: Any) -> Any:
    """
    Accepts {"mindmap": {"root": ...}}, {"root": ...} or a bare node
    and returns whatever sits in the root position.
    """
    if not isinstance(value, dict):
        return value
    inner = value.get("mindmap", value)
    if isinstance(inner, dict) and "root" in inner:
        return inner["root"]
    if "root" in value:
        return value["root"]
    return inner


def validate_mindmap(value: Any, max_depth: Optional[int] = None) -> MindmapValidation:
    """
    Check the raw parsed JSON against the mind map shape before layout.
    Walks the tree iteratively so hostile nesting cannot blow the stack.
    """
    max_depth = settings.MAX_MINDMAP_DEPTH if max_depth is None else max_depth
    root = unwrap_mindmap_root(value)

    stack = [(root, 0, "root")]
    while stack:
        node, depth, path = stack.pop()
        if not isinstance(node, dict) or not isinstance(node.get("text"), str):
            return MindmapValidation(ok=False, error=f"{path}: expected an object with a string 'text'")
        if depth > max_depth:
            return MindmapValidation(ok=False, error=f"{path}: nesting exceeds {max_depth} levels")
        children = node.get("children", [])
        if not isinstance(children, list):
            return MindmapValidation(ok=False, error=f"{path}.children: expected a list")
        for i, child in enumerate(children):
            stack.append((child, depth + 1, f"{path}.children[{i}]"))

    return MindmapValidation(ok=True, mindmap=Mindmap(root=MindmapNode.model_validate(root)))
