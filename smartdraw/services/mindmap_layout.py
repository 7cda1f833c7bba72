"""
Radial mind map layout.

The root sits on the centre point; every deeper level sits on a ring
whose radius grows by a fixed step. Each node narrows the angular span it
was given to 60% and splits it evenly between its children, so branches
taper as they go out.
"""

import math
import logging
from itertools import count
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from smartdraw.core.config import settings
from smartdraw.schemas.mindmap import MindmapNode, validate_mindmap

logger = logging.getLogger(__name__)

PALETTE = (
    "#f4b6ff",
    "#b28dff",
    "#7aa2ff",
    "#6ef2ff",
    "#9afcbd",
    "#ffe39a",
)
CONNECTOR_COLOR = "#a78bfa"
SPAN_TAPER = 0.6
ROOT_FONT_SIZE = 22
MIN_FONT_SIZE = 14


class LayoutNode(BaseModel):
    id: str
    node: MindmapNode
    depth: int
    sibling_index: int
    x: Union[int, float]
    y: Union[int, float]


class MindmapLayout(BaseModel):
    shapes: List[Dict[str, Any]] = []
    connectors: List[Dict[str, Any]] = []

    @property
    def elements(self) -> List[Dict[str, Any]]:
        return self.shapes + self.connectors


class _TooDeep(Exception):
    pass


def pick_color(depth: int, sibling_index: int) -> str:
    return PALETTE[(depth + sibling_index) % len(PALETTE)]


def font_size_for(depth: int) -> int:
    return max(MIN_FONT_SIZE, ROOT_FONT_SIZE - depth * 2)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class _RadialPlacer:
    """One layout pass. Holds the id counter, so ids restart per call."""

    def __init__(self, center: Tuple[float, float], base_radius: float, radius_step: float, max_depth: int):
        self.cx, self.cy = center
        self.base_radius = base_radius
        self.radius_step = radius_step
        self.max_depth = max_depth
        self.ids = count(1)
        self.nodes: List[LayoutNode] = []
        self.edges: List[Tuple[LayoutNode, LayoutNode]] = []

    def place(
        self,
        node: MindmapNode,
        depth: int = 0,
        sibling_index: int = 0,
        angle: float = 0.0,
        span: float = 2 * math.pi,
        parent: Optional[LayoutNode] = None,
    ) -> None:
        if depth > self.max_depth:
            raise _TooDeep(depth)

        if depth == 0:
            x, y = self.cx, self.cy
        else:
            radius = self.base_radius + self.radius_step * (depth - 1)
            x = _round_half_up(self.cx + radius * math.cos(angle))
            y = _round_half_up(self.cy + radius * math.sin(angle))

        placed = LayoutNode(
            id=f"node-{next(self.ids)}",
            node=node,
            depth=depth,
            sibling_index=sibling_index,
            x=x,
            y=y,
        )
        self.nodes.append(placed)
        if parent is not None:
            self.edges.append((parent, placed))

        children = node.children
        if not children:
            return
        narrowed = span * SPAN_TAPER
        start = angle - narrowed / 2
        for i, child in enumerate(children):
            child_angle = start + ((i + 0.5) / len(children)) * narrowed
            self.place(child, depth + 1, i, child_angle, narrowed, placed)


def _shape(placed: LayoutNode) -> Dict[str, Any]:
    return {
        "type": "rectangle",
        "id": placed.id,
        "x": placed.x,
        "y": placed.y,
        "label": {"text": placed.node.text, "fontSize": font_size_for(placed.depth)},
        "backgroundColor": pick_color(placed.depth, placed.sibling_index),
    }


def _connector(parent: LayoutNode, child: LayoutNode) -> Dict[str, Any]:
    # explicit geometry, no start/end bindings
    return {
        "type": "arrow",
        "x": parent.x,
        "y": parent.y,
        "width": child.x - parent.x,
        "height": child.y - parent.y,
        "strokeColor": CONNECTOR_COLOR,
    }


def layout_tree(
    root: Union[MindmapNode, Dict[str, Any]],
    center: Tuple[float, float] = (0, 0),
    base_radius: Optional[float] = None,
    radius_step: Optional[float] = None,
    max_depth: Optional[int] = None,
) -> MindmapLayout:
    """
    Lay the tree out radially around `center`: one rectangle per node in
    depth-first order and one arrow per parent/child edge. Trees nested
    deeper than `max_depth` produce an empty layout. A raw dict root is
    validated first; one without a string `text` also lays out empty.
    """
    if not isinstance(root, MindmapNode):
        validation = validate_mindmap(root, max_depth=max_depth)
        if not validation.ok:
            logger.warning(f"[MINDMAP] Nothing to lay out: {validation.error}")
            return MindmapLayout()
        root = validation.mindmap.root

    placer = _RadialPlacer(
        center=center,
        base_radius=settings.MINDMAP_BASE_RADIUS if base_radius is None else base_radius,
        radius_step=settings.MINDMAP_RADIUS_STEP if radius_step is None else radius_step,
        max_depth=settings.MAX_MINDMAP_DEPTH if max_depth is None else max_depth,
    )

    try:
        placer.place(root)
    except _TooDeep:
        logger.warning(f"[MINDMAP] Tree deeper than {placer.max_depth} levels, skipping layout")
        return MindmapLayout()

    return MindmapLayout(
        shapes=[_shape(n) for n in placer.nodes],
        connectors=[_connector(parent, child) for parent, child in placer.edges],
    )


def layout_mindmap(value: Any, center: Tuple[float, float] = (0, 0)) -> List[Dict[str, Any]]:
    """
    Convert parsed model output ({"mindmap": {"root"}}, {"root"} or a bare
    node) into a flat element list, shapes first. Invalid trees yield [].
    """
    validation = validate_mindmap(value)
    if not validation.ok:
        logger.warning(f"[MINDMAP] Nothing to lay out: {validation.error}")
        return []
    return layout_tree(validation.mindmap.root, center=center).elements
