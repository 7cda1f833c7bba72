"""
Connector re-anchoring.

Arrows and lines bound to two shapes (start.id / end.id) are redrawn from
the midpoint of one shape's edge to the midpoint of the facing edge of
the other. Edge choice depends only on the shapes, so the pass is a fixed
point: running it twice gives the same result as running it once.
"""

import json
import re
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CONNECTOR_TYPES = ("arrow", "line")
DEFAULT_SIZE = 100

Point = Tuple[float, float]


def _box(element: Dict[str, Any]) -> Tuple[float, float, float, float]:
    """x, y, width, height with renderer defaults for missing values."""
    return (
        element.get("x") or 0,
        element.get("y") or 0,
        element.get("width") or DEFAULT_SIZE,
        element.get("height") or DEFAULT_SIZE,
    )


def determine_edges(start: Dict[str, Any], end: Dict[str, Any]) -> Tuple[str, str]:
    """
    Pick which edge of `start` and which edge of `end` the connector
    should join, from the position of start's centre relative to end's.
    """
    sx, sy, sw, sh = _box(start)
    ex, ey, ew, eh = _box(end)

    dx = (sx + sw / 2) - (ex + ew / 2)
    dy = (sy + sh / 2) - (ey + eh / 2)

    # gaps between facing edges, positive when the shapes are apart
    left_to_right = sx - (ex + ew)
    right_to_left = ex - (sx + sw)
    top_to_bottom = sy - (ey + eh)
    bottom_to_top = ey - (sy + sh)

    if dx > 0 and dy > 0:
        return ("left", "right") if left_to_right > top_to_bottom else ("top", "bottom")
    if dx < 0 and dy > 0:
        return ("right", "left") if right_to_left > top_to_bottom else ("top", "bottom")
    if dx > 0 and dy < 0:
        return ("left", "right") if left_to_right > bottom_to_top else ("bottom", "top")
    if dx < 0 and dy < 0:
        return ("right", "left") if right_to_left > bottom_to_top else ("bottom", "top")
    if dx == 0 and dy > 0:
        return "top", "bottom"
    if dx == 0 and dy < 0:
        return "bottom", "top"
    if dx > 0 and dy == 0:
        return "left", "right"
    if dx < 0 and dy == 0:
        return "right", "left"
    # overlapping centres
    return "right", "left"


def edge_midpoint(element: Dict[str, Any], edge: str) -> Point:
    x, y, width, height = _box(element)
    if edge == "left":
        return x, y + height / 2
    if edge == "top":
        return x + width / 2, y
    if edge == "bottom":
        return x + width / 2, y + height
    return x + width, y + height / 2


def _bound(element: Dict[str, Any], key: str, by_id: Dict[Any, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    ref = element.get(key)
    if not isinstance(ref, dict) or not ref.get("id"):
        return None
    return by_id.get(ref["id"])


def _reanchor(connector: Dict[str, Any], start: Dict[str, Any], end: Dict[str, Any]) -> Dict[str, Any]:
    start_edge, end_edge = determine_edges(start, end)
    x1, y1 = edge_midpoint(start, start_edge)
    x2, y2 = edge_midpoint(end, end_edge)

    optimized = dict(connector)
    optimized["x"] = x1
    optimized["y"] = y1
    # zero-extent connectors render invisibly in some canvases
    optimized["width"] = (x2 - x1) or 1
    optimized["height"] = (y2 - y1) or 1
    return optimized


def optimize_arrows(elements: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Return a new element list with every fully bound connector re-anchored
    to edge midpoints. Everything else is passed through as is. On malformed
    input the original list is returned unchanged.
    """
    try:
        # connectors are never anchors
        by_id = {el["id"]: el for el in elements if el.get("id") and el.get("type") not in CONNECTOR_TYPES}
        result = []
        for element in elements:
            if element.get("type") not in CONNECTOR_TYPES:
                result.append(element)
                continue
            start = _bound(element, "start", by_id)
            end = _bound(element, "end", by_id)
            if start is None or end is None:
                result.append(element)
                continue
            result.append(_reanchor(element, start, end))
        return result
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.error(f"[DIAGRAM] Failed to optimize arrows: {e}")
        return elements


_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")


def optimize_diagram_code(code: str) -> str:
    """
    Text-level variant for raw model output: pull out the element array,
    optimize it and re-serialise with two-space indentation. Returns the
    input unchanged when there is no usable array.
    """
    if not code or not isinstance(code, str):
        return code

    match = _ARRAY_PATTERN.search(code.strip())
    if not match:
        logger.error("[DIAGRAM] No element array found in diagram code")
        return code

    try:
        elements = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error(f"[DIAGRAM] Diagram code is not valid JSON: {e}")
        return code
    if not isinstance(elements, list):
        return code

    return json.dumps(optimize_arrows(elements), indent=2, ensure_ascii=False)
