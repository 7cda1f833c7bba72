"""
SmartDraw — JSON Recovery
==========================
Closure repair for JSON emitted by language models.

Handles the usual LLM output problems:
  - Markdown code fences around the payload
  - Prose before / after the JSON value
  - Truncation: unterminated strings, unclosed brackets and braces
  - A dangling comma right before the truncation point
  - Array-of-object with the first '{' dropped: ["k": 1] -> [{"k": 1}]

Anything broader falls through to the `json_repair` library.
"""

import json
import re
import logging
from enum import Enum
from typing import Any, Optional
from dataclasses import dataclass

from json_repair import repair_json

from smartdraw.core.exceptions import NoJSONContentError, UnrepairableJSONError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")

_BARE_KEY = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_JSON_LITERALS = {"true", "false", "null"}

_CLOSERS = {"{": "}", "[": "]"}


class ParseFailure(str, Enum):
    NO_JSON = "no JSON-like content found"
    UNREPAIRABLE = "content found but unrepairable"


@dataclass(frozen=True)
class ParseResult:
    ok: bool
    value: Any = None
    failure: Optional[ParseFailure] = None
    error: Optional[str] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HELPERS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def _find_json_start(text: str) -> int:
    for i, ch in enumerate(text):
        if ch in _CLOSERS:
            return i
    return -1


def _skip_whitespace(text: str, start: int) -> int:
    for i in range(start, len(text)):
        if not text[i].isspace():
            return i
    return -1


def _skip_string(text: str, start: int) -> int:
    """Index just past the string whose body starts at `start`, or len(text)."""
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
        elif ch == "\\":
            escape = True
        elif ch == '"':
            return i + 1
    return len(text)


def _colon_before_separator(text: str, start: int) -> bool:
    i = start
    while i < len(text):
        ch = text[i]
        if ch == '"':
            i = _skip_string(text, i + 1)
            continue
        if ch == ":":
            return True
        if ch in ",]{":
            return False
        i += 1
    return False


def _looks_like_dropped_brace(text: str, start: int) -> bool:
    """
    True when the array body starting at `start` opens with a key-like
    token: a quoted string followed by ':' before any ',', ']' or '{', or a
    bare identifier other than true/false/null.
    """
    i = _skip_whitespace(text, start)
    if i == -1:
        return False
    if text[i] == '"':
        return _colon_before_separator(text, _skip_string(text, i + 1))
    match = _BARE_KEY.match(text, i)
    return bool(match) and match.group() not in _JSON_LITERALS


def _trim_trailing_comma(out: str) -> str:
    stripped = out.rstrip()
    if stripped.endswith(","):
        return stripped[:-1] + out[len(stripped):]
    return out


def _is_valid(text: str) -> bool:
    try:
        json.loads(text)
        return True
    except (json.JSONDecodeError, RecursionError):
        return False


def _fallback_repair(text: str) -> Optional[str]:
    try:
        return repair_json(text)
    except Exception as e:
        logger.warning(f"[JSON] json_repair fallback failed: {str(e)[:200]}")
        return None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLOSURE REPAIR
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def repair_json_closure(text: str) -> str:
    """
    Extract the first JSON object/array from `text` and close whatever the
    model left open. Returns the input (fences stripped) when there is no
    '{' or '[' to start from.
    """
    if not text:
        return text

    source = strip_code_fences(text)
    start = _find_json_start(source)
    if start == -1:
        return source

    out: list[str] = []
    stack: list[str] = []
    in_string = False
    escape = False
    brace_inserted = False

    for i in range(start, len(source)):
        ch = source[i]

        if not in_string and ch in "}]":
            if ch in stack:
                # close anything opened after the matching opener, e.g. the
                # synthetic '{' from the dropped-brace heuristic
                while stack[-1] != ch:
                    out.append(stack.pop())
                stack.pop()
            out.append(ch)
            if not stack:
                # root value closed; drop trailing commentary
                break
            continue

        out.append(ch)

        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
            if not brace_inserted and _looks_like_dropped_brace(source, i + 1):
                out.append("{")
                stack.append("}")
                brace_inserted = True

    repaired = "".join(out)
    if in_string:
        repaired += '"'
    repaired = _trim_trailing_comma(repaired)
    repaired += "".join(reversed(stack))

    if not _is_valid(repaired):
        fallback = _fallback_repair(repaired)
        if fallback:
            repaired = fallback

    return repaired


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PARSING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def safe_parse_json(text: str) -> ParseResult:
    """
    Strict parse, then closure repair, then the json_repair library on
    the raw text. Never raises.
    """
    if not text or not text.strip():
        return ParseResult(ok=False, failure=ParseFailure.NO_JSON, error="empty input")

    try:
        return ParseResult(ok=True, value=json.loads(text))
    except (json.JSONDecodeError, RecursionError):
        pass

    if _find_json_start(text) == -1:
        return ParseResult(ok=False, failure=ParseFailure.NO_JSON, error="no '{' or '[' in input")

    last_error = ""
    repaired = repair_json_closure(text)
    try:
        return ParseResult(ok=True, value=json.loads(repaired))
    except (json.JSONDecodeError, RecursionError) as e:
        last_error = str(e)

    fallback = _fallback_repair(text)
    if fallback:
        try:
            return ParseResult(ok=True, value=json.loads(fallback))
        except (json.JSONDecodeError, RecursionError) as e:
            last_error = str(e)

    logger.debug(f"[JSON] Unrepairable output (first 200 chars): {text[:200]}")
    return ParseResult(ok=False, failure=ParseFailure.UNREPAIRABLE, error=last_error)


def clean_and_parse_json(raw_text: str) -> Any:
    """
    Exception-raising wrapper around safe_parse_json for the generation
    pipeline. Raises NoJSONContentError or UnrepairableJSONError.
    """
    result = safe_parse_json(raw_text)
    if result.ok:
        return result.value

    logger.error(f"JSON parse failed ({result.failure.value}). Raw (first 500 chars): {(raw_text or '')[:500]}")
    if result.failure is ParseFailure.NO_JSON:
        raise NoJSONContentError(f"AI returned no JSON: {result.error}")
    raise UnrepairableJSONError(f"AI returned invalid JSON: {result.error}")
