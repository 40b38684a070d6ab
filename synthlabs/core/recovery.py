"""
Structured output recovery.

Models wrap JSON in markdown, prepend chatter, emit JSON Lines, or leave
trailing commas and unclosed braces. `recover_json` tries a fixed sequence of
strategies and never fails: the last resort wraps the raw text in an object.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import json_repair

from ..models import RecoveryStrategy
from .errors import MissingFieldsError

logger = logging.getLogger(__name__)

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OBJECT_SPAN_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_SPAN_RE = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class RecoveredObject:
    value: Any
    strategy: RecoveryStrategy


def _strip_fences(text: str) -> str:
    if text.startswith("```"):
        text = re.sub(r"^```json\s*", "", text)
        text = re.sub(r"^```\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    return text.strip()


def _first_span(text: str) -> Optional[str]:
    """The outermost {...} or [...] span, whichever opens first."""
    obj = _OBJECT_SPAN_RE.search(text)
    arr = _ARRAY_SPAN_RE.search(text)
    if obj and arr:
        return obj.group(0) if obj.start() < arr.start() else arr.group(0)
    if obj:
        return obj.group(0)
    if arr:
        return arr.group(0)
    return None


def _parse_json_lines(text: str) -> Optional[Any]:
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        return None
    results = []
    for line in lines:
        try:
            results.append(json.loads(line))
        except json.JSONDecodeError:
            return None
    return results[0] if len(results) == 1 else results


def _repair(text: str) -> Optional[Any]:
    repaired = json_repair.loads(text)
    # An unrepairable input comes back as an empty string
    if isinstance(repaired, (dict, list)) and repaired:
        return repaired
    return None


def raw_text_fallback(text: str) -> dict[str, str]:
    """Wrap unparseable text so callers always get an object."""
    cleaned = text.strip()
    return {"answer": cleaned, "reasoning": "", "follow_up_question": cleaned}


def recover_json(text: str) -> RecoveredObject:
    """
    Recover a JSON value from model output.

    Strategies, in order: leading fenced code block, direct parse (unwrapping
    double-encoded strings), first bracketed span, JSON Lines, repair of the
    whole text then of the span, and finally the raw-text wrapper.
    """
    content = (text or "").strip()

    # Only a leading fence counts; fences inside JSON strings are content
    if content.startswith("```"):
        fenced = _FENCED_RE.match(content)
        extracted = fenced.group(1).strip() if fenced else _strip_fences(content)
        if extracted.startswith(("{", "[")):
            try:
                return RecoveredObject(json.loads(extracted), RecoveryStrategy.FENCED_BLOCK)
            except json.JSONDecodeError:
                pass
        content = extracted

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        pass
    else:
        if not isinstance(parsed, str):
            return RecoveredObject(parsed, RecoveryStrategy.DIRECT)
        try:
            unwrapped = json.loads(parsed)
        except json.JSONDecodeError:
            unwrapped = None
        if isinstance(unwrapped, (dict, list)):
            return RecoveredObject(unwrapped, RecoveryStrategy.DIRECT)
        content = parsed

    span = _first_span(content)
    if span is not None:
        try:
            return RecoveredObject(json.loads(span), RecoveryStrategy.EXTRACTED_SPAN)
        except json.JSONDecodeError:
            pass

    lines = _parse_json_lines(content)
    if lines is not None:
        return RecoveredObject(lines, RecoveryStrategy.JSON_LINES)

    for candidate in (content, span):
        if candidate:
            repaired = _repair(candidate)
            if repaired is not None:
                logger.info("JSON repaired successfully")
                return RecoveredObject(repaired, RecoveryStrategy.REPAIRED)

    logger.warning("JSON parse failed, using raw text as fallback")
    return RecoveredObject(raw_text_fallback(text or ""), RecoveryStrategy.RAW_TEXT)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def missing_fields(value: Any, required_fields: Optional[list[str]]) -> list[str]:
    """Required fields that are absent or empty in `value`."""
    if not required_fields:
        return []
    if not isinstance(value, dict):
        return list(required_fields)
    return [name for name in required_fields if _is_empty(value.get(name))]


def ensure_fields(value: Any, required_fields: Optional[list[str]]) -> Any:
    """
    Check that every required field is present and non-empty.

    Raises:
        MissingFieldsError: Carrying the partial value and the missing names
    """
    missing = missing_fields(value, required_fields)
    if missing:
        logger.error(f"Missing required fields in response: {', '.join(missing)}")
        raise MissingFieldsError(missing, partial=value)
    return value


def parse_json_content(text: str, required_fields: Optional[list[str]] = None) -> Any:
    """Recover a JSON value from `text` and validate its required fields."""
    return ensure_fields(recover_json(text).value, required_fields)
