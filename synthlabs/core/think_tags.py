"""Helpers for the <think>...</think> reasoning bracket convention."""

import json
import re
from typing import Any, Optional

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

_THINK_RE = re.compile(r"<think>([\s\S]*?)</think>", re.IGNORECASE)
_TOOL_CALL_RE = re.compile(r"<tool_call>[\s\S]*?</tool_call>", re.IGNORECASE)
_CODE_FENCE_OPEN_RE = re.compile(r"^```(?:json|xml|txt)?\s*", re.IGNORECASE)
_CODE_FENCE_CLOSE_RE = re.compile(r"\s*```$")
_WRAPPER_RES = [
    re.compile(rf"^<\s*{tag}\s*>([\s\S]*?)<\s*/\s*{tag}\s*>$", re.IGNORECASE)
    for tag in ("think", "reasoning_content", "reasoning", "REASONING_TRACE")
]
_STRAY_TAG_OPEN_RE = re.compile(r"^<\s*/?\s*(?:think|reasoning_content|reasoning|REASONING_TRACE)\s*>", re.IGNORECASE)
_STRAY_TAG_CLOSE_RE = re.compile(r"<\s*/\s*(?:think|reasoning_content|reasoning|REASONING_TRACE)\s*>$", re.IGNORECASE)


def _normalize(content: Any) -> str:
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    try:
        return json.dumps(content, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(content)


def split_think_tags(content: Any) -> tuple[Optional[str], str]:
    """
    Separate the first <think> block from the rest of a response.

    Returns:
        Tuple of (reasoning or None when there is no block, answer text)
    """
    text = _normalize(content)
    match = _THINK_RE.search(text)
    if not match:
        return None, text
    reasoning = match.group(1).strip()
    answer = _THINK_RE.sub("", text, count=1).strip()
    return reasoning, answer


def wrap_reasoning(answer: str, reasoning: Optional[str] = None) -> str:
    """Render an assistant message with its reasoning in front, bracketed once."""
    if reasoning and reasoning.strip():
        return f"{THINK_OPEN}{reasoning.strip()}{THINK_CLOSE}\n\n{answer.strip()}"
    return answer.strip()


def combine_native_output(content: Optional[str], reasoning: Optional[str]) -> str:
    """Merge a separate reasoning field into plain output using the bracket convention."""
    if reasoning and content:
        return f"{THINK_OPEN}{reasoning}{THINK_CLOSE}{content}"
    if reasoning:
        return f"{THINK_OPEN}{reasoning}{THINK_CLOSE}"
    return content or ""


def sanitize_reasoning(content: Any) -> str:
    """Strip fences, tool-call blocks and nested reasoning wrappers from reasoning text."""
    text = _normalize(content)
    text = _CODE_FENCE_CLOSE_RE.sub("", _CODE_FENCE_OPEN_RE.sub("", text)).strip()
    if not text:
        return ""

    text = _TOOL_CALL_RE.sub("", text).strip()

    # Wrappers may be nested a few levels deep
    for _ in range(8):
        previous = text
        for wrapper in _WRAPPER_RES:
            match = wrapper.match(text)
            if match:
                text = match.group(1).strip()
        if text == previous:
            break

    text = _STRAY_TAG_OPEN_RE.sub("", text)
    text = _STRAY_TAG_CLOSE_RE.sub("", text)
    return text.strip()
