"""Canonical <tool_call> markup appended to model output."""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_TOOL_CALL_BLOCK_RE = re.compile(r"<tool_call>\s*([\s\S]*?)\s*</tool_call>")


def format_tool_call(name: str, arguments: Any) -> str:
    """Render one tool call with already-decoded arguments."""
    payload = json.dumps({"name": name, "arguments": arguments}, indent=2, ensure_ascii=False)
    return f"\n<tool_call>\n{payload}\n</tool_call>\n"


def format_streamed_tool_call(name: str, raw_arguments: str) -> str:
    """
    Render a tool call whose arguments arrived as a JSON string.

    Arguments that do not parse are embedded verbatim so the call is kept.
    """
    try:
        arguments = json.loads(raw_arguments or "{}")
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse tool call arguments for {name!r}, embedding raw text")
        return f'\n<tool_call>\n{{"name": {json.dumps(name)}, "arguments": {raw_arguments}}}\n</tool_call>\n'
    return format_tool_call(name, arguments)


def extract_tool_calls(text: str) -> list[dict[str, Any]]:
    """Parse every well-formed <tool_call> block in `text`, in order."""
    calls = []
    for match in _TOOL_CALL_BLOCK_RE.finditer(text or ""):
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.warning("Skipping malformed tool call block")
            continue
        if isinstance(data, dict) and "name" in data:
            calls.append({"name": data["name"], "arguments": data.get("arguments", {})})
    return calls
