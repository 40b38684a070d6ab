"""Provider request adapters, one per wire format."""

from .base import FrameDelta, WireAdapter, build_request, get_adapter, resolve_base_url, sanitize_api_key
from .anthropic_messages import MessagesAdapter
from .openai_chat import ChatCompletionsAdapter
from .openai_responses import ResponsesAdapter
from .schemas import (
    JSON_OUTPUT_FALLBACK,
    JSON_SCHEMA_INSTRUCTION_PREFIX,
    RESPONSES_API_SCHEMAS,
    build_system_prompt,
    generate_json_schema_for_prompt,
)

__all__ = [
    "FrameDelta",
    "WireAdapter",
    "build_request",
    "get_adapter",
    "resolve_base_url",
    "sanitize_api_key",
    "MessagesAdapter",
    "ChatCompletionsAdapter",
    "ResponsesAdapter",
    "JSON_OUTPUT_FALLBACK",
    "JSON_SCHEMA_INSTRUCTION_PREFIX",
    "RESPONSES_API_SCHEMAS",
    "build_system_prompt",
    "generate_json_schema_for_prompt",
]
