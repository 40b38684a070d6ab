"""OpenAI-style responses API wire format."""

import json
from typing import Any, Optional

from ..core.config import Settings
from ..models import ChatRole, CompletionRequest, ProviderConfig, ProviderKind, WireFormat
from .base import FrameDelta, WireAdapter, drop_none, register_adapter
from .schemas import RESPONSES_API_SCHEMAS

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"

_ITEM_EVENTS = ("response.output_item.added", "response.output_item.delta")
_TEXT_PART_TYPES = ("output_text", "text")


def _message_output(output: Any) -> Optional[dict[str, Any]]:
    """The first output item of type message, else the first item."""
    if not isinstance(output, list) or not output:
        return None
    for item in output:
        if isinstance(item, dict) and item.get("type") == "message":
            return item
    return output[0] if isinstance(output[0], dict) else None


def _output_text(item: Optional[dict[str, Any]]) -> str:
    if not item:
        return ""
    content = item.get("content")
    if isinstance(content, list):
        return "".join(
            part.get("text") or ""
            for part in content
            if isinstance(part, dict) and part.get("type") == "output_text"
        )
    if isinstance(content, str):
        return content
    return ""


class ResponsesAdapter(WireAdapter):
    """Responses API: `input` + `instructions` in, `output[]` items out."""

    wire_format = WireFormat.RESPONSES

    def endpoint(self, base_url: str, config: ProviderConfig) -> str:
        if "/responses" in base_url:
            return base_url
        if config.provider == ProviderKind.OPENAI:
            return OPENAI_RESPONSES_URL
        root = base_url
        if root.endswith("/chat/completions"):
            root = root[: -len("/chat/completions")]
        if root.endswith("/v1"):
            root = root[: -len("/v1")]
        return f"{root}/v1/responses"

    def build_body(
        self,
        request: CompletionRequest,
        system_prompt: str,
        settings: Settings,
    ) -> dict[str, Any]:
        if request.messages:
            input_value: Any = [
                {
                    "role": "assistant" if m.role in (ChatRole.ASSISTANT, ChatRole.MODEL) else "user",
                    "content": m.content,
                }
                for m in request.messages
                if m.role != ChatRole.SYSTEM
            ]
        else:
            input_value = request.user_prompt

        body: dict[str, Any] = {
            "model": request.provider.model,
            "input": input_value,
            "instructions": system_prompt or None,
            "max_output_tokens": request.params.max_tokens,
            "stream": request.stream,
        }

        if request.structured_output:
            schema = RESPONSES_API_SCHEMAS[request.responses_schema]
            body["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": schema["name"],
                    "description": schema["description"],
                    "schema": schema["schema"],
                    "strict": schema["strict"],
                }
            }

        if request.stream:
            body["include_usage"] = True
            body["stream_options"] = {"include_usage": True}

        body.update(request.params.to_wire())
        return drop_none(body)

    def extract_delta(self, frame: dict[str, Any], accumulated: str) -> FrameDelta:
        event = frame.get("type")

        if event in _ITEM_EVENTS:
            text = ""
            item = frame.get("item") or frame.get("delta")
            if isinstance(item, dict):
                content = item.get("content")
                if isinstance(content, list):
                    text = "".join(
                        part.get("text") or part.get("value") or ""
                        for part in content
                        if isinstance(part, dict) and part.get("type") in _TEXT_PART_TYPES
                    )
                elif isinstance(content, str):
                    text = content

            delta = frame.get("delta")
            if isinstance(delta, dict) and isinstance(delta.get("text"), dict) and delta["text"].get("value"):
                text = delta["text"]["value"]
            return FrameDelta(text=text)

        if event == "response.completed":
            response = frame.get("response") or {}
            full_text = _output_text(_message_output(response.get("output")))
            # The completed event repeats the whole text; only use it when nothing streamed
            if full_text and not accumulated:
                return FrameDelta(text=full_text)

        return FrameDelta()

    def extract_text(self, data: dict[str, Any], request: CompletionRequest) -> str:
        text = _output_text(_message_output(data.get("output")))
        if not text and data.get("text"):
            value = data["text"]
            text = value if isinstance(value, str) else json.dumps(value)
        return text


adapter = register_adapter(ResponsesAdapter())
