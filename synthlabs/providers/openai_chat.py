"""OpenAI-style chat completions wire format."""

import json
from typing import Any

from ..core.config import Settings
from ..core.think_tags import combine_native_output
from ..core.tool_calls import format_streamed_tool_call
from ..models import CompletionRequest, ProviderConfig, ProviderKind, ToolCallDelta, WireFormat
from .base import FrameDelta, WireAdapter, drop_none, register_adapter

# A URL containing any of these already names its endpoint
ENDPOINT_MARKERS = ("/chat/completions", "/responses", "/messages")


class ChatCompletionsAdapter(WireAdapter):
    """Chat completions: `messages` in, `choices[0].message|delta` out."""

    wire_format = WireFormat.CHAT

    def endpoint(self, base_url: str, config: ProviderConfig) -> str:
        if any(marker in base_url for marker in ENDPOINT_MARKERS):
            return base_url
        return f"{base_url}/chat/completions"

    def build_body(
        self,
        request: CompletionRequest,
        system_prompt: str,
        settings: Settings,
    ) -> dict[str, Any]:
        if request.messages:
            messages = [{"role": m.role.value, "content": m.content} for m in request.messages]
        else:
            messages = [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": request.user_prompt},
            ]

        body: dict[str, Any] = {
            "model": request.provider.model,
            "messages": messages,
            "max_tokens": request.params.max_tokens,
            "stream": request.stream,
        }

        # No response_format for Ollama
        if request.structured_output and request.provider.provider != ProviderKind.OLLAMA:
            body["response_format"] = {"type": "json_object"}

        if request.stream:
            body["include_usage"] = True
            body["stream_options"] = {"include_usage": True}

        if request.tools:
            body["tools"] = request.tools

        body.update(request.params.to_wire())

        if "temperature" not in body and settings.default_temperature is not None:
            body["temperature"] = settings.default_temperature

        return drop_none(body)

    def extract_delta(self, frame: dict[str, Any], accumulated: str) -> FrameDelta:
        choices = frame.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return FrameDelta()
        delta = choices[0].get("delta") or {}

        if delta.get("tool_calls"):
            fragments = []
            for tc in delta["tool_calls"]:
                function = tc.get("function") or {}
                fragments.append(ToolCallDelta(
                    index=tc.get("index", 0),
                    id=tc.get("id"),
                    name=function.get("name") or "",
                    arguments=function.get("arguments") or "",
                ))
            return FrameDelta(tool_calls=tuple(fragments))

        reasoning = delta.get("reasoning_content") or delta.get("reasoning")
        if reasoning:
            return FrameDelta(text=reasoning, is_reasoning=True)

        return FrameDelta(text=delta.get("content") or "")

    def extract_text(self, data: dict[str, Any], request: CompletionRequest) -> str:
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        tool_calls = message.get("tool_calls")
        reasoning = message.get("reasoning_content") or message.get("reasoning")

        content = message.get("content") or ""
        if not content and not tool_calls:
            content = reasoning or ""

        if request.params.use_native_output:
            content = combine_native_output(message.get("content"), reasoning)

        for tc in tool_calls or []:
            function = tc.get("function") or {}
            arguments = function.get("arguments")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments or {})
            content += format_streamed_tool_call(function.get("name", ""), arguments)

        return content


adapter = register_adapter(ChatCompletionsAdapter())
