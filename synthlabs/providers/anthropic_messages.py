"""Anthropic-style messages wire format."""

from typing import Any

from ..core.config import Settings
from ..models import ChatRole, CompletionRequest, ProviderConfig, WireFormat
from .base import FrameDelta, WireAdapter, drop_none, register_adapter

ANTHROPIC_VERSION = "2023-06-01"


class MessagesAdapter(WireAdapter):
    """Messages API: top-level `system`, `content[]` blocks out."""

    wire_format = WireFormat.MESSAGES

    def endpoint(self, base_url: str, config: ProviderConfig) -> str:
        if base_url.endswith("/messages"):
            return base_url
        return f"{base_url}/messages"

    def headers(self, config: ProviderConfig, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(
        self,
        request: CompletionRequest,
        system_prompt: str,
        settings: Settings,
    ) -> dict[str, Any]:
        params = request.params.to_wire()
        if request.messages:
            # System turns move to the top-level field
            system = "\n\n".join(m.content for m in request.messages if m.role == ChatRole.SYSTEM) or system_prompt
            messages = [
                {
                    "role": "assistant" if m.role in (ChatRole.ASSISTANT, ChatRole.MODEL) else "user",
                    "content": m.content,
                }
                for m in request.messages
                if m.role != ChatRole.SYSTEM
            ]
        else:
            system = system_prompt
            messages = [{"role": "user", "content": request.user_prompt}]

        return drop_none({
            "model": request.provider.model,
            "max_tokens": request.params.max_tokens,
            "system": system,
            "messages": messages,
            "temperature": params.get("temperature"),
            "top_p": params.get("top_p"),
            "top_k": params.get("top_k"),
            "stream": request.stream,
        })

    def extract_delta(self, frame: dict[str, Any], accumulated: str) -> FrameDelta:
        delta = frame.get("delta")
        if isinstance(delta, dict):
            return FrameDelta(text=delta.get("text") or "")
        return FrameDelta()

    def extract_text(self, data: dict[str, Any], request: CompletionRequest) -> str:
        content = data.get("content") or []
        if content and isinstance(content[0], dict):
            return content[0].get("text") or ""
        return ""


adapter = register_adapter(MessagesAdapter())
