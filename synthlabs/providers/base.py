"""Base wire adapter interface and the request builder that dispatches to it."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..core.config import Settings, get_settings
from ..core.errors import ConfigurationError
from ..models import (
    LOCAL_PROVIDERS,
    PROVIDER_URLS,
    CompletionRequest,
    ProviderConfig,
    ProviderKind,
    RequestEnvelope,
    ToolCallDelta,
    WireFormat,
)
from .schemas import build_system_prompt

logger = logging.getLogger(__name__)

_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7E]")


@dataclass(frozen=True)
class FrameDelta:
    """What one decoded stream frame contributes to the output."""
    text: str = ""
    is_reasoning: bool = False
    tool_calls: tuple[ToolCallDelta, ...] = ()


class WireAdapter(ABC):
    """
    Mapping between the canonical request and one vendor wire format.

    Subclasses know how to address the endpoint, shape the request body,
    pull deltas out of stream frames, and pull text out of a complete body.
    """

    wire_format: WireFormat

    @abstractmethod
    def endpoint(self, base_url: str, config: ProviderConfig) -> str:
        """Final URL for a request to this wire format."""
        pass

    @abstractmethod
    def build_body(
        self,
        request: CompletionRequest,
        system_prompt: str,
        settings: Settings,
    ) -> dict[str, Any]:
        """
        Shape the JSON body for this wire format.

        Args:
            request: Canonical request
            system_prompt: System prompt with output instructions applied
            settings: Application settings (defaults)

        Returns:
            JSON-serializable body without None values
        """
        pass

    @abstractmethod
    def extract_delta(self, frame: dict[str, Any], accumulated: str) -> FrameDelta:
        """Pull the text, reasoning or tool-call fragments out of one stream frame."""
        pass

    @abstractmethod
    def extract_text(self, data: dict[str, Any], request: CompletionRequest) -> str:
        """Pull the complete output text out of a non-streaming response body."""
        pass

    def headers(self, config: ProviderConfig, api_key: str) -> dict[str, str]:
        """Bearer auth; local providers without a key get a placeholder token."""
        headers = {"Content-Type": "application/json"}
        if config.provider in LOCAL_PROVIDERS and not api_key:
            headers["Authorization"] = "Bearer ollama-local"
        else:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers


def sanitize_api_key(api_key: Optional[str]) -> str:
    """Strip everything but printable ASCII from an API key."""
    if not api_key:
        return ""
    return _NON_PRINTABLE_RE.sub("", api_key).strip()


def resolve_base_url(config: ProviderConfig, settings: Settings) -> str:
    """
    Find the base URL for a provider.

    The custom provider uses the caller's URL (or the configured custom URL);
    every other kind uses its override, else the static table.

    Raises:
        ConfigurationError: If no URL is available
    """
    if config.provider == ProviderKind.OTHER:
        base_url = config.base_url or settings.custom_base_url
    else:
        base_url = config.base_url or PROVIDER_URLS.get(config.provider, "")

    if not base_url or not base_url.strip():
        raise ConfigurationError(f"No base URL found for provider: {config.provider.value}")

    return base_url.strip().rstrip("/")


def drop_none(body: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in body.items() if value is not None}


_ADAPTERS: dict[WireFormat, WireAdapter] = {}


def register_adapter(adapter: WireAdapter) -> WireAdapter:
    _ADAPTERS[adapter.wire_format] = adapter
    return adapter


def get_adapter(wire_format: WireFormat) -> WireAdapter:
    """Return the adapter registered for a wire format."""
    try:
        return _ADAPTERS[wire_format]
    except KeyError:
        raise ConfigurationError(f"Unsupported wire format: {wire_format}") from None


def build_request(request: CompletionRequest, settings: Optional[Settings] = None) -> RequestEnvelope:
    """
    Build the provider-specific HTTP request for a canonical request.

    Args:
        request: Canonical completion request
        settings: Application settings; defaults to the cached settings

    Returns:
        Immutable RequestEnvelope

    Raises:
        ConfigurationError: If the endpoint cannot be resolved
    """
    settings = settings or get_settings()
    config = request.provider
    adapter = get_adapter(config.wire_format)

    base_url = resolve_base_url(config, settings)
    api_key = sanitize_api_key(config.api_key or settings.get_api_key(config.provider))
    system_prompt = build_system_prompt(request)

    envelope = RequestEnvelope(
        url=adapter.endpoint(base_url, config),
        headers=adapter.headers(config, api_key),
        body=adapter.build_body(request, system_prompt, settings),
        wire_format=adapter.wire_format,
        stream=request.stream,
    )
    logger.debug(f"Built {envelope.wire_format.value} request for {config.label} -> {envelope.url}")
    return envelope
