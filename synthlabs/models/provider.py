"""Provider identity and generation parameter models."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Supported completion providers."""
    FEATHERLESS = "featherless"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    QWEN = "qwen"
    QWEN_DEEPINFRA = "qwen-deepinfra"
    KIMI = "kimi"
    ZAI = "z.ai"
    OPENROUTER = "openrouter"
    CEREBRAS = "cerebras"
    TOGETHER = "together"
    GROQ = "groq"
    OLLAMA = "ollama"
    CHUTES = "chutes"
    HUGGINGFACE = "huggingface"
    OTHER = "other"  # Custom OpenAI-compatible endpoint


class ApiType(str, Enum):
    """Endpoint family for OpenAI-compatible providers."""
    CHAT = "chat"
    RESPONSES = "responses"


class WireFormat(str, Enum):
    """Request/stream shape actually spoken on the wire."""
    CHAT = "chat"            # OpenAI-style chat completions
    RESPONSES = "responses"  # OpenAI-style responses API
    MESSAGES = "messages"    # Anthropic-style messages


PROVIDER_URLS: dict[ProviderKind, str] = {
    ProviderKind.FEATHERLESS: "https://api.featherless.ai/v1",
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com/v1",
    ProviderKind.QWEN: "https://api.qwen.com/v1",
    ProviderKind.QWEN_DEEPINFRA: "https://api.deepinfra.com/v1/openai",
    ProviderKind.KIMI: "https://api.moonshot.ai/v1",
    ProviderKind.ZAI: "https://api.z.ai/api/paas/v4",
    ProviderKind.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderKind.CEREBRAS: "https://api.cerebras.ai/v1",
    ProviderKind.TOGETHER: "https://api.together.xyz/v1",
    ProviderKind.GROQ: "https://api.groq.com/openai/v1",
    ProviderKind.OLLAMA: "http://localhost:11434/v1",
    ProviderKind.CHUTES: "https://llm.chutes.ai/v1",
    ProviderKind.HUGGINGFACE: "https://api-inference.huggingface.co/v1",
    ProviderKind.OTHER: "",
}

# Providers that run locally and accept requests without a key
LOCAL_PROVIDERS = frozenset({ProviderKind.OLLAMA})


class ProviderConfig(BaseModel):
    """Which service to call and how to authenticate. Immutable per call."""

    provider: ProviderKind = Field(..., description="Provider identity")
    model: str = Field(..., description="Model identifier as the provider expects it")
    api_type: ApiType = Field(default=ApiType.CHAT, description="Chat completions or responses API")
    api_key: str = Field(default="", description="API key; optional for local providers")
    base_url: Optional[str] = Field(default=None, description="Base URL, required for custom endpoints")

    model_config = ConfigDict(frozen=True)

    @property
    def wire_format(self) -> WireFormat:
        """Resolve the tagged wire format every adapter and decoder dispatches on."""
        if self.provider == ProviderKind.ANTHROPIC:
            return WireFormat.MESSAGES
        if self.api_type == ApiType.RESPONSES:
            return WireFormat.RESPONSES
        return WireFormat.CHAT

    @property
    def label(self) -> str:
        return f"{self.provider.value}/{self.model}"


def _is_set(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


class GenerationParams(BaseModel):
    """Sampling parameters. Unset values are never sent to the provider."""

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)
    use_native_output: bool = Field(
        default=False,
        description="Send the system prompt as-is and keep the model's raw output",
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the sampling parameters in snake_case API form, dropping blanks."""
        values = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        return {key: value for key, value in values.items() if _is_set(value)}
