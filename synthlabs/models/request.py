"""Canonical completion request and the provider-specific envelope built from it."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from .provider import GenerationParams, ProviderConfig, WireFormat


class ChatRole(str, Enum):
    """Roles accepted in a caller-supplied message list."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    MODEL = "model"
    TOOL = "tool"


class ChatMessage(BaseModel):
    """A single message in a caller-supplied conversation."""
    role: ChatRole
    content: str


class OutputField(BaseModel):
    """One field the model is asked to produce."""
    name: str = Field(..., description="JSON key, e.g. 'reasoning'")
    description: str = Field(default="", description="What the field should contain")
    optional: bool = Field(default=False, description="Whether the model may omit it")


class PromptSchema(BaseModel):
    """System prompt plus the output fields it asks for."""
    prompt: str = Field(..., description="System prompt text")
    output: list[OutputField] = Field(default_factory=list)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.output]

    def required_field_names(self) -> list[str]:
        return [f.name for f in self.output if not f.optional]

    def restricted_to(self, names: list[str]) -> "PromptSchema":
        """Copy of this schema keeping only the named fields."""
        return PromptSchema(prompt=self.prompt, output=[f for f in self.output if f.name in names])


class ResponsesSchemaName(str, Enum):
    """Named JSON schemas sent to the responses API for structured output."""
    REASONING_TRACE = "reasoning_trace"
    REASONING_TRACE_WITH_FOLLOW_UP = "reasoning_trace_with_followup"
    REWRITE_RESPONSE = "rewrite_response"
    MESSAGE_REWRITE = "message_rewrite"
    USER_AGENT_RESPONSE = "user_agent_response"
    GENERIC_OBJECT = "generic_object"


class CompletionRequest(BaseModel):
    """Everything needed for one completion call, independent of vendor."""

    provider: ProviderConfig
    user_prompt: str = ""
    system_prompt: Optional[str] = None
    messages: Optional[list[ChatMessage]] = Field(
        default=None,
        description="Full conversation; replaces system_prompt/user_prompt when given",
    )
    params: GenerationParams = Field(default_factory=GenerationParams)
    structured_output: bool = False
    responses_schema: ResponsesSchemaName = ResponsesSchemaName.REASONING_TRACE
    prompt_schema: Optional[PromptSchema] = None
    selected_fields: Optional[list[str]] = Field(
        default=None,
        description="Schema subset to request; also the fields that must be present",
    )
    tools: Optional[list[dict[str, Any]]] = None
    stream: bool = False
    stream_phase: Optional[str] = Field(default=None, description="Label attached to streamed chunks")


class RequestEnvelope(BaseModel):
    """Provider-specific HTTP request. Never mutated after it is built."""

    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    wire_format: WireFormat
    stream: bool = False

    model_config = ConfigDict(frozen=True)
