"""Data models for the SynthLabs reasoning-data engine."""

from .provider import ApiType, GenerationParams, ProviderConfig, ProviderKind, WireFormat, LOCAL_PROVIDERS, PROVIDER_URLS
from .request import (
    ChatMessage,
    ChatRole,
    CompletionRequest,
    OutputField,
    PromptSchema,
    RequestEnvelope,
    ResponsesSchemaName,
)
from .chunk import CanonicalChunk, StreamOutcome, ToolCallDelta, UsageSummary
from .phase import DeepConfig, DeepPhase, PhaseConfig, PhaseExecution, PhaseTrace
from .conversation import ConversationTurn, RewriteMode, Transcript, TurnRole
from .log_item import LogItemStatus, SynthLogItem
from .result import CompletionResult, RecoveryStrategy

__all__ = [
    "ApiType",
    "GenerationParams",
    "ProviderConfig",
    "ProviderKind",
    "WireFormat",
    "LOCAL_PROVIDERS",
    "PROVIDER_URLS",
    "ChatMessage",
    "ChatRole",
    "CompletionRequest",
    "OutputField",
    "PromptSchema",
    "RequestEnvelope",
    "ResponsesSchemaName",
    "CanonicalChunk",
    "StreamOutcome",
    "ToolCallDelta",
    "UsageSummary",
    "DeepConfig",
    "DeepPhase",
    "PhaseConfig",
    "PhaseExecution",
    "PhaseTrace",
    "ConversationTurn",
    "RewriteMode",
    "Transcript",
    "TurnRole",
    "LogItemStatus",
    "SynthLogItem",
    "CompletionResult",
    "RecoveryStrategy",
]
