"""Single-agent calls for pipeline phases, plus trace helpers."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from ..models import (
    CompletionRequest,
    DeepPhase,
    GenerationParams,
    PhaseConfig,
    PhaseExecution,
    PhaseTrace,
    PromptSchema,
    ProviderConfig,
    ResponsesSchemaName,
)
from .cancellation import CancellationToken
from .client import ProviderClient
from .prompts import default_schema
from .streaming import ChunkSink

logger = logging.getLogger(__name__)

INPUT_PREVIEW_CHARS = 500
OUTPUT_PREVIEW_CHARS = 800

_FOLLOW_UP_FIELDS = ("follow_up_question", "question")


def model_label(config: PhaseConfig) -> str:
    """Display label for the model serving a phase."""
    return config.provider.label


def truncate_preview(value: Optional[str], max_len: int = INPUT_PREVIEW_CHARS) -> str:
    if not value:
        return ""
    return value[:max_len] + "..." if len(value) > max_len else value


def to_preview_string(value: Any, max_len: int = OUTPUT_PREVIEW_CHARS) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return truncate_preview(text, max_len)


def effective_schema(config: PhaseConfig) -> PromptSchema:
    """
    Schema actually sent for a phase.

    The configured schema (or the built-in one) restricted to the selected
    fields, defaulting to its non-optional fields.
    """
    schema = config.prompt_schema or default_schema(config.id)
    selected = config.selected_fields or schema.required_field_names()
    return schema.restricted_to(selected) if selected else schema


def responses_schema_for(
    schema: Optional[PromptSchema],
    phase: Optional[DeepPhase] = None,
) -> ResponsesSchemaName:
    """Named responses-API schema matching the fields a phase asks for."""
    if phase == DeepPhase.CONVERTER:
        return ResponsesSchemaName.MESSAGE_REWRITE
    if phase == DeepPhase.REWRITER:
        return ResponsesSchemaName.REWRITE_RESPONSE
    if schema is None or not schema.output:
        return ResponsesSchemaName.GENERIC_OBJECT
    if any(name in _FOLLOW_UP_FIELDS for name in schema.field_names):
        return ResponsesSchemaName.USER_AGENT_RESPONSE
    return ResponsesSchemaName.REASONING_TRACE


async def call_agent(
    client: ProviderClient,
    provider: ProviderConfig,
    schema: Optional[PromptSchema],
    user_content: str,
    cancel: Optional[CancellationToken] = None,
    generation_params: Optional[GenerationParams] = None,
    structured_output: bool = True,
    selected_fields: Optional[list[str]] = None,
    sink: Optional[ChunkSink] = None,
    stream_phase: Optional[str] = None,
    phase: Optional[DeepPhase] = None,
) -> Any:
    """
    Make one schema-driven completion call and return its value.

    Returns:
        The recovered object for structured output, else the raw text
    """
    request = CompletionRequest(
        provider=provider,
        user_prompt=user_content,
        params=generation_params or GenerationParams(),
        structured_output=structured_output,
        responses_schema=responses_schema_for(schema, phase),
        prompt_schema=schema,
        selected_fields=selected_fields,
        stream=sink is not None,
        stream_phase=stream_phase,
    )
    result = await client.complete(request, sink=sink, cancel=cancel)
    return result.value


async def execute_phase(
    client: ProviderClient,
    config: PhaseConfig,
    user_content: str,
    cancel: Optional[CancellationToken] = None,
    generation_params: Optional[GenerationParams] = None,
    structured_output: Optional[bool] = None,
    sink: Optional[ChunkSink] = None,
) -> PhaseExecution:
    """
    Run one phase and time it.

    Args:
        client: Provider client
        config: Phase configuration
        user_content: Phase input
        cancel: Cancellation token
        generation_params: Fallback when the phase has none of its own
        structured_output: Overrides the phase's own flag when given
        sink: Streams the phase's chunks when given

    Returns:
        PhaseExecution with the result, model label, input and timing
    """
    label = model_label(config)
    started = time.monotonic()
    timestamp = datetime.now(timezone.utc)

    logger.info(f"[Deep Phase: {config.id.value.upper()}] model={label}")
    logger.debug(f"Input snippet: {user_content[:150].replace(chr(10), ' ')}...")

    try:
        result = await call_agent(
            client,
            config.provider,
            effective_schema(config),
            user_content,
            cancel=cancel,
            generation_params=config.generation_params or generation_params,
            structured_output=config.structured_output if structured_output is None else structured_output,
            selected_fields=config.selected_fields,
            sink=sink,
            stream_phase=config.id.value,
            phase=config.id,
        )
    except Exception as e:
        logger.error(f"Phase {config.id.value} failed: {e}")
        raise

    duration = int((time.monotonic() - started) * 1000)
    logger.info(f"Phase {config.id.value} completed in {duration}ms")

    return PhaseExecution(
        result=result,
        model=label,
        input=user_content,
        duration=duration,
        timestamp=timestamp,
    )


class PhaseTraceLog:
    """Ordered, write-once trace entries keyed by phase name."""

    def __init__(self):
        self._entries: dict[str, PhaseTrace] = {}

    def record(self, phase: DeepPhase, execution: PhaseExecution) -> PhaseTrace:
        if phase.value in self._entries:
            raise ValueError(f"Trace for phase {phase.value!r} already recorded")
        trace = PhaseTrace(
            model=execution.model,
            input=truncate_preview(execution.input),
            output=to_preview_string(execution.result),
            timestamp=execution.timestamp,
            duration=execution.duration,
        )
        self._entries[phase.value] = trace
        return trace

    def __contains__(self, phase: DeepPhase) -> bool:
        return phase.value in self._entries

    def as_dict(self) -> dict[str, PhaseTrace]:
        return dict(self._entries)
