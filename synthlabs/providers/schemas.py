"""Output-format instructions and named JSON schemas for structured output."""

import json
from typing import Any, Optional

from ..models import CompletionRequest, OutputField, PromptSchema, ResponsesSchemaName

JSON_SCHEMA_INSTRUCTION_PREFIX = "Output valid JSON matching this schema:"
JSON_OUTPUT_FALLBACK = "Output valid JSON only."

# Example values in the unstructured hint are cut to this many characters
EXAMPLE_DESCRIPTION_LIMIT = 50


def _string_property(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


# JSON Schema definitions for responses-API structured outputs
RESPONSES_API_SCHEMAS: dict[ResponsesSchemaName, dict[str, Any]] = {
    ResponsesSchemaName.REASONING_TRACE: {
        "name": "reasoning_trace",
        "schema": {
            "type": "object",
            "properties": {
                "query": _string_property("The question or query being answered"),
                "reasoning": _string_property("The step-by-step reasoning process"),
                "answer": _string_property("The final answer to the query"),
            },
            "required": ["reasoning", "answer"],
            "additionalProperties": False,
        },
        "description": "Schema for reasoning trace output",
        "strict": True,
    },
    ResponsesSchemaName.REASONING_TRACE_WITH_FOLLOW_UP: {
        "name": "reasoning_trace_with_followup",
        "schema": {
            "type": "object",
            "properties": {
                "query": _string_property("The question or query being answered"),
                "reasoning": _string_property("The step-by-step reasoning process"),
                "answer": _string_property("The final answer to the query"),
                "follow_up_question": _string_property("A follow-up question for multi-turn conversation"),
            },
            "required": ["reasoning", "answer", "follow_up_question"],
            "additionalProperties": False,
        },
        "description": "Schema for reasoning trace with follow-up output",
        "strict": True,
    },
    ResponsesSchemaName.REWRITE_RESPONSE: {
        "name": "rewrite_response",
        "schema": {
            "type": "object",
            "properties": {
                "response": _string_property("The rewritten content"),
            },
            "required": ["response"],
            "additionalProperties": False,
        },
        "description": "Schema for rewrite response output",
        "strict": True,
    },
    ResponsesSchemaName.MESSAGE_REWRITE: {
        "name": "message_rewrite",
        "schema": {
            "type": "object",
            "properties": {
                "reasoning": _string_property("The reasoning/thinking process"),
                "answer": _string_property("The final answer content"),
            },
            "required": ["reasoning", "answer"],
            "additionalProperties": False,
        },
        "description": "Schema for message rewrite output",
        "strict": True,
    },
    ResponsesSchemaName.USER_AGENT_RESPONSE: {
        "name": "user_agent_response",
        "schema": {
            "type": "object",
            "properties": {
                "follow_up_question": _string_property("A natural follow-up question based on the conversation"),
                "question": _string_property("Alternative field for follow-up question"),
            },
            "required": ["follow_up_question"],
            "additionalProperties": False,
        },
        "description": "Schema for user agent response output",
        "strict": True,
    },
    ResponsesSchemaName.GENERIC_OBJECT: {
        "name": "generic_object",
        "schema": {
            "type": "object",
            "additionalProperties": True,
        },
        "description": "Generic JSON object schema",
        "strict": False,
    },
}


def _select_fields(
    output_fields: Optional[list[OutputField]],
    selected_fields: Optional[list[str]],
) -> list[OutputField]:
    fields = output_fields or []
    if selected_fields:
        return [f for f in fields if f.name in selected_fields]
    return list(fields)


def generate_json_schema_for_prompt(
    output_fields: Optional[list[OutputField]],
    selected_fields: Optional[list[str]] = None,
) -> str:
    """
    Describe the expected JSON object as a schema instruction.

    Every field is a string property; non-optional fields are required.

    Returns:
        Text to append to a system prompt, starting with a blank line
    """
    fields = _select_fields(output_fields, selected_fields)
    if not fields:
        return "\n\n" + JSON_OUTPUT_FALLBACK

    schema = {
        "type": "object",
        "properties": {f.name: _string_property(f.description) for f in fields},
        "required": [f.name for f in fields if not f.optional],
        "additionalProperties": True,
    }
    return "\n\n" + JSON_SCHEMA_INSTRUCTION_PREFIX + " " + json.dumps(schema, indent=2)


def _example_hint(schema: PromptSchema, selected_fields: Optional[list[str]]) -> str:
    example = {}
    for f in _select_fields(schema.output, selected_fields):
        description = f.description[:EXAMPLE_DESCRIPTION_LIMIT]
        if len(f.description) > EXAMPLE_DESCRIPTION_LIMIT:
            description += "..."
        if f.optional:
            description += " (optional)"
        example[f.name] = description
    return "\n\nOutput valid JSON only: " + json.dumps(example, ensure_ascii=False)


def build_system_prompt(request: CompletionRequest) -> str:
    """
    Augment the caller's system prompt with output-format instructions.

    Native output sends the prompt unchanged. Structured output appends a
    schema description (or the plain JSON instruction when no schema is
    known). Without structured output, a prompt schema contributes an
    example object of its fields.
    """
    schema = request.prompt_schema
    selected = request.selected_fields

    if request.params.use_native_output:
        return request.system_prompt or ""

    if request.system_prompt:
        if request.structured_output and schema and schema.output:
            return request.system_prompt + generate_json_schema_for_prompt(schema.output, selected)
        return request.system_prompt + "\n\n" + JSON_OUTPUT_FALLBACK

    if schema:
        if request.structured_output:
            return schema.prompt + generate_json_schema_for_prompt(schema.output, selected)
        return schema.prompt + _example_hint(schema, selected)

    return "\n\n" + JSON_OUTPUT_FALLBACK
