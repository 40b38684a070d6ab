"""Tests for provider request building across the three wire formats."""

import pytest

from synthlabs.core.errors import ConfigurationError
from synthlabs.models import (
    ApiType,
    ChatMessage,
    ChatRole,
    CompletionRequest,
    GenerationParams,
    OutputField,
    PromptSchema,
    ProviderConfig,
    ProviderKind,
    WireFormat,
)
from synthlabs.providers import (
    JSON_OUTPUT_FALLBACK,
    JSON_SCHEMA_INSTRUCTION_PREFIX,
    build_request,
    build_system_prompt,
    generate_json_schema_for_prompt,
    sanitize_api_key,
)


def _request(provider, **kwargs):
    return CompletionRequest(provider=provider, user_prompt="What is 6 * 7?", **kwargs)


class TestChatCompletions:
    """Test the chat-completions request shape."""

    def test_openai_chat_request(self, settings):
        """Test URL, auth and body for a structured OpenAI call."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="gpt-4o-mini")
        envelope = build_request(_request(config, system_prompt="Be terse.", structured_output=True), settings)

        assert envelope.wire_format == WireFormat.CHAT
        assert envelope.url == "https://api.openai.com/v1/chat/completions"
        assert envelope.headers["Authorization"] == "Bearer sk-test"
        assert envelope.body["model"] == "gpt-4o-mini"
        assert envelope.body["response_format"] == {"type": "json_object"}
        assert envelope.body["messages"][0]["role"] == "system"
        assert envelope.body["messages"][0]["content"].startswith("Be terse.")
        assert envelope.body["messages"][1] == {"role": "user", "content": "What is 6 * 7?"}

    def test_unset_values_never_sent(self, settings):
        """Test that None parameters are omitted from the body."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="gpt-4o-mini")
        envelope = build_request(_request(config, params=GenerationParams(temperature=0.2)), settings)

        assert envelope.body["temperature"] == 0.2
        assert "max_tokens" not in envelope.body
        assert "top_p" not in envelope.body
        assert None not in envelope.body.values()

    def test_default_temperature_from_settings(self, settings):
        """Test that the configured temperature fills in when none is given."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="gpt-4o-mini")
        settings = settings.model_copy(update={"default_temperature": 0.7})

        envelope = build_request(_request(config), settings)

        assert envelope.body["temperature"] == 0.7

    def test_streaming_requests_usage(self, settings):
        """Test that streaming bodies ask for usage in the stream."""
        config = ProviderConfig(provider=ProviderKind.GROQ, model="llama-3.3-70b", api_key="gsk")
        envelope = build_request(_request(config, stream=True), settings)

        assert envelope.url == "https://api.groq.com/openai/v1/chat/completions"
        assert envelope.body["stream"] is True
        assert envelope.body["stream_options"] == {"include_usage": True}

    def test_ollama_without_key(self, settings):
        """Test the local placeholder token and the missing response_format."""
        config = ProviderConfig(provider=ProviderKind.OLLAMA, model="llama3")
        envelope = build_request(_request(config, structured_output=True), settings)

        assert envelope.url == "http://localhost:11434/v1/chat/completions"
        assert envelope.headers["Authorization"] == "Bearer ollama-local"
        assert "response_format" not in envelope.body

    def test_messages_replace_prompts(self, settings):
        """Test that a caller-supplied conversation is sent as given."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="gpt-4o-mini")
        messages = [
            ChatMessage(role=ChatRole.SYSTEM, content="sys"),
            ChatMessage(role=ChatRole.USER, content="hi"),
        ]
        envelope = build_request(_request(config, messages=messages), settings)

        assert envelope.body["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hi"},
        ]

    def test_key_lookup_from_api_keys_map(self, settings):
        """Test that keys for other providers come from the JSON map."""
        config = ProviderConfig(provider=ProviderKind.OPENROUTER, model="x/y")
        envelope = build_request(_request(config), settings)

        assert envelope.headers["Authorization"] == "Bearer or-test"


class TestEndpointResolution:
    """Test base URL and endpoint resolution."""

    def test_custom_provider_requires_base_url(self, settings):
        """Test that a custom endpoint without a URL is a configuration error."""
        config = ProviderConfig(provider=ProviderKind.OTHER, model="local")

        with pytest.raises(ConfigurationError):
            build_request(_request(config), settings)

    def test_custom_provider_url_with_endpoint_kept(self, settings):
        """Test that a URL already naming its endpoint is used as-is."""
        config = ProviderConfig(
            provider=ProviderKind.OTHER,
            model="local",
            base_url="http://gpu-box:8000/v1/chat/completions/",
        )
        envelope = build_request(_request(config), settings)

        assert envelope.url == "http://gpu-box:8000/v1/chat/completions"

    def test_custom_provider_from_settings(self, settings):
        """Test the configured custom base URL."""
        settings = settings.model_copy(update={"custom_base_url": "http://gpu-box:8000/v1"})
        config = ProviderConfig(provider=ProviderKind.OTHER, model="local")

        envelope = build_request(_request(config), settings)

        assert envelope.url == "http://gpu-box:8000/v1/chat/completions"

    def test_responses_endpoint_for_openai(self, settings):
        """Test that OpenAI responses calls use the official endpoint."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="o4-mini", api_type=ApiType.RESPONSES)
        envelope = build_request(_request(config), settings)

        assert envelope.wire_format == WireFormat.RESPONSES
        assert envelope.url == "https://api.openai.com/v1/responses"

    def test_responses_endpoint_rewrites_chat_url(self, settings):
        """Test that a chat URL is rewritten to the responses path."""
        config = ProviderConfig(
            provider=ProviderKind.OTHER,
            model="local",
            api_type=ApiType.RESPONSES,
            base_url="http://gpu-box:8000/v1/chat/completions",
        )
        envelope = build_request(_request(config), settings)

        assert envelope.url == "http://gpu-box:8000/v1/responses"


class TestResponsesBody:
    """Test the responses-API request shape."""

    def test_structured_output_uses_named_schema(self, settings):
        """Test input, instructions and the json_schema format."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="o4-mini", api_type=ApiType.RESPONSES)
        request = _request(
            config,
            system_prompt="Think hard.",
            structured_output=True,
            params=GenerationParams(max_tokens=512),
        )
        envelope = build_request(request, settings)

        assert envelope.body["input"] == "What is 6 * 7?"
        assert envelope.body["instructions"].startswith("Think hard.")
        assert envelope.body["max_output_tokens"] == 512
        fmt = envelope.body["text"]["format"]
        assert fmt["type"] == "json_schema"
        assert fmt["name"] == "reasoning_trace"
        assert fmt["strict"] is True

    def test_messages_map_roles(self, settings):
        """Test that system messages are dropped and model turns become assistant."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="o4-mini", api_type=ApiType.RESPONSES)
        messages = [
            ChatMessage(role=ChatRole.SYSTEM, content="sys"),
            ChatMessage(role=ChatRole.USER, content="hi"),
            ChatMessage(role=ChatRole.MODEL, content="hello"),
        ]
        envelope = build_request(_request(config, messages=messages), settings)

        assert envelope.body["input"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]


class TestMessagesFormat:
    """Test the Anthropic-style messages request shape."""

    def test_anthropic_request(self, settings):
        """Test URL, version header and the top-level system field."""
        config = ProviderConfig(provider=ProviderKind.ANTHROPIC, model="claude-sonnet-4-5")
        request = _request(
            config,
            system_prompt="Be terse.",
            params=GenerationParams(max_tokens=1024, temperature=0.3, frequency_penalty=0.5),
        )
        envelope = build_request(request, settings)

        assert envelope.wire_format == WireFormat.MESSAGES
        assert envelope.url == "https://api.anthropic.com/v1/messages"
        assert envelope.headers["x-api-key"] == "ak-test"
        assert envelope.headers["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in envelope.headers
        assert envelope.body["system"].startswith("Be terse.")
        assert envelope.body["messages"] == [{"role": "user", "content": "What is 6 * 7?"}]
        assert envelope.body["max_tokens"] == 1024
        assert envelope.body["temperature"] == 0.3
        assert "frequency_penalty" not in envelope.body

    def test_anthropic_messages_mapped(self, settings):
        """Test that a caller's conversation is sent, with system turns moved to the top level."""
        config = ProviderConfig(provider=ProviderKind.ANTHROPIC, model="claude-sonnet-4-5")
        request = CompletionRequest(provider=config, messages=[
            ChatMessage(role=ChatRole.SYSTEM, content="Be terse."),
            ChatMessage(role=ChatRole.USER, content="hi"),
            ChatMessage(role=ChatRole.MODEL, content="hello"),
            ChatMessage(role=ChatRole.USER, content="6 * 7?"),
        ])
        envelope = build_request(request, settings)

        assert envelope.body["system"] == "Be terse."
        assert envelope.body["messages"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "6 * 7?"},
        ]


class TestSystemPrompt:
    """Test output-format instructions added to system prompts."""

    schema = PromptSchema(prompt="You analyze.", output=[
        OutputField(name="reasoning", description="Step by step"),
        OutputField(name="answer", description="Final answer"),
        OutputField(name="notes", description="Anything else", optional=True),
    ])

    def test_schema_instruction(self):
        """Test that structured output appends the field schema."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="m")
        prompt = build_system_prompt(CompletionRequest(
            provider=config, prompt_schema=self.schema, structured_output=True,
        ))

        assert prompt.startswith("You analyze.\n\n" + JSON_SCHEMA_INSTRUCTION_PREFIX)
        assert '"required": [\n    "reasoning",\n    "answer"\n  ]' in prompt

    def test_selected_fields_restrict_schema(self):
        """Test that only the selected fields are described."""
        text = generate_json_schema_for_prompt(self.schema.output, ["answer"])

        assert '"answer"' in text
        assert '"reasoning"' not in text

    def test_no_fields_falls_back(self):
        """Test the plain JSON instruction when no fields are known."""
        assert generate_json_schema_for_prompt([]) == "\n\n" + JSON_OUTPUT_FALLBACK

    def test_example_hint_without_structured_output(self):
        """Test the example object and the optional marker."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="m")
        prompt = build_system_prompt(CompletionRequest(provider=config, prompt_schema=self.schema))

        assert "Output valid JSON only: " in prompt
        assert '"notes": "Anything else (optional)"' in prompt

    def test_native_output_unchanged(self):
        """Test that native output sends the prompt untouched."""
        config = ProviderConfig(provider=ProviderKind.OPENAI, model="m")
        prompt = build_system_prompt(CompletionRequest(
            provider=config,
            system_prompt="Raw.",
            structured_output=True,
            params=GenerationParams(use_native_output=True),
        ))

        assert prompt == "Raw."


class TestApiKeySanitizing:
    """Test API key cleanup."""

    def test_strips_non_printable(self):
        """Test that whitespace and control characters are removed."""
        assert sanitize_api_key(" sk-abc​\n") == "sk-abc"

    def test_empty(self):
        assert sanitize_api_key(None) == ""
