"""Shared fixtures: settings, fake HTTP transports and SSE bodies."""

import asyncio
import json

import httpx
import pytest

from synthlabs.core.client import ProviderClient
from synthlabs.core.config import Settings
from synthlabs.models import ProviderConfig, ProviderKind


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        anthropic_api_key="ak-test",
        api_keys={"openrouter": "or-test"},
        max_retries=3,
        retry_delay=2.0,
        default_temperature=None,
    )


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def openai_provider():
    return ProviderConfig(provider=ProviderKind.OPENAI, model="gpt-4o-mini")


@pytest.fixture
def make_client(settings, sleep):
    """Build a ProviderClient whose requests are answered by `handler`."""
    def factory(handler):
        return ProviderClient(settings, transport=httpx.MockTransport(handler), sleep=sleep)
    return factory


@pytest.fixture
def sse():
    """Render frames as an SSE body: dicts become `data: {json}` lines."""
    def render(*frames, done=True):
        lines = []
        for frame in frames:
            payload = frame if isinstance(frame, str) else json.dumps(frame)
            lines.append(f"data: {payload}\n\n")
        if done:
            lines.append("data: [DONE]\n\n")
        return "".join(lines).encode("utf-8")
    return render


@pytest.fixture
def chat_body():
    """A complete chat-completions response body."""
    def build(content, usage=None, **message):
        return {
            "choices": [{"message": {"role": "assistant", "content": content, **message}}],
            "usage": usage or {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        }
    return build


class ScriptedProvider:
    """
    Fake chat-completions server that answers by pipeline phase.

    The phase is recognized from a marker in the system prompt; each phase's
    reply is a JSON-serializable object or a callable returning one (or an
    httpx.Response). Streaming requests get the reply as SSE content frames.
    """

    MARKERS = {
        "META-ANALYSIS agent": "meta",
        "RETRIEVAL agent": "retrieval",
        "DERIVATION agent": "derivation",
        "FINAL SYNTHESIS agent": "writer",
        "REWRITER agent": "rewriter",
        "RESPONDER": "responder",
        "curious USER": "user_agent",
        "CONVERTER agent": "converter",
    }

    def __init__(self, replies, delay=0.0):
        self.replies = dict(replies)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    @classmethod
    def phase_of(cls, body):
        system = body["messages"][0]["content"]
        for marker, phase in cls.MARKERS.items():
            if marker in system:
                return phase
        raise AssertionError(f"Unrecognized system prompt: {system[:80]}")

    async def __call__(self, request):
        body = json.loads(request.content)
        phase = self.phase_of(body)
        self.calls.append((phase, body))

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.replies[phase]
            if callable(reply):
                reply = reply(body)
        finally:
            self.in_flight -= 1

        if isinstance(reply, httpx.Response):
            return reply
        content = reply if isinstance(reply, str) else json.dumps(reply)
        if body.get("stream"):
            frame = {"choices": [{"index": 0, "delta": {"content": content}}]}
            return httpx.Response(200, content=f"data: {json.dumps(frame)}\n\ndata: [DONE]\n\n".encode("utf-8"))
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    def phases(self):
        return [phase for phase, _ in self.calls]


@pytest.fixture
def scripted():
    return ScriptedProvider
