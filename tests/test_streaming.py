"""Tests for SSE stream decoding."""

import re

import httpx
import pytest

from synthlabs.core.cancellation import CancellationToken
from synthlabs.core.errors import OperationCancelledError
from synthlabs.core.resilience import is_retryable
from synthlabs.core.streaming import STOP_STREAM, decode_stream, frame_payload
from synthlabs.core.think_tags import split_think_tags
from synthlabs.core.tool_calls import extract_tool_calls
from synthlabs.models import WireFormat


async def _stream(*parts, error=None):
    for part in parts:
        yield part
    if error is not None:
        raise error


def _chat(**delta):
    return {"choices": [{"index": 0, "delta": delta}]}


class TestFramePayload:
    """Test SSE line parsing."""

    def test_data_line(self):
        assert frame_payload('data: {"a": 1}') == '{"a": 1}'

    def test_done_and_blank_lines(self):
        """Test that [DONE], blanks and comments carry no payload."""
        assert frame_payload("data: [DONE]") is None
        assert frame_payload("   ") is None
        assert frame_payload(": keep-alive") is None
        assert frame_payload("event: message") is None

    def test_gateway_prefixed_line(self):
        """Test lines that arrive behind a gateway's tab-separated prefix."""
        assert frame_payload('message\tid:7 data: {"a": 1}') == '{"a": 1}'


class TestChatStreams:
    """Test decoding of chat-completions streams."""

    @pytest.mark.asyncio
    async def test_reasoning_then_answer(self, sse):
        """Test that reasoning deltas are bracketed by think tags."""
        chunks = []
        body = sse(_chat(reasoning_content="Step 1. "), _chat(content="Answer: 42"))

        outcome = await decode_stream(_stream(body), WireFormat.CHAT, sink=chunks.append)

        assert outcome.text == "<think>Step 1. </think>Answer: 42"
        assert [c.text_delta for c in chunks] == ["<think>", "Step 1. ", "</think>", "Answer: 42"]
        assert chunks[1].reasoning_delta == "Step 1. "
        assert chunks[-1].accumulated_text == outcome.text

    @pytest.mark.asyncio
    async def test_alternating_reasoning_and_content(self, sse):
        """Test that each reasoning run gets its own bracket and the text only grows."""
        chunks = []
        body = sse(
            _chat(reasoning_content="Plan A. "),
            _chat(reasoning_content="Check it. "),
            _chat(content="Draft. "),
            _chat(reasoning_content="Hmm, revise. "),
            _chat(content="Final: 42"),
        )

        outcome = await decode_stream(_stream(body), WireFormat.CHAT, sink=chunks.append)

        assert outcome.text == (
            "<think>Plan A. Check it. </think>Draft. <think>Hmm, revise. </think>Final: 42"
        )
        assert outcome.text.count("<think>") == 2
        assert outcome.text.count("</think>") == 2
        assert re.fullmatch(r"(<think>[^<]+</think>[^<]+){2}", outcome.text)
        lengths = [len(c.accumulated_text) for c in chunks]
        assert lengths == sorted(lengths)
        for previous, current in zip(chunks, chunks[1:]):
            assert current.accumulated_text.startswith(previous.accumulated_text)
        assert chunks[-1].accumulated_text == outcome.text

    @pytest.mark.asyncio
    async def test_frames_split_across_reads(self, sse):
        """Test arbitrary byte boundaries, including inside a UTF-8 character."""
        body = sse(_chat(content="héllo "), _chat(content="wörld"))
        parts = [body[i:i + 7] for i in range(0, len(body), 7)]

        outcome = await decode_stream(_stream(*parts), WireFormat.CHAT)

        assert outcome.text == "héllo wörld"

    @pytest.mark.asyncio
    async def test_reasoning_only_stream_is_closed(self, sse):
        """Test that a stream ending inside reasoning still balances its tags."""
        body = sse(_chat(reasoning="thinking..."), _chat(reasoning=" more"))

        outcome = await decode_stream(_stream(body), WireFormat.CHAT)

        assert outcome.text == "<think>thinking... more</think>"
        assert outcome.text.count("<think>") == outcome.text.count("</think>") == 1
        reasoning, answer = split_think_tags(outcome.text)
        assert reasoning == "thinking... more"
        assert answer == ""

    @pytest.mark.asyncio
    async def test_usage_frame(self, sse):
        """Test that the usage-only final frame is captured."""
        chunks = []
        body = sse(
            _chat(content="ok"),
            {"choices": [], "usage": {"prompt_tokens": 9, "completion_tokens": 2, "total_tokens": 11}},
        )

        outcome = await decode_stream(_stream(body), WireFormat.CHAT, sink=chunks.append)

        assert outcome.usage.prompt_tokens == 9
        assert outcome.usage.total_tokens == 11
        assert chunks[-1].usage == outcome.usage
        assert chunks[-1].text_delta == ""

    @pytest.mark.asyncio
    async def test_malformed_frames_skipped(self, sse):
        """Test that unparseable lines are ignored and decoding continues."""
        body = sse(_chat(content="a"), "{not json", _chat(content="b"))

        outcome = await decode_stream(_stream(body), WireFormat.CHAT)

        assert outcome.text == "ab"

    @pytest.mark.asyncio
    async def test_tail_without_newline(self):
        """Test that a final frame without a trailing newline is processed."""
        body = b'data: {"choices": [{"delta": {"content": "tail"}}]}'

        outcome = await decode_stream(_stream(body), WireFormat.CHAT)

        assert outcome.text == "tail"

    @pytest.mark.asyncio
    async def test_tool_call_fragments(self, sse):
        """Test that streamed tool-call fragments become one tool_call block."""
        body = sse(
            _chat(content="Let me check."),
            _chat(tool_calls=[{"index": 0, "id": "call_1", "function": {"name": "get_weather", "arguments": ""}}]),
            _chat(tool_calls=[{"index": 0, "function": {"arguments": '{"city": '}}]),
            _chat(tool_calls=[{"index": 0, "function": {"arguments": '"Oslo"}'}}]),
        )

        outcome = await decode_stream(_stream(body), WireFormat.CHAT)

        assert outcome.text.startswith("Let me check.\n<tool_call>\n")
        assert extract_tool_calls(outcome.text) == [{"name": "get_weather", "arguments": {"city": "Oslo"}}]


class TestOtherWireFormats:
    """Test decoding of responses-API and messages streams."""

    @pytest.mark.asyncio
    async def test_anthropic_deltas_and_split_usage(self, sse):
        """Test content_block_delta text and usage reported across two frames."""
        body = sse(
            {"type": "message_start", "message": {"usage": {"input_tokens": 12, "output_tokens": 1}}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hel"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "lo"}},
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 30}},
            done=False,
        )

        outcome = await decode_stream(_stream(body), WireFormat.MESSAGES)

        assert outcome.text == "Hello"
        assert outcome.usage.prompt_tokens == 12
        assert outcome.usage.completion_tokens == 30
        assert outcome.usage.total_tokens == 42

    @pytest.mark.asyncio
    async def test_responses_items_not_duplicated(self, sse):
        """Test that response.completed does not repeat already streamed text."""
        body = sse(
            {"type": "response.output_item.added", "item": {"content": [{"type": "output_text", "text": "Hi "}]}},
            {"type": "response.output_item.delta", "delta": {"content": [{"type": "text", "value": "there"}]}},
            {"type": "response.completed", "response": {
                "output": [{"type": "message", "content": [{"type": "output_text", "text": "Hi there"}]}],
                "usage": {"input_tokens": 3, "output_tokens": 2},
            }},
        )

        outcome = await decode_stream(_stream(body), WireFormat.RESPONSES)

        assert outcome.text == "Hi there"
        assert outcome.usage.total_tokens == 5

    @pytest.mark.asyncio
    async def test_responses_completed_only(self, sse):
        """Test that the completed event supplies the text when nothing streamed."""
        body = sse({"type": "response.completed", "response": {
            "output": [
                {"type": "reasoning", "content": []},
                {"type": "message", "content": [{"type": "output_text", "text": "Full answer"}]},
            ],
        }})

        outcome = await decode_stream(_stream(body), WireFormat.RESPONSES)

        assert outcome.text == "Full answer"


class TestStreamInterruption:
    """Test read failures, early stops and cancellation."""

    @pytest.mark.asyncio
    async def test_partial_output_kept_on_read_error(self, sse):
        """Test that text received before a connection drop is returned."""
        body = sse(_chat(content="partial answer"), done=False)

        outcome = await decode_stream(
            _stream(body, error=httpx.ReadError("connection reset")),
            WireFormat.CHAT,
        )

        assert outcome.text == "partial answer"
        assert outcome.interrupted is True

    @pytest.mark.asyncio
    async def test_read_error_before_any_text(self):
        """Test that a drop before any text surfaces the transport error."""
        with pytest.raises(httpx.ReadError):
            await decode_stream(_stream(error=httpx.ReadError("connection reset")), WireFormat.CHAT)

    @pytest.mark.asyncio
    async def test_non_transport_error_propagates(self, sse):
        """Test that only httpx transport failures count as a dropped connection."""
        body = sse(_chat(content="partial answer"), done=False)

        with pytest.raises(OSError, match="disk gone"):
            await decode_stream(_stream(body, error=OSError("disk gone")), WireFormat.CHAT)
        assert not is_retryable(OSError("disk gone"))

    @pytest.mark.asyncio
    async def test_sink_stops_stream(self, sse):
        """Test that a sink returning STOP_STREAM ends decoding early."""
        seen = []

        def sink(chunk):
            seen.append(chunk.text_delta)
            return STOP_STREAM

        body = sse(_chat(content="one"), _chat(content="two"))
        outcome = await decode_stream(_stream(body), WireFormat.CHAT, sink=sink)

        assert outcome.cancelled is True
        assert outcome.text == "one"
        assert seen == ["one"]

    @pytest.mark.asyncio
    async def test_cancelled_token(self, sse):
        """Test that a fired token stops the read loop."""
        token = CancellationToken()
        token.cancel("stop")

        with pytest.raises(OperationCancelledError, match="stop"):
            await decode_stream(_stream(sse(_chat(content="x"))), WireFormat.CHAT, cancel=token)

    @pytest.mark.asyncio
    async def test_phase_label_on_chunks(self, sse):
        chunks = []
        await decode_stream(_stream(sse(_chat(content="x"))), WireFormat.CHAT, sink=chunks.append, phase="writer")

        assert chunks[0].phase == "writer"
