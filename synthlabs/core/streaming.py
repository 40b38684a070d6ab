"""
Server-sent-event decoding for all three wire formats.

Bytes from the provider are decoded incrementally, split into `data:` frames,
mapped to text through the wire adapter, and re-emitted as CanonicalChunk
events with reasoning bracketed by <think> tags and tool calls appended as
<tool_call> blocks once the stream ends.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from ..models import CanonicalChunk, StreamOutcome, ToolCallDelta, UsageSummary, WireFormat
from ..providers import FrameDelta, WireAdapter, get_adapter
from .cancellation import CancellationToken
from .errors import OperationCancelledError
from .think_tags import THINK_CLOSE, THINK_OPEN
from .tool_calls import format_streamed_tool_call

logger = logging.getLogger(__name__)

# Returned by a sink to stop reading the stream
STOP_STREAM = False

ChunkSink = Callable[[CanonicalChunk], Optional[bool]]

DATA_PREFIX = "data: "
GATEWAY_PREFIX = "message\t"
DONE_MARKER = "[DONE]"


def frame_payload(line: str) -> Optional[str]:
    """Return the JSON text of an SSE data line, or None for anything else."""
    trimmed = line.strip()
    if not trimmed:
        return None

    payload = None
    if trimmed.startswith(DATA_PREFIX):
        payload = trimmed[len(DATA_PREFIX):]
    elif trimmed.startswith(GATEWAY_PREFIX):
        start = trimmed.find(DATA_PREFIX)
        if start != -1:
            payload = trimmed[start + len(DATA_PREFIX):]

    if payload is None or payload.strip() == DONE_MARKER:
        return None
    return payload


def _frame_usage(frame: dict[str, Any]) -> Optional[dict[str, Any]]:
    if isinstance(frame.get("usage"), dict):
        return frame["usage"]
    for key in ("response", "message"):
        nested = frame.get(key)
        if isinstance(nested, dict) and isinstance(nested.get("usage"), dict):
            return nested["usage"]
    return None


def _merge_usage(previous: Optional[UsageSummary], current: UsageSummary) -> UsageSummary:
    """Later frames win, except where they report zero (split usage reports)."""
    if previous is None:
        return current
    return UsageSummary(
        prompt_tokens=current.prompt_tokens or previous.prompt_tokens,
        completion_tokens=current.completion_tokens or previous.completion_tokens,
        reasoning_tokens=current.reasoning_tokens or previous.reasoning_tokens,
        total_tokens=max(
            current.total_tokens or previous.total_tokens,
            (current.prompt_tokens or previous.prompt_tokens)
            + (current.completion_tokens or previous.completion_tokens),
        ),
    )


class _StreamState:
    """Accumulators local to one decoded stream."""

    def __init__(self, adapter: WireAdapter, sink: Optional[ChunkSink], phase: Optional[str]):
        self.adapter = adapter
        self.sink = sink
        self.phase = phase
        self.text = ""
        self.usage: Optional[UsageSummary] = None
        self.in_reasoning = False
        self.tool_calls: dict[int, dict[str, str]] = {}
        self.stopped = False

    def emit(
        self,
        delta: str,
        reasoning: Optional[str] = None,
        tool_call_deltas: Optional[tuple[ToolCallDelta, ...]] = None,
    ) -> bool:
        """Append `delta` and hand a chunk to the sink. False once the sink asks to stop."""
        self.text += delta
        if self.sink is None:
            return True
        chunk = CanonicalChunk(
            text_delta=delta,
            accumulated_text=self.text,
            reasoning_delta=reasoning,
            tool_call_deltas=tool_call_deltas or None,
            usage=self.usage,
            phase=self.phase,
        )
        if self.sink(chunk) is STOP_STREAM:
            self.stopped = True
            return False
        return True

    def handle_line(self, line: str) -> bool:
        payload = frame_payload(line)
        if payload is None:
            return True
        try:
            frame = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse SSE chunk: {line.strip()[:200]}")
            return True
        if not isinstance(frame, dict):
            return True
        return self.handle_frame(frame)

    def handle_frame(self, frame: dict[str, Any]) -> bool:
        usage_payload = _frame_usage(frame)
        if usage_payload:
            usage = UsageSummary.from_payload(usage_payload)
            if usage is not None:
                self.usage = _merge_usage(self.usage, usage)

        delta: FrameDelta = self.adapter.extract_delta(frame, self.text)

        for fragment in delta.tool_calls:
            call = self.tool_calls.setdefault(fragment.index, {"name": "", "arguments": "", "id": fragment.id or ""})
            call["name"] += fragment.name
            call["arguments"] += fragment.arguments

        if delta.is_reasoning and not self.in_reasoning:
            self.in_reasoning = True
            if not self.emit(THINK_OPEN):
                return False
        elif not delta.is_reasoning and self.in_reasoning and delta.text:
            self.in_reasoning = False
            if not self.emit(THINK_CLOSE):
                return False

        if delta.text or usage_payload or delta.tool_calls:
            return self.emit(
                delta.text,
                reasoning=delta.text if delta.is_reasoning else None,
                tool_call_deltas=delta.tool_calls,
            )
        return True

    def finish(self) -> None:
        """Close an open reasoning run, then append tool calls in index order."""
        if self.in_reasoning:
            self.in_reasoning = False
            if not self.emit(THINK_CLOSE):
                return

        for index in sorted(self.tool_calls):
            call = self.tool_calls[index]
            if not self.emit(format_streamed_tool_call(call["name"], call["arguments"])):
                return


async def _close(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def decode_stream(
    byte_stream: AsyncIterator[bytes],
    wire_format: WireFormat,
    sink: Optional[ChunkSink] = None,
    cancel: Optional[CancellationToken] = None,
    phase: Optional[str] = None,
) -> StreamOutcome:
    """
    Decode a provider's SSE byte stream into canonical chunks.

    Args:
        byte_stream: Raw response bytes, in arbitrary chunk boundaries
        wire_format: Which vendor format the frames are in
        sink: Receives every CanonicalChunk; return STOP_STREAM to stop early
        cancel: Checked before every read
        phase: Label attached to every chunk

    Returns:
        StreamOutcome with the accumulated text and the last usage seen

    Raises:
        OperationCancelledError: If the token fires while reading
        httpx.TransportError: If the connection fails before any text arrived
    """
    state = _StreamState(get_adapter(wire_format), sink, phase)
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    iterator = byte_stream.__aiter__()
    buffer = ""
    read_error: Optional[BaseException] = None

    while True:
        if cancel is not None and cancel.cancelled:
            await _close(iterator)
            raise OperationCancelledError(cancel.reason or "Operation cancelled")

        try:
            data = await iterator.__anext__()
        except StopAsyncIteration:
            break
        except httpx.TransportError as e:
            # Partial output is kept; raised below only if nothing arrived
            logger.warning(f"Stream read error (server may have disconnected): {e}")
            read_error = e
            break

        buffer += decoder.decode(data)
        lines = buffer.split("\n")
        buffer = lines.pop()

        for line in lines:
            if not state.handle_line(line):
                await _close(iterator)
                return StreamOutcome(text=state.text, usage=state.usage, cancelled=True)

    buffer += decoder.decode(b"", final=True)
    if buffer.strip() and not state.handle_line(buffer):
        await _close(iterator)
        return StreamOutcome(text=state.text, usage=state.usage, cancelled=True)

    if read_error is not None and not state.text.strip():
        raise read_error

    state.finish()

    return StreamOutcome(
        text=state.text,
        usage=state.usage,
        cancelled=state.stopped,
        interrupted=read_error is not None,
    )
