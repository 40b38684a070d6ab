"""Provider-agnostic streaming events and usage statistics."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class UsageSummary:
    """Token usage, normalized from whatever shape the vendor reports."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_payload(cls, usage: Optional[dict[str, Any]]) -> Optional["UsageSummary"]:
        """Build a summary from a raw `usage` object, or None if there is none."""
        if not isinstance(usage, dict) or not usage:
            return None

        prompt = usage.get("prompt_tokens") or usage.get("input_tokens") or 0
        completion = usage.get("completion_tokens") or usage.get("output_tokens") or 0

        details = usage.get("completion_tokens_details") or usage.get("output_tokens_details") or {}
        reasoning = details.get("reasoning_tokens") if isinstance(details, dict) else None
        if reasoning is None:
            reasoning = usage.get("reasoning_tokens") or 0

        total = usage.get("total_tokens") or (prompt + completion)

        return cls(
            prompt_tokens=int(prompt),
            completion_tokens=int(completion),
            reasoning_tokens=int(reasoning),
            total_tokens=int(total),
        )


@dataclass(frozen=True)
class ToolCallDelta:
    """A fragment of a streamed tool call, keyed by its index in the call list."""
    index: int
    id: Optional[str] = None
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class CanonicalChunk:
    """One streaming event, whatever provider produced it."""
    text_delta: str
    accumulated_text: str
    reasoning_delta: Optional[str] = None
    tool_call_deltas: Optional[tuple[ToolCallDelta, ...]] = None
    usage: Optional[UsageSummary] = None
    phase: Optional[str] = None


@dataclass
class StreamOutcome:
    """What survives a decoded stream: the text and the last usage seen."""
    text: str = ""
    usage: Optional[UsageSummary] = None
    cancelled: bool = False
    interrupted: bool = False
