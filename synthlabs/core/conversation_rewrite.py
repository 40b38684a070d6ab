"""Conversation rewriting: regenerate the reasoning of each assistant message in an existing conversation."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..models import (
    ConversationTurn,
    DeepConfig,
    GenerationParams,
    LogItemStatus,
    PhaseConfig,
    RewriteMode,
    SynthLogItem,
    Transcript,
    TurnRole,
)
from .cancellation import CancellationToken
from .client import ProviderClient
from .errors import OperationCancelledError
from .multi_turn import SEED_PREVIEW_CHARS, estimate_tokens, joined_reasoning
from .orchestrator import DeepOrchestrator
from .phase_executor import execute_phase
from .prompts import build_converter_input, build_rewrite_prompt
from .streaming import ChunkSink
from .think_tags import sanitize_reasoning, split_think_tags, wrap_reasoning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssistantMessageParts:
    """An assistant message split into its reasoning and visible answer."""
    reasoning: str
    answer: str
    imputed: bool  # No reasoning to rewrite; one must be reconstructed


def split_assistant_message(turn: ConversationTurn) -> AssistantMessageParts:
    """
    Separate the reasoning of an assistant message from its answer.

    Inline <think> tags win over the turn's separate reasoning field. A
    message with neither is marked for imputation.
    """
    reasoning, answer = split_think_tags(turn.content)
    if reasoning is not None:
        return AssistantMessageParts(sanitize_reasoning(reasoning), answer, imputed=False)
    if turn.reasoning and turn.reasoning.strip():
        return AssistantMessageParts(sanitize_reasoning(turn.reasoning), turn.content.strip(), imputed=False)
    return AssistantMessageParts("", turn.content.strip(), imputed=True)


def preceding_user_query(turns: list[ConversationTurn], index: int) -> Optional[str]:
    for turn in reversed(turns[:index]):
        if turn.role == TurnRole.USER:
            return turn.content
    return None


def limit_to_traces(turns: list[ConversationTurn], max_traces: Optional[int]) -> list[ConversationTurn]:
    """Cut the conversation right after its `max_traces`-th assistant message."""
    if not max_traces:
        return list(turns)
    seen = 0
    for index, turn in enumerate(turns):
        if turn.role == TurnRole.ASSISTANT:
            seen += 1
            if seen >= max_traces:
                return list(turns[: index + 1])
    return list(turns)


class ConversationRewriter:
    """
    Rewrites the reasoning trace of every assistant message in a conversation.

    Deep mode runs the full deep pipeline per message with the message's
    answer as the expected answer; regular mode makes one converter call.
    Non-assistant messages are copied unchanged. A message whose rewrite
    fails keeps its original reasoning and the failure is reported on the
    record; cancellation yields a halted record.
    """

    def __init__(
        self,
        client: ProviderClient,
        config: DeepConfig,
        mode: RewriteMode = RewriteMode.DEEP,
        converter: Optional[PhaseConfig] = None,
        max_traces: Optional[int] = None,
        generation_params: Optional[GenerationParams] = None,
        structured_output: bool = True,
        sink: Optional[ChunkSink] = None,
        cancel: Optional[CancellationToken] = None,
        on_message_rewritten: Optional[Callable[[int, int], None]] = None,
        max_stored_turns: Optional[int] = None,
    ):
        """
        Initialize rewriter.

        Args:
            client: Provider client
            config: Deep pipeline phases; the writer also serves regular mode without a converter
            mode: Deep pipeline or single converter call per message
            converter: Phase used in regular mode
            max_traces: Rewrite at most this many assistant messages, then cut the conversation
            generation_params: Fallback for phases without their own
            structured_output: Structured output for every call
            sink: Streams chunks of each rewrite call
            cancel: Cancellation token for the whole run
            on_message_rewritten: Called with (position, total) after each assistant message
            max_stored_turns: Bound on stored messages
        """
        self.client = client
        self.config = config
        self.mode = mode
        self.converter = converter
        self.max_traces = max_traces
        self.generation_params = generation_params
        self.structured_output = structured_output
        self.sink = sink
        self.cancel = cancel
        self.on_message_rewritten = on_message_rewritten
        self.max_stored_turns = max_stored_turns or client.settings.max_stored_turns

    @property
    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.cancelled

    @property
    def model_used(self) -> str:
        if self.mode == RewriteMode.DEEP:
            return f"DEEP-REWRITE: {self.config.writer.provider.model}"
        return f"REWRITE: {(self.converter or self.config.writer).provider.model}"

    async def _rewrite_deep(self, prompt: str, parts: AssistantMessageParts) -> tuple[str, str, Optional[str]]:
        item = await DeepOrchestrator(
            self.client,
            self.config,
            generation_params=self.generation_params,
            structured_output=self.structured_output,
            sink=self.sink,
            cancel=self.cancel,
        ).run(prompt, expected_answer=parts.answer)

        if self.cancel is not None:
            self.cancel.raise_if_cancelled()
        if item.is_error:
            return parts.reasoning, parts.answer, item.error or "Unknown error"
        return sanitize_reasoning(item.reasoning) or parts.reasoning, item.answer or parts.answer, None

    async def _rewrite_regular(self, prompt: str, parts: AssistantMessageParts) -> tuple[str, str, Optional[str]]:
        execution = await execute_phase(
            self.client,
            self.converter or self.config.writer,
            build_converter_input(prompt),
            cancel=self.cancel,
            generation_params=self.generation_params,
            structured_output=self.structured_output,
            sink=self.sink,
        )
        result: Any = execution.result
        reasoning = result.get("reasoning") if isinstance(result, dict) else None
        return sanitize_reasoning(reasoning) or parts.reasoning, parts.answer, None

    def _total_traces(self, turns: list[ConversationTurn]) -> int:
        total = sum(1 for t in turns if t.role == TurnRole.ASSISTANT)
        return min(total, self.max_traces) if self.max_traces else total

    async def run(self, messages: list[ConversationTurn]) -> SynthLogItem:
        """
        Rewrite the conversation.

        Returns:
            SynthLogItem with the rewritten messages; an error record if any
            message failed, a halted record on cancellation
        """
        started = time.monotonic()
        turns = list(messages)
        total = self._total_traces(turns)
        rewritten = Transcript()
        failures: list[str] = []
        halted = False
        position = 0

        logger.info(f"Starting conversation rewrite: {len(turns)} messages, mode={self.mode.value}")

        try:
            for index, turn in enumerate(turns):
                if self._cancelled:
                    break
                if turn.role != TurnRole.ASSISTANT or (self.max_traces and position >= self.max_traces):
                    rewritten.append(turn)
                    continue

                position += 1
                parts = split_assistant_message(turn)
                if parts.imputed:
                    logger.info(f"Message {index}: no reasoning found, reconstructing one")
                else:
                    logger.info(f"Message {index}: rewriting reasoning ({len(parts.reasoning)} chars)")

                prompt = build_rewrite_prompt(preceding_user_query(turns, index), parts.reasoning, parts.answer)
                if self.mode == RewriteMode.DEEP:
                    reasoning, answer, failure = await self._rewrite_deep(prompt, parts)
                else:
                    reasoning, answer, failure = await self._rewrite_regular(prompt, parts)

                if failure:
                    logger.warning(f"Message {index} rewrite failed, keeping original content: {failure}")
                    failures.append(f"Message {index}: {failure}")

                rewritten.append(ConversationTurn(
                    role=TurnRole.ASSISTANT,
                    content=wrap_reasoning(answer, reasoning),
                    reasoning=reasoning or None,
                ))
                if self.on_message_rewritten:
                    self.on_message_rewritten(position - 1, total)

        except OperationCancelledError:
            halted = True
        except Exception as e:
            logger.error(f"Conversation rewrite failed: {e}")
            stored, truncated = Transcript(turns).bounded(self.max_stored_turns)
            return SynthLogItem(
                seed_preview="Conversation Rewrite Error",
                full_seed=Transcript(turns).render(),
                query="ERROR",
                answer="Conversation trace rewriting failed",
                duration=int((time.monotonic() - started) * 1000),
                model_used="REWRITE ENGINE",
                is_error=True,
                status=LogItemStatus.ERROR,
                error=str(e) or "Unknown error during conversation rewriting",
                is_multi_turn=True,
                messages=stored,
                messages_truncated=truncated,
            )

        duration = int((time.monotonic() - started) * 1000)

        if halted or self._cancelled:
            logger.warning("Conversation rewrite was halted by user")
            stored, truncated = rewritten.bounded(self.max_stored_turns)
            query = next((t.content for t in rewritten if t.role == TurnRole.USER), "Conversation")
            return SynthLogItem(
                seed_preview=query[:SEED_PREVIEW_CHARS] + ("..." if len(query) > SEED_PREVIEW_CHARS else ""),
                full_seed=rewritten.render(),
                query=query,
                reasoning=joined_reasoning(list(rewritten)),
                answer="Halted",
                duration=duration,
                model_used=self.model_used,
                is_error=True,
                status=LogItemStatus.ERROR,
                error="Halted by user",
                is_multi_turn=True,
                messages=stored,
                messages_truncated=truncated,
            )

        stored, truncated = Transcript(limit_to_traces(list(rewritten), self.max_traces)).bounded(self.max_stored_turns)
        query = next((t.content for t in stored if t.role == TurnRole.USER), "Conversation")

        logger.info(f"Conversation rewrite complete, {position}/{total} assistant messages")
        return SynthLogItem(
            seed_preview=query[:SEED_PREVIEW_CHARS] + ("..." if len(query) > SEED_PREVIEW_CHARS else ""),
            full_seed=Transcript(stored).render(),
            query=query,
            reasoning=joined_reasoning(stored),
            answer=stored[-1].content if stored else "",
            duration=duration,
            token_count=estimate_tokens(stored),
            model_used=self.model_used,
            is_multi_turn=True,
            messages=stored,
            messages_truncated=truncated,
            is_error=bool(failures),
            status=LogItemStatus.ERROR if failures else LogItemStatus.DONE,
            error="; ".join(failures) or None,
        )
