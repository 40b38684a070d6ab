"""Multi-turn conversation generation: an asker agent and a responder agent take turns."""

import logging
import time
from typing import Any, Optional

from ..models import (
    ConversationTurn,
    GenerationParams,
    LogItemStatus,
    PhaseConfig,
    SynthLogItem,
    Transcript,
    TurnRole,
)
from .cancellation import CancellationToken
from .client import ProviderClient
from .errors import MissingFieldsError, OperationCancelledError
from .phase_executor import call_agent, effective_schema
from .prompts import build_responder_prompt, build_user_agent_prompt
from .streaming import ChunkSink
from .think_tags import wrap_reasoning

logger = logging.getLogger(__name__)

DEFAULT_FOLLOW_UP = "Could you elaborate further?"
SEED_PREVIEW_CHARS = 150
ERROR_SEED_PREVIEW_CHARS = 50
STREAM_PHASE = "user_followup"

# Placeholder query labels that never make a good display query
_PLACEHOLDER_QUERIES = ("Inferred Query", "Refined Query")


def is_slug_or_id(value: Optional[str]) -> bool:
    """True for values that look like identifiers rather than natural-language questions."""
    if not value:
        return True
    if value in _PLACEHOLDER_QUERIES:
        return True
    return (" " not in value and len(value) < 50) or len(value) < 5


def estimate_tokens(turns: list[ConversationTurn]) -> int:
    """Rough token count, about four characters per token."""
    return sum(round(len(turn.content or "") / 4) for turn in turns)


def joined_reasoning(turns: list[ConversationTurn]) -> str:
    """Reasoning of every assistant turn, separated by `---` lines."""
    return "\n---\n".join(
        t.reasoning for t in turns if t.role == TurnRole.ASSISTANT and t.reasoning
    )


class MultiTurnOrchestrator:
    """
    Generates a conversation of `follow_up_count` follow-up exchanges.

    The responder answers the initial input (unless an answer is supplied),
    then for each turn the asker reads the transcript and produces a
    follow-up question, which the responder answers in turn.
    """

    def __init__(
        self,
        client: ProviderClient,
        asker: PhaseConfig,
        responder: PhaseConfig,
        follow_up_count: int = 1,
        generation_params: Optional[GenerationParams] = None,
        structured_output: bool = True,
        sink: Optional[ChunkSink] = None,
        cancel: Optional[CancellationToken] = None,
        max_stored_turns: Optional[int] = None,
    ):
        self.client = client
        self.asker = asker
        self.responder = responder
        self.follow_up_count = follow_up_count
        self.generation_params = generation_params
        self.structured_output = structured_output
        self.sink = sink
        self.cancel = cancel
        self.max_stored_turns = max_stored_turns or client.settings.max_stored_turns

        self.responder_schema = effective_schema(responder)
        self.asker_schema = effective_schema(asker)

    @property
    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.cancelled

    def _required_fields(self) -> list[str]:
        names = self.responder_schema.field_names
        return [name for name in ("answer", "reasoning") if name in names]

    async def _respond(self, content: str) -> tuple[str, Optional[str]]:
        """Ask the responder and validate the fields its schema defines."""
        result: Any = await call_agent(
            self.client,
            self.responder.provider,
            self.responder_schema,
            content,
            cancel=self.cancel,
            generation_params=self.responder.generation_params or self.generation_params,
            structured_output=self.structured_output,
            sink=self.sink,
            stream_phase=STREAM_PHASE,
        )
        if not isinstance(result, dict):
            result = {"answer": str(result)}

        missing = [name for name in self._required_fields() if not result.get(name)]
        if missing:
            raise MissingFieldsError(missing, partial=result)

        reasoning = result.get("reasoning") or None
        answer = result.get("answer") or reasoning or "Response generated."
        return str(answer), reasoning

    async def _ask(self, transcript: Transcript) -> str:
        result: Any = await call_agent(
            self.client,
            self.asker.provider,
            self.asker_schema,
            build_user_agent_prompt(transcript.render()),
            cancel=self.cancel,
            generation_params=self.asker.generation_params or self.generation_params,
            structured_output=self.structured_output,
        )
        if isinstance(result, dict):
            return result.get("follow_up_question") or result.get("question") or DEFAULT_FOLLOW_UP
        return DEFAULT_FOLLOW_UP

    @staticmethod
    def _assistant_turn(answer: str, reasoning: Optional[str]) -> ConversationTurn:
        return ConversationTurn(
            role=TurnRole.ASSISTANT,
            content=wrap_reasoning(answer, reasoning),
            reasoning=reasoning,
        )

    async def run(
        self,
        initial_input: str,
        initial_query: Optional[str] = None,
        initial_response: Optional[str] = None,
        initial_reasoning: Optional[str] = None,
    ) -> SynthLogItem:
        """
        Generate the conversation.

        Args:
            initial_input: Seed text answered in the first turn
            initial_query: Display query; replaced by the input when it looks like an id
            initial_response: Pre-generated first answer, skipping the first responder call
            initial_reasoning: Reasoning for the pre-generated answer

        Returns:
            SynthLogItem with the stored messages, halted or error record on failure
        """
        started = time.monotonic()
        display_query = initial_query or ""
        if is_slug_or_id(display_query):
            display_query = initial_input

        transcript = Transcript()
        halted = False
        model_used = f"MULTI: {self.responder.provider.model}"
        preview = display_query[:SEED_PREVIEW_CHARS] + ("..." if len(display_query) > SEED_PREVIEW_CHARS else "")

        logger.info(f"Starting multi-turn conversation ({self.follow_up_count} follow-ups)")

        try:
            transcript.append(ConversationTurn(role=TurnRole.USER, content=display_query))

            if initial_response:
                logger.info("Using pre-generated first response")
                answer, reasoning = initial_response, initial_reasoning
            else:
                answer, reasoning = await self._respond(initial_input)
            transcript.append(self._assistant_turn(answer, reasoning))

            for turn in range(self.follow_up_count):
                if self._cancelled:
                    break
                logger.info(f"Turn {turn + 1}/{self.follow_up_count}")

                context = transcript.render()
                question = await self._ask(transcript)
                transcript.append(ConversationTurn(role=TurnRole.USER, content=question))

                answer, reasoning = await self._respond(build_responder_prompt(context, question))
                transcript.append(self._assistant_turn(answer, reasoning))

        except OperationCancelledError:
            halted = True
        except Exception as e:
            logger.error(f"Multi-turn orchestration failed: {e}")
            messages, truncated = transcript.bounded(self.max_stored_turns)
            return SynthLogItem(
                seed_preview=initial_input[:ERROR_SEED_PREVIEW_CHARS],
                full_seed=initial_input,
                query="ERROR",
                answer="Multi-turn conversation failed",
                duration=int((time.monotonic() - started) * 1000),
                model_used="MULTI ENGINE",
                is_error=True,
                status=LogItemStatus.ERROR,
                error=str(e) or "Unknown error",
                is_multi_turn=True,
                messages=messages,
                messages_truncated=truncated,
            )

        messages, truncated = transcript.bounded(self.max_stored_turns)
        duration = int((time.monotonic() - started) * 1000)

        if halted or self._cancelled:
            logger.warning("Multi-turn conversation was halted by user")
            return SynthLogItem(
                seed_preview=preview,
                full_seed=initial_input,
                query=initial_query or display_query,
                reasoning=joined_reasoning(list(transcript)),
                answer="Halted",
                duration=duration,
                model_used=model_used,
                is_error=True,
                status=LogItemStatus.ERROR,
                error="Halted by user",
                is_multi_turn=True,
                messages=messages,
                messages_truncated=truncated,
            )

        logger.info(f"Multi-turn conversation complete, {len(transcript)} turns")
        return SynthLogItem(
            seed_preview=preview,
            full_seed=initial_input,
            query=initial_query or display_query,
            reasoning=joined_reasoning(messages),
            answer=messages[-1].content if messages else "",
            duration=duration,
            token_count=estimate_tokens(messages),
            model_used=model_used,
            is_multi_turn=True,
            messages=messages,
            messages_truncated=truncated,
        )
