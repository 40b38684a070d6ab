"""Deep reasoning pipeline: three parallel analyses, a writer, and an optional rewriter."""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from ..models import (
    DeepConfig,
    DeepPhase,
    GenerationParams,
    LogItemStatus,
    PhaseConfig,
    SynthLogItem,
)
from .cancellation import CancellationToken
from .client import ProviderClient
from .errors import MissingFieldsError
from .phase_executor import PhaseTraceLog, execute_phase, model_label
from .prompts import build_rewriter_prompt, build_writer_prompt, default_schema
from .streaming import ChunkSink

logger = logging.getLogger(__name__)

SEED_PREVIEW_CHARS = 150
ERROR_SEED_PREVIEW_CHARS = 50

# Keys a rewriter may put its answer under, checked in this order
REWRITER_ANSWER_KEYS = ("answer", "response", "content", "text", "res", "output")


def extract_rewritten_answer(result: Any) -> str:
    """
    Pull the refined answer out of a rewriter result.

    Accepts a plain string, or an object with the answer under any of the
    known keys (case-insensitive). Returns "" when nothing usable is found.
    """
    if isinstance(result, str):
        return result.strip()
    if isinstance(result, dict):
        normalized = {str(key).lower(): value for key, value in result.items()}
        for key in REWRITER_ANSWER_KEYS:
            value = normalized.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


class DeepOrchestrator:
    """
    Runs the deep reasoning pipeline for one seed.

    Meta, retrieval and derivation run concurrently and must all succeed.
    Their reports are aggregated into the writer's prompt; the writer must
    produce a reasoning trace. An enabled rewriter may replace the answer.
    Failures never escape `run()`: they become an error SynthLogItem that
    still carries the trace collected so far.
    """

    def __init__(
        self,
        client: ProviderClient,
        config: DeepConfig,
        generation_params: Optional[GenerationParams] = None,
        structured_output: bool = True,
        sink: Optional[ChunkSink] = None,
        on_phase_complete: Optional[Callable[[str], None]] = None,
        cancel: Optional[CancellationToken] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            client: Provider client shared by every phase
            config: The five phase configs
            generation_params: Fallback for phases without their own
            structured_output: Structured output for the analysis phases
            sink: Streams the writer and rewriter chunks when given
            on_phase_complete: Called with each phase name as it finishes
            cancel: Cancellation token for the whole run
        """
        self.client = client
        self.config = config
        self.generation_params = generation_params
        self.structured_output = structured_output
        self.sink = sink
        self.on_phase_complete = on_phase_complete
        self.cancel = cancel

    def _phase_done(self, phase: DeepPhase) -> None:
        if self.on_phase_complete:
            self.on_phase_complete(phase.value)

    def _rewriter_enabled(self) -> bool:
        return self.config.rewriter is not None and self.config.rewriter.enabled

    async def _run_analysis(self, config: PhaseConfig, seed: str, trace: PhaseTraceLog) -> Any:
        execution = await execute_phase(
            self.client,
            config,
            seed,
            cancel=self.cancel,
            generation_params=self.generation_params,
            structured_output=self.structured_output,
        )
        trace.record(config.id, execution)
        self._phase_done(config.id)
        return execution.result

    async def _run_analyses(self, seed: str, trace: PhaseTraceLog) -> list[Any]:
        """Run meta, retrieval and derivation together; one failure cancels the rest."""
        tasks = [
            asyncio.create_task(self._run_analysis(config, seed, trace))
            for config in (self.config.meta, self.config.retrieval, self.config.derivation)
        ]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_rewriter(self, writer_result: dict[str, Any], trace: PhaseTraceLog) -> str:
        logger.info("Rewriter phase enabled, refining answer")
        rewriter = self.config.rewriter
        execution = await execute_phase(
            self.client,
            rewriter,
            build_rewriter_prompt(writer_result.get("query"), writer_result.get("reasoning")),
            cancel=self.cancel,
            generation_params=self.generation_params,
            structured_output=True,
            sink=self.sink,
        )
        trace.record(DeepPhase.REWRITER, execution)
        self._phase_done(DeepPhase.REWRITER)

        answer = extract_rewritten_answer(execution.result)
        if answer:
            logger.info(f"Rewriter refined the answer: {answer[:50]}...")
        else:
            logger.warning("Rewriter returned empty or invalid format, keeping original answer")
        return answer

    def _deep_metadata(self) -> dict[str, str]:
        metadata = {
            DeepPhase.META.value: model_label(self.config.meta),
            DeepPhase.RETRIEVAL.value: model_label(self.config.retrieval),
            DeepPhase.DERIVATION.value: model_label(self.config.derivation),
            DeepPhase.WRITER.value: model_label(self.config.writer),
        }
        if self._rewriter_enabled():
            metadata[DeepPhase.REWRITER.value] = model_label(self.config.rewriter)
        return metadata

    async def run(
        self,
        seed: str,
        expected_answer: Optional[str] = None,
        original_query: Optional[str] = None,
    ) -> SynthLogItem:
        """
        Generate one reasoning example from a seed.

        Args:
            seed: Source text the analyses read
            expected_answer: Known answer, used when the writer schema has no answer field
            original_query: Clean query for the record; defaults to the seed

        Returns:
            SynthLogItem, flagged as an error if any phase failed
        """
        started = time.monotonic()
        clean_query = original_query or seed
        trace = PhaseTraceLog()

        logger.info(f"Starting deep reasoning orchestration: {seed[:100]}")

        try:
            meta, retrieval, derivation = await self._run_analyses(seed, trace)

            if self.cancel is not None:
                self.cancel.raise_if_cancelled()

            writer = await execute_phase(
                self.client,
                self.config.writer,
                build_writer_prompt(seed, expected_answer, meta, retrieval, derivation),
                cancel=self.cancel,
                generation_params=self.generation_params,
                structured_output=True,
                sink=self.sink,
            )
            trace.record(DeepPhase.WRITER, writer)
            self._phase_done(DeepPhase.WRITER)

            writer_result = writer.result if isinstance(writer.result, dict) else {}
            if not writer_result.get("reasoning"):
                raise MissingFieldsError(["reasoning"], partial=writer.result)
            writer_result = dict(writer_result)

            rewritten = ""
            if self._rewriter_enabled():
                if self.cancel is not None:
                    self.cancel.raise_if_cancelled()
                rewritten = await self._run_rewriter(writer_result, trace)
                if rewritten:
                    writer_result["answer"] = rewritten

            writer_schema = self.config.writer.prompt_schema or default_schema(DeepPhase.WRITER)
            if "answer" in writer_schema.field_names:
                if not writer_result.get("answer"):
                    raise MissingFieldsError(["answer"], partial=writer_result)
                final_answer = str(writer_result["answer"])
            else:
                final_answer = rewritten or expected_answer or ""

            logger.info(f"Deep reasoning orchestration complete in {int((time.monotonic() - started) * 1000)}ms")

            return SynthLogItem(
                seed_preview=clean_query[:SEED_PREVIEW_CHARS] + "...",
                full_seed=clean_query,
                query=clean_query.strip(),
                reasoning=str(writer_result["reasoning"]),
                answer=final_answer,
                duration=int((time.monotonic() - started) * 1000),
                model_used=f"DEEP: {self.config.writer.provider.model}",
                provider=self.config.writer.provider.provider.value,
                deep_metadata=self._deep_metadata(),
                deep_trace=trace.as_dict(),
            )

        except Exception as e:
            logger.error(f"Orchestration fatal error: {e}")
            return SynthLogItem(
                seed_preview=seed[:ERROR_SEED_PREVIEW_CHARS],
                full_seed=seed,
                query="ERROR",
                answer="Orchestration Failed",
                duration=int((time.monotonic() - started) * 1000),
                model_used="DEEP ENGINE",
                is_error=True,
                status=LogItemStatus.ERROR,
                error=str(e) or "Unknown error during deep reasoning",
                deep_trace=trace.as_dict(),
            )
