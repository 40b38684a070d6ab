"""API routes for completions and generation pipelines."""

import asyncio
import json
import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..core.cancellation import CancellationToken
from ..core.client import ProviderClient
from ..core.conversation_rewrite import ConversationRewriter
from ..core.errors import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    MissingFieldsError,
    OperationCancelledError,
    ProviderHTTPError,
)
from ..core.multi_turn import MultiTurnOrchestrator
from ..core.orchestrator import DeepOrchestrator
from ..models import (
    CanonicalChunk,
    CompletionRequest,
    CompletionResult,
    ConversationTurn,
    DeepConfig,
    GenerationParams,
    PhaseConfig,
    RewriteMode,
    SynthLogItem,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# How often the SSE loop checks for a client disconnect, in seconds
DISCONNECT_POLL_INTERVAL = 0.25

PROVIDER_FAILURES = (ProviderHTTPError, EmptyResponseError, MalformedResponseError, httpx.TransportError)
ENGINE_ERRORS = (ConfigurationError, MissingFieldsError, OperationCancelledError) + PROVIDER_FAILURES


class DeepRunRequest(BaseModel):
    """Input for one deep reasoning run."""
    seed: str = Field(..., min_length=1)
    expected_answer: Optional[str] = None
    original_query: Optional[str] = None
    config: DeepConfig
    generation_params: Optional[GenerationParams] = None
    structured_output: bool = True


class MultiTurnRunRequest(BaseModel):
    """Input for one multi-turn conversation."""
    initial_input: str = Field(..., min_length=1)
    initial_query: Optional[str] = None
    initial_response: Optional[str] = None
    initial_reasoning: Optional[str] = None
    asker: PhaseConfig
    responder: PhaseConfig
    follow_up_count: int = Field(default=1, ge=0)
    generation_params: Optional[GenerationParams] = None
    structured_output: bool = True


class ConversationRewriteRequest(BaseModel):
    """Input for rewriting the reasoning traces of an existing conversation."""
    messages: list[ConversationTurn] = Field(..., min_length=1)
    config: DeepConfig
    mode: RewriteMode = RewriteMode.DEEP
    converter: Optional[PhaseConfig] = None
    max_traces: Optional[int] = Field(default=None, ge=0)
    generation_params: Optional[GenerationParams] = None
    structured_output: bool = True


def get_provider_client(request: Request) -> ProviderClient:
    """The provider client owned by the application lifespan."""
    return request.app.state.provider_client


def _http_error(error: Exception) -> HTTPException:
    """Map an engine error to the HTTP status the API reports it with."""
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, MissingFieldsError):
        return HTTPException(status_code=422, detail={
            "message": str(error),
            "missing_fields": error.missing_fields,
            "partial": error.partial,
        })
    if isinstance(error, OperationCancelledError):
        return HTTPException(status_code=499, detail=str(error))
    return HTTPException(status_code=502, detail=str(error))


def _event(event_type: str, data: dict[str, Any]) -> str:
    """Create a Server-Sent Event string."""
    return f"data: {json.dumps({'type': event_type, **data}, default=str)}\n\n"


def _chunk_event(chunk: CanonicalChunk) -> str:
    data: dict[str, Any] = {
        "text_delta": chunk.text_delta,
        "accumulated_text": chunk.accumulated_text,
        "phase": chunk.phase,
    }
    if chunk.reasoning_delta is not None:
        data["reasoning_delta"] = chunk.reasoning_delta
    if chunk.usage is not None:
        data["usage"] = {
            "prompt_tokens": chunk.usage.prompt_tokens,
            "completion_tokens": chunk.usage.completion_tokens,
            "reasoning_tokens": chunk.usage.reasoning_tokens,
            "total_tokens": chunk.usage.total_tokens,
        }
    return _event("chunk", data)


@router.post("/ai/generate", response_model=CompletionResult)
async def generate(
    body: CompletionRequest,
    client: ProviderClient = Depends(get_provider_client),
) -> CompletionResult:
    """
    Run one completion call and return its result.

    Raises:
        HTTPException: 400 for configuration errors, 422 for missing fields,
            502 when the provider fails
    """
    try:
        return await client.complete(body.model_copy(update={"stream": False}))
    except ENGINE_ERRORS as e:
        logger.error(f"Generation failed for {body.provider.label}: {e}")
        raise _http_error(e)


@router.post("/ai/generate/stream")
async def generate_stream(
    request: Request,
    body: CompletionRequest,
    client: ProviderClient = Depends(get_provider_client),
):
    """
    Run one completion call with streaming output.

    Returns a Server-Sent Events stream of `chunk` events, then one `done`
    event with the result or one `error` event. A client disconnect cancels
    the provider call.
    """
    cancel = CancellationToken()
    chunk_queue: asyncio.Queue = asyncio.Queue()
    DONE_SENTINEL = object()

    async def run_completion() -> CompletionResult:
        """Run the call and put chunks in the queue."""
        def on_chunk(chunk: CanonicalChunk) -> None:
            chunk_queue.put_nowait(chunk)

        try:
            return await client.complete(
                body.model_copy(update={"stream": True}),
                sink=on_chunk,
                cancel=cancel,
            )
        finally:
            chunk_queue.put_nowait(DONE_SENTINEL)

    async def event_generator():
        completion_task = asyncio.create_task(run_completion())
        try:
            while True:
                try:
                    item = await asyncio.wait_for(chunk_queue.get(), timeout=DISCONNECT_POLL_INTERVAL)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        logger.info(f"Client disconnected, cancelling {body.provider.label}")
                        cancel.cancel("Client disconnected")
                    continue
                if item is DONE_SENTINEL:
                    break
                yield _chunk_event(item)

            result = await completion_task
            yield _event("done", {"result": result.model_dump(mode="json")})

        except Exception as e:
            logger.error(f"Streaming error: {e}")
            error = _http_error(e)
            yield _event("error", {"status_code": error.status_code, "message": str(e)})
        finally:
            if not completion_task.done():
                cancel.cancel("Stream closed")
                completion_task.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )


@router.post("/deep/run", response_model=SynthLogItem)
async def run_deep(
    body: DeepRunRequest,
    client: ProviderClient = Depends(get_provider_client),
) -> SynthLogItem:
    """Run the deep reasoning pipeline. Pipeline failures come back as error records."""
    orchestrator = DeepOrchestrator(
        client,
        body.config,
        generation_params=body.generation_params,
        structured_output=body.structured_output,
    )
    return await orchestrator.run(body.seed, body.expected_answer, body.original_query)


@router.post("/multi-turn/run", response_model=SynthLogItem)
async def run_multi_turn(
    body: MultiTurnRunRequest,
    client: ProviderClient = Depends(get_provider_client),
) -> SynthLogItem:
    """Generate a multi-turn conversation. Failures come back as error records."""
    orchestrator = MultiTurnOrchestrator(
        client,
        asker=body.asker,
        responder=body.responder,
        follow_up_count=body.follow_up_count,
        generation_params=body.generation_params,
        structured_output=body.structured_output,
    )
    return await orchestrator.run(
        body.initial_input,
        initial_query=body.initial_query,
        initial_response=body.initial_response,
        initial_reasoning=body.initial_reasoning,
    )


@router.post("/conversation/rewrite", response_model=SynthLogItem)
async def rewrite_conversation(
    body: ConversationRewriteRequest,
    client: ProviderClient = Depends(get_provider_client),
) -> SynthLogItem:
    """Rewrite each assistant message's reasoning. Failures come back as error records."""
    rewriter = ConversationRewriter(
        client,
        body.config,
        mode=body.mode,
        converter=body.converter,
        max_traces=body.max_traces,
        generation_params=body.generation_params,
        structured_output=body.structured_output,
    )
    return await rewriter.run(body.messages)
