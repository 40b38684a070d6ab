"""Provider client: one completion call with retries, streaming and recovery."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..models import CompletionRequest, CompletionResult, RequestEnvelope, UsageSummary
from ..providers import build_request, get_adapter
from .cancellation import CancellationToken, guarded
from .config import Settings, get_settings
from .errors import EmptyResponseError, MalformedResponseError, ProviderHTTPError
from .recovery import ensure_fields, recover_json
from .resilience import RetryPolicy, Sleep, call_with_retry
from .streaming import ChunkSink, decode_stream

logger = logging.getLogger(__name__)


class ProviderClient:
    """
    Sends canonical completion requests to any supported provider.

    Owns an httpx.AsyncClient unless one is supplied. Each `complete()` call
    builds the envelope once, runs the request under the retry policy, and
    recovers structured output only after a successful response.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            transport=transport,
            timeout=self.settings.request_timeout,
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def complete(
        self,
        request: CompletionRequest,
        sink: Optional[ChunkSink] = None,
        cancel: Optional[CancellationToken] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> CompletionResult:
        """
        Run one completion call.

        Args:
            request: Canonical request
            sink: Receives streamed chunks when `request.stream` is set
            cancel: Cancellation token raced against every attempt
            policy: Retry policy; defaults to the configured one

        Returns:
            CompletionResult with the raw text, and the recovered object
            when structured output was requested

        Raises:
            ConfigurationError: If the request cannot be addressed
            MissingFieldsError: If selected fields are absent from the output
            OperationCancelledError: If the token fires
            ProviderHTTPError: On a final non-2xx response
        """
        envelope = build_request(request, self.settings)
        policy = policy or RetryPolicy.from_settings(self.settings)
        label = request.provider.label

        async def attempt() -> tuple[str, Optional[UsageSummary], bool]:
            return await guarded(self._send(envelope, request, sink, cancel), cancel)

        text, usage, cancelled = await call_with_retry(
            attempt,
            policy=policy,
            cancel=cancel,
            label=label,
            sleep=self._sleep,
        )

        if not request.structured_output or cancelled:
            return CompletionResult(value=text, raw_text=text, usage=usage, cancelled=cancelled)

        recovered = recover_json(text)
        logger.debug(f"{label}: recovered structured output via {recovered.strategy.value}")
        value = ensure_fields(recovered.value, request.selected_fields)
        return CompletionResult(
            value=value,
            raw_text=text,
            usage=usage,
            recovery=recovered.strategy,
        )

    async def _send(
        self,
        envelope: RequestEnvelope,
        request: CompletionRequest,
        sink: Optional[ChunkSink],
        cancel: Optional[CancellationToken],
    ) -> tuple[str, Optional[UsageSummary], bool]:
        provider = request.provider.provider.value

        if envelope.stream:
            async with self._http.stream(
                "POST", envelope.url, headers=envelope.headers, json=envelope.body
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProviderHTTPError(provider, response.status_code, body)

                outcome = await decode_stream(
                    response.aiter_bytes(),
                    envelope.wire_format,
                    sink=sink,
                    cancel=cancel,
                    phase=request.stream_phase,
                )

            if outcome.interrupted:
                logger.warning(f"{request.provider.label}: stream interrupted, keeping {len(outcome.text)} chars")
            if not outcome.text and not outcome.cancelled:
                raise EmptyResponseError("Streaming returned empty content")
            return outcome.text, outcome.usage, outcome.cancelled

        response = await self._http.post(envelope.url, headers=envelope.headers, json=envelope.body)
        if not response.is_success:
            raise ProviderHTTPError(provider, response.status_code, response.text)

        try:
            data: Any = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{provider} returned a body that is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{provider} returned unexpected JSON: {type(data).__name__}")

        text = get_adapter(envelope.wire_format).extract_text(data, request)
        if not text:
            logger.warning(f"{request.provider.label}: provider returned empty content")
            raise EmptyResponseError("Provider returned empty content")

        return text, UsageSummary.from_payload(data.get("usage")), False
