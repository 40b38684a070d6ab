"""Error taxonomy for provider calls and pipelines."""

from typing import Any, Optional


class SynthLabsError(RuntimeError):
    """Base class for errors raised by the engine."""


class ConfigurationError(SynthLabsError):
    """No usable endpoint or credentials. Never retried."""


class ProviderHTTPError(SynthLabsError):
    """Provider answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, body: str = ""):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} API Error {status_code}: {body[:500]}")

    @property
    def is_transient(self) -> bool:
        """Rate limits and server-side failures may succeed on retry."""
        return self.status_code == 429 or self.status_code >= 500


class EmptyResponseError(SynthLabsError):
    """Provider returned a 2xx response without any content."""


class MalformedResponseError(SynthLabsError):
    """Provider returned a 2xx response body that is not valid JSON."""


class MissingFieldsError(SynthLabsError):
    """Recovered output lacks fields the caller requires. Never retried."""

    def __init__(self, missing_fields: list[str], partial: Optional[Any] = None):
        self.missing_fields = list(missing_fields)
        self.partial = partial
        super().__init__(f"Missing required fields: {', '.join(self.missing_fields)}")


class OperationCancelledError(SynthLabsError):
    """The caller's cancellation token fired. Never retried."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)
