"""Core engine: provider calls, stream decoding, recovery and pipelines."""

from .config import Settings, get_settings
from .errors import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    MissingFieldsError,
    OperationCancelledError,
    ProviderHTTPError,
    SynthLabsError,
)

__all__ = [
    "Settings",
    "get_settings",
    "ConfigurationError",
    "EmptyResponseError",
    "MalformedResponseError",
    "MissingFieldsError",
    "OperationCancelledError",
    "ProviderHTTPError",
    "SynthLabsError",
]
