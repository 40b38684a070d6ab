"""Completion results."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from .chunk import UsageSummary


class RecoveryStrategy(str, Enum):
    """Which step of JSON recovery produced the value. Diagnostics only."""
    FENCED_BLOCK = "fenced_block"
    DIRECT = "direct"
    EXTRACTED_SPAN = "extracted_span"
    JSON_LINES = "json_lines"
    REPAIRED = "repaired"
    RAW_TEXT = "raw_text"


class CompletionResult(BaseModel):
    """Outcome of one completion call."""

    value: Any = Field(..., description="Parsed object when structured output was requested, else the raw text")
    raw_text: str = Field(..., description="Text exactly as the provider produced it")
    usage: Optional[UsageSummary] = None
    recovery: Optional[RecoveryStrategy] = None
    cancelled: bool = Field(default=False, description="The stream sink stopped reading early")
