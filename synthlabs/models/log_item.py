"""Output record produced by the pipelines."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .conversation import ConversationTurn
from .phase import PhaseTrace


class LogItemStatus(str, Enum):
    """Outcome of a pipeline run."""
    DONE = "done"
    ERROR = "error"


class SynthLogItem(BaseModel):
    """One generated training example, or a record of why generation failed."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    seed_preview: str = Field(..., description="Short preview of the seed text")
    full_seed: str = Field(..., description="Seed text the pipeline started from")
    query: str
    reasoning: str = ""
    answer: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration: Optional[int] = Field(None, description="Wall time in milliseconds")
    model_used: str = Field(..., description="Label of the model that produced the answer")
    provider: Optional[str] = None

    # Outcome
    is_error: bool = False
    status: LogItemStatus = LogItemStatus.DONE
    error: Optional[str] = None

    # Deep pipeline diagnostics
    deep_metadata: Optional[dict[str, str]] = Field(None, description="Phase name -> model label")
    deep_trace: dict[str, PhaseTrace] = Field(default_factory=dict)

    # Multi-turn
    is_multi_turn: bool = False
    messages: Optional[list[ConversationTurn]] = None
    messages_truncated: bool = False
    token_count: Optional[int] = Field(None, description="Rough estimate, ~4 chars per token")
