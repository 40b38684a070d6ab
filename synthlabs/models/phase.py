"""Pipeline phase configuration and trace models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from .provider import GenerationParams, ProviderConfig
from .request import PromptSchema


class DeepPhase(str, Enum):
    """Named steps of the reasoning pipelines."""
    META = "meta"              # Intent and traps
    RETRIEVAL = "retrieval"    # Facts and constraints
    DERIVATION = "derivation"  # Logical steps
    WRITER = "writer"          # Synthesis of the three analyses
    REWRITER = "rewriter"      # Optional answer refinement
    RESPONDER = "responder"    # Multi-turn assistant
    USER_AGENT = "user_agent"  # Multi-turn follow-up asker
    CONVERTER = "converter"    # Conversation rewrite, regular mode


class PhaseConfig(BaseModel):
    """Configuration for a single pipeline phase."""

    id: DeepPhase = Field(..., description="Which phase this configures")
    enabled: bool = Field(default=True, description="Only consulted for optional phases")
    provider: ProviderConfig
    prompt_schema: Optional[PromptSchema] = Field(
        default=None,
        description="Overrides the built-in schema for this phase",
    )
    selected_fields: Optional[list[str]] = Field(
        default=None,
        description="Output fields to request (default: all non-optional fields)",
    )
    structured_output: bool = True
    generation_params: Optional[GenerationParams] = None


class DeepConfig(BaseModel):
    """The five phases of the deep reasoning pipeline."""
    meta: PhaseConfig
    retrieval: PhaseConfig
    derivation: PhaseConfig
    writer: PhaseConfig
    rewriter: Optional[PhaseConfig] = None


class PhaseTrace(BaseModel):
    """Diagnostic record of one phase invocation. Written once."""

    model: str
    input: str = Field(..., description="Truncated input preview")
    output: str = Field(..., description="Truncated output preview")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration: int = Field(..., description="Wall time in milliseconds")

    model_config = ConfigDict(frozen=True)


class PhaseExecution(BaseModel):
    """Raw outcome of executing one phase."""
    result: Any = None
    model: str
    input: str
    duration: int
    timestamp: datetime
