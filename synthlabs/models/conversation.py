"""Conversation models for the multi-turn loop."""

from enum import Enum
from typing import Iterator, Optional
from pydantic import BaseModel, ConfigDict, Field


class TurnRole(str, Enum):
    """Who produced a turn. The asker speaks as the user."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class RewriteMode(str, Enum):
    """How a conversation rewrite regenerates each reasoning trace."""
    DEEP = "deep"        # Full deep pipeline per message
    REGULAR = "regular"  # One converter call per message


class ConversationTurn(BaseModel):
    """A single message in a generated conversation."""
    role: TurnRole
    content: str
    reasoning: Optional[str] = Field(default=None, description="Reasoning without <think> tags")

    model_config = ConfigDict(frozen=True)


class Transcript:
    """Append-only sequence of turns."""

    def __init__(self, turns: Optional[list[ConversationTurn]] = None):
        self._turns: tuple[ConversationTurn, ...] = tuple(turns or ())

    def append(self, turn: ConversationTurn) -> None:
        self._turns = self._turns + (turn,)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self._turns)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return self._turns

    def render(self) -> str:
        """Plain-text transcript fed to the asker and responder."""
        return "\n\n".join(f"[{t.role.value.upper()}]: {t.content}" for t in self._turns)

    def bounded(self, max_turns: int) -> tuple[list[ConversationTurn], bool]:
        """
        Return at most `max_turns` turns, dropping the oldest.

        Returns:
            Tuple of (turns to store, whether anything was dropped)
        """
        if len(self._turns) > max_turns:
            return list(self._turns[-max_turns:]), True
        return list(self._turns), False
