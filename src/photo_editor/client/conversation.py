"""Append-only chat log with rollback of unanswered prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str

    def to_message_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationState:
    """Chronological list of user and assistant turns for one session.

    A chat exchange appends the user turn optimistically, then either
    appends the assistant reply or calls ``rollback_last_user`` so the log
    never keeps a prompt that went unanswered.
    """

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def append_user(self, text: str) -> ConversationTurn:
        turn = ConversationTurn(role="user", content=text)
        self._turns.append(turn)
        return turn

    def append_assistant(self, text: str) -> ConversationTurn:
        turn = ConversationTurn(role="assistant", content=text)
        self._turns.append(turn)
        return turn

    def rollback_last_user(self) -> bool:
        """Drop the trailing user turn; a no-op (returning False) otherwise."""

        if not self._turns or self._turns[-1].role != "user":
            return False
        removed = self._turns.pop()
        logger.debug("Rolled back unanswered user turn (%d chars)", len(removed.content))
        return True

    def snapshot(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def to_messages(self) -> list[dict[str, str]]:
        return [turn.to_message_dict() for turn in self._turns]

    def clear(self) -> None:
        self._turns.clear()


__all__ = ["ConversationState", "ConversationTurn", "Role"]
