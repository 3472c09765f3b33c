"""
Conversation state for the submission flow.

A conversation is either idle or waiting for the bot's source file
after a valid token was supplied. Absence from the store means idle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .errors import mask_credential

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ConversationPhase(str, Enum):
    """Step of the submission flow a conversation is in."""

    IDLE = "idle"
    AWAITING_ARTIFACT = "awaiting_artifact"


@dataclass(frozen=True, slots=True)
class ConversationState:
    """
    Snapshot of one conversation's position in the flow.

    pending_credential is set only while AWAITING_ARTIFACT.
    """

    conversation_id: str
    phase: ConversationPhase = ConversationPhase.IDLE
    pending_credential: str | None = None
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def is_idle(self) -> bool:
        return self.phase is ConversationPhase.IDLE

    @property
    def awaiting_artifact(self) -> bool:
        return self.phase is ConversationPhase.AWAITING_ARTIFACT


class ConversationStore:
    """
    Per-conversation state store.

    Each method is a single synchronous dict operation, so it is atomic
    with respect to other coroutines on the event loop. Ordering of
    operations for one conversation is enforced by the dispatcher's
    per-conversation lock, not here.
    """

    def __init__(self) -> None:
        self._states: dict[str, ConversationState] = {}

    def get(self, conversation_id: str) -> ConversationState:
        """Current state; an unknown conversation is IDLE."""
        state = self._states.get(conversation_id)
        if state is None:
            return ConversationState(conversation_id=conversation_id)
        return state

    def await_artifact(self, conversation_id: str, credential: str) -> ConversationState:
        """Enter AWAITING_ARTIFACT with a validated credential."""
        if not credential:
            raise ValueError("A pending credential is required to await an artifact")
        state = ConversationState(
            conversation_id=conversation_id,
            phase=ConversationPhase.AWAITING_ARTIFACT,
            pending_credential=credential,
        )
        self._states[conversation_id] = state
        logger.debug(
            f"Conversation {conversation_id} awaiting artifact for "
            f"{mask_credential(credential)}"
        )
        return state

    def reset(self, conversation_id: str) -> None:
        """Return a conversation to IDLE."""
        if self._states.pop(conversation_id, None) is not None:
            logger.debug(f"Conversation {conversation_id} reset to idle")

    def __len__(self) -> int:
        return len(self._states)
