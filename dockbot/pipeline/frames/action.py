"""
Action frames for the dockbot pipeline.

These frames represent replies to the user and their delivery results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .base import Frame


@dataclass(frozen=True, kw_only=True, slots=True)
class UserResponseFrame(Frame):
    """
    Reply to be sent back to the conversation that triggered it.

    Transport-agnostic: ConfirmationProcessor decides how to deliver it
    based on the context's channel.

    Attributes:
        message: The message content to send
        conversation_id: Conversation to reply in
        success: Whether the operation that triggered this reply succeeded
        error: Internal error classification if success=False (never sent)
    """

    message: str = ""
    conversation_id: str = ""
    success: bool = True
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update(
            {
                "message": self.message[:100] + "..." if len(self.message) > 100 else self.message,
                "conversation_id": self.conversation_id,
                "success": self.success,
                "error": self.error,
            }
        )
        return base


@dataclass(frozen=True, kw_only=True, slots=True)
class ConfirmationFrame(Frame):
    """
    Result of delivering a reply through a transport.

    Attributes:
        recipient: Conversation the reply was sent to
        message: Reply content
        message_id: Transport message id (after successful send)
        success: Whether the send succeeded
        error: Error message if send failed
    """

    recipient: str = ""
    message: str = ""
    message_id: str | None = None
    success: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update(
            {
                "recipient": self.recipient,
                "message": self.message[:100] + "..." if len(self.message) > 100 else self.message,
                "message_id": self.message_id,
                "success": self.success,
                "error": self.error,
            }
        )
        return base
