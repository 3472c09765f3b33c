"""
Input frames for the dockbot pipeline.

These frames represent inbound messages, normalized from transport
payloads (Telegram updates) by a TransportAdapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .base import Frame


@dataclass(frozen=True, kw_only=True, slots=True)
class TextInputFrame(Frame):
    """
    Frame containing free text (not a command).

    In the submission flow free text is a credential submission.

    Attributes:
        text: The raw text content
        conversation_id: Conversation (chat) the message arrived in
        sender_name: Display name or username of the sender
        channel_id: Transport channel identifier (e.g., "telegram")
    """

    text: str = ""
    conversation_id: str = ""
    sender_name: str = ""
    channel_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        # Text may be a secret; only its size is logged
        base.update({
            "text_length": len(self.text),
            "conversation_id": self.conversation_id,
            "channel_id": self.channel_id,
        })
        return base


@dataclass(frozen=True, kw_only=True, slots=True)
class CommandFrame(Frame):
    """
    Frame containing a slash command such as "/stop <token>".

    Attributes:
        command: Lowercase command name without slash or @botname
        args: Remainder of the message after the command, stripped
    """

    command: str = ""
    args: str = ""
    conversation_id: str = ""
    sender_name: str = ""
    channel_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update({
            "command": self.command,
            "has_args": bool(self.args),
            "conversation_id": self.conversation_id,
            "channel_id": self.channel_id,
        })
        return base


@dataclass(frozen=True, kw_only=True, slots=True)
class DocumentInputFrame(Frame):
    """
    Frame referencing a file sent by the user.

    The file itself stays on the transport until the artifact download
    stage fetches it.

    Attributes:
        file_id: Transport-specific file reference
        file_name: Original file name
        mime_type: Declared content kind
        file_size: Declared size in bytes (0 if unknown)
        credential: Validated credential the file belongs to; set by the
            dispatcher before the deploy pipeline runs
    """

    file_id: str = ""
    file_name: str = ""
    mime_type: str = ""
    file_size: int = 0
    credential: str = ""
    conversation_id: str = ""
    sender_name: str = ""
    channel_id: str = ""

    def for_credential(self, credential: str) -> DocumentInputFrame:
        """Bind the document to the credential it should deploy under."""
        return self.derive(credential=credential)

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update({
            "file_id": self.file_id,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "has_credential": bool(self.credential),
            "conversation_id": self.conversation_id,
            "channel_id": self.channel_id,
        })
        return base
