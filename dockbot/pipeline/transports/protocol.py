"""
Transport Adapter Protocol for dockbot.

Defines the interface for bidirectional message transport adapters.
Adapters normalize incoming webhook requests, send outgoing messages,
and resolve file references to downloadable URLs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from starlette.requests import Request

    from ..frames import Frame


@dataclass(frozen=True, slots=True)
class SendResult:
    """
    Result of sending a message via transport.

    Attributes:
        success: Whether the message was sent successfully
        message_id: Platform-specific message identifier (if available)
        error: Error message if sending failed
    """

    success: bool
    message_id: str | None = None
    error: str | None = None


@runtime_checkable
class TransportAdapter(Protocol):
    """
    Bidirectional transport adapter for message channels.

    Implementations handle:
    - Ingress: Normalizing webhook payloads to input frames
      (TextInputFrame, CommandFrame, DocumentInputFrame)
    - Egress: Sending replies back to a conversation
    - Files: Turning a file reference into a URL the artifact
      download stage can stream from

    Example usage:
        # Register transport at app startup
        register_transport(TelegramTransport(bot_token="..."))

        # In webhook handler
        transport = get_transport("telegram")
        frame = await transport.normalize_request(request, payload)

        # In confirmation processor
        transport = get_transport(ctx.channel_id)
        result = await transport.send_message(chat_id, message)
    """

    @property
    def channel_id(self) -> str:
        """
        Unique identifier for this transport channel.

        Examples: "telegram"
        """
        ...

    async def normalize_request(
        self,
        request: Request | None,
        payload: dict[str, Any] | None = None,
    ) -> Frame | None:
        """
        Convert an incoming webhook request to an input frame.

        Args:
            request: The incoming HTTP request
            payload: Pre-parsed body (optional)

        Returns:
            Input frame, or None if the update carries nothing to handle

        Raises:
            ValueError: If the payload is malformed
        """
        ...

    async def send_message(
        self,
        recipient: str,
        message: str,
    ) -> SendResult:
        """
        Send a message to a conversation.

        Returns:
            SendResult with success status and message ID
        """
        ...

    async def resolve_file_url(self, file_id: str) -> str:
        """
        Resolve a transport file reference to a download URL.

        Raises:
            TransferError: If the reference cannot be resolved
        """
        ...
