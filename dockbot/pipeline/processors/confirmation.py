"""
Confirmation Processor for dockbot.

Sends replies back to users via the appropriate transport.
Transport-agnostic - uses the transport registry to determine how to send.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..processor import Processor

if TYPE_CHECKING:
    from ..context import PipelineContext
    from ..frames import Frame
    from ..transports import SendResult

logger = logging.getLogger(__name__)


class ConfirmationProcessor(Processor):
    """
    Sends a UserResponseFrame to its conversation.

    Input: UserResponseFrame
    Output: ConfirmationFrame with send result

    Uses ctx.channel_id to look up the transport adapter. The
    dispatcher renders deployment and error replies into
    UserResponseFrames before they get here; any other frame is
    passed through unchanged.
    """

    @property
    def name(self) -> str:
        return "confirmation"

    async def process(
        self,
        frame: Frame,
        ctx: PipelineContext,
    ) -> Frame | None:
        from ..frames import ConfirmationFrame, UserResponseFrame

        if not isinstance(frame, UserResponseFrame):
            return frame

        message = frame.message
        recipient = frame.conversation_id or ctx.conversation_id
        if not recipient:
            logger.warning("No recipient for reply")
            return ConfirmationFrame(
                recipient="",
                message=message,
                success=False,
                error="No recipient",
                source_frame_id=frame.id,
            )

        result = await self._send_message(ctx, recipient, message)

        if result.success:
            logger.info(f"Reply sent to {recipient}, id={result.message_id}")
        else:
            logger.error(f"Reply to {recipient} failed: {result.error}")

        return ConfirmationFrame(
            recipient=recipient,
            message=message,
            message_id=result.message_id,
            success=result.success,
            error=result.error,
            source_frame_id=frame.id,
        )

    async def _send_message(
        self,
        ctx: PipelineContext,
        recipient: str,
        message: str,
    ) -> SendResult:
        from ..transports import SendResult, TransportNotFoundError, get_transport

        if not ctx.channel_id:
            logger.error("No transport configured: context has no channel_id")
            return SendResult(success=False, error="No transport configured")

        try:
            transport = get_transport(ctx.channel_id)
        except TransportNotFoundError as e:
            logger.error(f"Transport not found: {e}")
            return SendResult(success=False, error=str(e))

        return await transport.send_message(recipient, message)
