"""
Telegram Webhook Handler for dockbot.

Receives control-bot updates and hands them to the CommandDispatcher.

Uses the Transport Pattern for platform-agnostic message handling:
- TelegramTransport normalizes incoming updates into input frames
- CommandDispatcher replies via the transport registry

Handling runs in a background task so Telegram gets its 200 immediately;
builds can take minutes.
"""
from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request

from dockbot.pipeline import PipelineContext
from dockbot.pipeline.transports import TransportNotFoundError, get_transport

if TYPE_CHECKING:
    from dockbot.pipeline.frames import Frame

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


async def _handle_update(frame: "Frame", channel_id: str) -> None:
    """
    Background task running one update through the dispatcher.

    The dispatcher replies on its own; nothing is returned to Telegram.
    """
    try:
        from dockbot.app.dependencies import get_dispatcher

        dispatcher = get_dispatcher()
        context = PipelineContext(
            conversation_id=getattr(frame, "conversation_id", ""),
            channel_id=channel_id,
        )
        confirmation = await dispatcher.handle(frame, context)

        if confirmation is not None and not confirmation.success:
            logger.warning(
                f"Reply to {confirmation.recipient} not delivered: {confirmation.error}"
            )

    except Exception as e:
        logger.error(f"Update handling error: {e}", exc_info=True)


def _secret_matches(received: Optional[str]) -> bool:
    from dockbot.app.dependencies import get_settings

    expected = get_settings().webhook_secret.get_secret_value()
    if not expected:
        return True
    return hmac.compare_digest((received or "").encode(), expected.encode())


@router.post(
    "/telegram",
    summary="Receive Telegram Bot API update",
    responses={
        200: {"description": "Update received and queued"},
        403: {"description": "Secret token mismatch"},
    },
)
async def receive_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
) -> Dict[str, str]:
    """
    Receive and queue an incoming Telegram update.

    1. Verifies the secret token header when one is configured
    2. Uses TelegramTransport to normalize the update
    3. Queues dispatcher handling
    4. Returns immediate acknowledgment

    Updates that carry no usable message are acknowledged and dropped.
    """
    if not _secret_matches(x_telegram_bot_api_secret_token):
        logger.warning("Telegram webhook rejected: secret token mismatch")
        raise HTTPException(status_code=403, detail="invalid secret token")

    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning("Telegram webhook with non-JSON body")
        return {"status": "failed", "message": "invalid payload"}

    if not isinstance(payload, dict):
        return {"status": "failed", "message": "invalid payload"}

    try:
        transport = get_transport("telegram")
    except TransportNotFoundError as e:
        logger.error(f"Telegram transport not registered: {e}")
        return {"status": "failed", "message": "transport unavailable"}

    try:
        frame = await transport.normalize_request(request, payload)
    except ValueError as e:
        logger.warning(f"Invalid Telegram update: {e}")
        return {"status": "failed", "message": str(e)}

    if frame is None:
        return {"status": "success", "message": "ignored"}

    logger.info(
        f"Telegram update {payload.get('update_id')}: {frame.frame_type} "
        f"in conversation {getattr(frame, 'conversation_id', '')}"
    )

    background_tasks.add_task(
        _handle_update,
        frame=frame,
        channel_id=transport.channel_id,
    )

    return {"status": "success", "message": "queued"}
