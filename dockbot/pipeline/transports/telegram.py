"""
Telegram Transport Adapter for dockbot.

Handles the control bot's conversations over the Telegram Bot API.
Implements the TransportAdapter protocol for bidirectional communication.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from dockbot.deploy.errors import TransferError

from .protocol import SendResult

if TYPE_CHECKING:
    from starlette.requests import Request

    from ..frames import Frame

logger = logging.getLogger(__name__)


class TelegramTransport:
    """
    Telegram transport adapter.

    Handles:
    - Ingress: Parsing webhook updates into input frames
    - Egress: sendMessage
    - Files: getFile + file download URL

    Example:
        transport = TelegramTransport(bot_token="123:ABC...")
        register_transport(transport)

        frame = await transport.normalize_request(request, update)
        result = await transport.send_message("42", "Hello!")
    """

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Telegram transport.

        Args:
            bot_token: Token of the control bot
            api_base: Bot API base URL
            timeout_seconds: Timeout for API calls
            client: Optional shared HTTP client
        """
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @property
    def channel_id(self) -> str:
        """Unique identifier for the Telegram channel."""
        return "telegram"

    def _method_url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._bot_token}/{method}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def normalize_request(
        self,
        request: "Request | None",
        payload: dict[str, Any] | None = None,
    ) -> "Frame | None":
        """
        Convert a Telegram update to an input frame.

        Telegram sends JSON updates with a "message" object containing:
        - chat.id: Conversation identifier
        - from.username / from.first_name: Sender
        - text: Message text (commands start with "/")
        - document: file_id, file_name, mime_type, file_size

        Returns:
            CommandFrame, TextInputFrame or DocumentInputFrame;
            None for updates without a usable message

        Raises:
            ValueError: If the message has no chat id
        """
        from ..frames import CommandFrame, DocumentInputFrame, TextInputFrame

        if payload is None:
            if request is None:
                raise ValueError("Either request or payload is required")
            payload = await request.json()

        message = payload.get("message")
        if not isinstance(message, dict):
            logger.debug(f"Ignoring update without message: keys={list(payload.keys())}")
            return None

        chat_id = (message.get("chat") or {}).get("id")
        if chat_id is None:
            raise ValueError("Telegram message has no chat id")
        conversation_id = str(chat_id)

        sender = message.get("from") or {}
        sender_name = str(sender.get("username") or sender.get("first_name") or "")
        metadata = {"update_id": payload.get("update_id"), "message_id": message.get("message_id")}

        document = message.get("document")
        if isinstance(document, dict):
            return DocumentInputFrame(
                file_id=str(document.get("file_id", "")),
                file_name=str(document.get("file_name", "")),
                mime_type=str(document.get("mime_type", "")),
                file_size=int(document.get("file_size") or 0),
                conversation_id=conversation_id,
                sender_name=sender_name,
                channel_id=self.channel_id,
                metadata=metadata,
            )

        text = str(message.get("text") or "").strip()
        if not text:
            logger.debug(f"Ignoring message without text or document in chat {conversation_id}")
            return None

        if text.startswith("/"):
            command, args = parse_command(text)
            return CommandFrame(
                command=command,
                args=args,
                conversation_id=conversation_id,
                sender_name=sender_name,
                channel_id=self.channel_id,
                metadata=metadata,
            )

        return TextInputFrame(
            text=text,
            conversation_id=conversation_id,
            sender_name=sender_name,
            channel_id=self.channel_id,
            metadata=metadata,
        )

    async def send_message(
        self,
        recipient: str,
        message: str,
    ) -> SendResult:
        """
        Send a text message to a chat.

        Returns:
            SendResult with success status and message id
        """
        try:
            client = await self._get_client()
            response = await client.post(
                self._method_url("sendMessage"),
                json={"chat_id": recipient, "text": message},
            )
            body = response.json()

            if response.status_code == 200 and body.get("ok"):
                message_id = str((body.get("result") or {}).get("message_id", ""))
                logger.info(f"Telegram message sent: chat={recipient}, id={message_id}")
                return SendResult(success=True, message_id=message_id or None)

            error = body.get("description", f"HTTP {response.status_code}")
            logger.error(f"Telegram send failed: {error}")
            return SendResult(success=False, error=error)

        except httpx.TimeoutException:
            logger.error("Telegram sendMessage timed out")
            return SendResult(success=False, error="Request timed out")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram send error: {e}", exc_info=True)
            return SendResult(success=False, error=str(e))

    async def resolve_file_url(self, file_id: str) -> str:
        """
        Resolve a file_id to its download URL via getFile.

        Raises:
            TransferError: If Telegram does not return a file path
        """
        try:
            client = await self._get_client()
            response = await client.get(self._method_url("getFile"), params={"file_id": file_id})
            body = response.json()
        except httpx.HTTPError as e:
            raise TransferError(f"Failed to get file link: {e}") from e
        except ValueError as e:
            raise TransferError("Failed to get file link: invalid response body") from e

        file_path = (body.get("result") or {}).get("file_path") if body.get("ok") else None
        if not file_path:
            raise TransferError(
                f"Failed to get file link: {body.get('description', 'no file_path')}"
            )
        return f"{self._api_base}/file/bot{self._bot_token}/{file_path}"

    async def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        """Point the control bot's updates at this service."""
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message"]}
        if secret_token:
            payload["secret_token"] = secret_token

        client = await self._get_client()
        response = await client.post(self._method_url("setWebhook"), json=payload)
        ok = response.status_code == 200 and response.json().get("ok") is True
        if ok:
            logger.info(f"Telegram webhook set to {url}")
        else:
            logger.error(f"Telegram setWebhook failed: HTTP {response.status_code}")
        return ok

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def parse_command(text: str) -> tuple[str, str]:
    """
    Split "/stop@ControlBot 123:ABC" into ("stop", "123:ABC").
    """
    head, _, rest = text.strip().partition(" ")
    command = head.lstrip("/").split("@", 1)[0].lower()
    return command, rest.strip()
