"""
dockbot Transport Layer.

Bidirectional transport adapters for message channels.

Core Components:
- TransportAdapter: Protocol defining the adapter interface
- SendResult: Result of sending a message
- TransportRegistry: Global registry for adapter lookup

Built-in Transports:
- TelegramTransport: Telegram Bot API

Usage:
    # At app startup
    from dockbot.pipeline.transports import TelegramTransport, register_transport

    register_transport(TelegramTransport(bot_token=settings.telegram_bot_token))

    # In webhook handler
    transport = get_transport("telegram")
    frame = await transport.normalize_request(request, update)

    # When replying
    transport = get_transport(ctx.channel_id)
    result = await transport.send_message(conversation_id, message)
"""

from .protocol import SendResult, TransportAdapter
from .registry import (
    TransportNotFoundError,
    TransportRegistry,
    get_transport,
    get_transport_registry,
    register_transport,
    reset_transport_registry,
)
from .telegram import TelegramTransport, parse_command

__all__ = [
    "SendResult",
    # Protocol
    "TransportAdapter",
    "TransportNotFoundError",
    # Registry
    "TransportRegistry",
    # Implementations
    "TelegramTransport",
    "parse_command",
    "get_transport",
    "get_transport_registry",
    "register_transport",
    "reset_transport_registry",
]
