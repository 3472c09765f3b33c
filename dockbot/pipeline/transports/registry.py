"""
Transport lookup for dockbot.

The webhook, the artifact download and the reply step all resolve the
chat transport by the channel_id carried on the pipeline context. One
process-wide registry holds the adapters created at startup.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocol import TransportAdapter

logger = logging.getLogger(__name__)


class TransportNotFoundError(Exception):
    """No adapter is registered for a channel_id."""

    def __init__(self, channel_id: str, available: list[str]):
        self.channel_id = channel_id
        super().__init__(
            f"No transport for channel {channel_id!r} "
            f"(registered: {', '.join(available) or 'none'})"
        )


class TransportRegistry:
    """
    Channel id to adapter mapping.

    Registering a second adapter for a channel replaces the first.
    close_all() releases adapter resources (HTTP clients) at shutdown
    and empties the registry.
    """

    def __init__(self) -> None:
        self._adapters: dict[str, "TransportAdapter"] = {}

    def register(self, adapter: "TransportAdapter") -> None:
        channel_id = adapter.channel_id
        if channel_id in self._adapters:
            logger.warning(f"Replacing transport for channel {channel_id}")
        self._adapters[channel_id] = adapter
        logger.info(f"Registered transport for channel {channel_id}")

    def get(self, channel_id: str) -> "TransportAdapter":
        try:
            return self._adapters[channel_id]
        except KeyError:
            raise TransportNotFoundError(channel_id, self.channels) from None

    @property
    def channels(self) -> list[str]:
        return list(self._adapters)

    async def close_all(self) -> None:
        adapters, self._adapters = self._adapters, {}
        for channel_id, adapter in adapters.items():
            close = getattr(adapter, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning(f"Closing transport {channel_id} failed: {e}")


_registry: TransportRegistry | None = None


def get_transport_registry() -> TransportRegistry:
    global _registry
    if _registry is None:
        _registry = TransportRegistry()
    return _registry


def get_transport(channel_id: str) -> "TransportAdapter":
    """
    Resolve the adapter for a channel.

    Raises:
        TransportNotFoundError: If nothing is registered for channel_id
    """
    return get_transport_registry().get(channel_id)


def register_transport(adapter: "TransportAdapter") -> None:
    get_transport_registry().register(adapter)


def reset_transport_registry() -> None:
    """Drop the process-wide registry without closing its adapters."""
    global _registry
    _registry = None
