"""
Host port allocation for deployments.

Every deployment publishes its container port on its own host port,
taken from a configured range.
"""

from __future__ import annotations

import logging
import socket

from .errors import ContainerRuntimeError

logger = logging.getLogger(__name__)


def _port_is_free(port: int, host: str = "0.0.0.0") -> bool:
    """Check that nothing on the host is bound to port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


class PortAllocator:
    """
    Hands out distinct host ports from an inclusive range.

    Allocation picks the lowest port that is neither reserved by
    another deployment nor (when probing is enabled) already bound
    by some other process on the host.

    Example:
        ports = PortAllocator(31001, 31999)
        port = ports.allocate()
        ...
        ports.release(port)
    """

    def __init__(self, start: int, end: int, *, probe: bool = True):
        if not 0 < start <= end <= 65535:
            raise ValueError(f"Invalid port range: {start}-{end}")
        self._start = start
        self._end = end
        self._probe = probe
        self._reserved: set[int] = set()

    @property
    def reserved(self) -> frozenset[int]:
        return frozenset(self._reserved)

    @property
    def capacity(self) -> int:
        return self._end - self._start + 1

    def allocate(self) -> int:
        """
        Reserve and return a free host port.

        Raises:
            ContainerRuntimeError: If the range is exhausted
        """
        for port in range(self._start, self._end + 1):
            if port in self._reserved:
                continue
            if self._probe and not _port_is_free(port):
                logger.debug(f"Port {port} is bound on the host, skipping")
                continue
            self._reserved.add(port)
            logger.debug(f"Allocated host port {port}")
            return port

        raise ContainerRuntimeError(
            f"No free host port in range {self._start}-{self._end}",
            stage="port_allocation",
        )

    def reserve(self, port: int) -> None:
        """Mark a specific port as in use."""
        self._reserved.add(port)

    def release(self, port: int | None) -> None:
        """Return a port to the pool. Unknown ports are ignored."""
        if port is None:
            return
        if port in self._reserved:
            self._reserved.discard(port)
            logger.debug(f"Released host port {port}")
