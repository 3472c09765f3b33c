"""
Deployment Registry for dockbot.

In-memory mapping from credential to DeploymentRecord. Records are
immutable; status changes swap in a new record, so a listing never
sees a half-written entry.

The registry lives for the lifetime of the process. A restart loses
all records (containers keep running in Docker but are no longer
tracked).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import mask_credential

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DeploymentStatus(str, Enum):
    """Lifecycle status of a deployment."""

    BUILDING = "building"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True, kw_only=True, slots=True)
class DeploymentRecord:
    """
    One tracked deployment.

    Attributes:
        credential: Bot token; also the registry key
        image_ref: Tag of the built image
        image_id: Runtime id of the built image (stable when the tag moves)
        runtime_handle: Container id
        host_port: Host port the container port is published on
        status: Current lifecycle status
        container_name: Docker container name
        conversation_id: Conversation that created the deployment
    """

    credential: str
    image_ref: str
    image_id: str = ""
    runtime_handle: str
    host_port: int
    status: DeploymentStatus = DeploymentStatus.RUNNING
    container_name: str = ""
    conversation_id: str = ""
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def short_handle(self) -> str:
        return self.runtime_handle[:12]

    def with_status(self, status: DeploymentStatus) -> DeploymentRecord:
        """Create a copy with a new status."""
        return replace(self, status=status, updated_at=_utc_now())

    def to_dict(self, reveal_credential: bool = False) -> dict[str, Any]:
        """Serialize for API output. The credential is masked by default."""
        return {
            "credential": self.credential if reveal_credential else mask_credential(self.credential),
            "image_ref": self.image_ref,
            "image_id": self.image_id,
            "runtime_handle": self.runtime_handle,
            "host_port": self.host_port,
            "status": self.status.value,
            "container_name": self.container_name,
            "conversation_id": self.conversation_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class DeploymentRegistry:
    """
    Credential -> DeploymentRecord store.

    All access goes through an asyncio.Lock so reads and writes are
    mutually exclusive. Only the container start stage inserts and only
    lifecycle commands change status or remove.
    """

    def __init__(self) -> None:
        self._records: dict[str, DeploymentRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, credential: str) -> DeploymentRecord | None:
        async with self._lock:
            return self._records.get(credential)

    async def insert(self, record: DeploymentRecord) -> DeploymentRecord | None:
        """
        Insert a record, returning the one it replaced (if any).
        """
        async with self._lock:
            previous = self._records.get(record.credential)
            self._records[record.credential] = record
        if previous is not None:
            logger.warning(
                f"Replaced deployment record for {mask_credential(record.credential)} "
                f"(old container {previous.short_handle})"
            )
        logger.info(
            f"Registered deployment {mask_credential(record.credential)}: "
            f"container={record.short_handle}, port={record.host_port}"
        )
        return previous

    async def set_status(
        self,
        credential: str,
        status: DeploymentStatus,
    ) -> DeploymentRecord | None:
        """Update status. Returns the new record, or None if unknown."""
        async with self._lock:
            record = self._records.get(credential)
            if record is None:
                return None
            updated = record.with_status(status)
            self._records[credential] = updated
            return updated

    async def remove(self, credential: str) -> DeploymentRecord | None:
        """Remove and return a record, or None if unknown."""
        async with self._lock:
            return self._records.pop(credential, None)

    async def list(self) -> list[DeploymentRecord]:
        """Snapshot of all records, oldest first."""
        async with self._lock:
            records = list(self._records.values())
        return sorted(records, key=lambda r: r.created_at)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, credential: object) -> bool:
        return credential in self._records
