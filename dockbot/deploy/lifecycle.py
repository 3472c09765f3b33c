"""
Lifecycle commands for tracked deployments: list, stop, delete.

These act on the registry and the runtime directly, outside the
conversation flow. Stop and delete take the same per-credential lock
as the deploy pipeline, so they never interleave with a build.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import DeploymentError, NotFoundError, mask_credential
from .registry import DeploymentRecord, DeploymentStatus

if TYPE_CHECKING:
    from .locks import KeyedLock
    from .ports import PortAllocator
    from .registry import DeploymentRegistry
    from .runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class DeploymentLifecycle:
    """
    List, stop and delete deployments.

    Example:
        lifecycle = DeploymentLifecycle(registry, runtime, ports, credential_locks)
        records = await lifecycle.list()
        await lifecycle.stop(token)
        await lifecycle.delete(token)
    """

    def __init__(
        self,
        registry: "DeploymentRegistry",
        runtime: "ContainerRuntime",
        ports: "PortAllocator",
        credential_locks: "KeyedLock",
        stop_grace_seconds: int = 10,
        remove_images: bool = True,
    ):
        self._registry = registry
        self._runtime = runtime
        self._ports = ports
        self._locks = credential_locks
        self._stop_grace = stop_grace_seconds
        self._remove_images = remove_images

    async def list(self) -> list[DeploymentRecord]:
        """All tracked deployments. An empty list means none."""
        return await self._registry.list()

    async def stop(self, credential: str) -> DeploymentRecord:
        """
        Gracefully stop a deployment and keep its record.

        Stopping an already stopped deployment is a no-op success.

        Raises:
            NotFoundError: No deployment for the credential
            ContainerRuntimeError: The runtime refused to stop it
        """
        async with self._locks.hold(credential):
            record = await self._registry.get(credential)
            if record is None:
                raise NotFoundError(
                    "No deployment for credential", credential=credential, stage="stop"
                )

            if record.status is DeploymentStatus.STOPPED:
                logger.info(f"Deployment {mask_credential(credential)} already stopped")
                return record

            await self._runtime.stop(record.runtime_handle, timeout=self._stop_grace)
            updated = await self._registry.set_status(credential, DeploymentStatus.STOPPED)

        logger.info(f"Stopped deployment {mask_credential(credential)} ({record.short_handle})")
        return updated or record.with_status(DeploymentStatus.STOPPED)

    async def delete(self, credential: str) -> DeploymentRecord:
        """
        Force-remove a deployment's container and forget it.

        A container that already vanished from the runtime does not block
        removal of the record. The image is removed best-effort.

        Raises:
            NotFoundError: No deployment for the credential
            ContainerRuntimeError: The runtime refused to remove the container
        """
        async with self._locks.hold(credential):
            record = await self._registry.get(credential)
            if record is None:
                raise NotFoundError(
                    "No deployment for credential", credential=credential, stage="delete"
                )

            await self._runtime.remove(record.runtime_handle, force=True)
            await self._registry.remove(credential)
            self._ports.release(record.host_port)

            if self._remove_images:
                image = record.image_id or record.image_ref
                try:
                    await self._runtime.remove_image(image)
                except DeploymentError as e:
                    logger.warning(f"Image {image[:19]} left behind: {e}")

        logger.info(f"Deleted deployment {mask_credential(credential)} ({record.short_handle})")
        return record
