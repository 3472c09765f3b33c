"""
Container Start Processor for dockbot.

Starts one container from a built image and records the deployment.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dockbot.deploy.errors import DeploymentError, mask_credential
from dockbot.deploy.registry import DeploymentRecord, DeploymentStatus

from ..processor import Processor

if TYPE_CHECKING:
    from dockbot.deploy.ports import PortAllocator
    from dockbot.deploy.registry import DeploymentRegistry
    from dockbot.deploy.runtime import ContainerRuntime

    from ..context import PipelineContext
    from ..frames import Frame

logger = logging.getLogger(__name__)


class ContainerStartProcessor(Processor):
    """
    Runs the built image and inserts the DeploymentRecord.

    Input: ImageFrame
    Output: DeploymentFrame

    Redeploy policy: if the credential already has a deployment, its
    container is force-removed, its record dropped, its host port
    released and its image removed by id before the new container starts.

    Each container gets its own host port from the PortAllocator and
    the credential as an environment variable. The record is inserted
    only after the container has started; on failure the port is
    released and nothing is recorded.
    """

    def __init__(
        self,
        runtime: "ContainerRuntime",
        registry: "DeploymentRegistry",
        ports: "PortAllocator",
        container_port: int = 3000,
        credential_env_var: str = "BOT_TOKEN",
    ):
        self._runtime = runtime
        self._registry = registry
        self._ports = ports
        self._container_port = container_port
        self._credential_env_var = credential_env_var

    @property
    def name(self) -> str:
        return "container_start"

    async def process(
        self,
        frame: "Frame",
        ctx: "PipelineContext",
    ) -> "Frame | None":
        from ..frames import DeploymentFrame, ImageFrame

        if not isinstance(frame, ImageFrame):
            return frame

        try:
            replaced = await self._retire_existing(frame.credential, frame.image_id)
            record = await self._start(frame)
        except DeploymentError as e:
            e.credential = e.credential or frame.credential
            e.stage = e.stage or self.name
            raise

        await self._registry.insert(record)

        return DeploymentFrame(
            record=record,
            replaced=replaced,
            conversation_id=frame.conversation_id,
            source_frame_id=frame.id,
        )

    async def _retire_existing(self, credential: str, new_image_id: str) -> bool:
        existing = await self._registry.get(credential)
        if existing is None:
            return False

        logger.info(
            f"Redeploying {mask_credential(credential)}: removing container "
            f"{existing.short_handle} (port {existing.host_port})"
        )
        await self._runtime.remove(existing.runtime_handle, force=True)
        await self._registry.remove(credential)
        self._ports.release(existing.host_port)

        # The rebuilt image took over the tag; the old one is only reachable by id
        if existing.image_id and existing.image_id != new_image_id:
            try:
                await self._runtime.remove_image(existing.image_id)
            except DeploymentError as e:
                logger.warning(f"Previous image {existing.image_id[:19]} left behind: {e}")
        return True

    async def _start(self, frame: "Frame") -> DeploymentRecord:
        host_port = self._ports.allocate()
        try:
            handle = await self._runtime.create_and_start(
                image=frame.image_ref,
                name=frame.slug,
                env={self._credential_env_var: frame.credential},
                container_port=self._container_port,
                host_port=host_port,
            )
        except BaseException:
            self._ports.release(host_port)
            raise

        return DeploymentRecord(
            credential=frame.credential,
            image_ref=frame.image_ref,
            image_id=frame.image_id,
            runtime_handle=handle,
            host_port=host_port,
            status=DeploymentStatus.RUNNING,
            container_name=frame.slug,
            conversation_id=frame.conversation_id,
        )
