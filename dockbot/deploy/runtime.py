"""
Container runtime adapter for dockbot.

Defines the runtime surface the orchestrator consumes and a Docker
implementation on top of the docker SDK.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, TypeVar, runtime_checkable

from .errors import BuildError, ContainerRuntimeError, DeploymentError, OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ContainerRuntime(Protocol):
    """
    Runtime operations used by the deploy pipeline and lifecycle commands.

    Implementations:
    - DockerRuntime (docker SDK)
    - test doubles in tests/conftest.py
    """

    async def build_image(self, context_dir: Path, tag: str) -> str:
        """Build an image from context_dir, returning its id once the build has finished."""
        ...

    async def create_and_start(
        self,
        image: str,
        name: str,
        env: dict[str, str],
        container_port: int,
        host_port: int,
    ) -> str:
        """Create and start one container, returning its handle."""
        ...

    async def stop(self, handle: str, timeout: int = 10) -> None:
        """Gracefully stop a container. A container that no longer exists counts as stopped."""
        ...

    async def remove(self, handle: str, force: bool = True) -> bool:
        """Remove a container. Returns False if it no longer existed."""
        ...

    async def remove_image(self, image_ref: str) -> bool:
        """Remove an image. Returns False if it no longer existed."""
        ...


class DockerRuntime:
    """
    ContainerRuntime backed by the local Docker Engine.

    The docker SDK is synchronous, so every call runs in the default
    executor and is bounded by asyncio.wait_for. A call that times out
    keeps running in its worker thread; the orchestrator only stops
    waiting for it. A timed out container start is cleaned up by name.

    Example:
        runtime = DockerRuntime(build_timeout=600, start_timeout=60)
        image_id = await runtime.build_image(Path("/tmp/ctx"), "bot_abc")
        handle = await runtime.create_and_start(
            "bot_abc", "bot_abc", {"BOT_TOKEN": token}, 3000, 31001
        )
    """

    def __init__(
        self,
        client: Any | None = None,
        build_timeout: float = 600.0,
        start_timeout: float = 60.0,
        stop_timeout: float = 30.0,
    ):
        self._client = client
        self._build_timeout = build_timeout
        self._start_timeout = start_timeout
        self._stop_timeout = stop_timeout

    @property
    def client(self) -> Any:
        """Docker client, created from the environment on first use."""
        if self._client is None:
            import docker

            self._client = docker.from_env()
        return self._client

    async def _run(self, func: Callable[[], T], timeout: float, stage: str) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, func), timeout=timeout)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(
                f"{stage} did not finish within {timeout}s",
                stage=stage,
            ) from None

    # ==================== Images ====================

    async def build_image(self, context_dir: Path, tag: str) -> str:
        return await self._run(
            functools.partial(self._build_sync, str(context_dir), tag),
            timeout=self._build_timeout,
            stage="image_build",
        )

    def _build_sync(self, context_dir: str, tag: str) -> str:
        from docker.errors import APIError, DockerException

        try:
            events = self.client.api.build(
                path=context_dir,
                tag=tag,
                rm=True,
                forcerm=True,
                decode=True,
            )
            for event in events:
                if "error" in event or "errorDetail" in event:
                    detail = event.get("errorDetail", {}).get("message") or event.get("error")
                    raise BuildError(f"Build step failed: {str(detail).strip()}", stage="image_build")
                line = str(event.get("stream", "")).rstrip()
                if line:
                    logger.debug(f"[build {tag}] {line}")

            image = self.client.images.get(tag)
        except BuildError:
            raise
        except (APIError, DockerException) as e:
            raise BuildError(f"Image build failed: {e}", stage="image_build") from e

        logger.info(f"Built image {tag} ({image.short_id})")
        return image.id

    async def remove_image(self, image_ref: str) -> bool:
        return await self._run(
            functools.partial(self._remove_image_sync, image_ref),
            timeout=self._stop_timeout,
            stage="image_remove",
        )

    def _remove_image_sync(self, image_ref: str) -> bool:
        from docker.errors import APIError, ImageNotFound

        try:
            self.client.images.remove(image_ref, force=True)
        except ImageNotFound:
            return False
        except APIError as e:
            raise ContainerRuntimeError(f"Image removal failed: {e}", stage="image_remove") from e
        logger.info(f"Removed image {image_ref}")
        return True

    # ==================== Containers ====================

    async def create_and_start(
        self,
        image: str,
        name: str,
        env: dict[str, str],
        container_port: int,
        host_port: int,
    ) -> str:
        """
        Create and start a container named `name`.

        If the start timeout expires, the worker thread is given up to
        stop_timeout more to finish, then whatever it created under
        `name` is force-removed before OperationTimeoutError propagates.
        """
        loop = asyncio.get_running_loop()
        worker = loop.run_in_executor(
            None,
            functools.partial(
                self._create_and_start_sync, image, name, env, container_port, host_port
            ),
        )
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=self._start_timeout)
        except asyncio.TimeoutError:
            await self._discard_late_container(worker, name)
            raise OperationTimeoutError(
                f"container_start did not finish within {self._start_timeout}s",
                stage="container_start",
            ) from None

    async def _discard_late_container(self, worker: asyncio.Future, name: str) -> None:
        try:
            await asyncio.wait_for(worker, timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Start of {name} still running; removing it anyway")
        except Exception as e:
            logger.info(f"Timed out start of {name} ended with: {e}")

        try:
            removed = await self.remove(name, force=True)
        except DeploymentError as e:
            logger.error(f"Container {name} may be left running after start timeout: {e}")
            return
        if removed:
            logger.warning(f"Removed container {name} started after its timeout")

    def _create_and_start_sync(
        self,
        image: str,
        name: str,
        env: dict[str, str],
        container_port: int,
        host_port: int,
    ) -> str:
        from docker.errors import APIError, NotFound

        # A container with this name from an earlier run blocks creation
        try:
            stale = self.client.containers.get(name)
            logger.warning(f"Removing stale container {name} ({stale.short_id})")
            stale.remove(force=True)
        except NotFound:
            pass
        except APIError as e:
            raise ContainerRuntimeError(
                f"Could not clear stale container {name}: {e}", stage="container_start"
            ) from e

        try:
            container = self.client.containers.create(
                image,
                name=name,
                environment=env,
                ports={f"{container_port}/tcp": host_port},
                detach=True,
            )
        except APIError as e:
            raise ContainerRuntimeError(
                f"Container creation failed: {e}", stage="container_start"
            ) from e

        try:
            container.start()
        except APIError as e:
            try:
                container.remove(force=True)
            except APIError as cleanup_error:
                logger.error(f"Failed to remove unstarted container {name}: {cleanup_error}")
            raise ContainerRuntimeError(
                f"Container start failed: {e}", stage="container_start"
            ) from e

        logger.info(f"Started container {name} ({container.short_id}) on host port {host_port}")
        return container.id

    async def stop(self, handle: str, timeout: int = 10) -> None:
        await self._run(
            functools.partial(self._stop_sync, handle, timeout),
            timeout=self._stop_timeout + timeout,
            stage="container_stop",
        )

    def _stop_sync(self, handle: str, timeout: int) -> None:
        from docker.errors import APIError, NotFound

        try:
            self.client.containers.get(handle).stop(timeout=timeout)
        except NotFound:
            logger.info(f"Container {handle[:12]} no longer exists; treating as stopped")
            return
        except APIError as e:
            raise ContainerRuntimeError(f"Container stop failed: {e}", stage="container_stop") from e
        logger.info(f"Stopped container {handle[:12]}")

    async def remove(self, handle: str, force: bool = True) -> bool:
        return await self._run(
            functools.partial(self._remove_sync, handle, force),
            timeout=self._stop_timeout,
            stage="container_remove",
        )

    def _remove_sync(self, handle: str, force: bool) -> bool:
        from docker.errors import APIError, NotFound

        try:
            self.client.containers.get(handle).remove(force=force)
        except NotFound:
            logger.info(f"Container {handle[:12]} already gone")
            return False
        except APIError as e:
            raise ContainerRuntimeError(
                f"Container removal failed: {e}", stage="container_remove"
            ) from e
        logger.info(f"Removed container {handle[:12]}")
        return True
