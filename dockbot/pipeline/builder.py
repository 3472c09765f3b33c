"""
Pipeline Builder Factory for dockbot.

Architecture:
    DocumentInputFrame
        -> ArtifactDownload   (fetch the code file, atomic write)
        -> ImageBuild         (Dockerfile + image, rollback: remove image)
        -> ContainerStart     (retire previous, allocate port, run, record)
        -> DeploymentFrame

Replies are not part of this pipeline; the CommandDispatcher delivers
them after inspecting the result.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from .executor import Pipeline, PipelineBuilder
from .processors import (
    ArtifactDownloadProcessor,
    ContainerStartProcessor,
    ImageBuildProcessor,
)

if TYPE_CHECKING:
    from dockbot.config.schemas import AppSettings
    from dockbot.deploy.ports import PortAllocator
    from dockbot.deploy.registry import DeploymentRegistry
    from dockbot.deploy.runtime import ContainerRuntime

logger = logging.getLogger(__name__)


def create_deploy_pipeline(
    settings: "AppSettings",
    runtime: "ContainerRuntime",
    registry: "DeploymentRegistry",
    ports: "PortAllocator",
    download_client: httpx.AsyncClient | None = None,
) -> Pipeline:
    """
    Create the artifact -> image -> container pipeline.

    Args:
        settings: Application settings
        runtime: Container runtime adapter
        registry: Deployment registry written on success
        ports: Host port allocator
        download_client: Optional shared HTTP client for artifact downloads

    Returns:
        Configured Pipeline instance
    """
    pipeline = (
        PipelineBuilder()
        .add(
            ArtifactDownloadProcessor(
                artifact_dir=settings.artifact_dir,
                artifact_filename=settings.artifact_filename,
                timeout_seconds=settings.transfer_timeout,
                max_bytes=settings.max_artifact_bytes,
                client=download_client,
            )
        )
        .add(
            ImageBuildProcessor(
                runtime,
                base_image=settings.base_image,
                container_port=settings.container_port,
                pip_packages=settings.pip_packages,
            )
        )
        .add(
            ContainerStartProcessor(
                runtime,
                registry,
                ports,
                container_port=settings.container_port,
                credential_env_var=settings.credential_env_var,
            )
        )
        .build()
    )

    logger.info(f"Created deploy pipeline: {pipeline}")
    return pipeline
