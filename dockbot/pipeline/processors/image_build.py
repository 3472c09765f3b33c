"""
Image Build Processor for dockbot.

Turns a received artifact into a container image scoped to one
credential.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from dockbot.deploy.errors import BuildError, DeploymentError

from ..processor import Processor

if TYPE_CHECKING:
    from dockbot.deploy.runtime import ContainerRuntime

    from ..context import PipelineContext
    from ..frames import Frame

logger = logging.getLogger(__name__)


def render_dockerfile(
    artifact_name: str,
    base_image: str,
    container_port: int,
    pip_packages: Sequence[str] = (),
) -> str:
    """Render the Dockerfile that runs a single-file Python bot."""
    lines = [
        f"FROM {base_image}",
        "WORKDIR /app",
        "ENV PYTHONUNBUFFERED=1",
    ]
    if pip_packages:
        lines.append("RUN pip install --no-cache-dir " + " ".join(pip_packages))
    lines += [
        f"COPY {artifact_name} /app/{artifact_name}",
        f"EXPOSE {container_port}",
        f'CMD ["python", "/app/{artifact_name}"]',
    ]
    return "\n".join(lines) + "\n"


class ImageBuildProcessor(Processor):
    """
    Builds an image from the artifact's directory.

    Input: ArtifactFrame
    Output: ImageFrame

    The image tag is the credential's slug, so rebuilding for the same
    credential replaces the previous image. The runtime streams build
    progress and returns only once the build has finished.

    Registers a rollback step that removes the image if a later stage
    fails.
    """

    def __init__(
        self,
        runtime: "ContainerRuntime",
        base_image: str = "python:3.12-slim",
        container_port: int = 3000,
        pip_packages: Sequence[str] = (),
    ):
        self._runtime = runtime
        self._base_image = base_image
        self._container_port = container_port
        self._pip_packages = tuple(pip_packages)

    @property
    def name(self) -> str:
        return "image_build"

    async def process(
        self,
        frame: "Frame",
        ctx: "PipelineContext",
    ) -> "Frame | None":
        from ..frames import ArtifactFrame, ImageFrame

        if not isinstance(frame, ArtifactFrame):
            return frame

        context_dir = frame.context_dir
        self._write_dockerfile(context_dir, frame.path.name, frame.credential)

        tag = frame.slug
        logger.info(f"Building image {tag} from {context_dir}")

        try:
            image_id = await self._runtime.build_image(context_dir, tag)
        except DeploymentError as e:
            e.credential = e.credential or frame.credential
            e.stage = e.stage or self.name
            raise

        ctx.add_rollback(f"remove image {tag}", lambda: self._runtime.remove_image(tag))

        return ImageFrame(
            image_ref=tag,
            image_id=image_id,
            credential=frame.credential,
            slug=frame.slug,
            conversation_id=frame.conversation_id,
            source_frame_id=frame.id,
        )

    def _write_dockerfile(self, context_dir: Path, artifact_name: str, credential: str) -> None:
        dockerfile = render_dockerfile(
            artifact_name,
            base_image=self._base_image,
            container_port=self._container_port,
            pip_packages=self._pip_packages,
        )
        try:
            (context_dir / "Dockerfile").write_text(dockerfile, encoding="utf-8")
        except OSError as e:
            raise BuildError(
                f"Cannot write Dockerfile in {context_dir}: {e}",
                credential=credential,
                stage=self.name,
            ) from e
