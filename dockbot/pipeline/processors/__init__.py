"""
dockbot Pipeline Processors

Processors are single-responsibility frame transformers. The deploy
pipeline chains the first three; ConfirmationProcessor delivers replies.
"""

from .artifact_download import ArtifactDownloadProcessor
from .image_build import ImageBuildProcessor, render_dockerfile
from .container_start import ContainerStartProcessor
from .confirmation import ConfirmationProcessor

__all__ = [
    "ArtifactDownloadProcessor",
    "ImageBuildProcessor",
    "ContainerStartProcessor",
    "ConfirmationProcessor",
    "render_dockerfile",
]
