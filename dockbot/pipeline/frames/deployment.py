"""
Deployment frames for the dockbot pipeline.

Each stage of the deploy pipeline produces one of these:

    DocumentInputFrame -> ArtifactFrame -> ImageFrame -> DeploymentFrame
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .base import Frame

if TYPE_CHECKING:
    from dockbot.deploy.registry import DeploymentRecord


@dataclass(frozen=True, kw_only=True, slots=True)
class ArtifactFrame(Frame):
    """
    A source file persisted locally for one credential.

    Attributes:
        path: Final location of the artifact
        size_bytes: Number of bytes written
        credential: Credential the artifact belongs to
        slug: Resource name derived from the credential
    """

    path: Path
    size_bytes: int = 0
    credential: str = ""
    slug: str = ""
    conversation_id: str = ""

    @property
    def context_dir(self) -> Path:
        """Directory used as the image build context."""
        return self.path.parent

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update({
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "slug": self.slug,
            "conversation_id": self.conversation_id,
        })
        return base


@dataclass(frozen=True, kw_only=True, slots=True)
class ImageFrame(Frame):
    """
    A runnable image built from an artifact.

    Attributes:
        image_ref: Tag of the image (derived from the credential)
        image_id: Runtime image id
    """

    image_ref: str = ""
    image_id: str = ""
    credential: str = ""
    slug: str = ""
    conversation_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update({
            "image_ref": self.image_ref,
            "image_id": self.image_id[:19],
            "slug": self.slug,
            "conversation_id": self.conversation_id,
        })
        return base


@dataclass(frozen=True, kw_only=True, slots=True)
class DeploymentFrame(Frame):
    """
    A running deployment, already written to the registry.

    Attributes:
        record: The registry entry that was inserted
        replaced: Whether an earlier deployment for the credential was torn down
    """

    record: DeploymentRecord
    replaced: bool = False
    conversation_id: str = ""

    def format_confirmation(self) -> str:
        """Format the success reply for the user."""
        message = (
            f"Bot deployed with ID: {self.record.short_handle}\n"
            f"Host port: {self.record.host_port}"
        )
        if self.replaced:
            message += "\nThe previous deployment of this bot was replaced."
        return message

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update({
            "record": self.record.to_dict(),
            "replaced": self.replaced,
            "conversation_id": self.conversation_id,
        })
        return base
