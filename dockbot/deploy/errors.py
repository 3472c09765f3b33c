"""
Deployment error taxonomy for dockbot.

Every failure inside the orchestrator is one of these. Processors raise
them, the pipeline wraps them in ErrorFrames, and the command dispatcher
translates them into user-facing replies.
"""

from __future__ import annotations

import hashlib


def mask_credential(credential: str) -> str:
    """
    Render a credential safe for logs and API output.

    Keeps the bot id prefix (before ':') when present and the last
    four characters, so operators can still tell deployments apart.
    """
    if not credential:
        return ""
    if ":" in credential:
        prefix, _, secret = credential.partition(":")
        return f"{prefix}:***{secret[-4:]}" if len(secret) > 4 else f"{prefix}:***"
    if len(credential) <= 4:
        return "***"
    return f"***{credential[-4:]}"


def deployment_slug(credential: str) -> str:
    """
    Derive the stable resource name for a credential.

    Used for the artifact directory, the image tag and the container name.
    Docker references must be lowercase and may not contain ':', so the
    raw credential is never used directly.
    """
    digest = hashlib.sha256(credential.encode("utf-8")).hexdigest()
    return f"bot_{digest[:16]}"


class DeploymentError(Exception):
    """
    Base class for orchestrator errors.

    Attributes:
        credential: Credential the failing operation acted on (may be empty)
        stage: Pipeline stage or command that failed
        kind: Short classification used for ErrorFrame.error_type
    """

    kind = "internal"

    def __init__(self, message: str, *, credential: str = "", stage: str = ""):
        self.credential = credential
        self.stage = stage
        super().__init__(message)

    @property
    def masked_credential(self) -> str:
        return mask_credential(self.credential)

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind,
            "stage": self.stage,
            "credential": self.masked_credential,
            "message": str(self),
        }


class ValidationError(DeploymentError):
    """Credential is malformed or rejected by the authority."""

    kind = "validation"


class TransferError(DeploymentError):
    """Artifact could not be downloaded or written to storage."""

    kind = "transfer"

    def __init__(
        self,
        message: str,
        *,
        credential: str = "",
        stage: str = "artifact_download",
        reason: str = "download",
    ):
        self.reason = reason  # "download" or "storage"
        super().__init__(message, credential=credential, stage=stage)


class BuildError(DeploymentError):
    """Image construction failed."""

    kind = "build"


class ContainerRuntimeError(DeploymentError):
    """Start, stop or remove failed against the container runtime."""

    kind = "runtime"


class NotFoundError(DeploymentError):
    """Lifecycle command targeted a credential with no deployment."""

    kind = "not_found"


class ConcurrencyError(DeploymentError):
    """A per-key lock could not be acquired within its bound."""

    kind = "concurrency"


class OperationTimeoutError(DeploymentError):
    """An external call exceeded its configured timeout."""

    kind = "timeout"
