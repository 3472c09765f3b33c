"""
dockbot Deployment Core

Stores, locks, the container runtime adapter and lifecycle commands.
The CommandDispatcher lives in dockbot.deploy.dispatcher and is not
re-exported here, since it depends on the pipeline package which in
turn depends on dockbot.deploy.errors.
"""

from .conversation import ConversationPhase, ConversationState, ConversationStore
from .errors import (
    BuildError,
    ConcurrencyError,
    ContainerRuntimeError,
    DeploymentError,
    NotFoundError,
    OperationTimeoutError,
    TransferError,
    ValidationError,
    deployment_slug,
    mask_credential,
)
from .lifecycle import DeploymentLifecycle
from .locks import KeyedLock
from .ports import PortAllocator
from .registry import DeploymentRecord, DeploymentRegistry, DeploymentStatus
from .runtime import ContainerRuntime, DockerRuntime
from .validator import CredentialValidator, is_well_formed

__all__ = [
    # Errors
    "DeploymentError",
    "ValidationError",
    "TransferError",
    "BuildError",
    "ContainerRuntimeError",
    "NotFoundError",
    "ConcurrencyError",
    "OperationTimeoutError",
    "mask_credential",
    "deployment_slug",
    # Conversation
    "ConversationPhase",
    "ConversationState",
    "ConversationStore",
    # Registry
    "DeploymentStatus",
    "DeploymentRecord",
    "DeploymentRegistry",
    # Resources
    "KeyedLock",
    "PortAllocator",
    "ContainerRuntime",
    "DockerRuntime",
    # Commands
    "CredentialValidator",
    "is_well_formed",
    "DeploymentLifecycle",
]
