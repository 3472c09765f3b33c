"""
dockbot Pipeline Framework

Core Components:
- Frame: Immutable data containers that flow through the pipeline
- Processor: Single-responsibility transformers
- Pipeline: Sequential executor with rollback on failure
- Context: Request-scoped state, audit trail and rollback stack
- Transport: Bidirectional message channel adapters

The deploy pipeline:

    DocumentInputFrame
        -> ArtifactDownloadProcessor -> ArtifactFrame
        -> ImageBuildProcessor       -> ImageFrame
        -> ContainerStartProcessor   -> DeploymentFrame
"""

from .context import PipelineContext, PipelineResult
from .executor import Pipeline, PipelineBuilder
from .processor import Processor
from .transports import (
    SendResult,
    TelegramTransport,
    TransportAdapter,
    TransportNotFoundError,
    TransportRegistry,
    get_transport,
    get_transport_registry,
    register_transport,
    reset_transport_registry,
)

__all__ = [
    # Core
    "Pipeline",
    "PipelineBuilder",
    "PipelineContext",
    "PipelineResult",
    "Processor",
    # Transport
    "TransportAdapter",
    "SendResult",
    "TransportRegistry",
    "TransportNotFoundError",
    "TelegramTransport",
    "get_transport_registry",
    "get_transport",
    "register_transport",
    "reset_transport_registry",
]
