"""
Pipeline Context for dockbot.

The context carries request-scoped state for one pipeline run: who
asked, which transport to answer on, timings, and the rollback actions
registered by stages that created external resources.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from dockbot.deploy.errors import mask_credential

logger = logging.getLogger(__name__)

RollbackAction = Callable[[], Awaitable[Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineContext:
    """
    Request-scoped context passed through the pipeline.

    Provides:
    - Unique execution ID for tracing
    - Conversation and transport channel of the request
    - Credential the run deploys under (never logged unmasked)
    - Audit trail of frame processing
    - Rollback stack for partially created resources
    """

    # Execution identification
    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)

    # Request context (from webhook)
    conversation_id: str = ""
    channel_id: str = ""  # Transport channel (e.g., "telegram")
    credential: str = ""

    # Audit trail
    processor_timings: dict[str, float] = field(default_factory=dict)
    frame_log: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # Undo stack, most recent last
    rollback_actions: list[tuple[str, RollbackAction]] = field(default_factory=list)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since pipeline started."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def record_frame(self, frame_dict: dict[str, Any], processor_name: str) -> None:
        """Record a frame in the audit trail."""
        self.frame_log.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "processor": processor_name,
            "frame": frame_dict,
            "elapsed_ms": self.elapsed_ms,
        })

    def record_timing(self, processor_name: str, duration_ms: float) -> None:
        """Record processor execution timing."""
        self.processor_timings[processor_name] = duration_ms

    def add_rollback(self, description: str, action: RollbackAction) -> None:
        """
        Register an undo step for a resource a stage just created.

        Steps run in reverse registration order if the run fails.
        """
        self.rollback_actions.append((description, action))

    async def run_rollbacks(self) -> list[str]:
        """
        Run all registered undo steps, newest first.

        Best effort: a failing step is logged and the rest still run.

        Returns:
            Descriptions of the steps that failed
        """
        failed: list[str] = []
        while self.rollback_actions:
            description, action = self.rollback_actions.pop()
            try:
                await action()
                logger.info(f"Rollback step done: {description}")
            except Exception as e:
                logger.error(f"Rollback step failed: {description}: {e}", exc_info=True)
                failed.append(description)
        return failed

    def to_audit_dict(self) -> dict[str, Any]:
        """Generate audit record for logging."""
        return {
            "execution_id": str(self.execution_id),
            "started_at": self.started_at.isoformat(),
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "duration_ms": self.elapsed_ms,
            "conversation_id": self.conversation_id,
            "channel_id": self.channel_id,
            "credential": mask_credential(self.credential),
            "processor_timings": self.processor_timings,
            "frame_count": len(self.frame_log),
        }


@dataclass
class PipelineResult:
    """
    Result of pipeline execution.

    Contains all frames produced by the pipeline, timing information,
    and the first error encountered.
    """

    context: PipelineContext
    output_frames: list[Any] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_frame: Any | None = None
    rollback_failures: list[str] = field(default_factory=list)

    @property
    def execution_id(self) -> UUID:
        return self.context.execution_id

    @property
    def duration_ms(self) -> float:
        return self.context.elapsed_ms

    def get_frame(self, frame_type: type) -> Any | None:
        """Get the first frame of a specific type."""
        for frame in self.output_frames:
            if isinstance(frame, frame_type):
                return frame
        return None

    def get_frames(self, frame_type: type) -> list[Any]:
        """Get all frames of a specific type."""
        return [f for f in self.output_frames if isinstance(f, frame_type)]

    def to_dict(self) -> dict[str, Any]:
        """Serialize result for logging/API response."""
        return {
            "execution_id": str(self.execution_id),
            "success": self.success,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "output_frame_count": len(self.output_frames),
            "output_frame_types": [f.frame_type for f in self.output_frames],
            "rollback_failures": self.rollback_failures,
        }
