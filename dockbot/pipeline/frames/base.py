"""
Base Frame abstraction for the dockbot pipeline.

Frames are immutable data containers that flow through the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, TypeVar
from uuid import UUID, uuid4

# Type variable for generic derive() method
F = TypeVar("F", bound="Frame")


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


@dataclass(frozen=True, kw_only=True, slots=True)
class Frame:
    """
    Base class for all frames in the dockbot pipeline.

    Frames are immutable data containers with:
    - Unique ID for tracking
    - Creation timestamp
    - Source frame ID for lineage tracking
    - Metadata for extensibility

    Create new frames via derive() instead of mutation.
    """

    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utc_now)
    source_frame_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def frame_type(self) -> str:
        """Frame type name for logging and debugging."""
        return self.__class__.__name__

    def derive(self: F, **changes: Any) -> F:
        """
        Create a new frame derived from this one.

        The new frame gets a new id and timestamp, with source_frame_id
        pointing at this frame.
        """
        return replace(
            self,
            id=uuid4(),
            created_at=_utc_now(),
            source_frame_id=self.id,
            **changes,
        )

    def with_metadata(self: F, **extra: Any) -> F:
        """Create new frame with additional metadata."""
        return self.derive(metadata={**self.metadata, **extra})

    def to_dict(self) -> dict[str, Any]:
        """Serialize frame to dictionary for logging."""
        return {
            "id": str(self.id),
            "frame_type": self.frame_type,
            "created_at": self.created_at.isoformat(),
            "source_frame_id": str(self.source_frame_id) if self.source_frame_id else None,
            "metadata": self.metadata,
        }

    def __repr__(self) -> str:
        return f"{self.frame_type}(id={str(self.id)[:8]}...)"


@dataclass(frozen=True, kw_only=True, slots=True)
class ErrorFrame(Frame):
    """
    Frame representing an error that occurred during processing.

    ErrorFrames flow through the pipeline like regular frames; stages
    that do not handle them pass them on unchanged.
    """

    error_type: str = "internal"
    error_message: str = "An error occurred"
    stage: str = ""
    processor_name: str = ""
    original_frame_type: str = ""
    exception_class: str | None = None
    is_fatal: bool = True
    conversation_id: str = ""

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        processor_name: str,
        source_frame: Frame | None = None,
        is_fatal: bool = True,
    ) -> ErrorFrame:
        """Create ErrorFrame from an exception."""
        return cls(
            error_type=_classify_error(exc),
            error_message=str(exc),
            stage=getattr(exc, "stage", "") or processor_name,
            processor_name=processor_name,
            original_frame_type=source_frame.frame_type if source_frame else "",
            exception_class=type(exc).__name__,
            is_fatal=is_fatal,
            source_frame_id=source_frame.id if source_frame else None,
            conversation_id=getattr(source_frame, "conversation_id", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        base = Frame.to_dict(self)
        base.update(
            {
                "error_type": self.error_type,
                "error_message": self.error_message,
                "stage": self.stage,
                "processor_name": self.processor_name,
                "original_frame_type": self.original_frame_type,
                "exception_class": self.exception_class,
                "is_fatal": self.is_fatal,
            }
        )
        return base

    def format_user_message(self) -> str:
        """
        Format a user-facing notice.

        Never includes the raw error message.
        """
        messages = {
            ErrorType.TIMEOUT: "The deployment took too long and was aborted. Please try again.",
            ErrorType.CONCURRENCY: "Another deployment for this bot is in progress. Please try again shortly.",
            ErrorType.TRANSFER: "Failed to download the file.",
        }
        return messages.get(self.error_type, "An error occurred while deploying the bot.")


def _classify_error(exc: Exception) -> str:
    """Classify exception into error type."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, str):
        return kind

    name = type(exc).__name__.lower()
    if "timeout" in name:
        return ErrorType.TIMEOUT
    if "connection" in name or "network" in name:
        return ErrorType.TRANSFER
    return ErrorType.INTERNAL


class ErrorType:
    """Error type constants for ErrorFrame classification."""

    VALIDATION = "validation"
    TRANSFER = "transfer"
    BUILD = "build"
    RUNTIME = "runtime"
    NOT_FOUND = "not_found"
    CONCURRENCY = "concurrency"
    TIMEOUT = "timeout"
    INTERNAL = "internal"
