"""
Processor abstraction for the dockbot pipeline.

Processors are single-responsibility workers that transform frames.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import PipelineContext
    from .frames import Frame

logger = logging.getLogger(__name__)


# Type alias for processor return value
ProcessorResult = "Frame | Sequence[Frame] | None"


class Processor(ABC):
    """
    Base class for all processors in the dockbot pipeline.

    Processors:
    - Receive a frame and context
    - Return transformed frame(s), or None to stop
    - Raise on failure; the pipeline turns the exception into an ErrorFrame
    - Pass frames they do not handle (including ErrorFrames) through unchanged

    A processor that creates an external resource registers a rollback
    action on the context so the pipeline can undo it if a later stage
    fails.

    Subclasses must implement:
    - name: Unique processor identifier
    - process(): The transformation logic
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this processor, used in logging and timings."""
        ...

    @abstractmethod
    async def process(
        self,
        frame: Frame,
        ctx: PipelineContext,
    ) -> ProcessorResult:
        """
        Transform input frame.

        Returns:
            Frame: Continue pipeline with single frame
            Sequence[Frame]: Fan-out to multiple frames
            None: Stop pipeline (frame consumed)

        Raises:
            Exception: Pipeline wraps in ErrorFrame
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
