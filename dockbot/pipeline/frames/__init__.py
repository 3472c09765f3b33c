"""
dockbot Pipeline Frames

Frames are immutable data containers that flow through the pipeline.
Each frame type represents a stage of the submission and deploy flow.
"""

from .base import ErrorFrame, ErrorType, Frame
from .input import CommandFrame, DocumentInputFrame, TextInputFrame
from .deployment import ArtifactFrame, DeploymentFrame, ImageFrame
from .action import ConfirmationFrame, UserResponseFrame

__all__ = [
    # Base
    "Frame",
    "ErrorFrame",
    "ErrorType",
    # Input
    "TextInputFrame",
    "CommandFrame",
    "DocumentInputFrame",
    # Deployment
    "ArtifactFrame",
    "ImageFrame",
    "DeploymentFrame",
    # Action
    "UserResponseFrame",
    "ConfirmationFrame",
]
