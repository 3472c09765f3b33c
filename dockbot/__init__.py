"""
dockbot - Deploy Telegram bots as Docker containers from a Telegram chat.

An operator sends the control bot the token of a secondary bot and then
its Python source file; dockbot validates the token, builds the file
into an image and runs it as a managed container, and later lists,
stops or removes it.

Features:

- **Conversation State Machine**: token first, then code file, per chat
- **Deploy Pipeline**: download -> image build -> container start, with rollback
- **Deployment Registry**: one deployment per bot token, distinct host port each
- **Transport Layer**: Telegram Bot API behind a platform-agnostic adapter

Quick Start:
    uvicorn dockbot.app.main:app --host 0.0.0.0 --port 8000
"""

__version__ = "0.1.0"
__license__ = "MIT"

from dockbot.pipeline import Pipeline, PipelineBuilder, PipelineContext, PipelineResult
from dockbot.pipeline.frames import Frame
from dockbot.pipeline.processor import Processor

__all__ = [
    "__version__",
    "Pipeline",
    "PipelineBuilder",
    "PipelineContext",
    "PipelineResult",
    "Processor",
    "Frame",
]
