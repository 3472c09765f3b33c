"""
Command Dispatcher for dockbot.

Routes inbound frames to the conversation state machine, the deploy
pipeline or the lifecycle commands, and turns every outcome (including
failures) into a reply.

State machine (per conversation):

    IDLE --valid token--> AWAITING_ARTIFACT --code file--> IDLE
      ^                          |
      +------ invalid token      +-- deploy fails --> IDLE

Lifecycle commands (/list, /stop, /delete) bypass the state machine.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from dockbot.pipeline.context import PipelineContext
from dockbot.pipeline.frames import (
    CommandFrame,
    ConfirmationFrame,
    DeploymentFrame,
    DocumentInputFrame,
    ErrorFrame,
    Frame,
    TextInputFrame,
    UserResponseFrame,
)
from dockbot.pipeline.processors import ConfirmationProcessor

from .errors import DeploymentError, NotFoundError, mask_credential

if TYPE_CHECKING:
    from dockbot.pipeline import Pipeline, PipelineResult

    from .conversation import ConversationStore
    from .lifecycle import DeploymentLifecycle
    from .locks import KeyedLock
    from .registry import DeploymentRecord
    from .validator import CredentialValidator

logger = logging.getLogger(__name__)


class Replies:
    """User-facing reply texts."""

    WELCOME = (
        "Please provide the token of the bot you want to deploy.\n\n"
        "Commands:\n"
        "/list - show deployed bots\n"
        "/stop <token> - stop a bot\n"
        "/delete <token> - remove a bot"
    )
    TOKEN_VALID = "Token is valid. Now send the bot code as a file."
    TOKEN_INVALID = "Invalid token. Please provide a valid token."
    TOKEN_CHECK_FAILED = "An error occurred while verifying the token."
    SEND_CODE = "Please send the bot code as a Python (.py) file."
    TOKEN_FIRST = "Please provide the bot token first."
    NO_DEPLOYMENTS = "No deployed bots."
    NOT_FOUND = "Bot not found."
    STOP_FAILED = "An error occurred while stopping the bot."
    DELETE_FAILED = "An error occurred while deleting the bot."
    GENERIC_FAILURE = "An error occurred. Please try again."
    BUSY = "Another operation on this bot is in progress. Please try again shortly."
    USAGE_STOP = "Usage: /stop <token>"
    USAGE_DELETE = "Usage: /delete <token>"


# Generic MIME types Telegram reports for files it does not recognize
GENERIC_MIME_TYPES = frozenset({"", "application/octet-stream", "text/plain"})


class CommandDispatcher:
    """
    Entry point for every inbound message.

    Guarantees:
    - Messages of one conversation are handled strictly in arrival order
      (per-conversation lock held for the whole handling, reply included)
    - A deploy holds the credential lock from build start through the
      registry write
    - The conversation is back in IDLE after every deploy attempt,
      successful or not
    - No exception escapes; failures become generic replies and the raw
      error is only logged

    Example:
        dispatcher = CommandDispatcher(
            conversations=ConversationStore(),
            validator=CredentialValidator(),
            deploy_pipeline=create_deploy_pipeline(...),
            lifecycle=DeploymentLifecycle(...),
            credential_locks=KeyedLock("credential", mask_keys=True),
            conversation_locks=KeyedLock("conversation"),
        )
        confirmation = await dispatcher.handle(frame)
    """

    def __init__(
        self,
        conversations: "ConversationStore",
        validator: "CredentialValidator",
        deploy_pipeline: "Pipeline",
        lifecycle: "DeploymentLifecycle",
        credential_locks: "KeyedLock",
        conversation_locks: "KeyedLock",
        accepted_mime_types: Sequence[str] = ("text/x-python",),
        accepted_extensions: Sequence[str] = (".py",),
        replier: ConfirmationProcessor | None = None,
    ):
        self._conversations = conversations
        self._validator = validator
        self._pipeline = deploy_pipeline
        self._lifecycle = lifecycle
        self._credential_locks = credential_locks
        self._conversation_locks = conversation_locks
        self._accepted_mime_types = frozenset(m.lower() for m in accepted_mime_types)
        self._accepted_extensions = tuple(e.lower() for e in accepted_extensions)
        self._replier = replier or ConfirmationProcessor()

    # ==================== Entry points ====================

    async def handle(
        self,
        frame: Frame,
        ctx: PipelineContext | None = None,
    ) -> ConfirmationFrame | None:
        """
        Handle one inbound frame and deliver the reply.

        Returns:
            ConfirmationFrame describing the delivery, or None if the
            frame needed no reply
        """
        conversation_id = getattr(frame, "conversation_id", "")
        if ctx is None:
            ctx = PipelineContext(
                conversation_id=conversation_id,
                channel_id=getattr(frame, "channel_id", ""),
            )

        try:
            async with self._conversation_locks.hold(conversation_id):
                response = await self.dispatch(frame, ctx)
                if response is None:
                    return None
                return await self._replier.process(response, ctx)
        except DeploymentError as e:
            # Only the conversation lock can fail here; dispatch() never raises
            logger.error(
                f"Dropped message for conversation {conversation_id}: "
                f"{e.kind} at {e.stage}: {e}"
            )
            return await self._replier.process(
                UserResponseFrame(
                    message=Replies.GENERIC_FAILURE,
                    conversation_id=conversation_id,
                    success=False,
                    error=e.kind,
                ),
                ctx,
            )

    async def dispatch(
        self,
        frame: Frame,
        ctx: PipelineContext,
    ) -> UserResponseFrame | None:
        """
        Route a frame and build the reply without sending it.
        """
        try:
            if isinstance(frame, CommandFrame):
                return await self._on_command(frame)
            if isinstance(frame, TextInputFrame):
                return await self._on_text(frame)
            if isinstance(frame, DocumentInputFrame):
                return await self._on_document(frame, ctx)
        except NotFoundError as e:
            logger.info(f"{e.stage}: no deployment for {e.masked_credential}")
            return self._reply(frame, Replies.NOT_FOUND, success=False, error=e.kind)
        except DeploymentError as e:
            logger.error(
                f"Request failed: conversation={getattr(frame, 'conversation_id', '')}, "
                f"credential={e.masked_credential}, stage={e.stage}, kind={e.kind}, cause={e}"
            )
            return self._reply(frame, self._failure_text(e), success=False, error=e.kind)
        except Exception as e:
            logger.error(
                f"Unexpected error handling {frame.frame_type} for conversation "
                f"{getattr(frame, 'conversation_id', '')}: {e}",
                exc_info=True,
            )
            return self._reply(frame, Replies.GENERIC_FAILURE, success=False, error="internal")

        logger.debug(f"Ignoring unsupported frame {frame.frame_type}")
        return None

    # ==================== Conversation flow ====================

    async def _on_text(self, frame: TextInputFrame) -> UserResponseFrame:
        state = self._conversations.get(frame.conversation_id)

        if state.awaiting_artifact:
            return self._reply(frame, Replies.SEND_CODE)

        credential = frame.text.strip()
        try:
            valid = await self._validator.validate(credential)
        except Exception as e:
            logger.error(
                f"Token verification failed for {mask_credential(credential)}: {e}",
                exc_info=True,
            )
            return self._reply(frame, Replies.TOKEN_CHECK_FAILED, success=False, error="validation")

        if not valid:
            return self._reply(frame, Replies.TOKEN_INVALID, success=False, error="validation")

        self._conversations.await_artifact(frame.conversation_id, credential)
        return self._reply(frame, Replies.TOKEN_VALID)

    async def _on_document(
        self,
        frame: DocumentInputFrame,
        ctx: PipelineContext,
    ) -> UserResponseFrame:
        state = self._conversations.get(frame.conversation_id)

        if not state.awaiting_artifact:
            return self._reply(frame, Replies.TOKEN_FIRST, success=False)

        if not self.accepts(frame):
            logger.info(
                f"Rejected document {frame.file_name!r} ({frame.mime_type or 'no mime type'}) "
                f"in conversation {frame.conversation_id}"
            )
            return self._reply(frame, Replies.SEND_CODE, success=False)

        credential = state.pending_credential or ""
        try:
            result = await self.deploy(frame.for_credential(credential), ctx)
        finally:
            self._conversations.reset(frame.conversation_id)

        deployment = result.get_frame(DeploymentFrame)
        if result.success and deployment is not None:
            return self._reply(frame, deployment.format_confirmation())

        error_frame = result.error_frame
        if isinstance(error_frame, ErrorFrame):
            logger.error(
                f"Bot deployment failed: conversation={frame.conversation_id}, "
                f"credential={mask_credential(credential)}, stage={error_frame.stage}, "
                f"kind={error_frame.error_type}, cause={error_frame.error_message}"
            )
            return self._reply(
                frame,
                error_frame.format_user_message(),
                success=False,
                error=error_frame.error_type,
            )

        logger.error(
            f"Bot deployment produced no deployment: conversation={frame.conversation_id}, "
            f"credential={mask_credential(credential)}, error={result.error}"
        )
        return self._reply(frame, Replies.GENERIC_FAILURE, success=False, error="internal")

    def accepts(self, frame: DocumentInputFrame) -> bool:
        """Check the document's declared content kind."""
        mime_type = frame.mime_type.lower()
        if mime_type in self._accepted_mime_types:
            return True
        name = frame.file_name.lower()
        return mime_type in GENERIC_MIME_TYPES and name.endswith(self._accepted_extensions)

    async def deploy(
        self,
        frame: DocumentInputFrame,
        ctx: PipelineContext,
    ) -> "PipelineResult":
        """
        Run the deploy pipeline under the credential lock.

        Raises:
            ConcurrencyError: Another deploy of the credential held the lock too long
        """
        ctx.credential = frame.credential
        async with self._credential_locks.hold(frame.credential):
            return await self._pipeline.execute(frame, ctx)

    # ==================== Lifecycle commands ====================

    async def _on_command(self, frame: CommandFrame) -> UserResponseFrame:
        command = frame.command

        if command == "start":
            return self._reply(frame, Replies.WELCOME)
        if command == "list":
            return self._reply(frame, self.format_list(await self._lifecycle.list()))
        if command == "stop":
            if not frame.args:
                return self._reply(frame, Replies.USAGE_STOP, success=False)
            record = await self._lifecycle.stop(frame.args)
            return self._reply(
                frame,
                f"Bot with token {mask_credential(record.credential)} has been stopped.",
            )
        if command == "delete":
            if not frame.args:
                return self._reply(frame, Replies.USAGE_DELETE, success=False)
            record = await self._lifecycle.delete(frame.args)
            return self._reply(
                frame,
                f"Bot with token {mask_credential(record.credential)} has been deleted.",
            )

        return self._reply(frame, Replies.WELCOME, success=False, error="unknown_command")

    @staticmethod
    def format_list(records: "Sequence[DeploymentRecord]") -> str:
        if not records:
            return Replies.NO_DEPLOYMENTS
        return "\n".join(
            f"Token: {r.credential}, ID: {r.short_handle}, "
            f"Status: {r.status.value}, Port: {r.host_port}"
            for r in records
        )

    # ==================== Helpers ====================

    @staticmethod
    def _failure_text(error: DeploymentError) -> str:
        if error.kind == "concurrency":
            return Replies.BUSY
        if error.stage in ("stop", "container_stop"):
            return Replies.STOP_FAILED
        if error.stage in ("delete", "container_remove"):
            return Replies.DELETE_FAILED
        return Replies.GENERIC_FAILURE

    @staticmethod
    def _reply(
        frame: Frame,
        message: str,
        success: bool = True,
        error: str | None = None,
    ) -> UserResponseFrame:
        return UserResponseFrame(
            message=message,
            conversation_id=getattr(frame, "conversation_id", ""),
            success=success,
            error=error,
            source_frame_id=frame.id,
        )
