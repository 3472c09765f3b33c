"""
Dependency Injection for dockbot.

Provides singleton instances of the stores, runtime, pipeline and
dispatcher. Everything is process-lifetime; a restart starts with an
empty registry and every conversation idle.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from dockbot.config.schemas import AppSettings
from dockbot.deploy import (
    ConversationStore,
    CredentialValidator,
    DeploymentLifecycle,
    DeploymentRegistry,
    DockerRuntime,
    KeyedLock,
    PortAllocator,
)
from dockbot.deploy.dispatcher import CommandDispatcher
from dockbot.pipeline import Pipeline, get_transport_registry, register_transport
from dockbot.pipeline.builder import create_deploy_pipeline
from dockbot.pipeline.transports import TelegramTransport

logger = logging.getLogger(__name__)


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("DOCKBOT_SERVICE_NAME", "dockbot"),
        environment=os.getenv("DOCKBOT_ENVIRONMENT", "development"),
        debug=os.getenv("DOCKBOT_DEBUG", "false").lower() == "true",
        log_level=os.getenv("DOCKBOT_LOG_LEVEL", "INFO"),
        # Control bot
        telegram_bot_token=os.getenv("DOCKBOT_TELEGRAM_BOT_TOKEN", ""),
        telegram_api_base=os.getenv("DOCKBOT_TELEGRAM_API_BASE", "https://api.telegram.org"),
        webhook_secret=os.getenv("DOCKBOT_WEBHOOK_SECRET", ""),
        public_webhook_url=os.getenv("DOCKBOT_PUBLIC_WEBHOOK_URL", ""),
        # Artifacts
        artifact_dir=os.getenv("DOCKBOT_ARTIFACT_DIR", "/tmp/dockbot/artifacts"),
        artifact_filename=os.getenv("DOCKBOT_ARTIFACT_FILENAME", "bot.py"),
        accepted_mime_types=_env_list("DOCKBOT_ACCEPTED_MIME_TYPES", "text/x-python"),
        max_artifact_bytes=int(os.getenv("DOCKBOT_MAX_ARTIFACT_BYTES", str(5 * 1024 * 1024))),
        # Image and container
        base_image=os.getenv("DOCKBOT_BASE_IMAGE", "python:3.12-slim"),
        pip_packages=_env_list("DOCKBOT_PIP_PACKAGES", "python-telegram-bot"),
        container_port=int(os.getenv("DOCKBOT_CONTAINER_PORT", "3000")),
        credential_env_var=os.getenv("DOCKBOT_CREDENTIAL_ENV_VAR", "BOT_TOKEN"),
        port_range_start=int(os.getenv("DOCKBOT_PORT_RANGE_START", "31001")),
        port_range_end=int(os.getenv("DOCKBOT_PORT_RANGE_END", "31999")),
        # Timeouts
        validation_timeout=float(os.getenv("DOCKBOT_VALIDATION_TIMEOUT", "10")),
        transfer_timeout=float(os.getenv("DOCKBOT_TRANSFER_TIMEOUT", "60")),
        build_timeout=float(os.getenv("DOCKBOT_BUILD_TIMEOUT", "600")),
        start_timeout=float(os.getenv("DOCKBOT_START_TIMEOUT", "60")),
        stop_timeout=float(os.getenv("DOCKBOT_STOP_TIMEOUT", "30")),
        stop_grace_seconds=int(os.getenv("DOCKBOT_STOP_GRACE_SECONDS", "10")),
        lock_timeout=float(os.getenv("DOCKBOT_LOCK_TIMEOUT", "900")),
    )


# Global instances (initialized on first access)
_registry: Optional[DeploymentRegistry] = None
_conversations: Optional[ConversationStore] = None
_ports: Optional[PortAllocator] = None
_runtime: Optional[DockerRuntime] = None
_credential_locks: Optional[KeyedLock] = None
_conversation_locks: Optional[KeyedLock] = None
_validator: Optional[CredentialValidator] = None
_pipeline: Optional[Pipeline] = None
_lifecycle: Optional[DeploymentLifecycle] = None
_dispatcher: Optional[CommandDispatcher] = None


def get_registry() -> DeploymentRegistry:
    global _registry
    if _registry is None:
        _registry = DeploymentRegistry()
    return _registry


def get_conversations() -> ConversationStore:
    global _conversations
    if _conversations is None:
        _conversations = ConversationStore()
    return _conversations


def get_ports() -> PortAllocator:
    global _ports
    if _ports is None:
        settings = get_settings()
        _ports = PortAllocator(settings.port_range_start, settings.port_range_end)
    return _ports


def get_runtime() -> DockerRuntime:
    """
    Get the Docker runtime.

    The Docker client itself connects lazily on first use.
    """
    global _runtime
    if _runtime is None:
        settings = get_settings()
        _runtime = DockerRuntime(
            build_timeout=settings.build_timeout,
            start_timeout=settings.start_timeout,
            stop_timeout=settings.stop_timeout,
        )
    return _runtime


def get_credential_locks() -> KeyedLock:
    global _credential_locks
    if _credential_locks is None:
        _credential_locks = KeyedLock(
            "credential", timeout=get_settings().lock_timeout, mask_keys=True
        )
    return _credential_locks


def get_conversation_locks() -> KeyedLock:
    global _conversation_locks
    if _conversation_locks is None:
        _conversation_locks = KeyedLock("conversation", timeout=get_settings().lock_timeout)
    return _conversation_locks


def get_validator() -> CredentialValidator:
    global _validator
    if _validator is None:
        settings = get_settings()
        _validator = CredentialValidator(
            api_base=settings.telegram_api_base,
            timeout_seconds=settings.validation_timeout,
        )
    return _validator


def get_pipeline() -> Pipeline:
    """
    Get the deploy pipeline.

    Creates pipeline on first call.
    """
    global _pipeline
    if _pipeline is None:
        _pipeline = create_deploy_pipeline(
            get_settings(),
            runtime=get_runtime(),
            registry=get_registry(),
            ports=get_ports(),
        )
    return _pipeline


def get_lifecycle() -> DeploymentLifecycle:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = DeploymentLifecycle(
            registry=get_registry(),
            runtime=get_runtime(),
            ports=get_ports(),
            credential_locks=get_credential_locks(),
            stop_grace_seconds=get_settings().stop_grace_seconds,
        )
    return _lifecycle


def get_dispatcher() -> CommandDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = CommandDispatcher(
            conversations=get_conversations(),
            validator=get_validator(),
            deploy_pipeline=get_pipeline(),
            lifecycle=get_lifecycle(),
            credential_locks=get_credential_locks(),
            conversation_locks=get_conversation_locks(),
            accepted_mime_types=get_settings().accepted_mime_types,
        )
    return _dispatcher


async def initialize_services() -> None:
    """
    Initialize all services on application startup.

    Called from FastAPI lifespan.
    """
    settings = get_settings()

    token = settings.telegram_bot_token.get_secret_value()
    if not token:
        logger.warning("DOCKBOT_TELEGRAM_BOT_TOKEN is not set; replies cannot be delivered")
    else:
        transport = TelegramTransport(bot_token=token, api_base=settings.telegram_api_base)
        register_transport(transport)

        if settings.public_webhook_url:
            secret = settings.webhook_secret.get_secret_value() or None
            await transport.set_webhook(settings.public_webhook_url, secret_token=secret)

    os.makedirs(settings.artifact_dir, exist_ok=True)
    get_dispatcher()


async def shutdown_services() -> None:
    """
    Cleanup all services on application shutdown.

    Called from FastAPI lifespan. Running containers are left alone.
    """
    global _validator

    if _validator is not None:
        await _validator.close()
        _validator = None

    await get_transport_registry().close_all()
