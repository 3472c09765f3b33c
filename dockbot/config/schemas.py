"""
Configuration Schemas for dockbot.

Security:
    The control bot token and webhook secret use SecretStr to prevent
    accidental logging. Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr, model_validator


class AppSettings(BaseModel):
    """
    Application settings model.

    Loaded from DOCKBOT_* environment variables by
    dockbot.app.dependencies.get_settings().
    """

    # Service identity
    service_name: str = "dockbot"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Control bot (Telegram)
    telegram_bot_token: SecretStr = Field(default=SecretStr(""), description="Control bot token")
    telegram_api_base: str = Field(default="https://api.telegram.org", description="Bot API base URL")
    webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Expected X-Telegram-Bot-Api-Secret-Token header; empty disables the check",
    )
    public_webhook_url: str = Field(
        default="",
        description="Public URL registered with setWebhook on startup; empty skips registration",
    )

    # Artifact storage
    artifact_dir: str = Field(default="/tmp/dockbot/artifacts", description="Root of per-bot build contexts")
    artifact_filename: str = Field(default="bot.py", description="Name the code file is stored under")
    accepted_mime_types: list[str] = Field(default_factory=lambda: ["text/x-python"])
    max_artifact_bytes: int = Field(default=5 * 1024 * 1024, ge=1)

    # Image and container
    base_image: str = "python:3.12-slim"
    pip_packages: list[str] = Field(
        default_factory=lambda: ["python-telegram-bot"],
        description="Packages installed into every bot image",
    )
    container_port: int = Field(default=3000, ge=1, le=65535)
    credential_env_var: str = "BOT_TOKEN"
    port_range_start: int = Field(default=31001, ge=1, le=65535)
    port_range_end: int = Field(default=31999, ge=1, le=65535)

    # Timeouts (seconds)
    validation_timeout: float = Field(default=10.0, gt=0)
    transfer_timeout: float = Field(default=60.0, gt=0)
    build_timeout: float = Field(default=600.0, gt=0)
    start_timeout: float = Field(default=60.0, gt=0)
    stop_timeout: float = Field(default=30.0, gt=0)
    stop_grace_seconds: int = Field(default=10, ge=0)
    lock_timeout: float = Field(default=900.0, gt=0)

    @model_validator(mode="after")
    def _check_port_range(self) -> "AppSettings":
        if self.port_range_start > self.port_range_end:
            raise ValueError(
                f"port_range_start ({self.port_range_start}) exceeds "
                f"port_range_end ({self.port_range_end})"
            )
        return self
