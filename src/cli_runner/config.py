"""Configuration management for the CLI runner."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runner settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLI_RUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Command resolution
    executable: str = Field(default="gemini", description="Primary executable name")
    fallback_launcher: str = Field(
        default="npx", description="Launcher used when the executable is not on PATH"
    )
    fallback_package: str = Field(
        default="@google/gemini-cli", description="Package the launcher runs"
    )
    allow_fallback: bool = Field(default=False, description="Permit the launcher fallback")
    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key passed to chat and search invocations (GEMINI_API_KEY)",
    )

    # Timeouts
    timeout_ms: int = Field(default=60_000, gt=0, description="Default per-attempt timeout")
    chat_timeout_ms: int = Field(default=600_000, gt=0, description="Chat invocation timeout")
    search_timeout_ms: int = Field(default=60_000, gt=0, description="Search invocation timeout")
    grace_period_s: float = Field(
        default=2.0, ge=0, description="Seconds between SIGTERM and SIGKILL on timeout"
    )

    # Retry
    max_attempts: int = Field(default=3, ge=1, description="Attempts per request")
    initial_delay_ms: int = Field(default=1000, ge=0, description="Delay before the 2nd attempt")
    backoff_multiplier: float = Field(default=2.0, ge=1, description="Backoff growth factor")
    max_delay_ms: int = Field(default=30_000, ge=0, description="Cap for a single delay")
    retryable_exit_codes: list[int] = Field(
        default_factory=list,
        description="Exit codes treated as transient (JSON list in env, e.g. '[75, 111]')",
    )

    working_dir: str | None = Field(
        default=None, description="Working directory when a request doesn't set one"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @model_validator(mode="after")
    def validate_delays(self) -> "Settings":
        """Keep the delay cap consistent with the initial delay."""
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"initial_delay_ms ({self.initial_delay_ms})"
            )
        return self


def get_default_config_path() -> Path:
    """Get default config file path."""
    if os.environ.get("CLI_RUNNER_CONFIG_FILE"):
        return Path(os.environ["CLI_RUNNER_CONFIG_FILE"])
    return Path.home() / ".config" / "cli-runner" / "config.yaml"


def load_settings(config_file: Path | None = None) -> Settings:
    """Load settings from a YAML file, with environment variables taking precedence.

    Args:
        config_file: Path to config file. If None, uses default.

    Returns:
        Loaded settings; defaults plus environment if the file doesn't exist.
    """
    path = config_file or get_default_config_path()

    data: dict[str, Any] = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

    # Init kwargs outrank env in pydantic-settings, so drop keys the env sets
    env_set = {
        name
        for name in Settings.model_fields
        if f"CLI_RUNNER_{name.upper()}" in os.environ
    }
    return Settings(**{k: v for k, v in data.items() if k not in env_set})
