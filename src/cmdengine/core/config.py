"""
Configuration management for the command engine.

Uses pydantic-settings for environment variable support, with an
optional YAML file underneath (environment variables always win).
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "CMDENGINE_"
VALID_ENVIRONMENTS = frozenset({"development", "staging", "production", "test"})


def mask_secret(value: str | None, visible_chars: int = 4) -> str:
    """
    Mask a secret value for logging.

    Args:
        value: The secret value to mask
        visible_chars: Number of characters to show at start

    Returns:
        Masked string (e.g., "sk-a***")
    """
    if not value or len(value) <= visible_chars:
        return "***"
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


class Settings(BaseSettings):
    """Command engine configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment Configuration
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production, test",
    )

    # ===================
    # API Server
    # ===================
    api_host: str = Field(default="127.0.0.1", description="API bind address")
    api_port: int = Field(default=8780, ge=1, le=65535, description="API port")
    api_workers: int = Field(default=1, ge=1, le=32, description="Uvicorn worker count")
    api_key: str | None = Field(
        default=None,
        description="API key required on every endpoint when enabled. Pass via X-API-Key header.",
    )
    api_key_required: bool = Field(
        default=False,
        description="Whether API key is required. Auto-enabled in production if api_key is set.",
    )
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to call the API from a browser",
    )

    # ===================
    # Structured Parsing (LLM)
    # ===================
    llm_provider: str = Field(default="openai", description="Provider name reported by /command/status")
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible API",
    )
    llm_api_key: str | None = Field(default=None, description="API key for the LLM provider")
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model for parsing and text generation")
    llm_image_model: str = Field(default="gpt-image-1", description="Image generation model")

    # Per-call time bounds
    parse_timeout_seconds: float = Field(default=15.0, description="AI intent parsing timeout")
    text_timeout_seconds: float = Field(default=60.0, description="Text generation timeout")
    image_timeout_seconds: float = Field(default=120.0, description="Per-image generation timeout")

    # ===================
    # Commands
    # ===================
    max_command_length: int = Field(default=2000, ge=1, description="Maximum raw command length")
    default_user_id: str = Field(default="anonymous", description="User when no X-User-ID header is sent")
    user_permissions: dict[str, list[str]] = Field(
        default_factory=lambda: {"admin": ["*"]},
        description="Permission grants per user id; '*' grants everything",
    )
    feature_flags: dict[str, bool] = Field(
        default_factory=dict,
        description="Capability flag defaults, e.g. {'shop': false}",
    )

    # ===================
    # Site context
    # ===================
    site_name: str = Field(default="My Site", description="Site name offered to the parser as context")
    site_locale: str = Field(default="en", description="Site locale")
    site_timezone: str = Field(default="UTC", description="Site timezone")
    site_base_url: str = Field(default="http://localhost:8780", description="Base for follow-up links")

    # ===================
    # Audit
    # ===================
    audit_enabled: bool = Field(default=True, description="Persist command transcripts")
    command_log_path: str = Field(
        default="./data/command_log.db",
        description="SQLite file for command transcripts (':memory:' keeps them in process)",
    )

    # ===================
    # Logging
    # ===================
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="Emit JSON-structured logs")
    log_file: str | None = Field(default=None, description="Optional log file")

    # ===================
    # OpenTelemetry
    # ===================
    otel_enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    otel_endpoint: str = Field(default="http://localhost:4317", description="OTLP gRPC endpoint")
    otel_service_name: str = Field(default="cmdengine", description="Service name on spans")
    otel_insecure: bool = Field(default=True, description="Plaintext OTLP connection")
    otel_console: bool = Field(default=False, description="Also export spans to console")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Restrict environment to known values."""
        v = v.lower()
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"environment must be one of {sorted(VALID_ENVIRONMENTS)}, got '{v}'"
            )
        return v

    @field_validator("parse_timeout_seconds", "text_timeout_seconds", "image_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Timeouts bound every external call and must be positive."""
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v

    @property
    def llm_configured(self) -> bool:
        """Whether the AI fallback can be used."""
        return bool(self.llm_api_key and self.llm_base_url)

    def log_summary(self) -> None:
        """Log effective settings without leaking secrets."""
        logger.info(
            f"Settings: env={self.environment}, provider={self.llm_provider}, "
            f"model={self.llm_model}, llm_key={mask_secret(self.llm_api_key)}, "
            f"audit={'on' if self.audit_enabled else 'off'}"
        )


# =============================================================================
# YAML Loading
# =============================================================================


def _find_config_file() -> Path | None:
    """
    Locate a YAML config file.

    Search order:
    - CMDENGINE_CONFIG_FILE environment variable
    - ./cmdengine.yaml
    - ~/.cmdengine/config.yaml
    - /etc/cmdengine/config.yaml
    """
    explicit = os.getenv(f"{ENV_PREFIX}CONFIG_FILE")
    if explicit:
        path = Path(explicit).expanduser()
        return path if path.exists() else None

    for candidate in (
        Path("cmdengine.yaml"),
        Path.home() / ".cmdengine" / "config.yaml",
        Path("/etc/cmdengine/config.yaml"),
    ):
        if candidate.exists():
            return candidate
    return None


def _load_yaml_config(path: Path) -> dict[str, Any]:
    """Read a YAML mapping; anything else is rejected."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.debug(f"Loaded config from {path}")
    return data


def _without_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Drop YAML values that an environment variable overrides."""
    filtered = {}
    for key, value in config.items():
        env_key = f"{ENV_PREFIX}{key.upper()}"
        if os.getenv(env_key) is None:
            filtered[key] = value
        else:
            logger.debug(f"Skipping YAML key '{key}' - overridden by {env_key}")
    return filtered


def load_settings_from_yaml(config_path: Path | str | None = None) -> Settings:
    """
    Load Settings from a YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, searches standard locations.

    Returns:
        Settings instance with values from YAML and env vars
    """
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        path = _find_config_file()

    yaml_config = _load_yaml_config(path) if path else {}
    return Settings(**_without_env_overrides(yaml_config))


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded from (in order of precedence):
    1. Environment variables (CMDENGINE_* prefix)
    2. YAML config file (if found)
    3. Default values
    """
    return load_settings_from_yaml()


def reset_settings() -> None:
    """Clear the cached settings, forcing reload on next get_settings() call."""
    get_settings.cache_clear()
