"""
Configuration management for translate-canvas-ai.

Handles loading configuration from YAML files and environment variables.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from translate_canvas_ai.database import LOG_LEVELS

# Load .env file if present (before Settings initialization)
load_dotenv()


class LLMProvider(str, Enum):
    """Available LLM providers."""

    OPENROUTER = "openrouter"


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    database_path: Path = Field(default=Path("./data/translate_canvas.duckdb"))
    output_dir: Path = Field(default=Path("./translated"))
    logs: Path = Field(default=Path("./logs"))

    @field_validator("database_path", "output_dir", "logs")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expand user home directory and make path absolute."""
        return Path(v).expanduser().resolve()


class TranslationConfig(BaseModel):
    """Configuration for glossary and batch translation."""

    provider: LLMProvider = Field(default=LLMProvider.OPENROUTER)
    default_model: str = Field(default="anthropic/claude-sonnet-4")
    # Retried with this model when the default one fails; empty disables it
    fallback_model: str = Field(default="")
    openrouter_api_key: str = Field(default="")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    glossary_max_tokens: int = Field(default=4000, ge=256, le=64000)
    batch_max_tokens: int = Field(default=16000, ge=256, le=64000)
    chunk_size: int = Field(default=10, ge=1, le=100)
    chunk_delay: float = Field(default=0.5, ge=0.0, le=60.0)
    tolerate_chunk_failures: bool = Field(default=False)
    timeout_seconds: float = Field(default=180.0, ge=10.0, le=900.0)
    max_retries: int = Field(default=3, ge=1, le=10)


class QueueConfig(BaseModel):
    """Configuration for the request queue."""

    batch_limit: int = Field(default=10, ge=1, le=1000)
    # Pause between jobs, in seconds
    job_delay: float = Field(default=3.0, ge=0.0, le=300.0)


class DeliveryConfig(BaseModel):
    """Configuration for delivering translated canvases."""

    # Import into the requester's account when the request names one
    account_import: bool = Field(default=True)
    mailgun_api_key: str = Field(default="")
    mailgun_domain: str = Field(default="")
    mailgun_base_url: str = Field(default="https://api.mailgun.net/v3")
    sender: str = Field(default="StoryChat <robot@localhost>")


class ValidationConfig(BaseModel):
    """Configuration for translated canvas validation."""

    tokenizer_encoding: str = Field(default="o200k_base")


class LoggingConfig(BaseModel):
    """Configuration for the processing log."""

    # Minimum level written to the processing log
    level: str = Field(default="INFO")

    @field_validator("level")
    @classmethod
    def check_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"level must be one of {list(LOG_LEVELS)}")
        return v


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = Field(default="canvas-translation")
    description: str = Field(default="")


class Settings(BaseSettings):
    """Main settings class that combines all configurations."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        extra="ignore",
    )

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    translation: TranslationConfig = Field(default_factory=TranslationConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable fallbacks for API keys."""
        super().__init__(**data)
        if not self.translation.openrouter_api_key:
            self.translation.openrouter_api_key = os.getenv("OPENROUTER_API_KEY", "")
        if not self.delivery.mailgun_api_key:
            self.delivery.mailgun_api_key = os.getenv("MAILGUN_API_KEY", "")
        if not self.delivery.mailgun_domain:
            self.delivery.mailgun_domain = os.getenv("MAILGUN_DOMAIN", "")

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        """Load settings from a YAML file, with environment variable overrides."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config = _substitute_env_vars(yaml_config)

        return cls(**yaml_config)


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${ENV_VAR} patterns in config values."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _substitute_env_vars(value)
        elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            result[key] = os.getenv(value[2:-1], "")
        elif isinstance(value, list):
            result[key] = [
                _substitute_env_vars(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            result[key] = value
    return result


DEFAULT_CONFIG_PATHS = (
    Path("config.yaml"),
    Path("config.yml"),
    Path(".config.yaml"),
    Path(".translate-canvas.yaml"),
)


def load_config(path: Path | str | None = None) -> Settings:
    """
    Load configuration from YAML file or return defaults.

    Args:
        path: Path to YAML config file. If None, the first existing file of
            DEFAULT_CONFIG_PATHS in the current directory is used.

    Returns:
        Settings instance with merged YAML and environment configurations.
    """
    if path is None:
        path = next((p for p in DEFAULT_CONFIG_PATHS if p.exists()), None)

    if path is not None:
        return Settings.from_yaml(path)

    return Settings()


def create_default_config(path: Path | str = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = """# translate-canvas-ai configuration
project:
  name: "canvas-translation"
  description: "StoryChat canvas translation"

paths:
  database_path: "./data/translate_canvas.duckdb"
  output_dir: "./translated"
  logs: "./logs"

translation:
  provider: "openrouter"
  default_model: "anthropic/claude-sonnet-4"
  # Retry failed calls on this model (leave empty to disable)
  fallback_model: ""
  openrouter_api_key: "${OPENROUTER_API_KEY}"
  temperature: 0.3
  # Output token ceilings per call
  glossary_max_tokens: 4000
  batch_max_tokens: 16000
  # Items per translation call, and pause between calls (seconds)
  chunk_size: 10
  chunk_delay: 0.5
  # Keep originals for failed chunks instead of failing the job
  tolerate_chunk_failures: false

queue:
  # Requests picked up per `process` run
  batch_limit: 10
  # Pause between jobs (seconds)
  job_delay: 3

delivery:
  # Import into the requester's account when the request names one
  account_import: true
  mailgun_api_key: "${MAILGUN_API_KEY}"
  mailgun_domain: "${MAILGUN_DOMAIN}"
  mailgun_base_url: "https://api.mailgun.net/v3"
  sender: "StoryChat <robot@localhost>"

validation:
  tokenizer_encoding: "o200k_base"

logging:
  # DEBUG, INFO, WARNING or ERROR
  level: "INFO"
"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(default_config)
