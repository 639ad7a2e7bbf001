"""Configuration loading and Pydantic models for SquirrelUp.

Values come from a YAML file. The ``s3`` and ``backup`` sections may be
overridden by ``SQUIRRELUP_*`` environment variables, which take
precedence over the file.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from squirrelup.storage.multipart import (
    MAX_ATTEMPTS,
    MAX_CONCURRENCY,
    PART_SIZE,
    RETRY_WAIT_SECONDS,
    SINGLE_SHOT_MAX_BYTES,
    UploadPolicy,
)


class _EnvFirstSettings(BaseSettings):
    """Settings whose environment variables override explicit values."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings


class S3Config(_EnvFirstSettings):
    """Object storage credentials (SQUIRRELUP_S3_*)."""

    model_config = SettingsConfigDict(env_prefix="SQUIRRELUP_S3_")

    region: str = ""
    id: str = ""
    secret: str = ""
    token: str = ""


class BackupConfig(_EnvFirstSettings):
    """Backup naming and rotation (SQUIRRELUP_BACKUP_*).

    ``name`` is a strftime pattern for the archive basename. Remote backups
    older than ``hours`` are removed; 0 disables rotation.
    """

    model_config = SettingsConfigDict(env_prefix="SQUIRRELUP_BACKUP_")

    hours: float = 240.0
    name: str = "%Y-%m-%dT%H%z"


class UploadConfig(BaseModel):
    """Upload strategy tunables."""

    single_shot_max_bytes: int = SINGLE_SHOT_MAX_BYTES
    part_size: int = PART_SIZE
    max_concurrency: int = MAX_CONCURRENCY
    max_attempts: int = MAX_ATTEMPTS
    retry_wait_seconds: float = RETRY_WAIT_SECONDS
    timeout: float | None = None

    def to_policy(self) -> UploadPolicy:
        return UploadPolicy(**self.model_dump())


class LoggingConfig(BaseModel):
    """Log output settings."""

    level: str = "INFO"
    format: str = "text"

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in ("text", "json"):
            raise ValueError(f"unknown log format: {value}")
        return value


class SquirrelUpConfig(BaseModel):
    """Top-level SquirrelUp configuration."""

    s3: S3Config = Field(default_factory=S3Config)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a YAML section as a dict, treating a missing section as empty."""
    data = raw.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"configuration section '{name}' must be a mapping")
    return data


def load_config(path: Path | None = None) -> SquirrelUpConfig:
    """Load a SquirrelUpConfig from a YAML file and the environment.

    Args:
        path: Path to the YAML configuration file, or None to use only
            defaults and environment variables.

    Returns:
        A fully populated SquirrelUpConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If a section has the wrong shape or invalid values.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        with open(path, "r") as fh:
            raw = yaml.safe_load(fh) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"configuration file {path} must contain a mapping")

    return SquirrelUpConfig(
        s3=S3Config(**_section(raw, "s3")),
        backup=BackupConfig(**_section(raw, "backup")),
        upload=UploadConfig(**_section(raw, "upload")),
        logging=LoggingConfig(**_section(raw, "logging")),
    )
