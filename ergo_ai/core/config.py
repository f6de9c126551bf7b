"""
Configuration Settings.

This module defines the runtime configuration using Pydantic's BaseSettings.
Values are bound from environment variables first and then from
``$ERGO_HOME/config.toml``; the file is read-only from the tool's perspective.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Type

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

DEFAULT_HOME_DIRNAME = ".ergo"
CONFIG_FILENAME = "config.toml"


def default_home() -> Path:
    """Return the state directory, honouring ``ERGO_HOME`` when set."""
    override = os.getenv("ERGO_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME


class Mode(str, Enum):
    """Namespace partition for cached artifacts."""

    mock = "mock"
    production = "production"


class GeneratorBackend(str, Enum):
    """Selectable generator implementations."""

    deterministic = "deterministic"
    remote = "remote"
    template = "template"


# =====================================================================
# Grouped Configuration Models
# =====================================================================


class AnthropicConfig(BaseModel):
    """Remote generator (Anthropic Messages API) configuration, a view over ``Settings``."""

    api_key: Optional[str] = Field(description="Anthropic API key for authentication")
    model: str = Field(description="Model used to generate commands")
    base_url: str = Field(description="Anthropic API base URL")
    timeout: float = Field(gt=0, description="Seconds to wait for a generation call")


class SandboxConfig(BaseModel):
    """Sandbox runtime configuration, a view over ``Settings``."""

    deno_path: str = Field(description="Deno executable name or path")
    timeout: float = Field(gt=0, description="Seconds an artifact may run before it is killed")


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Runtime settings model.

    All properties are bound from environment variables (by alias) and from the
    optional TOML config file in the ergo home directory.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Namespace & backend selection
    # =====================================================================
    use_mock: bool = Field(
        default=False,
        alias="ERGO_USE_MOCK",
        description="Resolve and cache commands in the mock namespace with the deterministic generator",
    )
    generator: Optional[GeneratorBackend] = Field(
        default=None,
        alias="ERGO_GENERATOR",
        description="Explicit generator backend; defaults to deterministic (mock) or remote (production)",
    )

    # =====================================================================
    # Credentials & remote backend
    # =====================================================================
    anthropic_api_key: Optional[str] = Field(
        default=None, alias="ANTHROPIC_API_KEY", description="Anthropic API key for authentication"
    )
    model: str = Field(default="claude-3-5-haiku-latest", alias="ERGO_MODEL")
    api_url: str = Field(default="https://api.anthropic.com", alias="ERGO_API_URL")
    generation_timeout: float = Field(default=60.0, alias="ERGO_GENERATION_TIMEOUT", gt=0)

    # =====================================================================
    # Sandbox
    # =====================================================================
    deno_path: str = Field(default="deno", alias="ERGO_DENO_PATH")
    execution_timeout: float = Field(default=300.0, alias="ERGO_EXECUTION_TIMEOUT", gt=0)
    allowed_permissions: str = Field(
        default="read,write,net,env,run",
        alias="ERGO_ALLOWED_PERMISSIONS",
        description="Comma separated permission kinds generated artifacts may request",
    )
    auto_approve_empty: bool = Field(
        default=False,
        alias="ERGO_AUTO_APPROVE_EMPTY",
        description="Approve artifacts that declare no permissions without prompting",
    )

    # =====================================================================
    # Storage & logging
    # =====================================================================
    home: Path = Field(default_factory=default_home, alias="ERGO_HOME")
    log_level: str = Field(default="WARNING", alias="ERGO_LOG_LEVEL")
    log_format: str = Field(default="detailed", alias="ERGO_LOG_FORMAT")
    enable_file_logging: bool = Field(default=True, alias="ERGO_ENABLE_FILE_LOGGING")

    @field_validator("generator", mode="before")
    @classmethod
    def _blank_generator_is_default(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        toml_settings = TomlConfigSettingsSource(settings_cls, toml_file=default_home() / CONFIG_FILENAME)
        return init_settings, env_settings, toml_settings, file_secret_settings

    # =====================================================================
    # Computed Properties
    # =====================================================================

    @property
    def mode(self) -> Mode:
        """Namespace selected by ``ERGO_USE_MOCK``."""
        return Mode.mock if self.use_mock else Mode.production

    @property
    def generator_backend(self) -> GeneratorBackend:
        """Effective generator backend for the current mode."""
        if self.generator is not None:
            return self.generator
        return GeneratorBackend.deterministic if self.use_mock else GeneratorBackend.remote

    @property
    def cache_root(self) -> Path:
        return self.home / "cache"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    @property
    def config_file(self) -> Path:
        return self.home / CONFIG_FILENAME

    @property
    def allowed_permission_kinds(self) -> list[str]:
        return [part.strip().lower() for part in self.allowed_permissions.split(",") if part.strip()]

    @property
    def anthropic(self) -> AnthropicConfig:
        """Get remote generator configuration."""
        return AnthropicConfig(
            api_key=self.anthropic_api_key,
            model=self.model,
            base_url=self.api_url,
            timeout=self.generation_timeout,
        )

    @property
    def sandbox(self) -> SandboxConfig:
        """Get sandbox runtime configuration."""
        return SandboxConfig(deno_path=self.deno_path, timeout=self.execution_timeout)


def load_settings(**overrides) -> Settings:
    """Build a fresh ``Settings`` instance from the current environment."""
    return Settings(**overrides)
