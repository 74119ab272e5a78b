"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for the execution engine and its
HTTP surface, loaded from environment variables with sensible defaults.

Usage:
    from coderunner.config import get_settings
    settings = get_settings()
    budget = settings.runtime.execution_timeout_sec
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_flag(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes")
    return bool(v)


class RuntimeSettings(BaseSettings):
    """Embedded runtime configuration."""

    model_config = SettingsConfigDict(env_prefix="RUNNER_", extra="ignore")

    execution_timeout_sec: float = Field(default=30.0, description="Cooperative timeout budget")
    library_module: str = Field(default="thoughtful_code", description="Virtual library module name")
    preload_modules: str = Field(default="", description="Comma-separated modules imported at bootstrap")
    interrupts_enabled: bool = Field(default=True, description="Allocate the interrupt buffer")
    thread_name: str = Field(default="coderunner-runtime", description="Runtime thread name prefix")

    @field_validator("interrupts_enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_flag(v)

    @property
    def preload_list(self) -> list[str]:
        """Parse comma-separated preload modules into list."""
        return [m.strip() for m in self.preload_modules.split(",") if m.strip()]


class DebuggerSettings(BaseSettings):
    """Step tracer configuration."""

    model_config = SettingsConfigDict(env_prefix="DEBUGGER_", extra="ignore")

    max_steps: int = Field(default=500, description="Maximum recorded steps per trace")
    user_filename: str = Field(default="<student_code>", description="Synthetic filename for user code")


class HarnessSettings(BaseSettings):
    """Active test suite configuration."""

    model_config = SettingsConfigDict(env_prefix="HARNESS_", extra="ignore")

    storage_key: str = Field(default="codeEditorPage_activeTests_v3", description="Storage key prefix")
    anonymous_owner: str = Field(default="anonymous", description="Owner used when none is given")


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    enabled: bool = Field(default=True, description="Persist active tests in Redis")
    password: str = Field(default="", description="Redis password")
    max_connections: int = Field(default=50, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_flag(v)


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"]


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    runtime: bool = Field(default=False, alias="runtime_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_flag(v)


class Settings:
    """Main settings combining all configuration sections.

    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.runtime = RuntimeSettings()
        self.debugger = DebuggerSettings()
        self.harness = HarnessSettings()
        self.redis = RedisSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
