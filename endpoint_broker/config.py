"""
Centralized configuration management for the endpoint broker.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Broker settings echoed into the aggregated snapshot
- Validation using Pydantic
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EnvironmentVariable, LogLevel


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./endpoint_broker.db"
        ),
        description="Database connection string",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling broker behavior."""

    enable_relations: bool = Field(
        default=True, description="Attach provides/receives relation lists to endpoints"
    )
    enable_diagnostics: bool = Field(
        default=True, description="Include diagnostics in admin snapshots"
    )
    enable_extension_isolation: bool = Field(
        default=True,
        description="Run each extension on a copy of the snapshot so a failure rolls back",
    )


class CloudFoundryConfig(BaseModel):
    """Settings the built-in cf extension publishes in every snapshot."""

    api_endpoint: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.CF_API_ENDPOINT.value),
        description="Default Cloud Foundry API endpoint",
    )
    space_guid: Optional[str] = Field(default=None, description="Default space")
    app_guid: Optional[str] = Field(default=None, description="Console application guid")


class BrokerConfig(BaseModel):
    """Configuration for aggregation behavior."""

    console_version: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.CONSOLE_VERSION.value, "dev"),
        description="Console version reported in snapshots",
    )
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv(EnvironmentVariable.REQUEST_TIMEOUT.value, "30")),
        gt=0,
        description="Default deadline for one aggregation request",
    )
    plugin_config: Dict[str, str] = Field(
        default_factory=dict, description="Opaque plugin settings echoed to the UI"
    )
    cloud_foundry: CloudFoundryConfig = Field(
        default_factory=CloudFoundryConfig, description="Cloud Foundry settings"
    )


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.DEBUG.value, "false").lower()
        == "true",
        description="Debug mode",
    )

    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    broker: BrokerConfig = Field(default_factory=BrokerConfig, description="Broker configuration")

    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self.custom[key] = value

    def deployment_info(self) -> Dict[str, Any]:
        """Non-secret deployment facts exposed in admin diagnostics."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "database_backend": self.database.connection_string.split(":", 1)[0],
            "console_version": self.broker.console_version,
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
