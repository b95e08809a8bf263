"""
Constants and enums for the endpoint broker.

This module centralizes the magic strings shared by the registry, token
store, relation graph and aggregator.
"""

from enum import Enum

# Sentinel user id under which system-shared tokens are persisted
SYSTEM_SHARED_USER = "__system_shared__"


class EndpointType(str, Enum):
    """Endpoint type tags owned by the built-in extensions."""

    CLOUD_FOUNDRY = "cf"
    KUBERNETES = "k8s"


class AuthType(str, Enum):
    """How a token was obtained against the remote endpoint."""

    OAUTH2 = "OAuth2"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"
    CONSOLE_VERSION = "CONSOLE_VERSION"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    CF_API_ENDPOINT = "CF_API_ENDPOINT"


class Dependency(str, Enum):
    """External collaborators the broker reports failures against."""

    ENDPOINT_STORE = "endpoint_store"
    TOKEN_STORE = "token_store"
    RELATION_STORE = "relation_store"
    IDENTITY_PROVIDER = "identity_provider"
    AUTHORIZATION = "authorization"
