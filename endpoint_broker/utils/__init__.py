"""Utility modules for the endpoint broker."""

from .logger import (
    ContextAwareLogger,
    RequestContextFilter,
    configure_logging,
    get_logger,
    reset_logging,
)
from .metadata_utils import parse_endpoint_metadata

__all__ = [
    # Logging utilities
    "ContextAwareLogger",
    "RequestContextFilter",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Endpoint metadata
    "parse_endpoint_metadata",
]
