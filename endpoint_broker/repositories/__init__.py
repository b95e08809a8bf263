"""Durable-store repositories (row interface keyed by identifier)."""

from .base_repository import BaseRepository
from .endpoint_repository import EndpointRepository
from .relation_repository import RelationRepository
from .token_repository import TokenRepository, storage_user_key

__all__ = [
    "BaseRepository",
    "EndpointRepository",
    "RelationRepository",
    "TokenRepository",
    "storage_user_key",
]
