"""Broker services: the four shared components and the per-request aggregator."""

from .endpoint_registry import EndpointRegistry
from .extension_registry import Extension, ExtensionRegistry
from .info_service import (
    AggregationReport,
    InfoAggregator,
    SessionIdentityResolver,
    allow_all,
)
from .relation_graph import RelationGraph, RelationIndex
from .token_store import TokenStore

__all__ = [
    "AggregationReport",
    "EndpointRegistry",
    "Extension",
    "ExtensionRegistry",
    "InfoAggregator",
    "RelationGraph",
    "RelationIndex",
    "SessionIdentityResolver",
    "TokenStore",
    "allow_all",
]
