"""Pydantic schemas for endpoints, tokens, relations and the info snapshot."""

from .endpoint_schemas import Endpoint, EndpointUpdate
from .info_schemas import (
    Diagnostics,
    EndpointDetail,
    InfoSnapshot,
    PluginStatus,
    UserIdentity,
    Versions,
)
from .relation_schemas import EndpointRelation, EndpointRelations, Relation
from .token_schemas import ConnectedUser, CredentialView, ResolvedToken, Token

__all__ = [
    "Endpoint",
    "EndpointUpdate",
    "Diagnostics",
    "EndpointDetail",
    "InfoSnapshot",
    "PluginStatus",
    "UserIdentity",
    "Versions",
    "EndpointRelation",
    "EndpointRelations",
    "Relation",
    "ConnectedUser",
    "CredentialView",
    "ResolvedToken",
    "Token",
]
