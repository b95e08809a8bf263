"""
Pydantic schemas for registered endpoints.

Endpoint is immutable once built; display changes go through EndpointUpdate
and produce a new Endpoint via Endpoint.apply().
"""

import uuid
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.metadata_utils import parse_endpoint_metadata

EndpointMetadata = Union[Dict[str, Any], str, None]

_NULLABLE_FIELDS = {"sub_type", "version", "metadata"}


class Endpoint(BaseModel):
    """A registered remote cluster/controller."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    guid: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1, max_length=36)
    name: str = Field(..., min_length=1, max_length=255)
    cnsi_type: str = Field(..., min_length=1, max_length=32, description="Owning type tag")
    sub_type: Optional[str] = None
    version: Optional[str] = None
    api_endpoint: str = Field(..., min_length=1, max_length=255)
    skip_ssl_validation: bool = False
    sso_allowed: bool = False
    metadata: EndpointMetadata = None

    @field_validator("metadata", mode="before")
    @classmethod
    def decode_metadata(cls, v):
        return parse_endpoint_metadata(v)

    def apply(self, update: "EndpointUpdate") -> "Endpoint":
        """Return a copy with the display fields of `update` applied."""
        changes = {
            k: v
            for k, v in update.model_dump(exclude_unset=True).items()
            if v is not None or k in _NULLABLE_FIELDS
        }
        if "metadata" in changes:
            changes["metadata"] = parse_endpoint_metadata(changes["metadata"])
        return self.model_copy(update=changes)


class EndpointUpdate(BaseModel):
    """Mutable display fields of an endpoint. guid and cnsi_type are not among them."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sub_type: Optional[str] = None
    version: Optional[str] = None
    api_endpoint: Optional[str] = Field(None, min_length=1, max_length=255)
    skip_ssl_validation: Optional[bool] = None
    sso_allowed: Optional[bool] = None
    metadata: EndpointMetadata = None
