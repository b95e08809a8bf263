"""
Pydantic schemas for the aggregated info snapshot.

Nothing here is persisted; a fresh InfoSnapshot is built for every request.
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .endpoint_schemas import Endpoint
from .relation_schemas import EndpointRelations
from .token_schemas import ConnectedUser, CredentialView


class UserIdentity(BaseModel):
    """Authenticated caller, as reported by the identity provider."""

    guid: str = Field(..., min_length=1)
    name: Optional[str] = None
    admin: bool = False
    scopes: List[str] = Field(default_factory=list)


class EndpointDetail(BaseModel):
    """
    One endpoint as seen by one user.

    `metadata` is the extension-contributed mapping; `endpoint.metadata` is the
    connection metadata stored with the registration.
    """

    endpoint: Endpoint
    user: Optional[ConnectedUser] = None
    token_metadata: Optional[Dict[str, Any]] = None
    system_shared_token: bool = False
    token_expiry: Optional[datetime] = None
    credential_present: bool = False
    relations: EndpointRelations = Field(default_factory=EndpointRelations)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def guid(self) -> str:
        return self.endpoint.guid

    @property
    def cnsi_type(self) -> str:
        return self.endpoint.cnsi_type

    def attach_credential(self, view: CredentialView, usable: bool = True) -> None:
        self.user = view.user
        self.token_metadata = view.token_metadata
        self.system_shared_token = view.system_shared_token
        self.token_expiry = view.token_expiry
        self.credential_present = usable


class PluginStatus(BaseModel):
    name: str
    type_tag: str = ""
    version: str = ""
    healthy: bool = True


class Versions(BaseModel):
    console_version: str
    database_version: Optional[str] = None


class Diagnostics(BaseModel):
    """Administrative-only details about the deployment and this aggregation."""

    deployment: Dict[str, Any] = Field(default_factory=dict)
    endpoint_count: int = 0
    dangling_relations: int = 0
    hidden_relations: int = 0
    endpoint_faults: List[str] = Field(default_factory=list)
    extension_faults: List[str] = Field(default_factory=list)


class InfoSnapshot(BaseModel):
    """Aggregated per-request view returned to the caller."""

    # Fields stripped from every non-admin snapshot
    ADMIN_ONLY_FIELDS: ClassVar[Tuple[str, ...]] = ("diagnostics",)

    user: UserIdentity
    versions: Versions
    endpoints: Dict[str, Dict[str, EndpointDetail]] = Field(default_factory=dict)
    diagnostics: Optional[Any] = None
    plugins: List[PluginStatus] = Field(default_factory=list)
    plugin_config: Dict[str, str] = Field(default_factory=dict)
    cloud_foundry: Optional[Dict[str, Any]] = None

    def iter_endpoints(self):
        for endpoints_of_type in self.endpoints.values():
            yield from endpoints_of_type.values()

    def find_endpoint(self, guid: str) -> Optional[EndpointDetail]:
        for detail in self.iter_endpoints():
            if detail.guid == guid:
                return detail
        return None

    def strip_admin_fields(self) -> None:
        for field_name in self.ADMIN_ONLY_FIELDS:
            setattr(self, field_name, None)

    def to_response(self) -> Dict[str, Any]:
        """JSON-ready dict; admin-only fields that are unset are omitted entirely."""
        exclude = {name for name in self.ADMIN_ONLY_FIELDS if getattr(self, name) is None}
        return self.model_dump(mode="json", exclude=exclude)
