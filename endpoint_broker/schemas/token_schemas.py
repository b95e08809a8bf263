"""
Pydantic schemas for endpoint credentials.

A Token holds the secret material; it never reaches the aggregated view.
CredentialView is the projection that does.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import AuthType


class ConnectedUser(BaseModel):
    """The identity a token represents on the remote endpoint."""

    model_config = ConfigDict(frozen=True)

    guid: str
    name: Optional[str] = None
    admin: bool = False
    scopes: List[str] = Field(default_factory=list)


class Token(BaseModel):
    """Credential for one endpoint, either user-scoped or system-shared."""

    model_config = ConfigDict(frozen=True)

    endpoint_guid: str = Field(..., min_length=1)
    user_guid: Optional[str] = Field(None, description="None for system-shared tokens")
    system_shared: bool = False
    auth_type: str = AuthType.OAUTH2.value
    auth_token: str = Field(..., min_length=1, repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    token_expiry: Optional[datetime] = None
    linked_user: Optional[ConnectedUser] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("token_expiry")
    @classmethod
    def normalise_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Naive values (as SQLite returns them) are UTC
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.token_expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return self.token_expiry <= now

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """A token is usable while unexpired, or when it can be refreshed."""
        return not self.is_expired(now) or bool(self.refresh_token)

    def to_view(self) -> "CredentialView":
        return CredentialView(
            user=self.linked_user,
            token_metadata=self.metadata,
            system_shared_token=self.system_shared,
            token_expiry=self.token_expiry,
        )


class ResolvedToken(NamedTuple):
    token: Token
    is_shared: bool


class CredentialView(BaseModel):
    """Presence/metadata projection of a credential."""

    user: Optional[ConnectedUser] = None
    token_metadata: Optional[Dict[str, Any]] = None
    system_shared_token: bool = False
    token_expiry: Optional[datetime] = None
