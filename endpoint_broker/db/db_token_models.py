"""
Token table - per-(endpoint, user) and system-shared credentials.

Shared tokens are stored under the SYSTEM_SHARED_USER sentinel so the
(endpoint_guid, user_guid) pair stays unique for both kinds.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import Base


class TokenRecord(Base, UUIDMixin, TimestampMixin):
    """Credential row - just data, no logic."""

    __tablename__ = "tokens"

    endpoint_guid = Column(String(36), nullable=False, index=True)
    user_guid = Column(String(100), nullable=False)
    system_shared = Column(Boolean, nullable=False, default=False)

    auth_type = Column(String(32), nullable=False)
    auth_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Connected user as reported by the remote endpoint
    linked_user_guid = Column(String(100), nullable=True)
    linked_user_name = Column(String(255), nullable=True)
    linked_user_admin = Column(Boolean, nullable=False, default=False)
    linked_user_scopes = Column(JSON, nullable=True)

    token_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (Index("ix_token_lookup", "endpoint_guid", "user_guid", unique=True),)
