"""
Endpoint (CNSI) table - one row per registered remote cluster.

Just the data structure - no business logic.
"""

from sqlalchemy import Boolean, Column, String

from .db_base import JSON, TimestampMixin
from .db_config import Base


class EndpointRecord(Base, TimestampMixin):
    """Registered endpoint row."""

    __tablename__ = "cnsis"

    guid = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    cnsi_type = Column(String(32), nullable=False, index=True)
    sub_type = Column(String(32), nullable=True)
    version = Column(String(64), nullable=True)
    api_endpoint = Column(String(255), nullable=False)
    skip_ssl_validation = Column(Boolean, nullable=False, default=False)
    sso_allowed = Column(Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative classes
    endpoint_metadata = Column("metadata", JSON, nullable=True)
