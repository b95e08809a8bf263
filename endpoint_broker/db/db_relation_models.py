"""
Relation table - directed, typed edges between two endpoint guids.
"""

from sqlalchemy import Column, Index, Integer, String

from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import Base


class RelationRecord(Base, UUIDMixin, TimestampMixin):
    """Relation row - just data, no logic."""

    __tablename__ = "relations"

    # Insertion order, used for deterministic listing
    sequence = Column(Integer, nullable=False, index=True)

    provider = Column(String(36), nullable=False, index=True)
    target = Column(String(36), nullable=False, index=True)
    relation_type = Column(String(64), nullable=False)

    relation_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_relation_edge", "provider", "target", "relation_type", unique=True),
    )
