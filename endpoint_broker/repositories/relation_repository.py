"""
Durable storage for endpoint relations.
"""

from typing import List, Optional

from ..constants import Dependency
from ..context.request_context import CancellationToken
from ..db.db_relation_models import RelationRecord
from ..schemas.relation_schemas import Relation
from .base_repository import BaseRepository


class RelationRepository(BaseRepository):
    """Row interface for the relations table."""

    entity_name = "Relation"
    dependency = Dependency.RELATION_STORE.value

    @staticmethod
    def _to_schema(record: RelationRecord) -> Relation:
        return Relation(
            provider=record.provider,
            target=record.target,
            relation_type=record.relation_type,
            metadata=record.relation_metadata or {},
            sequence=record.sequence,
        )

    def list(self, cancel: Optional[CancellationToken] = None) -> List[Relation]:
        """All relations in insertion order."""
        with self._session_operation("list", cancel) as session:
            records = session.query(RelationRecord).order_by(RelationRecord.sequence).all()
            return [self._to_schema(record) for record in records]

    def insert(self, relation: Relation, cancel: Optional[CancellationToken] = None) -> Relation:
        """
        Persist a new relation.

        Raises:
            RepositoryError: duplicate() if the same (provider, target, type) exists
        """
        with self._session_operation(
            "insert",
            cancel,
            provider=relation.provider,
            target=relation.target,
            relation_type=relation.relation_type,
        ) as session:
            session.add(
                RelationRecord(
                    sequence=relation.sequence,
                    provider=relation.provider,
                    target=relation.target,
                    relation_type=relation.relation_type,
                    relation_metadata=relation.metadata,
                )
            )
        return relation

    def delete(
        self,
        provider: str,
        target: str,
        relation_type: str,
        cancel: Optional[CancellationToken] = None,
    ) -> bool:
        with self._session_operation(
            "delete", cancel, provider=provider, target=target, relation_type=relation_type
        ) as session:
            deleted = (
                session.query(RelationRecord)
                .filter(
                    RelationRecord.provider == provider,
                    RelationRecord.target == target,
                    RelationRecord.relation_type == relation_type,
                )
                .delete(synchronize_session=False)
            )
            return deleted > 0
