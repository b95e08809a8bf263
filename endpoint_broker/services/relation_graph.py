"""
Relation graph service.

Directed, typed edges between endpoints, kept in insertion order. The edge
list is an immutable tuple replaced on every write, so an aggregation that
took one snapshot can index it without seeing later changes.
"""

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..context.operation_context import operation
from ..context.request_context import CancellationToken
from ..exceptions import ValidationError, duplicate, not_found
from ..repositories.relation_repository import RelationRepository
from ..schemas.relation_schemas import EndpointRelation, EndpointRelations, Relation
from ..utils.logger import get_logger

RelationKey = Tuple[str, str, str]


@dataclass
class RelationIndex:
    """Per-endpoint provides/receives lists built from one pass over the edges."""

    provides: Dict[str, List[EndpointRelation]] = field(default_factory=dict)
    receives: Dict[str, List[EndpointRelation]] = field(default_factory=dict)
    dangling: int = 0
    hidden: int = 0

    def for_endpoint(self, guid: str) -> EndpointRelations:
        return EndpointRelations(
            provides=list(self.provides.get(guid, ())),
            receives=list(self.receives.get(guid, ())),
        )


class RelationGraph:
    """Insertion-ordered set of relations between registered endpoints."""

    def __init__(self, repository: Optional[RelationRepository] = None, registry=None):
        """
        Args:
            repository: Optional durable store
            registry: Optional EndpointRegistry; when given, create() rejects
                edges whose endpoints are not registered
        """
        self.repository = repository
        self.registry = registry
        self.logger = get_logger()
        self._lock = threading.Lock()
        self._relations: Tuple[Relation, ...] = ()
        self._keys: Set[RelationKey] = set()
        self._pending: Set[RelationKey] = set()
        self._next_sequence = 1

    def load(self, cancel: Optional[CancellationToken] = None) -> int:
        if self.repository is None:
            return len(self._relations)
        relations = self.repository.list(cancel)
        with self._lock:
            self._relations = tuple(sorted(relations, key=lambda r: r.sequence))
            self._keys = {relation.key for relation in relations}
            last = max((relation.sequence for relation in relations), default=0)
            self._next_sequence = max(self._next_sequence, last + 1)
        self.logger.info("Relation graph loaded", extra={"relation_count": len(relations)})
        return len(relations)

    def snapshot(self) -> Tuple[Relation, ...]:
        return self._relations

    def list_all(self) -> List[Relation]:
        """All relations in insertion order."""
        return list(self._relations)

    def __len__(self) -> int:
        return len(self._relations)

    def edges_for(self, guid: str) -> EndpointRelations:
        """Relations where `guid` is the provider (provides) or the target (receives)."""
        result = EndpointRelations()
        for relation in self._relations:
            if relation.provider == guid:
                result.provides.append(_side(relation, relation.target))
            if relation.target == guid:
                result.receives.append(_side(relation, relation.provider))
        return result

    def build_index(
        self,
        known_guids: Collection[str],
        visible_guids: Optional[Collection[str]] = None,
        relations: Optional[Sequence[Relation]] = None,
    ) -> RelationIndex:
        """
        Bucket every relation into per-endpoint provides/receives lists in one pass.

        Edges with an endpoint that is no longer registered are dangling:
        skipped and counted. Edges with exactly one endpoint outside
        `visible_guids` are hidden: skipped and counted. A self-relation
        yields one entry in each list of its endpoint.

        Args:
            known_guids: Guids currently registered
            visible_guids: Guids the caller may see (defaults to all known)
            relations: Edge snapshot to index (defaults to the current one)
        """
        if relations is None:
            relations = self._relations
        if visible_guids is None:
            visible_guids = known_guids

        index = RelationIndex()
        for relation in relations:
            provider, target = relation.provider, relation.target
            if provider not in known_guids or target not in known_guids:
                index.dangling += 1
                self.logger.debug(
                    "Skipping dangling relation",
                    extra={
                        "provider": provider,
                        "target": target,
                        "relation_type": relation.relation_type,
                    },
                )
                continue

            provider_visible = provider in visible_guids
            target_visible = target in visible_guids
            if not (provider_visible and target_visible):
                if provider_visible or target_visible:
                    index.hidden += 1
                continue

            index.provides.setdefault(provider, []).append(_side(relation, target))
            index.receives.setdefault(target, []).append(_side(relation, provider))
        return index

    @operation()
    def create(
        self,
        provider: str,
        target: str,
        relation_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Relation:
        """
        Add a relation.

        Raises:
            ValidationError: If the relation fields are invalid
            RepositoryError: not_found() for an unregistered endpoint,
                duplicate() if the same (provider, target, type) exists
        """
        try:
            candidate = Relation(
                provider=provider,
                target=target,
                relation_type=relation_type,
                metadata=metadata or {},
            )
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid relation: {e.error_count()} error(s)",
                field="relation",
                cause=e,
                provider=provider,
                target=target,
            ) from e

        if self.registry is not None:
            self.registry.get(candidate.provider)
            self.registry.get(candidate.target)

        key = candidate.key
        with self._lock:
            taken = key in self._keys or key in self._pending
            if not taken:
                self._pending.add(key)
                sequence = self._next_sequence
                self._next_sequence += 1
        if taken:
            raise duplicate("Relation", provider=provider, target=target, relation_type=relation_type)

        relation = candidate.model_copy(update={"sequence": sequence})
        try:
            if self.repository is not None:
                self.repository.insert(relation, cancel)
        except Exception:
            with self._lock:
                self._pending.discard(key)
            raise

        with self._lock:
            self._pending.discard(key)
            self._keys.add(key)
            self._relations = tuple(
                sorted(self._relations + (relation,), key=lambda r: r.sequence)
            )

        self.logger.info(
            "Created relation",
            extra={"provider": provider, "target": target, "relation_type": relation_type},
        )
        return relation

    @operation()
    def delete(
        self,
        provider: str,
        target: str,
        relation_type: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Relation:
        """
        Remove a relation.

        Raises:
            RepositoryError: not_found() if no such relation exists
        """
        key = (provider, target, relation_type)
        with self._lock:
            removed = next((r for r in self._relations if r.key == key), None)
            if removed is not None:
                self._keys.discard(key)
                self._relations = tuple(r for r in self._relations if r.key != key)
        if removed is None:
            raise not_found("Relation", provider=provider, target=target, relation_type=relation_type)

        try:
            if self.repository is not None:
                self.repository.delete(provider, target, relation_type, cancel)
        except Exception:
            with self._lock:
                if key not in self._keys and key not in self._pending:
                    self._keys.add(key)
                    self._relations = tuple(
                        sorted(self._relations + (removed,), key=lambda r: r.sequence)
                    )
            raise

        self.logger.info(
            "Deleted relation",
            extra={"provider": provider, "target": target, "relation_type": relation_type},
        )
        return removed


def _side(relation: Relation, peer: str) -> EndpointRelation:
    return EndpointRelation(
        peer=peer,
        relation_type=relation.relation_type,
        metadata=copy.deepcopy(relation.metadata),
    )
