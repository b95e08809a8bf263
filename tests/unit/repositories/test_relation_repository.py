"""Tests for RelationRepository against an SQLite in-memory store."""

import pytest

from endpoint_broker.exceptions import ErrorCode, RepositoryError
from endpoint_broker.repositories import RelationRepository
from endpoint_broker.schemas import Relation
from tests.fixtures.factories import RelationRecordFactory


@pytest.fixture
def repository(clean_db):
    return RelationRepository(clean_db)


class TestRelationRepository:
    def test_list_in_sequence_order(self, repository):
        repository.insert(Relation(provider="b", target="c", relation_type="t", sequence=2))
        repository.insert(Relation(provider="a", target="b", relation_type="t", sequence=1))

        assert [r.sequence for r in repository.list()] == [1, 2]

    def test_metadata_round_trip(self, repository):
        relation = Relation(
            provider="a", target="b", relation_type="deploys-to", metadata={"space": "dev"}, sequence=1
        )
        repository.insert(relation)

        assert repository.list() == [relation]

    def test_duplicate_edge_is_conflict(self, repository):
        repository.insert(Relation(provider="a", target="b", relation_type="t", sequence=1))

        with pytest.raises(RepositoryError) as exc_info:
            repository.insert(Relation(provider="a", target="b", relation_type="t", sequence=2))
        assert exc_info.value.error_code == ErrorCode.DUPLICATE

    def test_same_pair_different_type_allowed(self, repository):
        repository.insert(Relation(provider="a", target="b", relation_type="t1", sequence=1))
        repository.insert(Relation(provider="a", target="b", relation_type="t2", sequence=2))

        assert len(repository.list()) == 2

    def test_reads_rows_written_elsewhere(self, repository, db_session):
        record = RelationRecordFactory(provider="a", target="a")

        (relation,) = repository.list()
        assert relation.sequence == record.sequence
        assert relation.is_self_relation

    def test_delete(self, repository):
        repository.insert(Relation(provider="a", target="b", relation_type="t", sequence=1))

        assert repository.delete("a", "b", "t") is True
        assert repository.delete("a", "b", "t") is False
        assert repository.list() == []
