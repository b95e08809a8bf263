"""Tests for the relation graph and its one-pass relation index."""

from unittest.mock import Mock

import pytest

from endpoint_broker.exceptions import (
    ErrorCode,
    RepositoryError,
    UpstreamUnavailableError,
    ValidationError,
)
from endpoint_broker.repositories import RelationRepository
from endpoint_broker.schemas import Relation
from endpoint_broker.services import EndpointRegistry, RelationGraph
from tests.fixtures.factories import EndpointFactory


def peers(entries):
    return [(entry.peer, entry.relation_type) for entry in entries]


class TestRelationGraph:
    def setup_method(self):
        self.graph = RelationGraph()

    def test_list_all_in_insertion_order(self):
        self.graph.create("b", "c", "t")
        self.graph.create("a", "b", "t")
        self.graph.create("c", "a", "t")

        relations = self.graph.list_all()

        assert [(r.provider, r.target) for r in relations] == [("b", "c"), ("a", "b"), ("c", "a")]
        assert [r.sequence for r in relations] == [1, 2, 3]

    def test_duplicate_is_conflict(self):
        self.graph.create("a", "b", "t", {"x": 1})

        with pytest.raises(RepositoryError) as exc_info:
            self.graph.create("a", "b", "t")
        assert exc_info.value.error_code == ErrorCode.DUPLICATE
        assert len(self.graph) == 1

    def test_invalid_relation_is_rejected(self):
        with pytest.raises(ValidationError):
            self.graph.create("a", "b", "")
        assert len(self.graph) == 0

    def test_delete(self):
        self.graph.create("a", "b", "t")

        removed = self.graph.delete("a", "b", "t")

        assert removed.key == ("a", "b", "t")
        assert self.graph.list_all() == []
        with pytest.raises(RepositoryError) as exc_info:
            self.graph.delete("a", "b", "t")
        assert exc_info.value.error_code == ErrorCode.NOT_FOUND

    def test_recreate_after_delete_goes_to_the_end(self):
        self.graph.create("a", "b", "t")
        self.graph.create("b", "c", "t")
        self.graph.delete("a", "b", "t")
        self.graph.create("a", "b", "t")

        assert [r.provider for r in self.graph.list_all()] == ["b", "a"]

    def test_edges_for_partitions_by_direction(self):
        self.graph.create("a", "b", "deploys-to")
        self.graph.create("c", "a", "monitors")

        edges = self.graph.edges_for("a")

        assert peers(edges.provides) == [("b", "deploys-to")]
        assert peers(edges.receives) == [("c", "monitors")]

    def test_self_relation_appears_once_in_each_list(self):
        self.graph.create("a", "a", "self-metrics")

        edges = self.graph.edges_for("a")

        assert peers(edges.provides) == [("a", "self-metrics")]
        assert peers(edges.receives) == [("a", "self-metrics")]

    def test_create_checks_registry(self):
        registry = EndpointRegistry()
        known = registry.register(EndpointFactory())
        graph = RelationGraph(registry=registry)

        with pytest.raises(RepositoryError) as exc_info:
            graph.create(known.guid, "unknown", "t")
        assert exc_info.value.error_code == ErrorCode.NOT_FOUND
        assert graph.list_all() == []

        graph.create(known.guid, known.guid, "t")
        assert len(graph) == 1

    def test_snapshot_is_stable(self):
        self.graph.create("a", "b", "t")
        snapshot = self.graph.snapshot()

        self.graph.create("b", "c", "t")
        self.graph.delete("a", "b", "t")

        assert [r.key for r in snapshot] == [("a", "b", "t")]


class TestBuildIndex:
    def setup_method(self):
        self.graph = RelationGraph()

    def test_provides_and_receives(self):
        self.graph.create("a", "b", "deploys-to", {"space": "dev"})
        self.graph.create("a", "c", "deploys-to")
        self.graph.create("b", "c", "peers")

        index = self.graph.build_index(known_guids={"a", "b", "c"})

        assert peers(index.provides["a"]) == [("b", "deploys-to"), ("c", "deploys-to")]
        assert peers(index.receives["c"]) == [("a", "deploys-to"), ("b", "peers")]
        assert index.provides["a"][0].metadata == {"space": "dev"}
        assert index.dangling == 0
        assert index.hidden == 0

    def test_dangling_edges_are_skipped_and_counted(self):
        self.graph.create("a", "b", "t")
        self.graph.create("a", "c", "t")

        index = self.graph.build_index(known_guids={"a", "c"})

        assert peers(index.for_endpoint("a").provides) == [("c", "t")]
        assert index.dangling == 1

    def test_hidden_peers_are_dropped(self):
        self.graph.create("a", "b", "t")
        self.graph.create("x", "y", "t")

        index = self.graph.build_index(known_guids={"a", "b", "x", "y"}, visible_guids={"a"})

        assert index.for_endpoint("a").provides == []
        assert index.hidden == 1

    def test_self_relation(self):
        self.graph.create("a", "a", "t")

        relations = self.graph.build_index(known_guids={"a"}).for_endpoint("a")

        assert peers(relations.provides) == [("a", "t")]
        assert peers(relations.receives) == [("a", "t")]

    def test_indexes_the_given_snapshot(self):
        self.graph.create("a", "b", "t")
        snapshot = self.graph.snapshot()
        self.graph.create("b", "a", "t")

        index = self.graph.build_index(known_guids={"a", "b"}, relations=snapshot)

        assert index.for_endpoint("b").provides == []

    def test_metadata_is_copied(self):
        self.graph.create("a", "b", "t", {"nested": {"k": 1}})

        index = self.graph.build_index(known_guids={"a", "b"})
        index.provides["a"][0].metadata["nested"]["k"] = 2

        assert self.graph.list_all()[0].metadata == {"nested": {"k": 1}}

    def test_unknown_endpoint_has_empty_lists(self):
        relations = self.graph.build_index(known_guids=set()).for_endpoint("zzz")
        assert relations.provides == [] and relations.receives == []


class TestRelationGraphWithStore:
    def test_failed_insert_publishes_nothing(self):
        repository = Mock(spec=RelationRepository)
        repository.insert.side_effect = UpstreamUnavailableError("down", dependency="relation_store")
        graph = RelationGraph(repository)

        with pytest.raises(UpstreamUnavailableError):
            graph.create("a", "b", "t")
        assert graph.list_all() == []

        repository.insert.side_effect = None
        graph.create("a", "b", "t")
        assert len(graph) == 1

    def test_failed_delete_restores_edge(self):
        repository = Mock(spec=RelationRepository)
        graph = RelationGraph(repository)
        graph.create("a", "b", "t")
        graph.create("b", "c", "t")
        repository.delete.side_effect = UpstreamUnavailableError("down", dependency="relation_store")

        with pytest.raises(UpstreamUnavailableError):
            graph.delete("a", "b", "t")

        assert [r.key for r in graph.list_all()] == [("a", "b", "t"), ("b", "c", "t")]

    def test_load_continues_sequence(self):
        repository = Mock(spec=RelationRepository)
        repository.list.return_value = [
            Relation(provider="b", target="c", relation_type="t", sequence=7),
            Relation(provider="a", target="b", relation_type="t", sequence=3),
        ]
        graph = RelationGraph(repository)

        assert graph.load() == 2
        created = graph.create("c", "a", "t")

        assert created.sequence == 8
        assert [r.sequence for r in graph.list_all()] == [3, 7, 8]

    def test_state_survives_reload(self, clean_db):
        graph = RelationGraph(RelationRepository(clean_db))
        graph.create("a", "b", "t", {"k": "v"})
        graph.create("b", "a", "t")
        graph.delete("b", "a", "t")

        fresh = RelationGraph(RelationRepository(clean_db))
        fresh.load()

        assert [(r.key, r.metadata) for r in fresh.list_all()] == [(("a", "b", "t"), {"k": "v"})]
