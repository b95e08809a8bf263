"""
Tests for the EndpointBroker facade, in memory and against the test database.
"""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from endpoint_broker.broker import EndpointBroker, default_extensions
from endpoint_broker.config import AppConfig, BrokerConfig
from endpoint_broker.exceptions import (
    ErrorCode,
    OperationCancelledError,
    RepositoryError,
    ServiceError,
    UnauthorizedError,
    UpstreamUnavailableError,
    ValidationError,
    is_conflict,
    is_not_found,
)
from endpoint_broker.extensions import CloudFoundryExtension, KubernetesExtension
from endpoint_broker.repositories import TokenRepository
from endpoint_broker.schemas import UserIdentity


def session_for(user_id):
    return {"user_id": user_id}


class TestConstruction:
    def test_requires_an_identity_source(self, app_config):
        with pytest.raises(ServiceError) as exc_info:
            EndpointBroker(config=app_config)
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR

    def test_explicit_resolver(self, app_config):
        resolver = Mock(return_value=UserIdentity(guid="someone"))
        broker = EndpointBroker(config=app_config, identity_resolver=resolver)

        snapshot = broker.build_info(broker.new_request())

        assert snapshot.user.guid == "someone"
        resolver.assert_called_once()

    def test_default_extensions(self, app_config):
        extensions = default_extensions(app_config)

        assert [type(e) for e in extensions] == [CloudFoundryExtension, KubernetesExtension]
        assert extensions[0].settings is app_config.broker.cloud_foundry

    def test_new_request_carries_deadline(self, broker):
        request = broker.new_request(session_for("user-u"), request_id="req-1")

        assert request.request_id == "req-1"
        assert request.session == {"user_id": "user-u"}
        assert 0 < request.cancellation.remaining() <= 30

    def test_expired_timeout_cancels(self, users):
        config = AppConfig(broker=BrokerConfig(request_timeout_seconds=0.001))
        broker = EndpointBroker(config=config, user_lookup=users.get)
        request = broker.new_request(session_for("user-u"))
        time.sleep(0.01)

        with pytest.raises(OperationCancelledError):
            broker.build_info(request)


class TestInfo:
    def test_snapshot_for_scenario(self, broker):
        cf = broker.register_endpoint(name="A", cnsi_type="cf", api_endpoint="https://api.a")
        k8s = broker.register_endpoint(name="B", cnsi_type="k8s", api_endpoint="https://b:6443")
        broker.create_relation(cf.guid, k8s.guid, "deploys-to")
        broker.connect_endpoint(cf.guid, "secret-token", user_guid="user-u")

        snapshot = broker.build_info(broker.new_request(session_for("user-u")))

        assert snapshot.endpoints["cf"][cf.guid].credential_present is True
        assert snapshot.endpoints["k8s"][k8s.guid].metadata == {"cf_providers": 1}
        assert snapshot.versions.console_version == "4.4.0-test"
        assert snapshot.plugin_config == {"userInvitationsEnabled": "true"}
        assert snapshot.cloud_foundry == {"api_endpoint": "https://api.cf.example.com"}
        assert [p.name for p in snapshot.plugins] == ["cloudfoundry", "kubernetes"]
        assert snapshot.diagnostics is None
        assert "secret-token" not in str(snapshot.to_response())

    def test_missing_session_user(self, broker):
        with pytest.raises(UnauthorizedError):
            broker.build_info(broker.new_request())


class TestEndpoints:
    def test_register_validates_fields(self, broker):
        with pytest.raises(ValidationError):
            broker.register_endpoint(name="", cnsi_type="cf", api_endpoint="https://api.a")

    def test_register_unowned_type_is_allowed(self, broker):
        endpoint = broker.register_endpoint(
            name="metrics", cnsi_type="metrics", api_endpoint="https://metrics"
        )

        snapshot = broker.build_info(broker.new_request(session_for("user-u")))

        assert list(snapshot.endpoints["metrics"]) == [endpoint.guid]

    def test_duplicate_guid(self, broker):
        broker.register_endpoint(guid="fixed", name="a", cnsi_type="cf", api_endpoint="https://a")

        with pytest.raises(RepositoryError) as exc_info:
            broker.register_endpoint(guid="fixed", name="b", cnsi_type="cf", api_endpoint="https://b")
        assert is_conflict(exc_info.value)

    def test_update_endpoint(self, broker):
        endpoint = broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")

        updated = broker.update_endpoint(endpoint.guid, name="renamed")

        assert updated.name == "renamed"
        assert broker.registry.get(endpoint.guid).name == "renamed"

    def test_unregister_revokes_tokens_and_leaves_relations(self, broker):
        a = broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        b = broker.register_endpoint(name="b", cnsi_type="k8s", api_endpoint="https://b")
        broker.create_relation(a.guid, b.guid, "deploys-to")
        broker.connect_endpoint(b.guid, "t1", user_guid="user-u")
        broker.connect_endpoint(b.guid, "t2", system_shared=True)

        broker.unregister_endpoint(b.guid)

        assert broker.tokens.list_for_endpoint(b.guid) == []
        assert len(broker.list_relations()) == 1
        snapshot = broker.build_info(broker.new_request(session_for("user-u")))
        assert snapshot.endpoints["cf"][a.guid].relations.provides == []

    def test_unregister_unknown(self, broker):
        with pytest.raises(RepositoryError) as exc_info:
            broker.unregister_endpoint("nope")
        assert is_not_found(exc_info.value)


class TestTokens:
    def test_connect_unknown_endpoint(self, broker):
        with pytest.raises(RepositoryError) as exc_info:
            broker.connect_endpoint("nope", "token", user_guid="user-u")
        assert is_not_found(exc_info.value)

    def test_connect_rejects_empty_token(self, broker):
        endpoint = broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")

        with pytest.raises(ValidationError):
            broker.connect_endpoint(endpoint.guid, "", user_guid="user-u")

    def test_connect_and_disconnect(self, broker):
        endpoint = broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        broker.connect_endpoint(endpoint.guid, "user-token", user_guid="user-u")
        broker.connect_endpoint(endpoint.guid, "shared-token", system_shared=True)

        assert broker.disconnect_endpoint(endpoint.guid, "user-u") is True
        assert broker.tokens.resolve(endpoint.guid, "user-u").is_shared is True

        assert broker.disconnect_endpoint(endpoint.guid) is True
        assert broker.tokens.resolve(endpoint.guid, "user-u") is None
        assert broker.disconnect_endpoint(endpoint.guid) is False


class TestRelations:
    def test_list_relations_filters(self, broker):
        a, b, c = (
            broker.register_endpoint(name=n, cnsi_type="cf", api_endpoint=f"https://{n}")
            for n in ("a", "b", "c")
        )
        broker.create_relation(a.guid, b.guid, "t")
        broker.create_relation(a.guid, c.guid, "t")
        broker.create_relation(c.guid, b.guid, "t")

        assert [r.target for r in broker.list_relations(provider=a.guid)] == [b.guid, c.guid]
        assert [r.provider for r in broker.list_relations(target=b.guid)] == [a.guid, c.guid]
        assert len(broker.list_relations(provider=a.guid, target=c.guid)) == 1
        assert len(broker.list_relations()) == 3

    def test_delete_relation(self, broker):
        a = broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        broker.create_relation(a.guid, a.guid, "self")

        removed = broker.delete_relation(a.guid, a.guid, "self")

        assert removed.relation_type == "self"
        assert broker.list_relations() == []

    def test_relation_needs_registered_endpoints(self, broker):
        a = broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")

        with pytest.raises(RepositoryError) as exc_info:
            broker.create_relation(a.guid, "missing", "t")
        assert is_not_found(exc_info.value)


class TestDurableBroker:
    def test_state_survives_reload(self, db_broker, app_config, users, clean_db):
        a = db_broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        b = db_broker.register_endpoint(name="b", cnsi_type="k8s", api_endpoint="https://b")
        db_broker.create_relation(a.guid, b.guid, "deploys-to", metadata={"space": "dev"})
        db_broker.connect_endpoint(a.guid, "token", user_guid="user-u")

        restarted = EndpointBroker(config=app_config, db_manager=clean_db, user_lookup=users.get)
        counts = restarted.load()

        assert counts == {"endpoints": 2, "tokens": 1, "relations": 1}
        snapshot = restarted.build_info(restarted.new_request(session_for("user-u")))
        detail = snapshot.endpoints["cf"][a.guid]
        assert detail.credential_present is True
        assert [(r.peer, r.metadata) for r in detail.relations.provides] == [
            (b.guid, {"space": "dev"})
        ]

    def test_non_utc_expiry_after_reload(self, db_broker, app_config, users, clean_db):
        endpoint = db_broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        eastern = timezone(timedelta(hours=-5))
        expiry = (datetime.now(timezone.utc) + timedelta(hours=1)).astimezone(eastern)
        db_broker.connect_endpoint(endpoint.guid, "token", user_guid="user-u", token_expiry=expiry)

        restarted = EndpointBroker(config=app_config, db_manager=clean_db, user_lookup=users.get)
        restarted.load()
        snapshot = restarted.build_info(restarted.new_request(session_for("user-u")))

        detail = snapshot.endpoints["cf"][endpoint.guid]
        assert detail.credential_present is True
        assert detail.token_expiry == expiry

    def test_database_version_without_migrations(self, db_broker):
        db_broker.load()

        snapshot = db_broker.build_info(db_broker.new_request(session_for("admin-1")))

        assert snapshot.versions.database_version is None

    def test_unregister_removes_stored_tokens(self, db_broker, app_config, users, clean_db):
        endpoint = db_broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        db_broker.connect_endpoint(endpoint.guid, "token", user_guid="user-u")

        db_broker.unregister_endpoint(endpoint.guid)

        restarted = EndpointBroker(config=app_config, db_manager=clean_db, user_lookup=users.get)
        assert restarted.load() == {"endpoints": 0, "tokens": 0, "relations": 0}

    def test_failed_token_cleanup_is_finished_on_load(self, db_broker, app_config, users, clean_db):
        endpoint = db_broker.register_endpoint(name="a", cnsi_type="cf", api_endpoint="https://a")
        db_broker.connect_endpoint(endpoint.guid, "token", user_guid="user-u")
        db_broker.tokens.repository.delete_for_endpoint = Mock(
            side_effect=UpstreamUnavailableError("store down", dependency="token_store")
        )

        with pytest.raises(UpstreamUnavailableError):
            db_broker.unregister_endpoint(endpoint.guid)
        assert endpoint.guid not in db_broker.registry

        restarted = EndpointBroker(config=app_config, db_manager=clean_db, user_lookup=users.get)
        assert restarted.load() == {"endpoints": 0, "tokens": 0, "relations": 0}
        assert TokenRepository(clean_db).list() == []
