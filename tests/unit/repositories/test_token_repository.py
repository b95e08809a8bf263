"""Tests for TokenRepository against an SQLite in-memory store."""

from datetime import datetime, timedelta, timezone

import pytest

from endpoint_broker.constants import SYSTEM_SHARED_USER
from endpoint_broker.db import TokenRecord
from endpoint_broker.repositories import TokenRepository, storage_user_key
from tests.fixtures.factories import SharedTokenFactory, TokenFactory


@pytest.fixture
def repository(clean_db):
    return TokenRepository(clean_db)


def test_storage_user_key():
    assert storage_user_key("user-u") == "user-u"
    assert storage_user_key(None) == SYSTEM_SHARED_USER


class TestTokenRepository:
    def test_user_token_round_trip(self, repository):
        token = TokenFactory(endpoint_guid="ep-1", auth_type="Bearer")

        repository.put(token)
        stored = repository.get("ep-1", "user-u")

        assert stored.auth_token == token.auth_token
        assert stored.refresh_token == token.refresh_token
        assert stored.auth_type == "Bearer"
        assert stored.linked_user == token.linked_user
        assert stored.metadata == {"region": "eu-west"}
        assert stored.system_shared is False

    def test_shared_token_stored_under_sentinel(self, repository, db_session):
        repository.put(SharedTokenFactory(endpoint_guid="ep-1"))

        record = db_session.query(TokenRecord).filter_by(endpoint_guid="ep-1").one()
        assert record.user_guid == SYSTEM_SHARED_USER
        assert record.system_shared is True

        stored = repository.get("ep-1", None)
        assert stored.system_shared is True
        assert stored.user_guid is None

    def test_user_and_shared_tokens_coexist(self, repository):
        repository.put(TokenFactory(endpoint_guid="ep-1"))
        repository.put(SharedTokenFactory(endpoint_guid="ep-1"))

        assert len(repository.list_for_endpoint("ep-1")) == 2

    def test_put_refreshes_in_place(self, repository):
        repository.put(TokenFactory(endpoint_guid="ep-1", auth_token="first"))
        expiry = datetime(2030, 1, 1, tzinfo=timezone.utc)
        repository.put(TokenFactory(endpoint_guid="ep-1", auth_token="second", token_expiry=expiry))

        tokens = repository.list()
        assert len(tokens) == 1
        assert tokens[0].auth_token == "second"
        assert tokens[0].token_expiry.replace(tzinfo=timezone.utc) == expiry

    def test_non_utc_expiry_survives_storage(self, repository):
        eastern = timezone(timedelta(hours=-5))
        expiry = (datetime.now(timezone.utc) + timedelta(hours=1)).astimezone(eastern)
        repository.put(TokenFactory(endpoint_guid="ep-1", token_expiry=expiry, refresh_token=None))

        stored = repository.get("ep-1", "user-u")

        assert stored.token_expiry == expiry
        assert stored.is_usable() is True

    def test_get_missing(self, repository):
        assert repository.get("ep-1", "user-u") is None
        assert repository.get("ep-1", None) is None

    def test_delete(self, repository):
        repository.put(TokenFactory(endpoint_guid="ep-1"))

        assert repository.delete("ep-1", "user-u") is True
        assert repository.delete("ep-1", "user-u") is False

    def test_delete_for_endpoint(self, repository):
        repository.put(TokenFactory(endpoint_guid="ep-1"))
        repository.put(TokenFactory(endpoint_guid="ep-1", user_guid="user-v"))
        repository.put(SharedTokenFactory(endpoint_guid="ep-1"))
        repository.put(TokenFactory(endpoint_guid="ep-2"))

        assert repository.delete_for_endpoint("ep-1") == 3
        assert [t.endpoint_guid for t in repository.list()] == ["ep-2"]

    def test_token_without_linked_user(self, repository):
        repository.put(TokenFactory(endpoint_guid="ep-1", linked_user=None, metadata=None))

        stored = repository.get("ep-1", "user-u")
        assert stored.linked_user is None
        assert stored.metadata is None
