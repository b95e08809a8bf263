"""
Shared test fixtures.

Provides an SQLite in-memory DatabaseManager (tables created and dropped
per test), a test AppConfig, an identity provider stub, and brokers wired
either in memory or against the test database.
"""

import pytest

from endpoint_broker.broker import EndpointBroker
from endpoint_broker.config import (
    AppConfig,
    BrokerConfig,
    CloudFoundryConfig,
    reset_config,
    set_config,
)
from endpoint_broker.context.request_context import RequestScope
from endpoint_broker.db import DatabaseConfig, DatabaseManager, import_all_models
from endpoint_broker.db.db_config import Base
from endpoint_broker.exceptions import clear_correlation_id
from endpoint_broker.schemas import UserIdentity
from endpoint_broker.utils.logger import reset_logging
from tests.fixtures.factories import bind_session


@pytest.fixture(scope="session")
def db_config() -> DatabaseConfig:
    """SQLite in-memory database configuration for testing."""
    return DatabaseConfig(
        db_type="sqlite",
        database=":memory:",
        echo=False,
        development_mode=True,
    )


@pytest.fixture(scope="session")
def db_manager(db_config: DatabaseConfig):
    """Database manager shared by the whole test session."""
    import_all_models()
    manager = DatabaseManager(db_config)
    yield manager
    manager.close()


@pytest.fixture(scope="function")
def clean_db(db_manager: DatabaseManager):
    """Fresh tables for one test."""
    Base.metadata.create_all(db_manager.engine)
    yield db_manager
    Base.metadata.drop_all(db_manager.engine)


@pytest.fixture(scope="function")
def db_session(clean_db: DatabaseManager):
    """A session on the fresh tables, bound to the record factories."""
    session = clean_db.session_factory()
    bind_session(session)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def app_config() -> AppConfig:
    config = AppConfig(
        environment="test",
        broker=BrokerConfig(
            console_version="4.4.0-test",
            request_timeout_seconds=30,
            plugin_config={"userInvitationsEnabled": "true"},
            cloud_foundry=CloudFoundryConfig(api_endpoint="https://api.cf.example.com"),
        ),
    )
    set_config(config)
    return config


@pytest.fixture
def users():
    """Identity provider contents: one regular user and one admin."""
    return {
        "user-u": UserIdentity(guid="user-u", name="Una", scopes=["console.user"]),
        "user-v": UserIdentity(guid="user-v", name="Vic"),
        "admin-1": UserIdentity(guid="admin-1", name="Ada", admin=True),
    }


@pytest.fixture
def broker(app_config: AppConfig, users) -> EndpointBroker:
    """Broker with in-memory components and the default extensions."""
    return EndpointBroker(config=app_config, user_lookup=users.get)


@pytest.fixture
def db_broker(app_config: AppConfig, users, clean_db: DatabaseManager) -> EndpointBroker:
    """Broker writing through to the test database."""
    return EndpointBroker(config=app_config, db_manager=clean_db, user_lookup=users.get)


@pytest.fixture(autouse=True)
def reset_globals():
    """Keep global config, logging and thread-local scopes from leaking between tests."""
    yield
    reset_config()
    reset_logging()
    RequestScope.clear()
    clear_correlation_id()
