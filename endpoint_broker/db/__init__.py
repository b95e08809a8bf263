"""
SQLAlchemy models and database management for the broker's durable store.
"""

from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    get_development_config,
    get_production_config,
    import_all_models,
    init_db,
    initialize_db,
)
from .db_endpoint_models import EndpointRecord
from .db_relation_models import RelationRecord
from .db_token_models import TokenRecord

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "import_all_models",
    "init_db",
    "initialize_db",
    "get_production_config",
    "get_development_config",
    # Models
    "EndpointRecord",
    "RelationRecord",
    "TokenRecord",
]
