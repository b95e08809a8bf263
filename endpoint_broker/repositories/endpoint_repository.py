"""
Durable storage for endpoint registrations.
"""

from typing import List, Optional

from ..constants import Dependency
from ..context.request_context import CancellationToken
from ..db.db_endpoint_models import EndpointRecord
from ..exceptions import duplicate, not_found
from ..schemas.endpoint_schemas import Endpoint
from .base_repository import BaseRepository


class EndpointRepository(BaseRepository):
    """Row interface for the cnsis table."""

    entity_name = "Endpoint"
    dependency = Dependency.ENDPOINT_STORE.value

    @staticmethod
    def _to_schema(record: EndpointRecord) -> Endpoint:
        return Endpoint(
            guid=record.guid,
            name=record.name,
            cnsi_type=record.cnsi_type,
            sub_type=record.sub_type,
            version=record.version,
            api_endpoint=record.api_endpoint,
            skip_ssl_validation=bool(record.skip_ssl_validation),
            sso_allowed=bool(record.sso_allowed),
            metadata=record.endpoint_metadata,
        )

    @staticmethod
    def _copy_fields(endpoint: Endpoint, record: EndpointRecord) -> None:
        record.name = endpoint.name
        record.sub_type = endpoint.sub_type
        record.version = endpoint.version
        record.api_endpoint = endpoint.api_endpoint
        record.skip_ssl_validation = endpoint.skip_ssl_validation
        record.sso_allowed = endpoint.sso_allowed
        record.endpoint_metadata = endpoint.metadata

    def get(self, guid: str, cancel: Optional[CancellationToken] = None) -> Optional[Endpoint]:
        with self._session_operation("get", cancel, guid=guid) as session:
            record = session.get(EndpointRecord, guid)
            return self._to_schema(record) if record else None

    def list(self, cancel: Optional[CancellationToken] = None) -> List[Endpoint]:
        """All endpoints in registration order."""
        with self._session_operation("list", cancel) as session:
            records = (
                session.query(EndpointRecord)
                .order_by(EndpointRecord.created_at, EndpointRecord.guid)
                .all()
            )
            return [self._to_schema(record) for record in records]

    def insert(self, endpoint: Endpoint, cancel: Optional[CancellationToken] = None) -> Endpoint:
        """
        Persist a new endpoint.

        Raises:
            RepositoryError: duplicate() if the guid is already stored
        """
        with self._session_operation("insert", cancel, guid=endpoint.guid) as session:
            if session.get(EndpointRecord, endpoint.guid) is not None:
                raise duplicate("Endpoint", guid=endpoint.guid)
            record = EndpointRecord(guid=endpoint.guid, cnsi_type=endpoint.cnsi_type)
            self._copy_fields(endpoint, record)
            session.add(record)
        return endpoint

    def update(self, endpoint: Endpoint, cancel: Optional[CancellationToken] = None) -> Endpoint:
        """
        Overwrite the display fields of a stored endpoint.

        Raises:
            RepositoryError: not_found() if the endpoint is not stored
        """
        with self._session_operation("update", cancel, guid=endpoint.guid) as session:
            record = session.get(EndpointRecord, endpoint.guid)
            if record is None:
                raise not_found("Endpoint", guid=endpoint.guid)
            self._copy_fields(endpoint, record)
        return endpoint

    def put(self, endpoint: Endpoint, cancel: Optional[CancellationToken] = None) -> Endpoint:
        """Insert or overwrite the display fields of an endpoint."""
        with self._session_operation("put", cancel, guid=endpoint.guid) as session:
            record = session.get(EndpointRecord, endpoint.guid)
            if record is None:
                record = EndpointRecord(guid=endpoint.guid, cnsi_type=endpoint.cnsi_type)
                session.add(record)
            self._copy_fields(endpoint, record)
        return endpoint

    def delete(self, guid: str, cancel: Optional[CancellationToken] = None) -> bool:
        """Delete an endpoint row. Returns False if it did not exist."""
        with self._session_operation("delete", cancel, guid=guid) as session:
            record = session.get(EndpointRecord, guid)
            if record is None:
                return False
            session.delete(record)
            return True
