"""
Endpoint registry service.

The registry keeps every known endpoint in an in-memory index that is
replaced wholesale on each write (copy-on-write), so readers never take the
lock and always see one consistent mapping. When a repository is attached,
writes go to the durable store first and are published to the index only
after the store accepted them. The lock is never held across store I/O.
"""

import threading
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from ..context.operation_context import operation
from ..context.request_context import CancellationToken
from ..exceptions import ErrorCode, ValidationError, duplicate, not_found
from ..repositories.endpoint_repository import EndpointRepository
from ..schemas.endpoint_schemas import Endpoint, EndpointUpdate
from ..utils.logger import get_logger

# Identity fields that can never change once an endpoint is registered
IMMUTABLE_FIELDS = ("guid", "cnsi_type")


class EndpointRegistry:
    """Catalog of registered endpoints, keyed by guid in registration order."""

    def __init__(self, repository: Optional[EndpointRepository] = None):
        """
        Args:
            repository: Optional durable store. Without one the registry is
                purely in-memory.
        """
        self.repository = repository
        self.logger = get_logger()
        self._lock = threading.Lock()
        self._endpoints: Dict[str, Endpoint] = {}
        self._pending: Set[str] = set()

    def load(self, cancel: Optional[CancellationToken] = None) -> int:
        """Replace the in-memory index with the durable store's contents."""
        if self.repository is None:
            return len(self._endpoints)
        endpoints = self.repository.list(cancel)
        with self._lock:
            self._endpoints = {endpoint.guid: endpoint for endpoint in endpoints}
        self.logger.info("Endpoint registry loaded", extra={"endpoint_count": len(endpoints)})
        return len(endpoints)

    def snapshot(self) -> Mapping[str, Endpoint]:
        """Read-only view of the index as of this call. Later writes do not affect it."""
        return MappingProxyType(self._endpoints)

    def list(self) -> List[Endpoint]:
        return list(self._endpoints.values())

    def get(self, guid: str) -> Endpoint:
        endpoint = self._endpoints.get(guid)
        if endpoint is None:
            raise not_found("Endpoint", guid=guid)
        return endpoint

    def __contains__(self, guid: str) -> bool:
        return guid in self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)

    @operation()
    def register(self, endpoint: Endpoint, cancel: Optional[CancellationToken] = None) -> Endpoint:
        """
        Register a new endpoint.

        Args:
            endpoint: Endpoint to register
            cancel: Optional cancellation token for the store write

        Returns:
            The registered endpoint

        Raises:
            RepositoryError: duplicate() if the guid is already registered
            UpstreamUnavailableError: If the durable store fails
        """
        guid = endpoint.guid
        with self._lock:
            taken = guid in self._endpoints or guid in self._pending
            if not taken:
                self._pending.add(guid)
        if taken:
            raise duplicate("Endpoint", guid=guid)

        try:
            if self.repository is not None:
                self.repository.insert(endpoint, cancel)
        except Exception:
            with self._lock:
                self._pending.discard(guid)
            raise

        with self._lock:
            self._pending.discard(guid)
            endpoints = dict(self._endpoints)
            endpoints[guid] = endpoint
            self._endpoints = endpoints

        self.logger.info(
            f"Registered endpoint {endpoint.name}",
            extra={"endpoint_guid": guid, "cnsi_type": endpoint.cnsi_type},
        )
        return endpoint

    @operation()
    def update(
        self, endpoint_guid: str, cancel: Optional[CancellationToken] = None, **changes: Any
    ) -> Endpoint:
        """
        Change the display fields of an endpoint.

        Concurrent updates of the same endpoint are last-writer-wins.

        Args:
            endpoint_guid: Endpoint to update
            cancel: Optional cancellation token for the store write
            **changes: Display fields (name, version, metadata, ...)

        Returns:
            The updated endpoint

        Raises:
            ValidationError: If an identity field or unknown field is supplied
            RepositoryError: not_found() if the endpoint is not registered
        """
        for field_name in IMMUTABLE_FIELDS:
            if field_name in changes:
                raise ValidationError(
                    f"Endpoint {field_name} cannot be changed after registration",
                    error_code=ErrorCode.IMMUTABLE_FIELD,
                    field=field_name,
                    endpoint_guid=endpoint_guid,
                )
        try:
            update = EndpointUpdate(**changes)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid endpoint update: {e.error_count()} error(s)",
                error_code=ErrorCode.VALIDATION_FAILED,
                field="endpoint_update",
                cause=e,
                endpoint_guid=endpoint_guid,
            ) from e

        updated = self.get(endpoint_guid).apply(update)
        if self.repository is not None:
            self.repository.update(updated, cancel)

        with self._lock:
            if endpoint_guid not in self._endpoints:
                removed = True
            else:
                removed = False
                endpoints = dict(self._endpoints)
                endpoints[endpoint_guid] = updated
                self._endpoints = endpoints
        if removed:
            raise not_found("Endpoint", guid=endpoint_guid)
        return updated

    @operation()
    def remove(self, guid: str, cancel: Optional[CancellationToken] = None) -> Endpoint:
        """
        Unregister an endpoint.

        The endpoint disappears from the index before the store delete runs;
        if the delete fails it is put back in its original position.

        Returns:
            The removed endpoint

        Raises:
            RepositoryError: not_found() if the endpoint is not registered
        """
        with self._lock:
            previous = self._endpoints
            endpoint = previous.get(guid)
            if endpoint is not None:
                endpoints = dict(previous)
                del endpoints[guid]
                self._endpoints = endpoints
        if endpoint is None:
            raise not_found("Endpoint", guid=guid)

        try:
            if self.repository is not None:
                self.repository.delete(guid, cancel)
        except Exception:
            self._restore(previous, endpoint)
            raise

        self.logger.info(
            f"Unregistered endpoint {endpoint.name}",
            extra={"endpoint_guid": guid, "cnsi_type": endpoint.cnsi_type},
        )
        return endpoint

    def _restore(self, previous: Mapping[str, Endpoint], endpoint: Endpoint) -> None:
        """Put a removed endpoint back where it was, keeping writes made since."""
        with self._lock:
            if endpoint.guid in self._endpoints or endpoint.guid in self._pending:
                return
            current = self._endpoints
            restored: Dict[str, Endpoint] = {}
            for guid in previous:
                if guid == endpoint.guid:
                    restored[guid] = endpoint
                elif guid in current:
                    restored[guid] = current[guid]
            for guid, other in current.items():
                restored.setdefault(guid, other)
            self._endpoints = restored
