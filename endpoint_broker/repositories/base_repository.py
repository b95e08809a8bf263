"""
Base repository implementation with common functionality for all repositories.

Repositories are the broker's durable store: a row interface keyed by
identifier with get/list/put/delete. Every operation runs in its own
unit of work so repositories can be shared between request threads.
"""

from contextlib import contextmanager
from typing import Any, Generator, NoReturn, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..context.request_context import CancellationToken
from ..db.db_config import DatabaseManager
from ..exceptions import BaseError, UpstreamUnavailableError, duplicate
from ..utils.logger import get_logger


class BaseRepository:
    """Base repository with session handling and error translation."""

    entity_name = "Record"
    dependency = "durable_store"

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the base repository.

        Args:
            db_manager: Database manager providing sessions
        """
        self.db_manager = db_manager
        self.logger = get_logger()

    def _handle_db_error(self, e: Exception, operation_name: str, **context: Any) -> NoReturn:
        """
        Translate a storage failure into the broker's error taxonomy.

        Integrity violations become duplicate() (Conflict); every other
        SQLAlchemy failure means the store is unavailable for this request.

        Raises:
            RepositoryError: For duplicates
            UpstreamUnavailableError: For any other database failure
        """
        # Already translated
        if isinstance(e, BaseError):
            raise e

        error_context = {
            "operation_name": operation_name,
            "entity_type": self.entity_name,
            **context,
        }

        if isinstance(e, IntegrityError):
            self.logger.warning(
                f"Duplicate {self.entity_name} in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise duplicate(resource_type=self.entity_name, cause=e, **context) from e

        if isinstance(e, SQLAlchemyError):
            raise UpstreamUnavailableError(
                f"{self.dependency} unavailable during {operation_name}",
                dependency=self.dependency,
                cause=e,
                **error_context,
            ) from e

        raise e

    @contextmanager
    def _session_operation(
        self,
        operation_name: str,
        cancel: Optional[CancellationToken] = None,
        **context: Any,
    ) -> Generator[Session, None, None]:
        """
        Run one unit of work against the store.

        Args:
            operation_name: Name of the operation for error reporting
            cancel: Optional cancellation token, checked before any I/O
            **context: Identifiers added to error context

        Yields:
            A session that is committed on success and rolled back on error
        """
        if cancel is not None:
            cancel.raise_if_cancelled(f"{self.entity_name}.{operation_name}")
        try:
            with self.db_manager.session_scope() as session:
                yield session
        except Exception as e:
            self._handle_db_error(e, operation_name, **context)
