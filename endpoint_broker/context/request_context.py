"""
Request context management for the endpoint broker.

A RequestContext is what the (external) HTTP layer hands the broker: the
session values it extracted from the cookie, a request id, and a
cancellation token. RequestScope keeps the resolved user id in thread-local
storage for the duration of the request so log records can be stamped.
"""

import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

from ..exceptions import ErrorCode, OperationCancelledError, ValidationError


class CancellationToken:
    """
    Caller-supplied cancellation signal with an optional deadline.

    Safe to share between threads; cancel() may be called from any of them.
    """

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Create a token that cancels itself `seconds` from now."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self, step: str) -> None:
        """
        Raise OperationCancelledError if the token has fired.

        Args:
            step: Name of the step about to run, recorded on the error
        """
        if self.cancelled:
            reason = "deadline exceeded" if not self._event.is_set() else "cancelled by caller"
            raise OperationCancelledError(f"Operation cancelled before {step}: {reason}", step=step)


@dataclass
class RequestContext:
    """Inbound request as seen by the broker."""

    session: Dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    def get_session_value(self, key: str) -> Optional[str]:
        value = self.session.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return str(value)


class RequestScope:
    """
    Thread-local scope for the request currently being served.
    """

    _thread_local = threading.local()

    @classmethod
    def set_current(cls, user_id: str, request_id: Optional[str] = None) -> None:
        if not user_id or not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError(
                "user_id must be a non-empty string",
                error_code=ErrorCode.MISSING_REQUIRED,
                field="user_id",
            )
        cls._thread_local.user_id = user_id.strip()
        cls._thread_local.request_id = request_id

    @classmethod
    def get_current_user_id(cls) -> Optional[str]:
        return getattr(cls._thread_local, "user_id", None)

    @classmethod
    def get_current_request_id(cls) -> Optional[str]:
        return getattr(cls._thread_local, "request_id", None)

    @classmethod
    def clear(cls) -> None:
        for attr in ("user_id", "request_id"):
            if hasattr(cls._thread_local, attr):
                delattr(cls._thread_local, attr)


@contextmanager
def request_scope(user_id: str, request_id: Optional[str] = None) -> Generator[None, None, None]:
    """
    Context manager binding a user/request to the current thread.

    Restores whatever scope was active before, so scopes nest.
    """
    previous_user = RequestScope.get_current_user_id()
    previous_request = RequestScope.get_current_request_id()
    RequestScope.set_current(user_id, request_id)
    try:
        yield
    finally:
        if previous_user:
            RequestScope.set_current(previous_user, previous_request)
        else:
            RequestScope.clear()
