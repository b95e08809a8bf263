"""
Token store service.

Holds per-user and system-shared credentials for every endpoint. The
in-memory index maps (endpoint_guid, user key) to an immutable Token and is
replaced wholesale on every write, so a resolve always reads one complete
record or none at all. Each write carries a monotonically increasing
version; a write that finishes its store I/O after a newer write or revoke
of the same record is not published.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from ..constants import SYSTEM_SHARED_USER
from ..context.operation_context import operation
from ..context.request_context import CancellationToken
from ..exceptions import ErrorCode, ValidationError
from ..repositories.token_repository import TokenRepository, storage_user_key
from ..schemas.token_schemas import ResolvedToken, Token
from ..utils.logger import get_logger

TokenKey = Tuple[str, str]


def token_key(token: Token) -> TokenKey:
    return (token.endpoint_guid, storage_user_key(None if token.system_shared else token.user_guid))


class TokenStore:
    """Credentials keyed by (endpoint, user) with a shared-token fallback."""

    def __init__(self, repository: Optional[TokenRepository] = None):
        self.repository = repository
        self.logger = get_logger()
        self._lock = threading.Lock()
        self._tokens: Dict[TokenKey, Token] = {}
        self._versions: Dict[TokenKey, int] = {}
        self._clock = 0

    def load(self, cancel: Optional[CancellationToken] = None) -> int:
        """Replace the in-memory index with the durable store's contents."""
        if self.repository is None:
            return len(self._tokens)
        tokens = self.repository.list(cancel)
        with self._lock:
            self._tokens = {token_key(token): token for token in tokens}
            for key in self._tokens:
                self._versions[key] = self._next_version()
        self.logger.info("Token store loaded", extra={"token_count": len(tokens)})
        return len(tokens)

    def _next_version(self) -> int:
        # Caller holds the lock
        self._clock += 1
        return self._clock

    # ==================== READS ====================

    def get_for_user(self, endpoint_guid: str, user_guid: str) -> Optional[Token]:
        # The sentinel key holds the shared token, never a user's
        if not user_guid or user_guid == SYSTEM_SHARED_USER:
            return None
        return self._tokens.get((endpoint_guid, user_guid))

    def get_shared(self, endpoint_guid: str) -> Optional[Token]:
        return self._tokens.get((endpoint_guid, SYSTEM_SHARED_USER))

    def resolve(self, endpoint_guid: str, user_guid: Optional[str]) -> Optional[ResolvedToken]:
        """
        Select the credential a user would act with on an endpoint.

        A user-scoped token always wins over the endpoint's shared token.
        Both lookups read the same index, so the answer is consistent even
        while writers publish.

        Returns:
            ResolvedToken(token, is_shared) or None when neither exists
        """
        tokens = self._tokens
        if user_guid and user_guid != SYSTEM_SHARED_USER:
            token = tokens.get((endpoint_guid, user_guid))
            if token is not None:
                return ResolvedToken(token=token, is_shared=False)
        shared = tokens.get((endpoint_guid, SYSTEM_SHARED_USER))
        if shared is not None:
            return ResolvedToken(token=shared, is_shared=True)
        return None

    def has_usable_token(
        self, endpoint_guid: str, user_guid: Optional[str], now: Optional[datetime] = None
    ) -> bool:
        resolved = self.resolve(endpoint_guid, user_guid)
        return resolved is not None and resolved.token.is_usable(now)

    def list_for_endpoint(self, endpoint_guid: str) -> List[Token]:
        return [token for (guid, _), token in self._tokens.items() if guid == endpoint_guid]

    def endpoint_guids(self) -> Set[str]:
        """Endpoints that hold at least one token."""
        return {guid for guid, _ in self._tokens}

    def __len__(self) -> int:
        return len(self._tokens)

    # ==================== WRITES ====================

    @operation()
    def put(self, token: Token, cancel: Optional[CancellationToken] = None) -> Token:
        """
        Store a new token or refresh an existing one in place.

        Raises:
            ValidationError: If a user-scoped token has no user, or a shared
                token names one
            UpstreamUnavailableError: If the durable store fails
        """
        if token.system_shared and token.user_guid:
            raise ValidationError(
                "A system-shared token cannot belong to a user",
                error_code=ErrorCode.INVALID_FORMAT,
                field="user_guid",
                endpoint_guid=token.endpoint_guid,
            )
        if not token.system_shared and (not token.user_guid or token.user_guid == SYSTEM_SHARED_USER):
            raise ValidationError(
                "A user-scoped token needs a user guid",
                error_code=ErrorCode.MISSING_REQUIRED,
                field="user_guid",
                endpoint_guid=token.endpoint_guid,
            )

        key = token_key(token)
        with self._lock:
            version = self._next_version()
            self._versions[key] = version

        if self.repository is not None:
            self.repository.put(token, cancel)

        with self._lock:
            if self._versions.get(key) != version:
                superseded = True
            else:
                superseded = False
                tokens = dict(self._tokens)
                tokens[key] = token
                self._tokens = tokens

        if superseded:
            self.logger.debug(
                "Token write superseded by a newer write",
                extra={"endpoint_guid": key[0], "user_guid": key[1]},
            )
        else:
            self.logger.info(
                "Stored token",
                extra={
                    "endpoint_guid": key[0],
                    "system_shared": token.system_shared,
                    "auth_type": token.auth_type,
                },
            )
        return token

    @operation()
    def revoke(
        self,
        endpoint_guid: str,
        user_guid: Optional[str],
        cancel: Optional[CancellationToken] = None,
    ) -> bool:
        """
        Delete one token. Pass user_guid=None to revoke the shared token.

        The record leaves the index atomically before the store delete runs;
        concurrent resolves see either the old token or nothing.

        Returns:
            True if a token was removed
        """
        key = (endpoint_guid, storage_user_key(user_guid))
        with self._lock:
            version = self._next_version()
            self._versions[key] = version
            removed = self._tokens.get(key)
            if removed is not None:
                tokens = dict(self._tokens)
                del tokens[key]
                self._tokens = tokens

        try:
            if self.repository is not None:
                self.repository.delete(endpoint_guid, user_guid, cancel)
        except Exception:
            if removed is not None:
                self._reinstate({key: removed}, version)
            raise

        return removed is not None

    def revoke_shared(self, endpoint_guid: str, cancel: Optional[CancellationToken] = None) -> bool:
        return self.revoke(endpoint_guid, None, cancel)

    @operation()
    def revoke_endpoint(self, endpoint_guid: str, cancel: Optional[CancellationToken] = None) -> int:
        """
        Delete every token belonging to an endpoint.

        Returns:
            Number of tokens removed from the index
        """
        with self._lock:
            version = self._next_version()
            removed = {key: token for key, token in self._tokens.items() if key[0] == endpoint_guid}
            if removed:
                for key in removed:
                    self._versions[key] = version
                self._tokens = {
                    key: token for key, token in self._tokens.items() if key[0] != endpoint_guid
                }

        try:
            if self.repository is not None:
                self.repository.delete_for_endpoint(endpoint_guid, cancel)
        except Exception:
            self._reinstate(removed, version)
            raise

        if removed:
            self.logger.info(
                "Revoked endpoint tokens",
                extra={"endpoint_guid": endpoint_guid, "token_count": len(removed)},
            )
        return len(removed)

    def _reinstate(self, removed: Dict[TokenKey, Token], version: int) -> None:
        """Undo a revoke whose store delete failed, unless a newer write exists."""
        with self._lock:
            tokens = dict(self._tokens)
            for key, token in removed.items():
                if self._versions.get(key) == version and key not in tokens:
                    tokens[key] = token
            self._tokens = tokens
