"""
Durable storage for endpoint tokens.

Shared tokens live under the SYSTEM_SHARED_USER sentinel user id.
"""

from typing import List, Optional

from ..constants import SYSTEM_SHARED_USER, Dependency
from ..context.request_context import CancellationToken
from ..db.db_token_models import TokenRecord
from ..schemas.token_schemas import ConnectedUser, Token
from .base_repository import BaseRepository


def storage_user_key(user_guid: Optional[str]) -> str:
    """Map a token's user guid (None for shared) to its stored key."""
    return user_guid if user_guid else SYSTEM_SHARED_USER


class TokenRepository(BaseRepository):
    """Row interface for the tokens table."""

    entity_name = "Token"
    dependency = Dependency.TOKEN_STORE.value

    @staticmethod
    def _to_schema(record: TokenRecord) -> Token:
        linked_user = None
        if record.linked_user_guid:
            linked_user = ConnectedUser(
                guid=record.linked_user_guid,
                name=record.linked_user_name,
                admin=bool(record.linked_user_admin),
                scopes=record.linked_user_scopes or [],
            )
        shared = bool(record.system_shared)
        return Token(
            endpoint_guid=record.endpoint_guid,
            user_guid=None if shared else record.user_guid,
            system_shared=shared,
            auth_type=record.auth_type,
            auth_token=record.auth_token,
            refresh_token=record.refresh_token,
            token_expiry=record.token_expiry,
            linked_user=linked_user,
            metadata=record.token_metadata,
        )

    @staticmethod
    def _copy_fields(token: Token, record: TokenRecord) -> None:
        record.system_shared = token.system_shared
        record.auth_type = token.auth_type
        record.auth_token = token.auth_token
        record.refresh_token = token.refresh_token
        record.token_expiry = token.token_expiry
        record.token_metadata = token.metadata
        user = token.linked_user
        record.linked_user_guid = user.guid if user else None
        record.linked_user_name = user.name if user else None
        record.linked_user_admin = user.admin if user else False
        record.linked_user_scopes = list(user.scopes) if user else None

    def _find(self, session, endpoint_guid: str, user_key: str) -> Optional[TokenRecord]:
        return (
            session.query(TokenRecord)
            .filter(TokenRecord.endpoint_guid == endpoint_guid, TokenRecord.user_guid == user_key)
            .first()
        )

    def get(
        self,
        endpoint_guid: str,
        user_guid: Optional[str],
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[Token]:
        """Get the user's token, or the shared token when user_guid is None."""
        user_key = storage_user_key(user_guid)
        with self._session_operation(
            "get", cancel, endpoint_guid=endpoint_guid, user_guid=user_key
        ) as session:
            record = self._find(session, endpoint_guid, user_key)
            return self._to_schema(record) if record else None

    def list(self, cancel: Optional[CancellationToken] = None) -> List[Token]:
        with self._session_operation("list", cancel) as session:
            records = session.query(TokenRecord).order_by(TokenRecord.created_at).all()
            return [self._to_schema(record) for record in records]

    def list_for_endpoint(
        self, endpoint_guid: str, cancel: Optional[CancellationToken] = None
    ) -> List[Token]:
        with self._session_operation("list_for_endpoint", cancel, endpoint_guid=endpoint_guid) as session:
            records = (
                session.query(TokenRecord)
                .filter(TokenRecord.endpoint_guid == endpoint_guid)
                .order_by(TokenRecord.created_at)
                .all()
            )
            return [self._to_schema(record) for record in records]

    def put(self, token: Token, cancel: Optional[CancellationToken] = None) -> Token:
        """Insert or refresh-in-place the record for (endpoint, user)."""
        user_key = storage_user_key(token.user_guid)
        with self._session_operation(
            "put", cancel, endpoint_guid=token.endpoint_guid, user_guid=user_key
        ) as session:
            record = self._find(session, token.endpoint_guid, user_key)
            if record is None:
                record = TokenRecord(endpoint_guid=token.endpoint_guid, user_guid=user_key)
                session.add(record)
            self._copy_fields(token, record)
        return token

    def delete(
        self,
        endpoint_guid: str,
        user_guid: Optional[str],
        cancel: Optional[CancellationToken] = None,
    ) -> bool:
        user_key = storage_user_key(user_guid)
        with self._session_operation(
            "delete", cancel, endpoint_guid=endpoint_guid, user_guid=user_key
        ) as session:
            record = self._find(session, endpoint_guid, user_key)
            if record is None:
                return False
            session.delete(record)
            return True

    def delete_for_endpoint(
        self, endpoint_guid: str, cancel: Optional[CancellationToken] = None
    ) -> int:
        """Delete every token of an endpoint. Returns how many rows went."""
        with self._session_operation(
            "delete_for_endpoint", cancel, endpoint_guid=endpoint_guid
        ) as session:
            return (
                session.query(TokenRecord)
                .filter(TokenRecord.endpoint_guid == endpoint_guid)
                .delete(synchronize_session=False)
            )
