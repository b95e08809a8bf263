"""
EndpointBroker: wires the broker's components together.

The broker owns one instance of each shared component and exposes the
outbound interface: the aggregated info query and the administrative
mutations on endpoints, tokens and relations. Without a DatabaseManager
every component runs purely in memory.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .config import AppConfig, get_config
from .constants import AuthType
from .context.request_context import CancellationToken, RequestContext
from .db.db_config import DatabaseManager
from .exceptions import ErrorCode, ServiceError, ValidationError
from .extensions.builtin import CloudFoundryExtension, KubernetesExtension
from .repositories import EndpointRepository, RelationRepository, TokenRepository
from .schemas.endpoint_schemas import Endpoint
from .schemas.info_schemas import InfoSnapshot
from .schemas.relation_schemas import Relation
from .schemas.token_schemas import ConnectedUser, Token
from .services.endpoint_registry import EndpointRegistry
from .services.extension_registry import Extension, ExtensionRegistry
from .services.info_service import (
    IdentityResolver,
    InfoAggregator,
    SessionIdentityResolver,
    UserLookup,
    VisibilityCheck,
)
from .services.relation_graph import RelationGraph
from .services.token_store import TokenStore
from .utils.logger import get_logger


def default_extensions(config: AppConfig) -> List[Extension]:
    """The extensions a broker gets when none are supplied."""
    return [CloudFoundryExtension(config.broker.cloud_foundry), KubernetesExtension()]


class EndpointBroker:
    """Facade over the endpoint registry, token store, relation graph and aggregator."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        db_manager: Optional[DatabaseManager] = None,
        extensions: Optional[List[Extension]] = None,
        identity_resolver: Optional[IdentityResolver] = None,
        user_lookup: Optional[UserLookup] = None,
        visibility: Optional[VisibilityCheck] = None,
    ):
        """
        Args:
            config: Application config (default: the global config)
            db_manager: Durable store; None keeps everything in memory
            extensions: Extensions in registration order (default: cf and k8s)
            identity_resolver: Maps a request to its UserIdentity
            user_lookup: Identity provider lookup, used to build a
                SessionIdentityResolver when no identity_resolver is given
            visibility: Endpoint visibility check (default: everything visible)

        Raises:
            ServiceError: If neither identity_resolver nor user_lookup is given
        """
        self.config = config or get_config()
        self.db_manager = db_manager
        self.logger = get_logger()

        if identity_resolver is None:
            if user_lookup is None:
                raise ServiceError(
                    "EndpointBroker needs an identity_resolver or a user_lookup",
                    error_code=ErrorCode.CONFIGURATION_ERROR,
                    operation="create_broker",
                )
            identity_resolver = SessionIdentityResolver(user_lookup)

        if db_manager is not None:
            endpoint_repository = EndpointRepository(db_manager)
            token_repository = TokenRepository(db_manager)
            relation_repository = RelationRepository(db_manager)
        else:
            endpoint_repository = token_repository = relation_repository = None

        self.registry = EndpointRegistry(endpoint_repository)
        self.tokens = TokenStore(token_repository)
        self.relations = RelationGraph(relation_repository, registry=self.registry)
        self.extensions = ExtensionRegistry(
            extensions if extensions is not None else default_extensions(self.config)
        )
        self.aggregator = InfoAggregator(
            registry=self.registry,
            tokens=self.tokens,
            relations=self.relations,
            extensions=self.extensions,
            identity_resolver=identity_resolver,
            visibility=visibility,
            config=self.config,
        )

    def load(self, cancel: Optional[CancellationToken] = None) -> Dict[str, int]:
        """
        Warm every component from the durable store.

        Tokens whose endpoint is no longer registered (left behind by an
        unregistration whose token cleanup failed) are revoked here.
        """
        counts = {
            "endpoints": self.registry.load(cancel),
            "tokens": self.tokens.load(cancel),
            "relations": self.relations.load(cancel),
        }
        for guid in self.tokens.endpoint_guids():
            if guid not in self.registry:
                removed = self.tokens.revoke_endpoint(guid, cancel)
                counts["tokens"] -= removed
                self.logger.warning(
                    "Revoked tokens of unregistered endpoint",
                    extra={"endpoint_guid": guid, "token_count": removed},
                )
        if self.db_manager is not None:
            self.aggregator.database_version = self.db_manager.get_schema_version()
        self.logger.info("Broker loaded", extra=counts)
        return counts

    def new_request(
        self, session: Optional[Dict[str, Any]] = None, request_id: Optional[str] = None
    ) -> RequestContext:
        """Request context with the configured deadline."""
        cancellation = CancellationToken.with_timeout(self.config.broker.request_timeout_seconds)
        if request_id is None:
            return RequestContext(session=session or {}, cancellation=cancellation)
        return RequestContext(session=session or {}, request_id=request_id, cancellation=cancellation)

    def build_info(self, request: RequestContext) -> InfoSnapshot:
        return self.aggregator.build_info(request)

    # ==================== ENDPOINTS ====================

    def register_endpoint(self, cancel: Optional[CancellationToken] = None, **fields: Any) -> Endpoint:
        """
        Register a remote endpoint.

        Args:
            cancel: Optional cancellation token
            **fields: Endpoint fields (name, cnsi_type, api_endpoint, ...)

        Raises:
            ValidationError: If the fields do not describe a valid endpoint
            RepositoryError: duplicate() if the guid is taken
        """
        try:
            endpoint = Endpoint(**fields)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid endpoint: {e.error_count()} error(s)",
                field="endpoint",
                cause=e,
            ) from e

        if endpoint.cnsi_type not in self.extensions.owned_types():
            self.logger.warning(
                "Registering endpoint of a type no extension owns",
                extra={"endpoint_guid": endpoint.guid, "cnsi_type": endpoint.cnsi_type},
            )
        return self.registry.register(endpoint, cancel)

    def update_endpoint(
        self, endpoint_guid: str, cancel: Optional[CancellationToken] = None, **changes: Any
    ) -> Endpoint:
        return self.registry.update(endpoint_guid, cancel, **changes)

    def unregister_endpoint(self, guid: str, cancel: Optional[CancellationToken] = None) -> Endpoint:
        """
        Remove an endpoint and revoke every token it had.

        Relations touching the endpoint are kept; aggregation skips them as
        dangling until they are deleted. If the token cleanup fails the
        endpoint stays unregistered and its tokens are revoked on the next
        load().
        """
        endpoint = self.registry.remove(guid, cancel)
        try:
            self.tokens.revoke_endpoint(guid, cancel)
        except Exception as e:
            self.logger.error(
                "Endpoint unregistered but its tokens were not revoked",
                extra={"endpoint_guid": guid, "error": str(e)},
            )
            raise
        return endpoint

    # ==================== TOKENS ====================

    def connect_endpoint(
        self,
        endpoint_guid: str,
        auth_token: str,
        user_guid: Optional[str] = None,
        system_shared: bool = False,
        refresh_token: Optional[str] = None,
        token_expiry: Optional[datetime] = None,
        auth_type: str = AuthType.OAUTH2.value,
        linked_user: Optional[ConnectedUser] = None,
        metadata: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Token:
        """
        Store the token a user (or, with system_shared, everyone) acts with on an endpoint.

        Raises:
            RepositoryError: not_found() if the endpoint is not registered
            ValidationError: If the user/shared combination is invalid
        """
        self.registry.get(endpoint_guid)
        try:
            token = Token(
                endpoint_guid=endpoint_guid,
                user_guid=user_guid,
                system_shared=system_shared,
                auth_type=auth_type,
                auth_token=auth_token,
                refresh_token=refresh_token,
                token_expiry=token_expiry,
                linked_user=linked_user,
                metadata=metadata,
            )
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid token: {e.error_count()} error(s)",
                field="token",
                cause=e,
                endpoint_guid=endpoint_guid,
            ) from e
        return self.tokens.put(token, cancel)

    def disconnect_endpoint(
        self,
        endpoint_guid: str,
        user_guid: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> bool:
        """Revoke a user's token, or the shared token when user_guid is None."""
        return self.tokens.revoke(endpoint_guid, user_guid, cancel)

    # ==================== RELATIONS ====================

    def create_relation(
        self,
        provider: str,
        target: str,
        relation_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Relation:
        return self.relations.create(provider, target, relation_type, metadata, cancel)

    def list_relations(
        self, provider: Optional[str] = None, target: Optional[str] = None
    ) -> List[Relation]:
        """Relations in insertion order, optionally filtered by provider and/or target."""
        return [
            relation
            for relation in self.relations.list_all()
            if (provider is None or relation.provider == provider)
            and (target is None or relation.target == target)
        ]

    def delete_relation(
        self,
        provider: str,
        target: str,
        relation_type: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Relation:
        return self.relations.delete(provider, target, relation_type, cancel)
