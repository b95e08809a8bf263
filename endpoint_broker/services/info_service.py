"""
Info aggregation service.

InfoAggregator builds the per-request snapshot that merges the endpoint
registry, credential presence, the relation graph and extension
contributions for exactly the endpoints the caller may see. It is the only
request-scoped component; it owns no state beyond references to the shared
services it was constructed with.

Per-endpoint and per-extension failures are accumulated and reported
out-of-band (logs and admin diagnostics); only identity failures, store
failures and cancellation end a request.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config import AppConfig, get_config
from ..constants import Dependency
from ..context.operation_context import operation
from ..context.request_context import CancellationToken, RequestContext, request_scope
from ..exceptions import (
    BaseError,
    ExtensionFaultError,
    OperationCancelledError,
    UnauthorizedError,
    UpstreamUnavailableError,
)
from ..schemas.endpoint_schemas import Endpoint
from ..schemas.info_schemas import (
    Diagnostics,
    EndpointDetail,
    InfoSnapshot,
    PluginStatus,
    UserIdentity,
    Versions,
)
from ..utils.logger import get_logger
from .endpoint_registry import EndpointRegistry
from .extension_registry import ExtensionRegistry
from .relation_graph import RelationGraph
from .token_store import TokenStore

IdentityResolver = Callable[[RequestContext], Optional[UserIdentity]]
VisibilityCheck = Callable[[str, Endpoint], bool]
UserLookup = Callable[[str], Optional[UserIdentity]]


def allow_all(user_id: str, endpoint: Endpoint) -> bool:
    """Visibility check that shows every endpoint to every user."""
    return True


class SessionIdentityResolver:
    """
    Resolve the caller from the user id stored in the request session.

    The user lookup is the identity provider: it returns the UserIdentity
    for a user id, or None when the user is unknown.
    """

    def __init__(self, user_lookup: UserLookup, session_key: str = "user_id"):
        self.user_lookup = user_lookup
        self.session_key = session_key

    def __call__(self, request: RequestContext) -> UserIdentity:
        user_id = request.get_session_value(self.session_key)
        if not user_id:
            raise UnauthorizedError(
                "Could not find session user_id", request_id=request.request_id
            )

        try:
            user = self.user_lookup(user_id)
        except (UnauthorizedError, OperationCancelledError):
            raise
        except Exception as e:
            raise UpstreamUnavailableError(
                "Could not find user",
                dependency=Dependency.IDENTITY_PROVIDER.value,
                cause=e,
                user_id=user_id,
            ) from e

        if user is None:
            raise UnauthorizedError("Unknown session user", user_id=user_id)
        return user


@dataclass
class AggregationReport:
    """Faults and counters collected while one snapshot is built."""

    endpoint_faults: List[str] = field(default_factory=list)
    extension_faults: List[str] = field(default_factory=list)
    dangling_relations: int = 0
    hidden_relations: int = 0
    endpoint_count: int = 0

    def diagnostics(self, deployment: Dict[str, Any]) -> Diagnostics:
        return Diagnostics(
            deployment=deployment,
            endpoint_count=self.endpoint_count,
            dangling_relations=self.dangling_relations,
            hidden_relations=self.hidden_relations,
            endpoint_faults=list(self.endpoint_faults),
            extension_faults=list(self.extension_faults),
        )


class InfoAggregator:
    """Builds one consistent InfoSnapshot per request."""

    def __init__(
        self,
        registry: EndpointRegistry,
        tokens: TokenStore,
        relations: RelationGraph,
        extensions: ExtensionRegistry,
        identity_resolver: IdentityResolver,
        visibility: Optional[VisibilityCheck] = None,
        config: Optional[AppConfig] = None,
        database_version: Optional[str] = None,
    ):
        """
        Initialize the aggregator with the shared services it reads from.

        Args:
            registry: Endpoint registry
            tokens: Token store
            relations: Relation graph
            extensions: Extension registry
            identity_resolver: Maps a request to the calling UserIdentity
            visibility: Decides whether a user may see an endpoint (default: all)
            config: Application config (default: the global config)
            database_version: Schema version reported in snapshots
        """
        self.registry = registry
        self.tokens = tokens
        self.relations = relations
        self.extensions = extensions
        self.identity_resolver = identity_resolver
        self.visibility = visibility or allow_all
        self.config = config or get_config()
        self.database_version = database_version
        self.logger = get_logger()

    @operation()
    def build_info(self, request: RequestContext) -> InfoSnapshot:
        """
        Build the aggregated snapshot for one request.

        Args:
            request: Inbound request (session, request id, cancellation)

        Returns:
            InfoSnapshot for the calling user

        Raises:
            UnauthorizedError: If the request has no valid user
            UpstreamUnavailableError: If the identity provider fails
            OperationCancelledError: If the request is cancelled or times out
        """
        cancel = request.cancellation
        cancel.raise_if_cancelled("resolve_identity")
        user = self._resolve_identity(request)

        with request_scope(user.guid, request.request_id):
            return self._aggregate(user, cancel)

    def _resolve_identity(self, request: RequestContext) -> UserIdentity:
        try:
            user = self.identity_resolver(request)
        except BaseError:
            raise
        except Exception as e:
            raise UpstreamUnavailableError(
                "Identity resolution failed",
                dependency=Dependency.IDENTITY_PROVIDER.value,
                cause=e,
                request_id=request.request_id,
            ) from e
        if user is None:
            raise UnauthorizedError("No user for request", request_id=request.request_id)
        return user

    def _aggregate(self, user: UserIdentity, cancel: CancellationToken) -> InfoSnapshot:
        features = self.config.features
        report = AggregationReport()

        # One bucket per owned type, present even when empty
        buckets: Dict[str, Dict[str, EndpointDetail]] = {
            type_tag: {} for type_tag in self.extensions.owned_types()
        }

        # Registry and relations are read once so every join below uses the same state
        cancel.raise_if_cancelled("list_endpoints")
        endpoints = self.registry.snapshot()
        relations = self.relations.snapshot()

        visible: Dict[str, EndpointDetail] = {}
        for endpoint in endpoints.values():
            cancel.raise_if_cancelled("resolve_endpoint")
            if not self._is_visible(user, endpoint, report, cancel):
                continue
            detail = EndpointDetail(endpoint=endpoint)
            self._attach_credential(detail, user, report, cancel)
            buckets.setdefault(endpoint.cnsi_type, {})[endpoint.guid] = detail
            visible[endpoint.guid] = detail
        report.endpoint_count = len(visible)

        if features.enable_relations:
            cancel.raise_if_cancelled("build_relation_index")
            index = self.relations.build_index(
                known_guids=endpoints, visible_guids=visible, relations=relations
            )
            for guid, detail in visible.items():
                detail.relations = index.for_endpoint(guid)
            report.dangling_relations = index.dangling
            report.hidden_relations = index.hidden

        snapshot = InfoSnapshot(
            user=user,
            versions=Versions(
                console_version=self.config.broker.console_version,
                database_version=self.database_version,
            ),
            endpoints=buckets,
            plugin_config=dict(self.config.broker.plugin_config),
        )
        if user.admin and features.enable_diagnostics:
            snapshot.diagnostics = report.diagnostics(self.config.deployment_info())

        snapshot, statuses = self._run_extensions(snapshot, user, report, cancel)
        snapshot.plugins = statuses

        if isinstance(snapshot.diagnostics, Diagnostics):
            snapshot.diagnostics.extension_faults = list(report.extension_faults)

        # Privilege filter runs after every extension has had its turn
        if not user.admin or not features.enable_diagnostics:
            snapshot.strip_admin_fields()

        self.logger.info(
            "Built info snapshot",
            extra={
                "user_id": user.guid,
                "admin": user.admin,
                "endpoint_count": report.endpoint_count,
                "dangling_relations": report.dangling_relations,
                "hidden_relations": report.hidden_relations,
                "endpoint_faults": len(report.endpoint_faults),
                "extension_faults": len(report.extension_faults),
            },
        )
        return snapshot

    def _is_visible(
        self,
        user: UserIdentity,
        endpoint: Endpoint,
        report: AggregationReport,
        cancel: CancellationToken,
    ) -> bool:
        try:
            return bool(self.visibility(user.guid, endpoint))
        except Exception as e:
            _reraise_if_cancelled(e, cancel)
            # Fail closed
            report.endpoint_faults.append(f"{endpoint.guid}: visibility check failed")
            self.logger.error(
                "Visibility check failed, endpoint excluded",
                extra={
                    "endpoint_guid": endpoint.guid,
                    "dependency": Dependency.AUTHORIZATION.value,
                    "error": str(e),
                },
            )
            return False

    def _attach_credential(
        self,
        detail: EndpointDetail,
        user: UserIdentity,
        report: AggregationReport,
        cancel: CancellationToken,
    ) -> None:
        try:
            resolved = self.tokens.resolve(detail.guid, user.guid)
        except Exception as e:
            _reraise_if_cancelled(e, cancel)
            report.endpoint_faults.append(f"{detail.guid}: credential lookup failed")
            self.logger.error(
                "Credential lookup failed, endpoint kept without credential",
                extra={
                    "endpoint_guid": detail.guid,
                    "dependency": Dependency.TOKEN_STORE.value,
                    "error": str(e),
                },
            )
            return
        if resolved is not None:
            detail.attach_credential(resolved.token.to_view(), usable=resolved.token.is_usable())

    def _run_extensions(
        self,
        snapshot: InfoSnapshot,
        user: UserIdentity,
        report: AggregationReport,
        cancel: CancellationToken,
    ):
        """
        Let every extension post-process the snapshot, in registration order.

        With isolation on, each extension works on a deep copy that is only
        adopted if it returns normally, so a failing extension leaves the
        snapshot exactly as the previous extension left it.
        """
        isolate = self.config.features.enable_extension_isolation
        statuses: List[PluginStatus] = []
        for extension in self.extensions.extensions():
            cancel.raise_if_cancelled(f"extension {extension.name}")
            working = snapshot.model_copy(deep=True) if isolate else snapshot
            try:
                extension.post_process(working, user.guid, user.admin)
            except Exception as e:
                _reraise_if_cancelled(e, cancel)
                fault = ExtensionFaultError(extension.name, cause=e, user_id=user.guid)
                report.extension_faults.append(extension.name)
                statuses.append(extension.status(healthy=False))
                self.logger.warning(
                    f"Extension {extension.name} failed, continuing without its contribution",
                    extra={"extension": extension.name, "error_id": fault.error_id},
                )
                continue
            snapshot = working
            statuses.append(extension.status(healthy=True))
        return snapshot, statuses


def _reraise_if_cancelled(error: Exception, cancel: CancellationToken) -> None:
    if isinstance(error, OperationCancelledError) and cancel.cancelled:
        raise error
