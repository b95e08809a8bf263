"""
Built-in extensions shipped with the broker.
"""

from typing import Optional

from ..config import CloudFoundryConfig
from ..constants import EndpointType
from ..schemas.info_schemas import InfoSnapshot
from ..services.extension_registry import Extension


class EndpointTypeExtension(Extension):
    """Owns an endpoint type and contributes nothing else."""

    def __init__(self, type_tag: str, name: Optional[str] = None, version: str = "1.0.0"):
        self.type_tag = type_tag
        self.name = name or type_tag
        self.version = version


class CloudFoundryExtension(Extension):
    """Owns Cloud Foundry endpoints and publishes the configured CF defaults."""

    name = "cloudfoundry"
    type_tag = EndpointType.CLOUD_FOUNDRY.value

    def __init__(self, settings: Optional[CloudFoundryConfig] = None):
        self.settings = settings

    def post_process(self, snapshot: InfoSnapshot, user_id: str, admin: bool) -> None:
        if self.settings is None:
            return
        values = self.settings.model_dump(exclude_none=True)
        if values:
            snapshot.cloud_foundry = values


class KubernetesExtension(Extension):
    """
    Owns Kubernetes endpoints.

    Each k8s endpoint gets a `cf_providers` count in its extension metadata:
    how many visible Cloud Foundry endpoints deploy to it.
    """

    name = "kubernetes"
    type_tag = EndpointType.KUBERNETES.value

    def post_process(self, snapshot: InfoSnapshot, user_id: str, admin: bool) -> None:
        cf_guids = set(snapshot.endpoints.get(EndpointType.CLOUD_FOUNDRY.value, {}))
        for detail in snapshot.endpoints.get(self.type_tag, {}).values():
            detail.metadata["cf_providers"] = sum(
                1 for relation in detail.relations.receives if relation.peer in cf_guids
            )
