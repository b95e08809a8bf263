"""Extensions registered with the broker at start-up."""

from .builtin import CloudFoundryExtension, EndpointTypeExtension, KubernetesExtension

__all__ = ["CloudFoundryExtension", "EndpointTypeExtension", "KubernetesExtension"]
