"""
OVHcloud Managed Kubernetes scaling provider
"""

from .kubernetes import KubernetesScalingProvider


class OvhKubernetesProvider(KubernetesScalingProvider):
    """OVHcloud Managed Kubernetes Service"""

    provider_name = "ovh"
    provider_label = "OVHcloud Managed Kubernetes"
