"""
Azure Kubernetes Service scaling provider
"""

from .kubernetes import KubernetesScalingProvider


class AzureAksProvider(KubernetesScalingProvider):
    """Azure Kubernetes Service; VPA is available once the AKS add-on is enabled"""

    provider_name = "azure"
    provider_label = "Azure AKS"
