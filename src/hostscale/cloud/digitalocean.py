"""
DigitalOcean Kubernetes scaling provider
"""

from .kubernetes import KubernetesScalingProvider


class DigitalOceanKubernetesProvider(KubernetesScalingProvider):
    """DigitalOcean Kubernetes (DOKS)"""

    provider_name = "digitalocean"
    provider_label = "DigitalOcean Kubernetes"
