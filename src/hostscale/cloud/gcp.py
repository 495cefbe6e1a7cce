"""
Google Kubernetes Engine scaling provider
"""

from .kubernetes import KubernetesScalingProvider


class GoogleGkeProvider(KubernetesScalingProvider):
    """Google Kubernetes Engine; VPA ships with GKE and is switched on per cluster"""

    provider_name = "gcp"
    provider_label = "Google GKE"
