"""
hostscale Cloud Module

One scaling interface (HPA, VPA, manual replicas) over managed Kubernetes
offerings, plus the registry and orchestration around it.
"""

from .base import (
    ScalingProvider,
    ScalingTarget,
    ScalingConfig,
    HorizontalScaling,
    VerticalScaling,
    PodMetrics,
    UpdateMode,
    sanitize_name,
)
from .kubernetes import KubernetesScalingProvider, validate_horizontal_parameters
from .aws import AwsEksProvider
from .azure import AzureAksProvider
from .gcp import GoogleGkeProvider
from .digitalocean import DigitalOceanKubernetesProvider
from .ovh import OvhKubernetesProvider
from .manager import CloudProviderManager
from .orchestrator import ScalingOrchestrator, ScalingRequest, ScalingState, ScalingOutcome
from .workloads import WorkloadController, WorkloadStatus

SCALING_PROVIDER_CLASSES = {
    "aws": AwsEksProvider,
    "azure": AzureAksProvider,
    "gcp": GoogleGkeProvider,
    "digitalocean": DigitalOceanKubernetesProvider,
    "ovh": OvhKubernetesProvider,
}

__all__ = [
    "ScalingProvider",
    "ScalingTarget",
    "ScalingConfig",
    "HorizontalScaling",
    "VerticalScaling",
    "PodMetrics",
    "UpdateMode",
    "sanitize_name",
    "KubernetesScalingProvider",
    "validate_horizontal_parameters",
    "AwsEksProvider",
    "AzureAksProvider",
    "GoogleGkeProvider",
    "DigitalOceanKubernetesProvider",
    "OvhKubernetesProvider",
    "CloudProviderManager",
    "ScalingOrchestrator",
    "ScalingRequest",
    "ScalingState",
    "ScalingOutcome",
    "WorkloadController",
    "WorkloadStatus",
    "SCALING_PROVIDER_CLASSES",
]
