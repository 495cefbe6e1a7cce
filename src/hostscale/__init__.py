"""
hostscale - Deployment detection and cloud provider abstraction

Detect where the control panel runs, scale hosted workloads through one
interface and provision managed databases on five clouds.
"""

from .__about__ import __version__

from .core.config import HostscaleConfig, get_config, configure_logging
from .core.exceptions import HostscaleError
from .detection import DeploymentDetector, DeploymentInfo, DeploymentMode, CloudProvider
from .cloud import CloudProviderManager, ScalingOrchestrator, ScalingRequest, ScalingTarget
from .databases import ManagedDatabaseManager, ManagedDatabaseRequest, ProvisioningOrchestrator
from .bootstrap import Services, build_services

__all__ = [
    "__version__",
    "HostscaleConfig",
    "get_config",
    "configure_logging",
    "HostscaleError",
    "DeploymentDetector",
    "DeploymentInfo",
    "DeploymentMode",
    "CloudProvider",
    "CloudProviderManager",
    "ScalingOrchestrator",
    "ScalingRequest",
    "ScalingTarget",
    "ManagedDatabaseManager",
    "ManagedDatabaseRequest",
    "ProvisioningOrchestrator",
    "Services",
    "build_services",
]

# Package-level configuration
import logging
import os

log_level = os.getenv("HOSTSCALE_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - hostscale - %(levelname)s - %(message)s"
)
