"""
hostscale Detection Module

Deployment environment detection and the settings built on it.
"""

from .detector import (
    DeploymentDetector,
    DeploymentInfo,
    DeploymentMode,
    CloudProvider,
    RECOGNIZED_PROVIDERS,
    mode_label,
    cloud_provider_label,
    is_recognized_provider,
)
from .settings import DeploymentSettings, SettingsView, Capabilities

__all__ = [
    "DeploymentDetector",
    "DeploymentInfo",
    "DeploymentMode",
    "CloudProvider",
    "RECOGNIZED_PROVIDERS",
    "mode_label",
    "cloud_provider_label",
    "is_recognized_provider",
    "DeploymentSettings",
    "SettingsView",
    "Capabilities",
]
