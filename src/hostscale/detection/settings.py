"""
Deployment settings: what the admin settings page shows and saves.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from ..core.metadata import InstallationMetadata
from ..core.notifications import Notification
from .detector import DeploymentDetector, DeploymentInfo

if TYPE_CHECKING:
    from ..cloud.manager import CloudProviderManager

logger = logging.getLogger(__name__)

AUTO_SCALING_KEY = "auto_scaling_enabled"
DEPLOYMENT_MODE_KEY = "deployment_mode"
CLOUD_PROVIDER_KEY = "cloud_provider"


@dataclass
class Capabilities:
    """Features available in the detected environment"""
    horizontal_scaling: str
    vertical_scaling: str
    load_balancing: str
    ssl_automation: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "horizontal_scaling": self.horizontal_scaling,
            "vertical_scaling": self.vertical_scaling,
            "load_balancing": self.load_balancing,
            "ssl_automation": self.ssl_automation,
        }


@dataclass
class SettingsView:
    info: DeploymentInfo
    auto_scaling_enabled: bool
    capabilities: Capabilities

    def to_dict(self) -> Dict[str, Any]:
        data = self.info.to_dict()
        data["mode_label"] = self.info.mode_label
        data["cloud_provider_label"] = self.info.cloud_provider_label
        data["auto_scaling_enabled"] = self.auto_scaling_enabled
        data["capabilities"] = self.capabilities.to_dict()
        return data


@dataclass
class SaveResult:
    info: DeploymentInfo
    notifications: List[Notification] = field(default_factory=list)


class DeploymentSettings:
    """Reads and writes the deployment settings backed by installation metadata"""

    def __init__(
        self,
        detector: DeploymentDetector,
        metadata: InstallationMetadata,
        cloud_manager: Optional["CloudProviderManager"] = None
    ):
        self.detector = detector
        self.metadata = metadata
        self.cloud_manager = cloud_manager

    def load(self) -> SettingsView:
        info = self.detector.get_deployment_info()
        return SettingsView(
            info=info,
            auto_scaling_enabled=bool(self.metadata.get_value(AUTO_SCALING_KEY, False)),
            capabilities=self.capabilities(info),
        )

    def save(self, auto_scaling_enabled: Optional[bool] = None) -> SaveResult:
        """
        Store the editable flag, re-detect the environment and record the
        detected mode and provider as read-only metadata.
        """
        notifications: List[Notification] = []

        if auto_scaling_enabled is not None:
            current = self.detector.get_deployment_info()
            if auto_scaling_enabled and not current.supports_auto_scaling:
                logger.warning("Auto-scaling requested but not supported in this environment")
                notifications.append(Notification.warning(
                    "Auto-scaling not supported",
                    "Auto-scaling requires Kubernetes with a supported cloud provider."
                ))
            else:
                self._store_auto_scaling(auto_scaling_enabled)

        self.detector.forget()
        info = self.detector.get_deployment_info()

        self.metadata.update_or_create(
            DEPLOYMENT_MODE_KEY,
            info.mode.value,
            type="string",
            description="Current deployment mode",
            is_editable=False,
        )
        self.metadata.update_or_create(
            CLOUD_PROVIDER_KEY,
            info.cloud_provider.value,
            type="string",
            description="Detected cloud provider",
            is_editable=False,
        )

        notifications.append(Notification.success("Settings saved successfully"))
        return SaveResult(info=info, notifications=notifications)

    def _store_auto_scaling(self, enabled: bool) -> None:
        if self.metadata.get_entry(AUTO_SCALING_KEY) is None:
            self.metadata.update_or_create(
                AUTO_SCALING_KEY,
                enabled,
                type="boolean",
                description="Enable automatic scaling for all domains that support it",
                is_editable=True,
            )
        elif not self.metadata.set_value(AUTO_SCALING_KEY, enabled):
            logger.warning(f"Metadata key {AUTO_SCALING_KEY} is read-only, value not changed")

    def capabilities(self, info: DeploymentInfo) -> Capabilities:
        if info.is_kubernetes:
            load_balancing = "✓ Kubernetes Service Load Balancer"
        elif info.is_docker:
            load_balancing = "✓ Docker Swarm/Compose"
        else:
            load_balancing = "✗ Not Available"

        return Capabilities(
            horizontal_scaling="✓ Available" if info.supports_auto_scaling else "✗ Not Available",
            vertical_scaling=self._vpa_status(info),
            load_balancing=load_balancing,
            ssl_automation="✓ cert-manager (Let's Encrypt)" if info.is_kubernetes else "✓ Certbot",
        )

    def _vpa_status(self, info: DeploymentInfo) -> str:
        if not info.supports_auto_scaling:
            return "✗ Not Available"

        if self.cloud_manager is not None:
            provider = self.cloud_manager.get_provider_by_name(info.cloud_provider.value)
            if provider is None:
                return "? Unknown (check cloud provider documentation)"
            if not provider.supports_vertical_scaling():
                return "✗ Not enabled for this provider"

        return "✓ Available (may require addon installation)"
