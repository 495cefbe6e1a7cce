"""
hostscale Cloud Provider Manager

Registry of scaling providers and the selection rule that picks one for
a target.
"""

import logging
from typing import Dict, Optional

from ..core.exceptions import ConfigurationError
from ..detection.detector import DeploymentDetector
from .base import ScalingProvider, ScalingTarget

logger = logging.getLogger(__name__)


class CloudProviderManager:
    """
    Holds one ScalingProvider per cloud name.

    Registration happens once at startup (see ``bootstrap``); afterwards
    the registry is only read.
    """

    def __init__(self, detector: DeploymentDetector):
        self.detector = detector
        self._providers: Dict[str, ScalingProvider] = {}

    def register(self, name: str, provider: ScalingProvider) -> None:
        """Register a provider under ``name``"""
        if not isinstance(provider, ScalingProvider):
            raise ConfigurationError(
                f"Provider {name!r} does not implement ScalingProvider: {type(provider).__name__}",
                config_key="providers"
            )
        self._providers[name.lower()] = provider
        logger.debug(f"Registered scaling provider: {name}")

    def get_provider(self, target: Optional[ScalingTarget] = None) -> Optional[ScalingProvider]:
        """
        Provider for ``target``.

        The target's provider hint wins over the detected cloud. Returns
        None when the environment cannot auto-scale or nothing is
        registered under the resolved name.
        """
        info = self.detector.get_deployment_info()
        if not info.supports_auto_scaling:
            logger.debug(
                f"Auto-scaling unavailable (mode={info.mode.value}, cloud={info.cloud_provider.value})"
            )
            return None

        if target is not None and target.provider_hint:
            name = target.provider_hint
        else:
            name = info.cloud_provider.value

        provider = self._providers.get(name.lower())
        if provider is None:
            logger.debug(f"No scaling provider registered for {name!r}")
        return provider

    def get_provider_by_name(self, name: str) -> Optional[ScalingProvider]:
        return self._providers.get(name.lower()) if name else None

    @property
    def providers(self) -> Dict[str, ScalingProvider]:
        return dict(self._providers)

    def get_providers(self) -> Dict[str, ScalingProvider]:
        return self.providers

    def has_provider(self, name: str) -> bool:
        return bool(name) and name.lower() in self._providers

    def current_provider_name(self) -> str:
        return self.detector.get_deployment_info().cloud_provider.value

    def is_auto_scaling_available(self) -> bool:
        return self.detector.get_deployment_info().supports_auto_scaling
