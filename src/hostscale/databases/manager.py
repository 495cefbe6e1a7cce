"""
hostscale Managed Database Manager

Registry of managed database providers. Lookups by name never raise;
operations on an instance whose provider is unknown return a neutral
value, while provisioning through an unknown provider is an error.
"""

import logging
from typing import Any, Dict, Optional

from ..core.config import ManagedDatabaseConfig
from ..core.exceptions import ConfigurationError, ProviderNotSupported, provider_not_found_error
from .base import (
    ManagedDatabaseInstance,
    ManagedDatabaseProvider,
    ManagedDatabaseRequest,
    ProvisionResult,
)

logger = logging.getLogger(__name__)


class ManagedDatabaseManager:
    """Holds one ManagedDatabaseProvider per vendor name"""

    def __init__(
        self,
        providers: Optional[Dict[str, ManagedDatabaseProvider]] = None,
        config: Optional[ManagedDatabaseConfig] = None
    ):
        self.config = config or ManagedDatabaseConfig()
        self._providers: Dict[str, ManagedDatabaseProvider] = {}
        for name, provider in (providers or {}).items():
            self.register(name, provider)

    def register(self, name: str, provider: ManagedDatabaseProvider) -> None:
        if not isinstance(provider, ManagedDatabaseProvider):
            raise ConfigurationError(
                f"Provider {name!r} does not implement ManagedDatabaseProvider: {type(provider).__name__}",
                config_key="databases.providers"
            )
        if not provider.get_available_instance_types() or not provider.get_available_regions():
            raise ConfigurationError(
                f"Provider {name!r} must publish at least one instance type and one region",
                config_key=f"databases.providers.{name}"
            )
        self._providers[name.lower()] = provider
        logger.debug(f"Registered managed database provider: {name}")

    # Lookups

    @property
    def providers(self) -> Dict[str, ManagedDatabaseProvider]:
        return dict(self._providers)

    def get_providers(self) -> Dict[str, ManagedDatabaseProvider]:
        return self.providers

    def get_provider_by_name(self, name: Optional[str]) -> Optional[ManagedDatabaseProvider]:
        if not name:
            return None
        return self._providers.get(name.lower())

    def get_provider(self, instance: Optional[ManagedDatabaseInstance]) -> Optional[ManagedDatabaseProvider]:
        """Provider managing ``instance``, or None for unmanaged/unknown ones"""
        if instance is None:
            return None
        return self.get_provider_by_name(instance.provider)

    def is_provider_supported(self, name: str) -> bool:
        return self.get_provider_by_name(name) is not None

    def get_available_instance_types(self, name: str) -> Dict[str, str]:
        provider = self.get_provider_by_name(name)
        return provider.get_available_instance_types() if provider else {}

    def get_available_regions(self, name: str) -> Dict[str, str]:
        provider = self.get_provider_by_name(name)
        return provider.get_available_regions() if provider else {}

    # Operations

    def provision(self, name: str, request: ManagedDatabaseRequest) -> ProvisionResult:
        provider = self.get_provider_by_name(name)
        if provider is None:
            raise provider_not_found_error(name, list(self._providers))
        if not provider.settings.enabled:
            raise ProviderNotSupported(
                f"{provider.label} provisioning is disabled",
                provider=provider.name,
                capability="provision",
                guidance=f"Enable it with databases.providers.{provider.name}.enabled = true."
            )
        return provider.provision(request)

    def deprovision(self, instance: ManagedDatabaseInstance) -> bool:
        provider = self.get_provider(instance)
        if provider is None:
            logger.warning(f"No managed database provider for {instance.provider!r}; nothing deprovisioned")
            return False
        provider.deprovision(instance.instance_id, instance.engine, instance.region)
        return True

    def test_connection(self, instance: ManagedDatabaseInstance) -> bool:
        provider = self.get_provider(instance)
        if provider is None:
            return False
        return provider.test_connection(provider.get_connection_details(instance))

    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        provider = self.get_provider(instance)
        if provider is None:
            return {}
        return provider.get_metrics(instance)

    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> bool:
        provider = self.get_provider(instance)
        if provider is None:
            return False
        provider.scale_instance(instance, instance_class, storage_gb)
        return True

    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> Optional[str]:
        provider = self.get_provider(instance)
        if provider is None:
            return None
        return provider.create_backup(instance, backup_name)

    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> Optional[str]:
        provider = self.get_provider(instance)
        if provider is None:
            return None
        return provider.restore_backup(instance, backup_identifier)
