"""
hostscale Service Wiring

Builds every manager and adapter once from a HostscaleConfig. Consumers
receive the Services container (or the pieces they need) by parameter.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

import requests

from .cloud import (
    SCALING_PROVIDER_CLASSES,
    CloudProviderManager,
    ScalingOrchestrator,
    WorkloadController,
)
from .core.config import HostscaleConfig, ProviderSettings, get_config
from .core.exceptions import SecretError
from .core.metadata import InstallationMetadata
from .databases import DATABASE_PROVIDER_CLASSES, ManagedDatabaseManager, ProvisioningOrchestrator
from .detection import DeploymentDetector, DeploymentSettings
from .utils.commands import CommandRunner, LocalCommandRunner
from .utils.network import new_session
from .utils.secrets import SecretBox

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a caller needs, built once"""
    config: HostscaleConfig
    detector: DeploymentDetector
    cloud_manager: CloudProviderManager
    database_manager: ManagedDatabaseManager
    metadata: InstallationMetadata
    secrets: Optional[SecretBox]
    scaling: ScalingOrchestrator
    provisioning: ProvisioningOrchestrator
    workloads: WorkloadController
    settings: DeploymentSettings


def build_services(
    config: Optional[HostscaleConfig] = None,
    runner: Optional[CommandRunner] = None,
    session: Optional[requests.Session] = None,
    environ: Optional[Mapping[str, str]] = None,
    root: Union[str, Path] = "/"
) -> Services:
    """
    Wire detector, registries and orchestrators from ``config``.

    Args:
        config: Configuration; the global one when omitted
        runner: Command runner shared by detector and CLI-backed adapters
        session: HTTP session for metadata probes
        environ: Environment used for detection (os.environ by default)
        root: Filesystem root for detection markers
    """
    config = config or get_config()
    runner = runner or LocalCommandRunner()

    detector = DeploymentDetector(
        config=config.detection,
        environ=environ,
        root=root,
        runner=runner,
        session=session or new_session(),
        kubectl_path=config.kubernetes.kubectl_path,
    )

    cloud_manager = CloudProviderManager(detector)
    for name, provider_class in SCALING_PROVIDER_CLASSES.items():
        cloud_manager.register(name, provider_class(config=config.kubernetes, runner=runner))

    db_config = config.databases
    database_manager = ManagedDatabaseManager(config=db_config)
    for name, provider_class in DATABASE_PROVIDER_CLASSES.items():
        database_manager.register(name, provider_class(
            settings=db_config.providers.get(name) or ProviderSettings(),
            runner=runner,
            operation_timeout=db_config.operation_timeout_seconds,
            connection_timeout=db_config.connection_test_timeout,
        ))

    try:
        secrets = SecretBox.from_setting(config.security.secret_key)
    except SecretError:
        logger.debug("No secret key configured; database passwords cannot be stored")
        secrets = None

    metadata = InstallationMetadata(config.storage.metadata_path)

    services = Services(
        config=config,
        detector=detector,
        cloud_manager=cloud_manager,
        database_manager=database_manager,
        metadata=metadata,
        secrets=secrets,
        scaling=ScalingOrchestrator(cloud_manager),
        provisioning=ProvisioningOrchestrator(database_manager, secrets=secrets, config=db_config),
        workloads=WorkloadController(detector, runner=runner, config=config.kubernetes),
        settings=DeploymentSettings(detector, metadata, cloud_manager),
    )
    logger.debug(
        f"Services ready: {len(cloud_manager.providers)} scaling providers, "
        f"{len(database_manager.providers)} database providers"
    )
    return services
