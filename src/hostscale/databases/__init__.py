"""
hostscale Managed Databases Module

One provisioning interface over the managed database offerings of
AWS, Azure, GCP, DigitalOcean and OVHcloud.
"""

from .base import (
    ConnectionDetails,
    DatabaseEngine,
    InstanceStatus,
    ManagedDatabaseInstance,
    ManagedDatabaseProvider,
    ManagedDatabaseRequest,
    ProvisionResult,
    RemoteState,
    default_identifier,
)
from .aws import AwsRdsProvider
from .azure import AzureDatabaseProvider
from .gcp import CloudSqlProvider
from .digitalocean import DigitalOceanDatabaseProvider
from .ovh import OvhDatabaseProvider, sign_request
from .manager import ManagedDatabaseManager
from .orchestrator import InstanceStore, ProvisioningOrchestrator, ProvisioningOutcome

DATABASE_PROVIDER_CLASSES = {
    "aws": AwsRdsProvider,
    "azure": AzureDatabaseProvider,
    "gcp": CloudSqlProvider,
    "digitalocean": DigitalOceanDatabaseProvider,
    "ovh": OvhDatabaseProvider,
}

__all__ = [
    "ConnectionDetails",
    "DatabaseEngine",
    "InstanceStatus",
    "ManagedDatabaseInstance",
    "ManagedDatabaseProvider",
    "ManagedDatabaseRequest",
    "ProvisionResult",
    "RemoteState",
    "default_identifier",
    "AwsRdsProvider",
    "AzureDatabaseProvider",
    "CloudSqlProvider",
    "DigitalOceanDatabaseProvider",
    "OvhDatabaseProvider",
    "sign_request",
    "ManagedDatabaseManager",
    "InstanceStore",
    "ProvisioningOrchestrator",
    "ProvisioningOutcome",
    "DATABASE_PROVIDER_CLASSES",
]
