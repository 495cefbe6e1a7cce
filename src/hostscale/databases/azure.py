"""
hostscale Azure Database Provider

Azure Database for MySQL and PostgreSQL flexible servers through the
``az`` CLI. Servers live in the resource group named by the
``resource_group`` credential.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import ConfigurationError
from .base import (
    DatabaseEngine,
    InstanceStatus,
    ManagedDatabaseInstance,
    ManagedDatabaseProvider,
    ManagedDatabaseRequest,
    RemoteState,
)

logger = logging.getLogger(__name__)


# az command group per engine
AZURE_SERVICES = {
    DatabaseEngine.MYSQL: "mysql",
    DatabaseEngine.POSTGRESQL: "postgres",
}

DEFAULT_VERSIONS = {
    DatabaseEngine.MYSQL: "8.0.21",
    DatabaseEngine.POSTGRESQL: "15",
}

# Catalogue code -> (flexible-server SKU, tier)
FLEXIBLE_SKUS = {
    "B_Gen5_1": ("Standard_B1ms", "Burstable"),
    "B_Gen5_2": ("Standard_B2s", "Burstable"),
    "GP_Gen5_2": ("Standard_D2ds_v4", "GeneralPurpose"),
    "GP_Gen5_4": ("Standard_D4ds_v4", "GeneralPurpose"),
    "GP_Gen5_8": ("Standard_D8ds_v4", "GeneralPurpose"),
    "MO_Gen5_2": ("Standard_E2ds_v4", "MemoryOptimized"),
    "MO_Gen5_4": ("Standard_E4ds_v4", "MemoryOptimized"),
    "MO_Gen5_8": ("Standard_E8ds_v4", "MemoryOptimized"),
}

AZURE_STATES = {
    "ready": InstanceStatus.AVAILABLE,
    "starting": InstanceStatus.PROVISIONING,
    "updating": InstanceStatus.PROVISIONING,
    "provisioning": InstanceStatus.PROVISIONING,
    "stopping": InstanceStatus.PROVISIONING,
    "stopped": InstanceStatus.FAILED,
    "disabled": InstanceStatus.FAILED,
    "dropping": InstanceStatus.DELETING,
}

AZURE_METRICS = ("cpu_percent", "memory_percent", "storage_percent", "active_connections", "io_consumption_percent")


class AzureDatabaseProvider(ManagedDatabaseProvider):
    """Azure Database for MySQL / PostgreSQL"""

    name = "azure"
    label = "Azure Database"
    supported_engines = (DatabaseEngine.MYSQL, DatabaseEngine.POSTGRESQL)
    instance_types = {
        "B_Gen5_1": "Basic Gen5 (1 vCore)",
        "B_Gen5_2": "Basic Gen5 (2 vCore)",
        "GP_Gen5_2": "General Purpose Gen5 (2 vCore)",
        "GP_Gen5_4": "General Purpose Gen5 (4 vCore)",
        "GP_Gen5_8": "General Purpose Gen5 (8 vCore)",
        "MO_Gen5_2": "Memory Optimized Gen5 (2 vCore)",
        "MO_Gen5_4": "Memory Optimized Gen5 (4 vCore)",
        "MO_Gen5_8": "Memory Optimized Gen5 (8 vCore)",
    }
    regions = {
        "eastus": "East US",
        "eastus2": "East US 2",
        "westus": "West US",
        "westus2": "West US 2",
        "centralus": "Central US",
        "northeurope": "North Europe",
        "westeurope": "West Europe",
        "southeastasia": "Southeast Asia",
        "eastasia": "East Asia",
        "australiaeast": "Australia East",
    }
    not_found_markers = ("ResourceNotFound", "was not found", "could not be found")

    @property
    def cli(self) -> str:
        return self.settings.cli_path or "az"

    @property
    def resource_group(self) -> str:
        group = self.credentials.get("resource_group")
        if not group:
            raise ConfigurationError(
                "Azure resource group is not configured",
                config_key="databases.providers.azure.credentials.resource_group",
                guidance="Set AZURE_RESOURCE_GROUP or the resource_group credential."
            )
        return group

    def cli_env(self) -> Dict[str, str]:
        env = {}
        if self.credentials.get("subscription_id"):
            env["AZURE_SUBSCRIPTION_ID"] = self.credentials["subscription_id"]
        return env

    def _server(self, engine: str, *args: str) -> List[str]:
        service = AZURE_SERVICES[DatabaseEngine.parse(engine)]
        return [self.cli, service, "flexible-server", *args, "--resource-group", self.resource_group, "--output", "json"]

    def _create(
        self,
        request: ManagedDatabaseRequest,
        identifier: str
    ) -> Tuple[ManagedDatabaseInstance, Optional[str]]:
        engine = request.database_engine
        sku_name, tier = FLEXIBLE_SKUS[request.instance_class]
        options = {**self.settings.defaults, **request.options}

        # az waits for the server to exist; the call is bounded by operation_timeout
        data = self.run_cli_json(
            self._server(
                engine.value,
                "create",
                "--name", identifier,
                "--location", request.region,
                "--admin-user", request.username,
                "--admin-password", request.password,
                "--sku-name", sku_name,
                "--tier", tier,
                "--storage-size", str(request.storage_gb),
                "--version", request.version or DEFAULT_VERSIONS[engine],
                "--backup-retention", str(options.get("backup_retention", 7)),
                "--database-name", request.name,
                "--public-access", options.get("public_access", "None"),
                "--yes",
            ),
            "create"
        )
        data = self.as_object(data, "create")

        if not request.ssl_required:
            self.run_cli(
                self._server(
                    engine.value,
                    "parameter", "set",
                    "--server-name", identifier,
                    "--name", "require_secure_transport",
                    "--value", "OFF",
                ),
                "configure ssl"
            )

        instance = ManagedDatabaseInstance(
            instance_id=identifier,
            provider=self.name,
            engine=engine.value,
            name=request.name,
            region=request.region,
            instance_class=request.instance_class,
            status=InstanceStatus.PROVISIONING,
            host=data.get("host") or data.get("fullyQualifiedDomainName"),
            port=self.default_port(engine.value),
            username=request.username,
            ssl_required=request.ssl_required,
            storage_gb=request.storage_gb,
            metadata={"resource_id": data.get("id")},
        )
        return instance, request.password

    def deprovision(self, instance_id: str, engine: str, region: Optional[str] = None) -> None:
        self.log_activity("delete", instance_id)
        self.run_cli(self._server(engine, "delete", "--name", instance_id, "--yes"), "delete")

    def describe(self, instance_id: str, engine: str, region: Optional[str] = None) -> RemoteState:
        data = self.run_cli_json(
            self._server(engine, "show", "--name", instance_id),
            "status",
            allow_not_found=True
        )
        if data is None:
            return RemoteState(status=InstanceStatus.DELETED)

        data = self.as_object(data, "status")
        state = str(data.get("state") or data.get("userVisibleState") or "").lower()
        return RemoteState(
            status=AZURE_STATES.get(state, InstanceStatus.PROVISIONING),
            host=data.get("fullyQualifiedDomainName"),
            port=self.default_port(engine),
            raw=data,
        )

    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        resource_id = instance.metadata.get("resource_id") or self.describe(
            instance.instance_id, instance.engine
        ).raw.get("id")
        if not resource_id:
            return {}

        data = self.run_cli_json(
            [
                self.cli, "monitor", "metrics", "list",
                "--resource", resource_id,
                "--metric", *AZURE_METRICS,
                "--interval", "PT5M",
                "--output", "json",
            ],
            "metrics"
        )

        metrics: Dict[str, Any] = {name: None for name in AZURE_METRICS}
        for series in self.as_object(data, "metrics").get("value") or []:
            name = (series.get("name") or {}).get("value")
            points = [
                point
                for timeseries in series.get("timeseries") or []
                for point in timeseries.get("data") or []
                if point.get("average") is not None
            ]
            if name in metrics and points:
                metrics[name] = points[-1]["average"]
        return metrics

    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> None:
        sku_name, tier = FLEXIBLE_SKUS.get(instance_class, (instance_class, None))
        args = ["update", "--name", instance.instance_id, "--sku-name", sku_name]
        if tier:
            args.extend(["--tier", tier])
        if storage_gb is not None:
            args.extend(["--storage-size", str(storage_gb)])

        self.log_activity("scale", instance.instance_id, instance_class=instance_class, storage_gb=storage_gb)
        self.run_cli(self._server(instance.engine, *args), "scale")

    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> str:
        self.log_activity("backup", instance.instance_id, backup=backup_name)
        data = self.run_cli_json(
            self._server(instance.engine, "backup", "create", "--name", instance.instance_id, "--backup-name", backup_name),
            "backup"
        )
        return self.as_object(data, "backup").get("name", backup_name)

    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> str:
        """
        Point-in-time restore into a new server.

        ``backup_identifier`` is the restore timestamp (ISO 8601).
        """
        restored = f"{instance.instance_id}-restored"[:63]
        self.log_activity("restore", instance.instance_id, restore_time=backup_identifier, target=restored)
        self.run_cli(
            self._server(
                instance.engine,
                "restore",
                "--name", restored,
                "--source-server", instance.instance_id,
                "--restore-time", backup_identifier,
            ),
            "restore"
        )
        return restored
