"""
hostscale DigitalOcean Managed Database Provider

DigitalOcean database clusters through ``doctl databases``. The vendor
creates the admin user and password; backups are automatic and restores
fork a new cluster from a backup timestamp.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .base import (
    DatabaseEngine,
    InstanceStatus,
    ManagedDatabaseInstance,
    ManagedDatabaseProvider,
    ManagedDatabaseRequest,
    RemoteState,
)

logger = logging.getLogger(__name__)


DOCTL_ENGINES = {
    DatabaseEngine.MYSQL: "mysql",
    DatabaseEngine.POSTGRESQL: "pg",
    DatabaseEngine.REDIS: "redis",
}

DEFAULT_VERSIONS = {
    DatabaseEngine.MYSQL: "8",
    DatabaseEngine.POSTGRESQL: "15",
    DatabaseEngine.REDIS: "7",
}

DO_STATES = {
    "online": InstanceStatus.AVAILABLE,
    "creating": InstanceStatus.PROVISIONING,
    "resizing": InstanceStatus.PROVISIONING,
    "migrating": InstanceStatus.PROVISIONING,
    "forking": InstanceStatus.PROVISIONING,
}


class DigitalOceanDatabaseProvider(ManagedDatabaseProvider):
    """DigitalOcean Managed Databases"""

    name = "digitalocean"
    label = "DigitalOcean Managed Databases"
    supported_engines = (DatabaseEngine.MYSQL, DatabaseEngine.POSTGRESQL, DatabaseEngine.REDIS)
    default_ports = {
        DatabaseEngine.MYSQL: 25060,
        DatabaseEngine.POSTGRESQL: 25060,
        DatabaseEngine.REDIS: 25061,
    }
    instance_types = {
        "db-s-1vcpu-1gb": "1 vCPU, 1 GB RAM, 10 GB Disk",
        "db-s-1vcpu-2gb": "1 vCPU, 2 GB RAM, 25 GB Disk",
        "db-s-2vcpu-4gb": "2 vCPU, 4 GB RAM, 38 GB Disk",
        "db-s-4vcpu-8gb": "4 vCPU, 8 GB RAM, 115 GB Disk",
        "db-s-6vcpu-16gb": "6 vCPU, 16 GB RAM, 270 GB Disk",
        "db-s-8vcpu-32gb": "8 vCPU, 32 GB RAM, 580 GB Disk",
    }
    regions = {
        "nyc1": "New York 1",
        "nyc3": "New York 3",
        "sfo3": "San Francisco 3",
        "ams3": "Amsterdam 3",
        "sgp1": "Singapore 1",
        "lon1": "London 1",
        "fra1": "Frankfurt 1",
        "tor1": "Toronto 1",
        "blr1": "Bangalore 1",
    }
    requires_password = False
    not_found_markers = ("404", "not found", "could not be found")

    @property
    def cli(self) -> str:
        return self.settings.cli_path or "doctl"

    def cli_env(self) -> Dict[str, str]:
        env = {}
        if self.credentials.get("api_token"):
            env["DIGITALOCEAN_ACCESS_TOKEN"] = self.credentials["api_token"]
        return env

    def _databases(self, *args: str) -> List[str]:
        return [self.cli, "databases", *args, "--output", "json"]

    def _create(
        self,
        request: ManagedDatabaseRequest,
        identifier: str
    ) -> Tuple[ManagedDatabaseInstance, Optional[str]]:
        engine = request.database_engine
        options = {**self.settings.defaults, **request.options}

        cluster = self.as_object(self.run_cli_json(
            self._databases(
                "create", identifier,
                "--engine", DOCTL_ENGINES[engine],
                "--region", request.region,
                "--size", request.instance_class,
                "--num-nodes", str(options.get("num_nodes", 1)),
                "--version", request.version or DEFAULT_VERSIONS[engine],
            ),
            "create"
        ), "create")
        connection = cluster.get("connection") or {}

        instance = ManagedDatabaseInstance(
            instance_id=cluster.get("id") or identifier,
            provider=self.name,
            engine=engine.value,
            name=connection.get("database") or request.name,
            region=request.region,
            instance_class=request.instance_class,
            status=DO_STATES.get(cluster.get("status", ""), InstanceStatus.PROVISIONING),
            host=connection.get("host"),
            port=connection.get("port") or self.default_port(engine.value),
            username=connection.get("user") or "doadmin",
            # managed clusters always enforce TLS
            ssl_required=True,
            storage_gb=request.storage_gb,
            metadata={"cluster_name": identifier},
        )
        return instance, connection.get("password")

    def deprovision(self, instance_id: str, engine: str, region: Optional[str] = None) -> None:
        self.log_activity("delete", instance_id)
        self.run_cli([self.cli, "databases", "delete", instance_id, "--force"], "delete")

    def describe(self, instance_id: str, engine: str, region: Optional[str] = None) -> RemoteState:
        data = self.run_cli_json(self._databases("get", instance_id), "status", allow_not_found=True)
        if data is None:
            return RemoteState(status=InstanceStatus.DELETED)

        cluster = self.as_object(data, "status")
        connection = cluster.get("connection") or {}
        return RemoteState(
            status=DO_STATES.get(cluster.get("status", ""), InstanceStatus.PROVISIONING),
            host=connection.get("host"),
            port=connection.get("port"),
            raw=cluster,
        )

    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        """Cluster sizing as reported by doctl"""
        cluster = self.describe(instance.instance_id, instance.engine).raw
        return {
            "status": cluster.get("status"),
            "size": cluster.get("size"),
            "num_nodes": cluster.get("num_nodes"),
            "storage_size_mib": cluster.get("storage_size_mib"),
        }

    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> None:
        args = [
            self.cli, "databases", "resize", instance.instance_id,
            "--size", instance_class,
            "--num-nodes", str(self.settings.defaults.get("num_nodes", 1)),
        ]
        if storage_gb is not None:
            args.extend(["--storage-size-mib", str(storage_gb * 1024)])

        self.log_activity("scale", instance.instance_id, instance_class=instance_class, storage_gb=storage_gb)
        self.run_cli(args, "scale")

    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> str:
        raise self.unsupported(
            "create_backup",
            guidance="DigitalOcean takes daily backups automatically; list them with `doctl databases backups`."
        )

    def list_backups(self, instance: ManagedDatabaseInstance) -> List[Dict[str, Any]]:
        data = self.run_cli_json(self._databases("backups", instance.instance_id), "list backups")
        return data if isinstance(data, list) else []

    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> str:
        """
        Fork a new cluster from the backup taken at ``backup_identifier``
        (the backup's ``created_at`` timestamp). Returns the new cluster id.
        """
        fork_name = f"{instance.metadata.get('cluster_name') or instance.name}-restored"[:63]
        self.log_activity("restore", instance.instance_id, backup_created_at=backup_identifier, target=fork_name)
        cluster = self.as_object(self.run_cli_json(
            self._databases(
                "fork", fork_name,
                "--restore-from-cluster-id", instance.instance_id,
                "--restore-from-timestamp", backup_identifier,
            ),
            "restore"
        ), "restore")
        return cluster.get("id") or fork_name
