"""
hostscale Google Cloud SQL Provider

Cloud SQL for MySQL and PostgreSQL through ``gcloud sql``. The create
call runs synchronously so the database and user can be added to the
new instance in the same operation.
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


DEFAULT_VERSIONS = {
    DatabaseEngine.MYSQL: "MYSQL_8_0",
    DatabaseEngine.POSTGRESQL: "POSTGRES_15",
}

GCP_STATES = {
    "RUNNABLE": InstanceStatus.AVAILABLE,
    "PENDING_CREATE": InstanceStatus.PROVISIONING,
    "MAINTENANCE": InstanceStatus.PROVISIONING,
    "FAILED": InstanceStatus.FAILED,
    "SUSPENDED": InstanceStatus.FAILED,
    "PENDING_DELETE": InstanceStatus.DELETING,
}


def database_version(engine: DatabaseEngine, version: Optional[str] = None) -> str:
    """Cloud SQL version string, e.g. ``("mysql", "5.7")`` -> ``MYSQL_5_7``"""
    if not version:
        return DEFAULT_VERSIONS[engine]
    if version.upper().startswith(("MYSQL_", "POSTGRES_")):
        return version.upper()
    prefix = "MYSQL" if engine == DatabaseEngine.MYSQL else "POSTGRES"
    return f"{prefix}_{version.replace('.', '_')}"


class CloudSqlProvider(ManagedDatabaseProvider):
    """Google Cloud SQL"""

    name = "gcp"
    label = "Google Cloud SQL"
    supported_engines = (DatabaseEngine.MYSQL, DatabaseEngine.POSTGRESQL)
    instance_types = {
        "db-f1-micro": "f1-micro (Shared CPU, 0.6 GB RAM)",
        "db-g1-small": "g1-small (Shared CPU, 1.7 GB RAM)",
        "db-n1-standard-1": "n1-standard-1 (1 vCPU, 3.75 GB RAM)",
        "db-n1-standard-2": "n1-standard-2 (2 vCPU, 7.5 GB RAM)",
        "db-n1-standard-4": "n1-standard-4 (4 vCPU, 15 GB RAM)",
        "db-n1-highmem-2": "n1-highmem-2 (2 vCPU, 13 GB RAM)",
        "db-n1-highmem-4": "n1-highmem-4 (4 vCPU, 26 GB RAM)",
    }
    regions = {
        "us-central1": "US Central (Iowa)",
        "us-east1": "US East (South Carolina)",
        "us-west1": "US West (Oregon)",
        "europe-west1": "Europe West (Belgium)",
        "europe-west2": "Europe West (London)",
        "asia-southeast1": "Asia Southeast (Singapore)",
        "asia-northeast1": "Asia Northeast (Tokyo)",
        "australia-southeast1": "Australia Southeast (Sydney)",
    }
    not_found_markers = ("was not found", "HTTPError 404", "does not exist")

    @property
    def cli(self) -> str:
        return self.settings.cli_path or "gcloud"

    def cli_env(self) -> Dict[str, str]:
        env = {}
        if self.credentials.get("credentials_path"):
            env["CLOUDSDK_AUTH_CREDENTIAL_FILE_OVERRIDE"] = self.credentials["credentials_path"]
        return env

    def _sql(self, *args: str) -> List[str]:
        argv = [self.cli, "sql", *args, "--format=json", "--quiet"]
        if self.credentials.get("project_id"):
            argv.append(f"--project={self.credentials['project_id']}")
        return argv

    def _create(
        self,
        request: ManagedDatabaseRequest,
        identifier: str
    ) -> Tuple[ManagedDatabaseInstance, Optional[str]]:
        engine = request.database_engine
        options = {**self.settings.defaults, **request.options}

        args = [
            "instances", "create", identifier,
            f"--database-version={database_version(engine, request.version)}",
            f"--tier={request.instance_class}",
            f"--region={request.region}",
            f"--storage-size={request.storage_gb}GB",
            f"--backup-start-time={options.get('backup_start_time', '03:00')}",
            "--ssl-mode=ENCRYPTED_ONLY" if request.ssl_required else "--ssl-mode=ALLOW_UNENCRYPTED_AND_ENCRYPTED",
        ]
        if options.get("storage_auto_resize", True):
            args.append("--storage-auto-increase")

        data = self.run_cli_json(self._sql(*args), "create")
        self.run_cli(self._sql("databases", "create", request.name, f"--instance={identifier}"), "create database")
        self.run_cli(
            self._sql("users", "create", request.username, f"--instance={identifier}", f"--password={request.password}"),
            "create user"
        )

        state = self._state(self.as_object(data, "create"))
        instance = ManagedDatabaseInstance(
            instance_id=identifier,
            provider=self.name,
            engine=engine.value,
            name=request.name,
            region=request.region,
            instance_class=request.instance_class,
            status=InstanceStatus.PROVISIONING,
            host=state.host,
            port=self.default_port(engine.value),
            username=request.username,
            ssl_required=request.ssl_required,
            storage_gb=request.storage_gb,
            metadata={"connection_name": state.raw.get("connectionName")},
        )
        return instance, request.password

    def deprovision(self, instance_id: str, engine: str, region: Optional[str] = None) -> None:
        self.log_activity("delete", instance_id)
        self.run_cli(self._sql("instances", "delete", instance_id), "delete")

    def describe(self, instance_id: str, engine: str, region: Optional[str] = None) -> RemoteState:
        data = self.run_cli_json(self._sql("instances", "describe", instance_id), "status", allow_not_found=True)
        if data is None:
            return RemoteState(status=InstanceStatus.DELETED)
        state = self._state(self.as_object(data, "status"))
        state.port = self.default_port(engine)
        return state

    def _state(self, data: Dict[str, Any]) -> RemoteState:
        addresses = data.get("ipAddresses") or []
        return RemoteState(
            status=GCP_STATES.get(data.get("state", ""), InstanceStatus.PROVISIONING),
            host=addresses[0].get("ipAddress") if addresses else None,
            raw=data,
        )

    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        """Instance settings as reported by Cloud SQL; usage metrics live in Cloud Monitoring"""
        data = self.describe(instance.instance_id, instance.engine).raw
        settings = data.get("settings") or {}
        return {
            "state": data.get("state"),
            "tier": settings.get("tier"),
            "data_disk_size_gb": settings.get("dataDiskSizeGb"),
            "availability_type": settings.get("availabilityType"),
            "storage_auto_resize": settings.get("storageAutoResize"),
        }

    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> None:
        args = ["instances", "patch", instance.instance_id, f"--tier={instance_class}"]
        if storage_gb is not None:
            args.append(f"--storage-size={storage_gb}GB")

        self.log_activity("scale", instance.instance_id, instance_class=instance_class, storage_gb=storage_gb)
        self.run_cli(self._sql(*args), "scale")

    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> str:
        self.log_activity("backup", instance.instance_id, description=backup_name)
        data = self.run_cli_json(
            self._sql("backups", "create", f"--instance={instance.instance_id}", f"--description={backup_name}"),
            "backup"
        )
        return str(data.get("id") or data.get("backupRunId") or backup_name) if isinstance(data, dict) else backup_name

    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> str:
        """Cloud SQL restores in place; returns the same instance identifier"""
        self.log_activity("restore", instance.instance_id, backup=backup_identifier)
        self.run_cli(
            self._sql("backups", "restore", backup_identifier, f"--restore-instance={instance.instance_id}"),
            "restore"
        )
        return instance.instance_id
