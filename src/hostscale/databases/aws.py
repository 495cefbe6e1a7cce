"""
hostscale AWS RDS Provider

Managed MySQL, MariaDB and PostgreSQL on Amazon RDS through the ``aws``
CLI with JSON output.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
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


RDS_ENGINES = {
    DatabaseEngine.MYSQL: "mysql",
    DatabaseEngine.MARIADB: "mariadb",
    DatabaseEngine.POSTGRESQL: "postgres",
}

RDS_STATUS = {
    "available": InstanceStatus.AVAILABLE,
    "creating": InstanceStatus.PROVISIONING,
    "backing-up": InstanceStatus.PROVISIONING,
    "modifying": InstanceStatus.PROVISIONING,
    "configuring-enhanced-monitoring": InstanceStatus.PROVISIONING,
    "rebooting": InstanceStatus.PROVISIONING,
    "upgrading": InstanceStatus.PROVISIONING,
    "failed": InstanceStatus.FAILED,
    "incompatible-parameters": InstanceStatus.FAILED,
    "incompatible-network": InstanceStatus.FAILED,
    "restore-error": InstanceStatus.FAILED,
    "deleting": InstanceStatus.DELETING,
}

# CloudWatch metric name -> key in get_metrics()
CLOUDWATCH_METRICS = {
    "CPUUtilization": "cpu_utilization",
    "DatabaseConnections": "database_connections",
    "FreeStorageSpace": "free_storage_space",
    "ReadIOPS": "read_iops",
    "WriteIOPS": "write_iops",
}


class AwsRdsProvider(ManagedDatabaseProvider):
    """Amazon RDS"""

    name = "aws"
    label = "AWS RDS"
    instance_types = {
        "db.t3.micro": "t3.micro (2 vCPU, 1 GB RAM)",
        "db.t3.small": "t3.small (2 vCPU, 2 GB RAM)",
        "db.t3.medium": "t3.medium (2 vCPU, 4 GB RAM)",
        "db.t3.large": "t3.large (2 vCPU, 8 GB RAM)",
        "db.r5.large": "r5.large (2 vCPU, 16 GB RAM)",
        "db.r5.xlarge": "r5.xlarge (4 vCPU, 32 GB RAM)",
        "db.r5.2xlarge": "r5.2xlarge (8 vCPU, 64 GB RAM)",
    }
    regions = {
        "us-east-1": "US East (N. Virginia)",
        "us-east-2": "US East (Ohio)",
        "us-west-1": "US West (N. California)",
        "us-west-2": "US West (Oregon)",
        "eu-west-1": "EU (Ireland)",
        "eu-west-2": "EU (London)",
        "eu-central-1": "EU (Frankfurt)",
        "ap-southeast-1": "Asia Pacific (Singapore)",
        "ap-southeast-2": "Asia Pacific (Sydney)",
        "ap-northeast-1": "Asia Pacific (Tokyo)",
    }
    not_found_markers = ("DBInstanceNotFound", "DBSnapshotNotFound")

    @property
    def cli(self) -> str:
        return self.settings.cli_path or "aws"

    def cli_env(self) -> Dict[str, str]:
        env = {}
        if self.credentials.get("access_key"):
            env["AWS_ACCESS_KEY_ID"] = self.credentials["access_key"]
        if self.credentials.get("secret_key"):
            env["AWS_SECRET_ACCESS_KEY"] = self.credentials["secret_key"]
        return env

    def _region(self, region: Optional[str]) -> str:
        return region or self.settings.default_region or "us-east-1"

    def _rds(self, *args: str, region: Optional[str] = None) -> List[str]:
        return [self.cli, "rds", *args, "--region", self._region(region), "--output", "json"]

    def _create(
        self,
        request: ManagedDatabaseRequest,
        identifier: str
    ) -> Tuple[ManagedDatabaseInstance, Optional[str]]:
        engine = request.database_engine
        defaults = self.settings.defaults
        options = {**defaults, **request.options}

        args = [
            "create-db-instance",
            "--db-instance-identifier", identifier,
            "--db-instance-class", request.instance_class,
            "--engine", RDS_ENGINES[engine],
            "--allocated-storage", str(request.storage_gb),
            "--db-name", re.sub(r"[^A-Za-z0-9_]", "_", request.name),
            "--master-username", request.username,
            "--master-user-password", request.password,
            "--backup-retention-period", str(options.get("backup_retention", 7)),
            "--preferred-backup-window", options.get("backup_window", "03:00-04:00"),
            "--storage-encrypted" if options.get("storage_encrypted", True) else "--no-storage-encrypted",
            "--multi-az" if options.get("multi_az") else "--no-multi-az",
            "--publicly-accessible" if options.get("publicly_accessible") else "--no-publicly-accessible",
        ]
        if request.version:
            args.extend(["--engine-version", request.version])
        if options.get("vpc_security_group_ids"):
            args.append("--vpc-security-group-ids")
            args.extend(options["vpc_security_group_ids"])
        if options.get("db_subnet_group_name"):
            args.extend(["--db-subnet-group-name", options["db_subnet_group_name"]])

        data = self.as_object(self.run_cli_json(self._rds(*args, region=request.region), "create"), "create")
        state = self._state(data.get("DBInstance") or {})

        instance = ManagedDatabaseInstance(
            instance_id=identifier,
            provider=self.name,
            engine=engine.value,
            name=request.name,
            region=request.region,
            instance_class=request.instance_class,
            status=InstanceStatus.PROVISIONING,
            host=state.host,
            port=state.port or self.default_port(engine.value),
            username=request.username,
            ssl_required=request.ssl_required,
            storage_gb=request.storage_gb,
            metadata={"arn": (data.get("DBInstance") or {}).get("DBInstanceArn")},
        )
        return instance, request.password

    def deprovision(self, instance_id: str, engine: str, region: Optional[str] = None) -> None:
        self.log_activity("delete", instance_id)
        self.run_cli(
            self._rds(
                "delete-db-instance",
                "--db-instance-identifier", instance_id,
                "--final-db-snapshot-identifier", f"{instance_id}-final-snapshot",
                region=region,
            ),
            "delete"
        )

    def describe(self, instance_id: str, engine: str, region: Optional[str] = None) -> RemoteState:
        data = self.run_cli_json(
            self._rds("describe-db-instances", "--db-instance-identifier", instance_id, region=region),
            "status",
            allow_not_found=True
        )
        if data is None:
            return RemoteState(status=InstanceStatus.DELETED)

        instances = self.as_object(data, "status").get("DBInstances") or []
        if not instances:
            return RemoteState(status=InstanceStatus.DELETED)
        return self._state(instances[0])

    def _state(self, db: Dict[str, Any]) -> RemoteState:
        endpoint = db.get("Endpoint") or {}
        return RemoteState(
            status=RDS_STATUS.get(db.get("DBInstanceStatus", ""), InstanceStatus.PROVISIONING),
            host=endpoint.get("Address"),
            port=endpoint.get("Port"),
            raw=db,
        )

    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        """Latest five-minute average of the main RDS CloudWatch metrics"""
        end = datetime.now(timezone.utc)
        start = end - timedelta(minutes=10)
        metrics: Dict[str, Any] = {}

        for metric_name, key in CLOUDWATCH_METRICS.items():
            data = self.run_cli_json(
                [
                    self.cli, "cloudwatch", "get-metric-statistics",
                    "--namespace", "AWS/RDS",
                    "--metric-name", metric_name,
                    "--dimensions", f"Name=DBInstanceIdentifier,Value={instance.instance_id}",
                    "--start-time", start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                    "--end-time", end.strftime("%Y-%m-%dT%H:%M:%SZ"),
                    "--period", "300",
                    "--statistics", "Average",
                    "--region", self._region(instance.region),
                    "--output", "json",
                ],
                "metrics"
            )
            data = self.as_object(data, "metrics")
            points = sorted(data.get("Datapoints") or [], key=lambda p: p.get("Timestamp", ""))
            metrics[key] = points[-1].get("Average") if points else None

        return metrics

    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> None:
        args = [
            "modify-db-instance",
            "--db-instance-identifier", instance.instance_id,
            "--db-instance-class", instance_class,
            "--apply-immediately",
        ]
        if storage_gb is not None:
            args.extend(["--allocated-storage", str(storage_gb)])

        self.log_activity("scale", instance.instance_id, instance_class=instance_class, storage_gb=storage_gb)
        self.run_cli(self._rds(*args, region=instance.region), "scale")

    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> str:
        self.log_activity("backup", instance.instance_id, snapshot=backup_name)
        data = self.run_cli_json(
            self._rds(
                "create-db-snapshot",
                "--db-instance-identifier", instance.instance_id,
                "--db-snapshot-identifier", backup_name,
                region=instance.region,
            ),
            "backup"
        )
        return (self.as_object(data, "backup").get("DBSnapshot") or {}).get("DBSnapshotIdentifier", backup_name)

    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> str:
        """RDS restores a snapshot into a new instance; returns its identifier"""
        restored = f"{instance.instance_id}-restored"[:63]
        self.log_activity("restore", instance.instance_id, snapshot=backup_identifier, target=restored)
        self.run_cli(
            self._rds(
                "restore-db-instance-from-db-snapshot",
                "--db-instance-identifier", restored,
                "--db-snapshot-identifier", backup_identifier,
                "--db-instance-class", instance.instance_class,
                region=instance.region,
            ),
            "restore"
        )
        return restored
