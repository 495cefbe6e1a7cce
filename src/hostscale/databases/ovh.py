"""
hostscale OVHcloud Managed Database Provider

Public Cloud Databases through the OVHcloud HTTPS API. Every call is
signed with the application secret and consumer key as the API requires.
"""

import hashlib
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from ..core.config import ProviderSettings
from ..core.exceptions import ConfigurationError, ProviderOperationFailed
from ..utils.commands import CommandRunner
from ..utils.network import HTTPClient
from .base import (
    DatabaseEngine,
    InstanceStatus,
    ManagedDatabaseInstance,
    ManagedDatabaseProvider,
    ManagedDatabaseRequest,
    RemoteState,
)

logger = logging.getLogger(__name__)


OVH_ENDPOINTS = {
    "ovh-eu": "https://eu.api.ovh.com/1.0",
    "ovh-ca": "https://ca.api.ovh.com/1.0",
    "ovh-us": "https://api.us.ovhcloud.com/1.0",
}

DEFAULT_VERSIONS = {
    DatabaseEngine.MYSQL: "8.0",
    DatabaseEngine.POSTGRESQL: "15",
    DatabaseEngine.REDIS: "7.0",
}

PLAN_NODES = {"essential": 1, "business": 3, "enterprise": 6}

OVH_STATES = {
    "READY": InstanceStatus.AVAILABLE,
    "CREATING": InstanceStatus.PROVISIONING,
    "PENDING": InstanceStatus.PROVISIONING,
    "UPDATING": InstanceStatus.PROVISIONING,
    "RESETTING_PASSWORD": InstanceStatus.PROVISIONING,
    "ERROR": InstanceStatus.FAILED,
    "ERROR_INCONSISTENT_SPEC": InstanceStatus.FAILED,
    "DELETING": InstanceStatus.DELETING,
    "DELETED": InstanceStatus.DELETED,
}

OVH_METRICS = {
    "cpu_usage_percent": "cpu_usage",
    "mem_usage_percent": "memory_usage",
    "disk_usage_percent": "disk_usage",
    "connections": "connections",
}


def sign_request(
    application_secret: str,
    consumer_key: str,
    method: str,
    url: str,
    body: str,
    timestamp: int
) -> str:
    """OVH request signature: ``$1$`` + SHA1 of the '+'-joined request parts"""
    payload = "+".join([application_secret, consumer_key, method.upper(), url, body, str(timestamp)])
    return "$1$" + hashlib.sha1(payload.encode("utf-8")).hexdigest()


class OvhDatabaseProvider(ManagedDatabaseProvider):
    """OVHcloud Public Cloud Databases"""

    name = "ovh"
    label = "OVHcloud Databases"
    supported_engines = (DatabaseEngine.MYSQL, DatabaseEngine.POSTGRESQL, DatabaseEngine.REDIS)
    instance_types = {
        "essential": "Essential (1 node)",
        "business": "Business (3 nodes)",
        "enterprise": "Enterprise (6 nodes)",
    }
    regions = {
        "GRA": "Gravelines (France)",
        "SBG": "Strasbourg (France)",
        "BHS": "Beauharnois (Canada)",
        "WAW": "Warsaw (Poland)",
        "DE": "Frankfurt (Germany)",
        "UK": "London (UK)",
    }
    # the admin password is reset through the API once the cluster is READY
    requires_password = False

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        runner: Optional[CommandRunner] = None,
        operation_timeout: float = 300.0,
        connection_timeout: float = 5.0,
        client: Optional[HTTPClient] = None,
        clock=time.time
    ):
        super().__init__(settings, runner, operation_timeout, connection_timeout)
        endpoint = self.credentials.get("endpoint") or "ovh-eu"
        self.client = client or HTTPClient(
            OVH_ENDPOINTS.get(endpoint, endpoint),
            timeout=operation_timeout,
            provider=self.name
        )
        self._clock = clock

    @property
    def service_name(self) -> str:
        service = self.credentials.get("service_name")
        if not service:
            raise ConfigurationError(
                "OVH cloud project (service name) is not configured",
                config_key="databases.providers.ovh.credentials.service_name",
                guidance="Set OVH_SERVICE_NAME to the Public Cloud project id."
            )
        return service

    def _path(self, engine: str, *parts: str) -> str:
        engine_name = DatabaseEngine.parse(engine).value
        return "/".join([f"/cloud/project/{self.service_name}/database/{engine_name}", *parts])

    def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        body = json.dumps(payload) if payload is not None else ""
        url = self.client.build_url(path)
        timestamp = int(self._clock())
        headers = {
            "Content-Type": "application/json",
            "X-Ovh-Application": self.credentials.get("application_key", ""),
            "X-Ovh-Consumer": self.credentials.get("consumer_key", ""),
            "X-Ovh-Timestamp": str(timestamp),
            "X-Ovh-Signature": sign_request(
                self.credentials.get("application_secret", ""),
                self.credentials.get("consumer_key", ""),
                method,
                url,
                body,
                timestamp
            ),
        }
        send = getattr(self.client, method.lower())
        return send(path, headers=headers, data=body or None)

    @staticmethod
    def _is_not_found(error: ProviderOperationFailed) -> bool:
        return error.context.get("status_code") == 404

    def _create(
        self,
        request: ManagedDatabaseRequest,
        identifier: str
    ) -> Tuple[ManagedDatabaseInstance, Optional[str]]:
        engine = request.database_engine
        options = {**self.settings.defaults, **request.options}
        plan = request.instance_class

        cluster = self._call("POST", self._path(engine.value), {
            "description": identifier,
            "plan": plan,
            "version": request.version or DEFAULT_VERSIONS[engine],
            "nodesPattern": {
                "flavor": options.get("flavor", "db1-4"),
                "number": PLAN_NODES.get(plan, 1),
                "region": request.region,
            },
        })
        cluster = self.as_object(cluster or {}, "create")

        cluster_id = cluster.get("id") or identifier
        instance = ManagedDatabaseInstance(
            instance_id=cluster_id,
            provider=self.name,
            engine=engine.value,
            name=request.name,
            region=request.region,
            instance_class=plan,
            status=OVH_STATES.get(cluster.get("status", ""), InstanceStatus.PROVISIONING),
            host=f"{cluster_id}.database.cloud.ovh.net",
            port=self.default_port(engine.value),
            username="avnadmin",
            ssl_required=True,
            storage_gb=request.storage_gb,
            metadata={"description": identifier},
        )
        return instance, None

    def deprovision(self, instance_id: str, engine: str, region: Optional[str] = None) -> None:
        self.log_activity("delete", instance_id)
        self._call("DELETE", self._path(engine, instance_id))

    def describe(self, instance_id: str, engine: str, region: Optional[str] = None) -> RemoteState:
        try:
            cluster = self.as_object(self._call("GET", self._path(engine, instance_id)) or {}, "status")
        except ProviderOperationFailed as e:
            if self._is_not_found(e):
                return RemoteState(status=InstanceStatus.DELETED)
            raise

        host, port = None, None
        for endpoint in cluster.get("endpoints") or []:
            if endpoint.get("domain"):
                host, port = endpoint.get("domain"), endpoint.get("port")
                break
        return RemoteState(
            status=OVH_STATES.get(cluster.get("status", ""), InstanceStatus.PROVISIONING),
            host=host,
            port=port,
            raw=cluster,
        )

    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        metrics: Dict[str, Any] = {}
        for metric_name, key in OVH_METRICS.items():
            try:
                data = self._call(
                    "GET",
                    self._path(instance.engine, instance.instance_id, "metric", f"{metric_name}?period=lastHour")
                )
            except ProviderOperationFailed as e:
                if not self._is_not_found(e):
                    raise
                metrics[key] = None
                continue

            data = self.as_object(data or {}, "metrics")
            values = [
                point.get("value")
                for serie in data.get("metrics") or []
                for point in serie.get("dataPoints") or []
            ]
            metrics[key] = values[-1] if values else None
        return metrics

    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> None:
        payload: Dict[str, Any] = {"plan": instance_class}
        if self.settings.defaults.get("flavor"):
            payload["flavor"] = self.settings.defaults["flavor"]
        if storage_gb is not None:
            payload["disk"] = {"size": storage_gb}

        self.log_activity("scale", instance.instance_id, instance_class=instance_class, storage_gb=storage_gb)
        self._call("PUT", self._path(instance.engine, instance.instance_id), payload)

    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> str:
        self.log_activity("backup", instance.instance_id, description=backup_name)
        backup = self._call(
            "POST",
            self._path(instance.engine, instance.instance_id, "backup"),
            {"description": backup_name}
        )
        return self.as_object(backup or {}, "backup").get("id", backup_name)

    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> str:
        """OVH restores in place; returns the same cluster id"""
        self.log_activity("restore", instance.instance_id, backup=backup_identifier)
        self._call(
            "POST",
            self._path(instance.engine, instance.instance_id, "backup", backup_identifier, "restore")
        )
        return instance.instance_id
