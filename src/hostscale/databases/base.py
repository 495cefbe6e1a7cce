"""
hostscale Managed Database Base Classes

Types shared by every managed-database vendor and the abstract provider
they implement. CLI-backed vendors go through a CommandRunner; the
helpers here turn command failures and timeouts into provider errors.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.config import ProviderSettings
from ..core.exceptions import (
    ProviderNotSupported,
    ProviderOperationFailed,
    ProviderOperationTimedOut,
    ProvisioningTimedOut,
    ValidationError,
    command_failed_error,
)
from ..utils.commands import CommandResult, CommandRunner, LocalCommandRunner
from ..utils.network import tcp_reachable
from ..utils.secrets import SecretBox

logger = logging.getLogger(__name__)


class DatabaseEngine(str, Enum):
    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRESQL = "postgresql"
    REDIS = "redis"

    @classmethod
    def parse(cls, value: Any) -> "DatabaseEngine":
        aliases = {"postgres": "postgresql", "pg": "postgresql", "pgsql": "postgresql"}
        raw = str(getattr(value, "value", value)).strip().lower()
        return cls(aliases.get(raw, raw))


DEFAULT_PORTS = {
    DatabaseEngine.MYSQL: 3306,
    DatabaseEngine.MARIADB: 3306,
    DatabaseEngine.POSTGRESQL: 5432,
    DatabaseEngine.REDIS: 6379,
}


class InstanceStatus(Enum):
    """Lifecycle of a managed database instance"""
    PENDING = "pending"
    PROVISIONING = "provisioning"
    AVAILABLE = "available"
    FAILED = "failed"
    DELETING = "deleting"
    DELETED = "deleted"
    TIMED_OUT = "timed_out"  # create sent, outcome never observed

    @property
    def in_progress(self) -> bool:
        return self in (InstanceStatus.PENDING, InstanceStatus.PROVISIONING)

    @property
    def is_terminal(self) -> bool:
        return self in (InstanceStatus.AVAILABLE, InstanceStatus.FAILED, InstanceStatus.DELETED)


@dataclass
class ManagedDatabaseRequest:
    """Parameters for provisioning one managed database"""
    provider: str
    engine: str
    name: str
    region: str
    instance_class: str
    storage_gb: int = 20
    username: str = "dbadmin"
    password: str = ""
    ssl_required: bool = True
    instance_identifier: Optional[str] = None
    version: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        return self.instance_identifier or default_identifier(self.name)

    @property
    def database_engine(self) -> DatabaseEngine:
        return DatabaseEngine.parse(self.engine)


@dataclass
class ManagedDatabaseInstance:
    """A managed database as tracked locally"""
    instance_id: str
    provider: str
    engine: str
    name: str
    region: str
    instance_class: str
    status: InstanceStatus = InstanceStatus.PENDING
    host: Optional[str] = None
    port: Optional[int] = None
    username: str = ""
    encrypted_password: Optional[str] = None
    ssl_required: bool = True
    storage_gb: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def reveal_password(self, secrets: SecretBox) -> Optional[str]:
        """Decrypt the stored password; only call on an explicit read"""
        if not self.encrypted_password:
            return None
        return secrets.decrypt(self.encrypted_password)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "provider": self.provider,
            "engine": self.engine,
            "name": self.name,
            "region": self.region,
            "instance_class": self.instance_class,
            "status": self.status.value,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "ssl_required": self.ssl_required,
            "storage_gb": self.storage_gb,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "error": self.error,
        }


@dataclass
class ConnectionDetails:
    host: Optional[str]
    port: Optional[int]
    database: str
    username: str
    engine: str
    ssl_required: bool
    region: str
    password: Optional[str] = None

    def to_dict(self, include_password: bool = False) -> Dict[str, Any]:
        data = {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "engine": self.engine,
            "ssl_required": self.ssl_required,
            "region": self.region,
        }
        if include_password:
            data["password"] = self.password
        return data


@dataclass
class ProvisionResult:
    """
    Outcome of a create call.

    ``password`` is the credential valid for the new instance: the
    requested one, a vendor-generated one, or None when the vendor does
    not hand one out at creation.
    """
    success: bool
    instance: Optional[ManagedDatabaseInstance] = None
    error: Optional[str] = None
    password: Optional[str] = None


@dataclass
class RemoteState:
    """What the vendor reports about an instance"""
    status: InstanceStatus
    host: Optional[str] = None
    port: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def default_identifier(name: str) -> str:
    """Instance identifier derived from a database name"""
    slug = re.sub(r"[^a-z0-9-]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return f"db-{slug}"[:63].rstrip("-")


class ManagedDatabaseProvider(ABC):
    """
    Abstract base for managed database vendors.

    Subclasses set ``name``, ``label``, the supported engines and the
    instance type and region catalogues, and implement the vendor calls.
    """

    name: str = ""
    label: str = ""
    supported_engines: Tuple[DatabaseEngine, ...] = (
        DatabaseEngine.MYSQL,
        DatabaseEngine.MARIADB,
        DatabaseEngine.POSTGRESQL,
    )
    instance_types: Dict[str, str] = {}
    regions: Dict[str, str] = {}
    default_ports: Dict[DatabaseEngine, int] = DEFAULT_PORTS

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        runner: Optional[CommandRunner] = None,
        operation_timeout: float = 300.0,
        connection_timeout: float = 5.0
    ):
        self.settings = settings or ProviderSettings()
        self.runner = runner or LocalCommandRunner()
        self.operation_timeout = operation_timeout
        self.connection_timeout = connection_timeout

    # Catalogues

    def get_available_instance_types(self) -> Dict[str, str]:
        return dict(self.instance_types)

    def get_available_regions(self) -> Dict[str, str]:
        return dict(self.regions)

    def default_port(self, engine: str) -> int:
        return self.default_ports.get(DatabaseEngine.parse(engine), 3306)

    @property
    def credentials(self) -> Dict[str, str]:
        return self.settings.credentials

    # Provisioning

    def provision(self, request: ManagedDatabaseRequest) -> ProvisionResult:
        """
        Issue the create call for ``request``.

        Not idempotent: a second call creates (or tries to create) a
        second instance. Vendor errors come back as an unsuccessful
        result; a create call that times out raises ProvisioningTimedOut
        because the instance may exist anyway.
        """
        self.validate_request(request)
        identifier = request.identifier
        self.log_activity("create", identifier, engine=request.engine, region=request.region)

        try:
            instance, password = self._create(request, identifier)
        except ProviderOperationTimedOut as e:
            self.log_error("create", e, instance_identifier=identifier)
            raise ProvisioningTimedOut(
                f"{self.label}: creating {identifier} did not complete within {e.context.get('timeout_seconds')}s",
                provider=self.name,
                instance_id=identifier,
                timeout=e.context.get("timeout_seconds")
            ) from e
        except ProviderOperationFailed as e:
            self.log_error("create", e, instance_identifier=identifier)
            return ProvisionResult(success=False, error=e.cause or e.message)

        return ProvisionResult(success=True, instance=instance, password=password)

    @abstractmethod
    def _create(
        self,
        request: ManagedDatabaseRequest,
        identifier: str
    ) -> Tuple[ManagedDatabaseInstance, Optional[str]]:
        """Vendor create call; returns the instance and its valid password"""
        pass

    @abstractmethod
    def deprovision(self, instance_id: str, engine: str, region: Optional[str] = None) -> None:
        pass

    @abstractmethod
    def describe(self, instance_id: str, engine: str, region: Optional[str] = None) -> RemoteState:
        """Current vendor-side state; a missing instance reports DELETED"""
        pass

    def get_status(self, instance_id: str, engine: str, region: Optional[str] = None) -> InstanceStatus:
        return self.describe(instance_id, engine, region).status

    def database_exists(self, instance_id: str, engine: str = "mysql", region: Optional[str] = None) -> bool:
        return self.get_status(instance_id, engine, region) != InstanceStatus.DELETED

    @abstractmethod
    def get_metrics(self, instance: ManagedDatabaseInstance) -> Dict[str, Any]:
        pass

    @abstractmethod
    def scale_instance(
        self,
        instance: ManagedDatabaseInstance,
        instance_class: str,
        storage_gb: Optional[int] = None
    ) -> None:
        pass

    @abstractmethod
    def create_backup(self, instance: ManagedDatabaseInstance, backup_name: str) -> str:
        """Start a backup; returns the vendor's backup identifier"""
        pass

    @abstractmethod
    def restore_backup(self, instance: ManagedDatabaseInstance, backup_identifier: str) -> str:
        """Restore a backup; returns the identifier of the restored instance"""
        pass

    # Connections

    def test_connection(self, connection: ConnectionDetails) -> bool:
        """TCP reachability of the database endpoint"""
        if not connection.host or not connection.port:
            logger.warning(f"[{self.name}] Cannot test connection without host and port")
            return False
        reachable = tcp_reachable(connection.host, connection.port, timeout=self.connection_timeout)
        if not reachable:
            logger.error(f"[{self.name}] Managed database unreachable at {connection.host}:{connection.port}")
        return reachable

    def get_connection_details(
        self,
        instance: ManagedDatabaseInstance,
        secrets: Optional[SecretBox] = None,
        reveal: bool = False
    ) -> ConnectionDetails:
        password = None
        if reveal and secrets is not None:
            password = instance.reveal_password(secrets)

        return ConnectionDetails(
            host=instance.host,
            port=instance.port or self.default_port(instance.engine),
            database=instance.name,
            username=instance.username,
            engine=instance.engine,
            ssl_required=instance.ssl_required,
            region=instance.region,
            password=password,
        )

    # Validation

    def validate_request(self, request: ManagedDatabaseRequest) -> None:
        errors: List[str] = []

        for field_name in ("engine", "name", "region", "instance_class"):
            if not getattr(request, field_name):
                errors.append(f"Missing required field: {field_name}")

        engine = None
        if request.engine:
            try:
                engine = DatabaseEngine.parse(request.engine)
            except ValueError:
                errors.append(f"Unknown engine: {request.engine}")
        if engine is not None and engine not in self.supported_engines:
            errors.append(
                f"{self.label} does not offer {engine.value}; "
                f"supported: {', '.join(e.value for e in self.supported_engines)}"
            )

        if request.region and request.region not in self.regions:
            errors.append(f"Unknown region for {self.label}: {request.region}")
        if request.instance_class and request.instance_class not in self.instance_types:
            errors.append(f"Unknown instance type for {self.label}: {request.instance_class}")

        if isinstance(request.storage_gb, bool) or not isinstance(request.storage_gb, int) or request.storage_gb < 1:
            errors.append(f"storage_gb must be a positive integer, got {request.storage_gb!r}")

        if engine != DatabaseEngine.REDIS:
            if not request.username:
                errors.append("Missing required field: username")
            if self.requires_password and not request.password:
                errors.append("Missing required field: password")

        if errors:
            raise ValidationError(
                f"Invalid {self.label} database request: {errors[0]}",
                validation_errors=errors,
                context={"provider": self.name}
            )

    # Vendor generates the admin password when False
    requires_password = True

    def unsupported(self, capability: str, guidance: Optional[str] = None) -> ProviderNotSupported:
        return ProviderNotSupported(
            f"{self.label} does not support {capability.replace('_', ' ')}",
            provider=self.name,
            capability=capability,
            guidance=guidance
        )

    # Logging

    def log_activity(self, action: str, instance_identifier: str, **context) -> None:
        details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        logger.info(f"Managed database {action} [{self.name}] {instance_identifier} {details}".rstrip())

    def log_error(self, action: str, error: Exception, **context) -> None:
        details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        logger.error(f"Managed database {action} failed [{self.name}] {details}: {error}")

    # Command helpers

    def cli_env(self) -> Dict[str, str]:
        """Environment passed to the vendor CLI"""
        return {}

    def run_cli(
        self,
        argv: Sequence[str],
        operation: str,
        timeout: Optional[float] = None,
        allow_not_found: bool = False
    ) -> Optional[CommandResult]:
        """
        Run a vendor CLI command.

        Returns None instead of raising when ``allow_not_found`` is set and
        the vendor reports the resource missing.
        """
        timeout = timeout or self.operation_timeout
        env = self.cli_env()
        result = self.runner.run(argv, timeout=timeout, env=env or None)

        if result.timed_out:
            raise ProviderOperationTimedOut(
                f"{self.label}: {operation} timed out after {timeout}s",
                provider=self.name,
                operation=operation,
                timeout=timeout
            )
        if not result.ok:
            if allow_not_found and self.is_not_found(result):
                return None
            raise command_failed_error(self.name, operation, result.error_output())
        return result

    def run_cli_json(
        self,
        argv: Sequence[str],
        operation: str,
        timeout: Optional[float] = None,
        allow_not_found: bool = False
    ) -> Any:
        result = self.run_cli(argv, operation, timeout=timeout, allow_not_found=allow_not_found)
        if result is None:
            return None
        if not result.stdout.strip():
            return {}
        try:
            return json.loads(result.stdout)
        except ValueError as e:
            raise ProviderOperationFailed(
                f"{self.label}: {operation} returned invalid JSON",
                provider=self.name,
                operation=operation,
                cause=str(e)
            ) from e

    def as_object(self, data: Any, operation: str) -> Dict[str, Any]:
        """
        Vendor JSON expected to describe a single resource.

        CLIs that print a list for single objects yield their first item.
        """
        if isinstance(data, list):
            data = data[0] if data else {}
        if isinstance(data, dict):
            return data
        raise ProviderOperationFailed(
            f"{self.label}: {operation} returned unexpected JSON",
            provider=self.name,
            operation=operation,
            cause=str(data)[:200]
        )

    not_found_markers: Tuple[str, ...] = ("not found", "notfound", "404")

    def is_not_found(self, result: CommandResult) -> bool:
        output = (result.stderr + result.stdout).lower()
        return any(marker.lower() in output for marker in self.not_found_markers)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
