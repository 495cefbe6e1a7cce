"""
hostscale Provisioning Orchestrator

Operator-facing entry point for managed databases. Tracks instances
locally, refuses duplicate provisioning, optionally waits for the vendor
to finish, and reports outcomes as notifications.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..core.config import ManagedDatabaseConfig
from ..core.exceptions import (
    HostscaleError,
    ProviderOperationFailed,
    ProvisioningInProgress,
    ProvisioningTimedOut,
    SecretError,
)
from ..core.notifications import Notification
from ..utils.secrets import SecretBox
from .base import InstanceStatus, ManagedDatabaseInstance, ManagedDatabaseRequest
from .manager import ManagedDatabaseManager

logger = logging.getLogger(__name__)


class InstanceStore:
    """In-memory instance records keyed by the local identifier"""

    def __init__(self):
        self._instances: Dict[str, ManagedDatabaseInstance] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[ManagedDatabaseInstance]:
        """Look up by local identifier, then by vendor instance id"""
        with self._lock:
            if key in self._instances:
                return self._instances[key]
            for instance in self._instances.values():
                if instance.instance_id == key:
                    return instance
            return None

    def key_for(self, instance: ManagedDatabaseInstance) -> Optional[str]:
        with self._lock:
            for key, stored in self._instances.items():
                if stored is instance:
                    return key
            return None

    def save(self, key: str, instance: ManagedDatabaseInstance) -> None:
        with self._lock:
            instance.updated_at = datetime.now()
            self._instances[key] = instance

    def reserve(self, key: str, instance: ManagedDatabaseInstance) -> bool:
        """
        Save ``instance`` unless ``key`` is still being provisioned.

        Returns False, leaving the store untouched, when the existing record
        is pending, provisioning or timed out.
        """
        with self._lock:
            existing = self.get(key)
            if existing is not None and (existing.status.in_progress or existing.status == InstanceStatus.TIMED_OUT):
                return False
            instance.updated_at = datetime.now()
            self._instances[key] = instance
            return True

    def remove(self, key: str) -> Optional[ManagedDatabaseInstance]:
        with self._lock:
            return self._instances.pop(key, None)

    def all(self) -> List[ManagedDatabaseInstance]:
        with self._lock:
            return list(self._instances.values())

    def __len__(self) -> int:
        return len(self._instances)


@dataclass
class ProvisioningOutcome:
    instance: Optional[ManagedDatabaseInstance] = None
    notifications: List[Notification] = field(default_factory=list)
    error: Optional[HostscaleError] = None
    connection_ok: Optional[bool] = None

    @property
    def success(self) -> bool:
        return self.error is None and not any(n.is_failure for n in self.notifications)


class ProvisioningOrchestrator:
    """
    Provision, poll and remove managed databases.

    A create call is issued at most once per ``provision`` call. When the
    outcome is unknown the instance is recorded as ``timed_out`` and
    ``refresh`` is the way to find out what happened.
    """

    def __init__(
        self,
        manager: ManagedDatabaseManager,
        secrets: Optional[SecretBox] = None,
        config: Optional[ManagedDatabaseConfig] = None,
        store: Optional[InstanceStore] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.manager = manager
        self.secrets = secrets
        self.config = config or manager.config
        self.store = store or InstanceStore()
        self._clock = clock
        self._sleep = sleep

    # Provisioning

    def provision(self, request: ManagedDatabaseRequest, wait: bool = False) -> ProvisioningOutcome:
        outcome = ProvisioningOutcome()
        key = request.identifier

        try:
            encrypted_password = self._encrypt(request.password)
        except SecretError as e:
            return self._fail(outcome, "Failed to provision database", e)

        pending = ManagedDatabaseInstance(
            instance_id=key,
            provider=request.provider,
            engine=request.engine,
            name=request.name,
            region=request.region,
            instance_class=request.instance_class,
            status=InstanceStatus.PENDING,
            username=request.username,
            encrypted_password=encrypted_password,
            ssl_required=request.ssl_required,
            storage_gb=request.storage_gb,
        )
        if not self.store.reserve(key, pending):
            existing = self.store.get(key)
            error = ProvisioningInProgress(
                f"Database {key} is already being provisioned ({existing.status.value})",
                instance_id=key,
                guidance="Wait for it to finish or run refresh to check its state."
            )
            outcome.instance = existing
            return self._fail(outcome, "Provisioning already in progress", error)
        outcome.instance = pending

        try:
            result = self.manager.provision(request.provider, request)
        except ProvisioningTimedOut as e:
            pending.status = InstanceStatus.TIMED_OUT
            pending.error = e.message
            self.store.save(key, pending)
            outcome.error = e
            outcome.notifications.append(Notification.warning("Provisioning timed out", self._verify_manually(e)))
            return outcome
        except HostscaleError as e:
            pending.status = InstanceStatus.FAILED
            pending.error = e.message
            self.store.save(key, pending)
            return self._fail(outcome, "Failed to provision database", e)
        except Exception as e:
            logger.exception(f"Unexpected error provisioning {key} on {request.provider}")
            pending.status = InstanceStatus.FAILED
            pending.error = str(e)
            self.store.save(key, pending)
            error = ProviderOperationFailed(
                f"Provisioning {key} failed unexpectedly: {e}",
                provider=request.provider,
                operation="create",
                cause=str(e)
            )
            return self._fail(outcome, "Failed to provision database", error)

        if not result.success or result.instance is None:
            pending.status = InstanceStatus.FAILED
            pending.error = result.error
            self.store.save(key, pending)
            outcome.notifications.append(Notification.danger("Failed to provision database", result.error))
            return outcome

        instance = result.instance
        instance.status = InstanceStatus.PROVISIONING
        if result.password is None:
            instance.encrypted_password = None
        elif result.password == request.password:
            instance.encrypted_password = encrypted_password
        else:
            try:
                instance.encrypted_password = self._encrypt(result.password)
            except SecretError as e:
                instance.encrypted_password = None
                outcome.notifications.append(Notification.warning("Password not stored", e.message))
        self.store.save(key, instance)
        outcome.instance = instance
        outcome.notifications.append(Notification.success(
            "Database provisioning started",
            f"{instance.name} is being created on {request.provider} ({instance.instance_id})."
        ))
        logger.info(f"Provisioning {instance.instance_id} on {request.provider}")

        if wait:
            self._wait(key, instance, outcome)
        return outcome

    def _wait(self, key: str, instance: ManagedDatabaseInstance, outcome: ProvisioningOutcome) -> None:
        provider = self.manager.get_provider(instance)
        timeout = self.config.operation_timeout_seconds
        deadline = self._clock() + timeout

        while True:
            try:
                state = provider.describe(instance.instance_id, instance.engine, instance.region)
            except HostscaleError as e:
                logger.warning(f"Status poll for {instance.instance_id} failed: {e.message}")
            else:
                self._apply_state(instance, state.status, state.host, state.port)
                self.store.save(key, instance)
                if instance.status == InstanceStatus.AVAILABLE:
                    outcome.notifications.append(Notification.success("Database is available"))
                    self._auto_test(instance, outcome)
                    return
                if instance.status in (InstanceStatus.FAILED, InstanceStatus.DELETED):
                    outcome.notifications.append(Notification.danger(
                        "Database provisioning failed",
                        f"{provider.label} reports {instance.instance_id} as {instance.status.value}."
                    ))
                    return

            if self._clock() >= deadline:
                error = ProvisioningTimedOut(
                    f"{instance.instance_id} still not available after {timeout}s",
                    provider=instance.provider,
                    instance_id=instance.instance_id,
                    timeout=timeout
                )
                instance.status = InstanceStatus.TIMED_OUT
                instance.error = error.message
                self.store.save(key, instance)
                outcome.error = error
                outcome.notifications.append(Notification.warning("Provisioning timed out", self._verify_manually(error)))
                return

            self._sleep(self.config.poll_interval_seconds)

    def _auto_test(self, instance: ManagedDatabaseInstance, outcome: ProvisioningOutcome) -> None:
        if not self.config.auto_test_connection:
            return
        outcome.connection_ok = self.manager.test_connection(instance)
        if not outcome.connection_ok:
            outcome.notifications.append(Notification.warning(
                "Connection test failed",
                f"{instance.host}:{instance.port} is not reachable from this host."
            ))

    # Lifecycle

    def refresh(self, key: str) -> ProvisioningOutcome:
        """Poll the vendor once and update the local record"""
        outcome = ProvisioningOutcome()
        instance = self.store.get(key)
        if instance is None:
            outcome.notifications.append(Notification.danger("Database not found", f"No instance recorded as {key}"))
            return outcome
        outcome.instance = instance

        provider = self.manager.get_provider(instance)
        if provider is None:
            outcome.notifications.append(Notification.danger(
                "Provider not available",
                f"No managed database provider registered for {instance.provider}"
            ))
            return outcome

        previous = instance.status
        try:
            state = provider.describe(instance.instance_id, instance.engine, instance.region)
        except HostscaleError as e:
            return self._fail(outcome, "Failed to refresh database status", e)

        self._apply_state(instance, state.status, state.host, state.port)
        self.store.save(self.store.key_for(instance) or key, instance)

        if previous == InstanceStatus.TIMED_OUT and instance.status == InstanceStatus.DELETED:
            outcome.notifications.append(Notification.info(
                "Database was not created",
                f"{instance.instance_id} does not exist at {provider.label}; it can be provisioned again."
            ))
        else:
            outcome.notifications.append(Notification.info(
                "Database status refreshed",
                f"{instance.instance_id} is {instance.status.value}"
            ))
        if previous != InstanceStatus.AVAILABLE and instance.status == InstanceStatus.AVAILABLE:
            self._auto_test(instance, outcome)
        return outcome

    def deprovision(self, key: str) -> ProvisioningOutcome:
        outcome = ProvisioningOutcome()
        instance = self.store.get(key)
        if instance is None:
            outcome.notifications.append(Notification.danger("Database not found", f"No instance recorded as {key}"))
            return outcome
        outcome.instance = instance

        try:
            removed = self.manager.deprovision(instance)
        except HostscaleError as e:
            return self._fail(outcome, "Failed to delete database", e)

        if not removed:
            outcome.notifications.append(Notification.danger(
                "Provider not available",
                f"No managed database provider registered for {instance.provider}"
            ))
            return outcome

        instance.status = InstanceStatus.DELETING
        self.store.save(self.store.key_for(instance) or key, instance)
        outcome.notifications.append(Notification.success("Database deletion started", instance.instance_id))
        return outcome

    def test_connection(self, key: str) -> Optional[bool]:
        instance = self.store.get(key)
        if instance is None:
            return None
        return self.manager.test_connection(instance)

    def get(self, key: str) -> Optional[ManagedDatabaseInstance]:
        return self.store.get(key)

    def list_instances(self) -> List[ManagedDatabaseInstance]:
        return self.store.all()

    # Helpers

    def _encrypt(self, password: Optional[str]) -> Optional[str]:
        if not password:
            return None
        if self.secrets is None:
            raise SecretError(
                "No encryption key configured; refusing to store a database password in clear text",
                guidance="Set HOSTSCALE_SECRET_KEY (see `hostscale secrets generate-key`)."
            )
        return self.secrets.encrypt(password)

    @staticmethod
    def _apply_state(
        instance: ManagedDatabaseInstance,
        status: InstanceStatus,
        host: Optional[str],
        port: Optional[int]
    ) -> None:
        instance.status = status
        if host:
            instance.host = host
        if port:
            instance.port = port
        if status == InstanceStatus.AVAILABLE:
            instance.error = None

    @staticmethod
    def _verify_manually(error: HostscaleError) -> str:
        return f"{error.message}. The database may or may not exist; verify manually, then run refresh."

    @staticmethod
    def _fail(outcome: ProvisioningOutcome, title: str, error: HostscaleError) -> ProvisioningOutcome:
        logger.error(f"{title}: {error.message}")
        outcome.error = error
        outcome.notifications.append(Notification.danger(title, error.message))
        return outcome
