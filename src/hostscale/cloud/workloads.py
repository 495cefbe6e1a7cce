"""
hostscale Workload Lifecycle

Restart, inspect and remove a hosted workload using whatever the
deployment mode provides: kubectl on Kubernetes, docker on a Docker
host, the web server's service unit on a plain host.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

from ..core.config import KubernetesConfig
from ..core.exceptions import ProviderOperationTimedOut, command_failed_error
from ..detection.detector import DeploymentDetector, DeploymentMode
from ..utils.commands import CommandResult, CommandRunner, LocalCommandRunner, ServerRef, SshCommandRunner
from .base import ScalingTarget

logger = logging.getLogger(__name__)


@dataclass
class WorkloadStatus:
    """Coarse runtime state of a workload"""
    status: str  # running, stopped, not_found, unknown
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "details": self.details}


class WorkloadController:
    """Routes lifecycle operations by deployment mode"""

    def __init__(
        self,
        detector: DeploymentDetector,
        runner: Optional[CommandRunner] = None,
        config: Optional[KubernetesConfig] = None,
        remote_runner_factory: Callable[[ServerRef], CommandRunner] = SshCommandRunner,
        web_server_unit: str = "nginx",
        docker_path: str = "docker",
        compose_path: str = "docker-compose"
    ):
        self.detector = detector
        self.runner = runner or LocalCommandRunner()
        self.config = config or KubernetesConfig()
        self._remote_runner_factory = remote_runner_factory
        self.web_server_unit = web_server_unit
        self.docker_path = docker_path
        self.compose_path = compose_path

    def _mode(self, mode: Optional[DeploymentMode]) -> DeploymentMode:
        if mode is not None:
            return DeploymentMode(mode)
        return self.detector.get_deployment_info().mode

    def restart(self, target: ScalingTarget, mode: Optional[DeploymentMode] = None) -> None:
        mode = self._mode(mode)
        operation = "restart"

        if mode == DeploymentMode.KUBERNETES:
            argv = [
                self.config.kubectl_path, "rollout", "restart",
                f"deployment/{target.deployment_name}",
                "-n", target.resolved_namespace,
            ]
        elif mode == DeploymentMode.DOCKER:
            argv = [self.docker_path, "restart", target.name]
        else:
            argv = ["systemctl", "reload", self.web_server_unit]

        result = self._run(target, argv, mode, operation)
        self._ensure_success(result, mode, operation)
        logger.info(f"Restarted {target.name} ({mode.value})")

    def status(self, target: ScalingTarget, mode: Optional[DeploymentMode] = None) -> WorkloadStatus:
        mode = self._mode(mode)

        if mode == DeploymentMode.KUBERNETES:
            return self._kubernetes_status(target)
        if mode == DeploymentMode.DOCKER:
            return self._docker_status(target)
        return WorkloadStatus(status="unknown", details={"method": "standalone"})

    def delete(
        self,
        target: ScalingTarget,
        compose_file: Optional[str] = None,
        mode: Optional[DeploymentMode] = None
    ) -> bool:
        """
        Remove the workload. Returns False when there was nothing to remove.
        """
        mode = self._mode(mode)
        operation = "delete"

        if mode == DeploymentMode.KUBERNETES:
            argv = [
                self.config.kubectl_path, "delete", "namespace",
                target.resolved_namespace, "--ignore-not-found=true",
            ]
        elif mode == DeploymentMode.DOCKER:
            if not compose_file:
                logger.warning(f"No compose file given for {target.name}, nothing to remove")
                return False
            argv = [self.compose_path, "-f", compose_file, "down", "-v"]
        else:
            logger.info(f"Standalone deployment of {target.name} has no managed resources to remove")
            return False

        result = self._run(target, argv, mode, operation)
        self._ensure_success(result, mode, operation)
        logger.info(f"Deleted {target.name} ({mode.value})")
        return True

    def _kubernetes_status(self, target: ScalingTarget) -> WorkloadStatus:
        operation = "status"
        result = self._run(
            target,
            [
                self.config.kubectl_path, "get", "pods",
                "-n", target.resolved_namespace,
                "-l", f"app={target.deployment_name}",
                "-o", "json",
            ],
            DeploymentMode.KUBERNETES,
            operation
        )
        self._ensure_success(result, DeploymentMode.KUBERNETES, operation)

        try:
            pods = json.loads(result.stdout).get("items") or []
        except (ValueError, AttributeError):
            pods = []

        running = [pod for pod in pods if (pod.get("status") or {}).get("phase") == "Running"]
        return WorkloadStatus(
            status="running" if running else "stopped",
            details={
                "total_pods": len(pods),
                "running_pods": len(running),
                "pods": [(pod.get("metadata") or {}).get("name") for pod in pods],
            },
        )

    def _docker_status(self, target: ScalingTarget) -> WorkloadStatus:
        result = self._run(target, [self.docker_path, "inspect", target.name], DeploymentMode.DOCKER, "status")
        if not result.ok:
            return WorkloadStatus(status="not_found")

        try:
            state = (json.loads(result.stdout) or [{}])[0].get("State") or {}
        except (ValueError, IndexError, AttributeError):
            state = {}
        return WorkloadStatus(status="running" if state.get("Running") else "stopped", details=state)

    def _run(self, target: ScalingTarget, argv: Sequence[str], mode: DeploymentMode, operation: str) -> CommandResult:
        runner = self._remote_runner_factory(target.server) if target.server else self.runner
        timeout = self.config.command_timeout_seconds
        result = runner.run(argv, timeout=timeout)

        if result.timed_out:
            raise ProviderOperationTimedOut(
                f"{mode.value}: {operation} of {target.name} timed out after {timeout}s",
                provider=mode.value,
                operation=operation,
                timeout=timeout
            )
        return result

    def _ensure_success(self, result: CommandResult, mode: DeploymentMode, operation: str) -> None:
        if not result.ok:
            cause = result.error_output()
            logger.error(f"[{mode.value}] {operation} failed: {cause}")
            raise command_failed_error(mode.value, operation, cause)
