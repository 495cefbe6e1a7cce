"""
hostscale Kubernetes Scaling Provider

kubectl-backed implementation of ScalingProvider. Managed Kubernetes
vendors only differ in name and add-on availability, so they subclass
this one.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

from ..core.config import KubernetesConfig
from ..core.exceptions import (
    InvalidScalingParameters,
    ProviderNotSupported,
    ProviderOperationFailed,
    ProviderOperationTimedOut,
    command_failed_error,
)
from ..utils.commands import CommandResult, CommandRunner, LocalCommandRunner, ServerRef, SshCommandRunner
from .base import (
    HorizontalScaling,
    PodMetrics,
    ScalingConfig,
    ScalingProvider,
    ScalingTarget,
    UpdateMode,
    VerticalScaling,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_MARKERS = ("notfound", "not found", "doesn't have a resource type")


class KubernetesScalingProvider(ScalingProvider):
    """
    Scaling through HorizontalPodAutoscaler, VerticalPodAutoscaler and
    ``kubectl scale``.

    Manifests are rendered to YAML and piped to ``kubectl apply -f -``.
    Commands run locally unless the target names a server, in which case
    they go over SSH.
    """

    provider_name = "kubernetes"
    provider_label = "Kubernetes"
    # VPA is an add-on; vendors where it is commonly unavailable override this
    default_vertical_scaling = True

    def __init__(
        self,
        config: Optional[KubernetesConfig] = None,
        runner: Optional[CommandRunner] = None,
        remote_runner_factory: Callable[[ServerRef], CommandRunner] = SshCommandRunner,
        vertical_scaling: Optional[bool] = None
    ):
        self.config = config or KubernetesConfig()
        self.runner = runner or LocalCommandRunner()
        self._remote_runner_factory = remote_runner_factory

        if vertical_scaling is None:
            vertical_scaling = self.config.vertical_scaling.get(self.provider_name, self.default_vertical_scaling)
        self._vertical_scaling = vertical_scaling

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def label(self) -> str:
        return self.provider_label

    def supports_vertical_scaling(self) -> bool:
        return self._vertical_scaling

    # Reads

    def get_scaling_config(self, target: ScalingTarget) -> ScalingConfig:
        config = ScalingConfig()

        hpa = self._get_json(target, "hpa", target.hpa_name, "get hpa")
        if hpa is not None:
            spec = hpa.get("spec") or {}
            status = hpa.get("status") or {}
            config.horizontal = HorizontalScaling(
                min_replicas=spec.get("minReplicas", 1),
                max_replicas=spec.get("maxReplicas", 10),
                target_cpu_percent=_cpu_target(spec),
                current_replicas=status.get("currentReplicas", 0),
                desired_replicas=status.get("desiredReplicas", 0),
            )

        if self.supports_vertical_scaling():
            vpa = self._get_json(target, "vpa", target.vpa_name, "get vpa")
            if vpa is not None:
                mode = ((vpa.get("spec") or {}).get("updatePolicy") or {}).get("updateMode", "Off")
                try:
                    update_mode = UpdateMode.parse(mode)
                except ValueError:
                    update_mode = UpdateMode.OFF
                config.vertical = VerticalScaling(
                    update_mode=update_mode,
                    recommendations=(vpa.get("status") or {}).get("recommendation"),
                )

        return config

    def get_current_replicas(self, target: ScalingTarget) -> int:
        deployment = self._get_json(target, "deployment", target.deployment_name, "get deployment")
        if deployment is None:
            return 0
        return int((deployment.get("status") or {}).get("replicas") or 0)

    def get_resource_metrics(self, target: ScalingTarget) -> List[PodMetrics]:
        operation = "top pods"
        result = self._kubectl(
            target,
            ["top", "pods", "-n", target.resolved_namespace, "--no-headers"],
            operation
        )
        self._ensure_success(result, target, operation)

        metrics = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 3:
                metrics.append(PodMetrics(pod=parts[0], cpu=parts[1], memory=parts[2]))
        return metrics

    # Horizontal

    def enable_horizontal_scaling(
        self,
        target: ScalingTarget,
        min_replicas: int = 1,
        max_replicas: int = 10,
        target_cpu_utilization: int = 80
    ) -> None:
        validate_horizontal_parameters(min_replicas, max_replicas, target_cpu_utilization)

        manifest = {
            "apiVersion": "autoscaling/v2",
            "kind": "HorizontalPodAutoscaler",
            "metadata": {
                "name": target.hpa_name,
                "namespace": target.resolved_namespace,
            },
            "spec": {
                "scaleTargetRef": {
                    "apiVersion": "apps/v1",
                    "kind": "Deployment",
                    "name": target.deployment_name,
                },
                "minReplicas": min_replicas,
                "maxReplicas": max_replicas,
                "metrics": [
                    {
                        "type": "Resource",
                        "resource": {
                            "name": "cpu",
                            "target": {
                                "type": "Utilization",
                                "averageUtilization": target_cpu_utilization,
                            },
                        },
                    },
                ],
            },
        }

        self._apply(target, manifest, "enable horizontal scaling")
        logger.info(
            f"Enabled horizontal scaling for {target.name} "
            f"({min_replicas}-{max_replicas} replicas, cpu {target_cpu_utilization}%)"
        )

    def disable_horizontal_scaling(self, target: ScalingTarget) -> None:
        operation = "disable horizontal scaling"
        result = self._kubectl(
            target,
            ["delete", "hpa", target.hpa_name, "-n", target.resolved_namespace, "--ignore-not-found=true"],
            operation
        )
        self._ensure_success(result, target, operation)
        logger.info(f"Disabled horizontal scaling for {target.name}")

    # Vertical

    def enable_vertical_scaling(self, target: ScalingTarget, update_mode: UpdateMode = UpdateMode.AUTO) -> None:
        self._require_vertical_scaling()
        try:
            update_mode = UpdateMode.parse(update_mode)
        except ValueError as e:
            raise InvalidScalingParameters(str(e), parameter="update_mode", value=update_mode) from e

        manifest = {
            "apiVersion": "autoscaling.k8s.io/v1",
            "kind": "VerticalPodAutoscaler",
            "metadata": {
                "name": target.vpa_name,
                "namespace": target.resolved_namespace,
            },
            "spec": {
                "targetRef": {
                    "apiVersion": "apps/v1",
                    "kind": "Deployment",
                    "name": target.deployment_name,
                },
                "updatePolicy": {
                    "updateMode": update_mode.value,
                },
            },
        }

        self._apply(target, manifest, "enable vertical scaling")
        logger.info(f"Enabled vertical scaling for {target.name} (update mode {update_mode.value})")

    def disable_vertical_scaling(self, target: ScalingTarget) -> None:
        self._require_vertical_scaling()

        operation = "disable vertical scaling"
        result = self._kubectl(
            target,
            ["delete", "vpa", target.vpa_name, "-n", target.resolved_namespace, "--ignore-not-found=true"],
            operation
        )
        self._ensure_success(result, target, operation)
        logger.info(f"Disabled vertical scaling for {target.name}")

    # Manual

    def scale_to_replicas(self, target: ScalingTarget, replicas: int) -> int:
        _require_int("replicas", replicas, minimum=0)

        operation = "scale deployment"
        result = self._kubectl(
            target,
            [
                "scale", "deployment", target.deployment_name,
                "-n", target.resolved_namespace,
                f"--replicas={replicas}",
            ],
            operation
        )
        self._ensure_success(result, target, operation)

        logger.info(f"Scaled {target.name} to {replicas} replicas")
        return replicas

    # kubectl plumbing

    def _require_vertical_scaling(self) -> None:
        if not self.supports_vertical_scaling():
            raise ProviderNotSupported(
                f"Vertical scaling is not available on {self.label}",
                provider=self.name,
                capability="vertical_scaling",
                guidance="Install the VerticalPodAutoscaler add-on and enable it in kubernetes.vertical_scaling."
            )

    def _runner_for(self, target: ScalingTarget) -> CommandRunner:
        if target.server is not None:
            return self._remote_runner_factory(target.server)
        return self.runner

    def _kubectl(
        self,
        target: ScalingTarget,
        args: Sequence[str],
        operation: str,
        stdin: Optional[str] = None
    ) -> CommandResult:
        timeout = self.config.command_timeout_seconds
        result = self._runner_for(target).run(
            [self.config.kubectl_path, *args],
            timeout=timeout,
            stdin=stdin
        )

        if result.timed_out:
            logger.error(f"[{self.name}] {operation} for {target.name} timed out after {timeout}s")
            raise ProviderOperationTimedOut(
                f"{self.name}: {operation} for {target.name} timed out after {timeout}s",
                provider=self.name,
                operation=operation,
                timeout=timeout
            )
        return result

    def _ensure_success(self, result: CommandResult, target: ScalingTarget, operation: str) -> None:
        if result.ok:
            return
        cause = result.error_output()
        logger.error(f"[{self.name}] {operation} failed for {target.name}: {cause}")
        raise command_failed_error(self.name, operation, cause)

    def _get_json(self, target: ScalingTarget, kind: str, name: str, operation: str) -> Optional[Dict[str, Any]]:
        result = self._kubectl(
            target,
            ["get", kind, name, "-n", target.resolved_namespace, "-o", "json"],
            operation
        )
        if not result.ok:
            if _is_not_found(result):
                return None
            self._ensure_success(result, target, operation)

        try:
            return json.loads(result.stdout)
        except ValueError as e:
            raise ProviderOperationFailed(
                f"{self.name}: {operation} returned invalid JSON",
                provider=self.name,
                operation=operation,
                cause=str(e)
            ) from e

    def _apply(self, target: ScalingTarget, manifest: Dict[str, Any], operation: str) -> None:
        document = yaml.safe_dump(manifest, sort_keys=False)
        result = self._kubectl(
            target,
            ["apply", "-f", "-", "-n", target.resolved_namespace],
            operation,
            stdin=document
        )
        self._ensure_success(result, target, operation)


def validate_horizontal_parameters(min_replicas: Any, max_replicas: Any, target_cpu: Any) -> None:
    """Reject HPA parameters that the cluster would refuse or misinterpret"""
    _require_int("min_replicas", min_replicas, minimum=1)
    _require_int("max_replicas", max_replicas, minimum=1)
    _require_int("target_cpu_utilization", target_cpu, minimum=1)

    if max_replicas < min_replicas:
        raise InvalidScalingParameters(
            f"max_replicas ({max_replicas}) must be greater than or equal to min_replicas ({min_replicas})",
            parameter="max_replicas",
            value=max_replicas
        )
    if target_cpu > 100:
        raise InvalidScalingParameters(
            f"target_cpu_utilization must be between 1 and 100, got {target_cpu}",
            parameter="target_cpu_utilization",
            value=target_cpu
        )


def _require_int(parameter: str, value: Any, minimum: int) -> None:
    # bool is an int subclass but never a valid count
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScalingParameters(
            f"{parameter} must be an integer, got {value!r}",
            parameter=parameter,
            value=value
        )
    if value < minimum:
        raise InvalidScalingParameters(
            f"{parameter} must be at least {minimum}, got {value}",
            parameter=parameter,
            value=value
        )


def _is_not_found(result: CommandResult) -> bool:
    output = result.stderr.lower()
    return any(marker in output for marker in _NOT_FOUND_MARKERS)


def _cpu_target(spec: Dict[str, Any]) -> Optional[int]:
    for metric in spec.get("metrics") or []:
        resource = metric.get("resource") or {}
        if resource.get("name") == "cpu":
            return (resource.get("target") or {}).get("averageUtilization")
    # autoscaling/v1 objects
    return spec.get("targetCPUUtilizationPercentage")
