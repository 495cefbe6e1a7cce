"""
hostscale Cloud Base Classes

Scaling types and the abstract interface every scaling provider
implements.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from ..utils.commands import ServerRef

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE_PREFIX = "hosting-"
MAX_NAME_LENGTH = 63


def sanitize_name(name: str) -> str:
    """
    Turn a domain or workload name into a DNS-1123 compatible name.

    Lowercases, replaces anything outside ``[a-z0-9-.]`` with a dash,
    collapses dash runs, trims leading/trailing dashes and dots and caps
    the length at 63 characters.
    """
    sanitized = name.lower()
    sanitized = re.sub(r"[^a-z0-9.-]", "-", sanitized)
    sanitized = re.sub(r"-+", "-", sanitized)
    sanitized = sanitized.strip("-.")
    return sanitized[:MAX_NAME_LENGTH].rstrip("-.")


class UpdateMode(Enum):
    """VerticalPodAutoscaler update policy"""
    OFF = "Off"
    INITIAL = "Initial"
    RECREATE = "Recreate"
    AUTO = "Auto"

    @classmethod
    def parse(cls, value: Any) -> "UpdateMode":
        """Accept the enum, the Kubernetes spelling or any casing of it"""
        if isinstance(value, cls):
            return value
        for mode in cls:
            if str(value).lower() == mode.value.lower():
                return mode
        raise ValueError(f"Invalid VPA update mode: {value}")


@dataclass(frozen=True)
class ScalingTarget:
    """
    A deployable workload that can be scaled.

    ``name`` is usually the domain; the Kubernetes objects derive their
    names from it.
    """
    name: str
    namespace: Optional[str] = None
    provider_hint: Optional[str] = None
    server: Optional[ServerRef] = None
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX

    @property
    def deployment_name(self) -> str:
        return sanitize_name(self.name)

    @property
    def resolved_namespace(self) -> str:
        if self.namespace:
            return self.namespace
        return f"{self.namespace_prefix}{self.deployment_name}"[:MAX_NAME_LENGTH].rstrip("-.")

    @property
    def hpa_name(self) -> str:
        return f"{self.deployment_name}-hpa"

    @property
    def vpa_name(self) -> str:
        return f"{self.deployment_name}-vpa"


@dataclass
class HorizontalScaling:
    """Observed HorizontalPodAutoscaler state"""
    min_replicas: int = 1
    max_replicas: int = 10
    target_cpu_percent: Optional[int] = None
    current_replicas: int = 0
    desired_replicas: int = 0


@dataclass
class VerticalScaling:
    """Observed VerticalPodAutoscaler state"""
    update_mode: UpdateMode = UpdateMode.OFF
    recommendations: Optional[Dict[str, Any]] = None


@dataclass
class ScalingConfig:
    """Autoscaler configuration of one target; a None half is not configured"""
    horizontal: Optional[HorizontalScaling] = None
    vertical: Optional[VerticalScaling] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "horizontal": self.horizontal.__dict__.copy() if self.horizontal else None,
            "vertical": {
                "update_mode": self.vertical.update_mode.value,
                "recommendations": self.vertical.recommendations,
            } if self.vertical else None,
        }


@dataclass
class PodMetrics:
    """One line of ``kubectl top pods``"""
    pod: str
    cpu: str
    memory: str


class ScalingProvider(ABC):
    """
    Abstract base for scaling providers.

    Mutating operations either succeed or raise: InvalidScalingParameters
    before any external call, ProviderNotSupported for a missing
    capability, ProviderOperationFailed when the platform rejects the
    change.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (aws, azure, ...)"""
        pass

    @property
    def label(self) -> str:
        return self.name

    @abstractmethod
    def get_scaling_config(self, target: ScalingTarget) -> ScalingConfig:
        pass

    @abstractmethod
    def get_current_replicas(self, target: ScalingTarget) -> int:
        pass

    @abstractmethod
    def enable_horizontal_scaling(
        self,
        target: ScalingTarget,
        min_replicas: int = 1,
        max_replicas: int = 10,
        target_cpu_utilization: int = 80
    ) -> None:
        pass

    @abstractmethod
    def disable_horizontal_scaling(self, target: ScalingTarget) -> None:
        pass

    @abstractmethod
    def enable_vertical_scaling(self, target: ScalingTarget, update_mode: UpdateMode = UpdateMode.AUTO) -> None:
        pass

    @abstractmethod
    def disable_vertical_scaling(self, target: ScalingTarget) -> None:
        pass

    @abstractmethod
    def scale_to_replicas(self, target: ScalingTarget, replicas: int) -> int:
        pass

    @abstractmethod
    def get_resource_metrics(self, target: ScalingTarget) -> List[PodMetrics]:
        pass

    def supports_horizontal_scaling(self) -> bool:
        return True

    @abstractmethod
    def supports_vertical_scaling(self) -> bool:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
