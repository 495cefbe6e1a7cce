"""
hostscale Scaling Orchestrator

Operator-facing entry point for scaling: reads the current state of a
target and applies a requested change, reporting the outcome as
notifications instead of exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.exceptions import HostscaleError
from ..core.notifications import Notification
from .base import ScalingConfig, ScalingTarget, UpdateMode
from .manager import CloudProviderManager

logger = logging.getLogger(__name__)


@dataclass
class ScalingRequest:
    """
    Requested change. ``None`` leaves that part untouched; horizontal and
    vertical toggles take True to enable and False to disable.
    """
    enable_horizontal: Optional[bool] = None
    min_replicas: int = 1
    max_replicas: int = 10
    target_cpu: int = 80
    enable_vertical: Optional[bool] = None
    update_mode: Union[UpdateMode, str] = UpdateMode.AUTO
    manual_replicas: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.enable_horizontal is None and self.enable_vertical is None and self.manual_replicas is None


@dataclass
class ScalingState:
    """What the scaling panel shows for a target"""
    provider_name: str
    provider_label: str
    current_replicas: int
    config: ScalingConfig
    supports_vertical: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider_name,
            "provider_label": self.provider_label,
            "current_replicas": self.current_replicas,
            "supports_vertical": self.supports_vertical,
            **self.config.to_dict(),
        }


@dataclass
class ScalingOutcome:
    applied: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed and not any(n.is_failure for n in self.notifications)


class ScalingOrchestrator:
    """Applies scaling requests through the provider selected for a target"""

    def __init__(self, cloud_manager: CloudProviderManager):
        self.cloud_manager = cloud_manager

    def describe(self, target: ScalingTarget) -> Optional[ScalingState]:
        """Current scaling state, or None when scaling is unavailable for the target"""
        provider = self.cloud_manager.get_provider(target)
        if provider is None:
            return None

        return ScalingState(
            provider_name=provider.name,
            provider_label=provider.label,
            current_replicas=provider.get_current_replicas(target),
            config=provider.get_scaling_config(target),
            supports_vertical=provider.supports_vertical_scaling(),
        )

    def apply(self, target: ScalingTarget, request: ScalingRequest) -> ScalingOutcome:
        """
        Apply each requested part independently.

        A failing part is reported and the remaining parts are still
        attempted; nothing is rolled back.
        """
        outcome = ScalingOutcome()

        provider = self.cloud_manager.get_provider(target)
        if provider is None:
            outcome.notifications.append(Notification.danger(
                "Scaling not available",
                "Cloud provider not detected or not supported"
            ))
            return outcome

        if request.is_empty:
            outcome.notifications.append(Notification.info("No scaling changes requested"))
            return outcome

        if request.enable_horizontal is True:
            self._attempt(outcome, "enable horizontal scaling", lambda: provider.enable_horizontal_scaling(
                target,
                request.min_replicas,
                request.max_replicas,
                request.target_cpu,
            ))
        elif request.enable_horizontal is False:
            self._attempt(outcome, "disable horizontal scaling", lambda: provider.disable_horizontal_scaling(target))

        if request.enable_vertical is not None:
            if not provider.supports_vertical_scaling():
                outcome.notifications.append(Notification.warning(
                    "Vertical scaling not available",
                    f"{provider.label} does not support vertical pod autoscaling in this installation."
                ))
            elif request.enable_vertical:
                self._attempt(outcome, "enable vertical scaling", lambda: provider.enable_vertical_scaling(
                    target,
                    request.update_mode,
                ))
            else:
                self._attempt(outcome, "disable vertical scaling", lambda: provider.disable_vertical_scaling(target))

        if request.manual_replicas is not None:
            self._attempt(outcome, "scale replicas", lambda: provider.scale_to_replicas(
                target,
                request.manual_replicas,
            ))

        if outcome.applied and not outcome.failed:
            outcome.notifications.append(Notification.success("Scaling configuration updated"))
        return outcome

    def _attempt(self, outcome: ScalingOutcome, step: str, action: Callable[[], Any]) -> None:
        try:
            action()
        except HostscaleError as e:
            logger.error(f"Scaling step '{step}' failed: {e.message}")
            outcome.failed.append(step)
            outcome.notifications.append(Notification.danger(
                "Failed to update scaling configuration",
                e.message
            ))
        else:
            outcome.applied.append(step)
