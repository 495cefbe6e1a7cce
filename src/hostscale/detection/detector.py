"""
hostscale Deployment Detection

Works out where the control panel is running: the execution substrate
(Kubernetes, Docker, plain host) and the cloud vendor underneath it.
Detection never raises; a signal that cannot be evaluated is recorded as
degraded and treated as absent.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import requests

from ..core.config import DetectionConfig
from ..core.exceptions import DetectionDegraded
from ..utils.caching import TTLCache
from ..utils.commands import CommandRunner, LocalCommandRunner
from ..utils.network import new_session

logger = logging.getLogger(__name__)


class DeploymentMode(str, Enum):
    """Execution substrate"""
    KUBERNETES = "kubernetes"
    DOCKER = "docker"
    STANDALONE = "standalone"


class CloudProvider(str, Enum):
    """Cloud vendor hosting the installation"""
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"
    DIGITALOCEAN = "digitalocean"
    OVH = "ovh"
    NONE = "none"  # no cloud signal at all
    UNKNOWN = "unknown"  # a signal named a vendor we do not support


RECOGNIZED_PROVIDERS = frozenset({
    CloudProvider.AWS,
    CloudProvider.AZURE,
    CloudProvider.GCP,
    CloudProvider.DIGITALOCEAN,
    CloudProvider.OVH,
})

MODE_LABELS = {
    DeploymentMode.KUBERNETES: "Kubernetes",
    DeploymentMode.DOCKER: "Docker Compose",
    DeploymentMode.STANDALONE: "Standalone",
}

PROVIDER_LABELS = {
    CloudProvider.AWS: "Amazon Web Services (AWS)",
    CloudProvider.AZURE: "Microsoft Azure",
    CloudProvider.GCP: "Google Cloud Platform",
    CloudProvider.DIGITALOCEAN: "DigitalOcean",
    CloudProvider.OVH: "OVHcloud",
    CloudProvider.NONE: "None detected",
    CloudProvider.UNKNOWN: "Unknown",
}

# Metadata endpoints, probed in this order
AWS_METADATA_URL = "http://169.254.169.254/latest/meta-data/"
AZURE_METADATA_URL = "http://169.254.169.254/metadata/instance?api-version=2021-02-01"
GCP_METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/"
DIGITALOCEAN_VENDOR_DATA_URL = "http://169.254.169.254/metadata/v1/vendor-data"

_FALSY = ("", "0", "false", "no", "off")


def mode_label(mode: Union[DeploymentMode, str]) -> str:
    """Human readable deployment mode"""
    try:
        return MODE_LABELS[DeploymentMode(mode)]
    except ValueError:
        return "Unknown"


def cloud_provider_label(provider: Union[CloudProvider, str]) -> str:
    """Human readable cloud provider name"""
    try:
        return PROVIDER_LABELS[CloudProvider(provider)]
    except ValueError:
        return "Unknown"


def is_recognized_provider(name: Optional[str]) -> bool:
    try:
        return CloudProvider(name) in RECOGNIZED_PROVIDERS
    except ValueError:
        return False


@dataclass(frozen=True)
class DeploymentInfo:
    """
    Immutable snapshot of the execution environment.

    The ``is_*`` flags and ``supports_auto_scaling`` are derived from
    ``mode`` and ``cloud_provider`` so they cannot disagree with them.
    """
    mode: DeploymentMode
    cloud_provider: CloudProvider
    signals: Tuple[str, ...] = ()
    degraded: Tuple[str, ...] = ()
    detected_at: datetime = field(default_factory=datetime.now)

    is_kubernetes: bool = field(init=False)
    is_docker: bool = field(init=False)
    is_standalone: bool = field(init=False)
    supports_auto_scaling: bool = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "mode", DeploymentMode(self.mode))
        object.__setattr__(self, "cloud_provider", CloudProvider(self.cloud_provider))
        object.__setattr__(self, "is_kubernetes", self.mode == DeploymentMode.KUBERNETES)
        object.__setattr__(self, "is_docker", self.mode == DeploymentMode.DOCKER)
        object.__setattr__(self, "is_standalone", self.mode == DeploymentMode.STANDALONE)
        object.__setattr__(
            self,
            "supports_auto_scaling",
            self.is_kubernetes and self.cloud_provider in RECOGNIZED_PROVIDERS
        )

    @property
    def mode_label(self) -> str:
        return mode_label(self.mode)

    @property
    def cloud_provider_label(self) -> str:
        return cloud_provider_label(self.cloud_provider)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "cloud_provider": self.cloud_provider.value,
            "is_kubernetes": self.is_kubernetes,
            "is_docker": self.is_docker,
            "is_standalone": self.is_standalone,
            "supports_auto_scaling": self.supports_auto_scaling,
            "signals": list(self.signals),
            "degraded": list(self.degraded),
            "detected_at": self.detected_at.isoformat(),
        }


class DeploymentDetector:
    """
    Inspects markers on the host, in the environment, on the cluster and
    behind the cloud metadata endpoints.

    Example:
        detector = DeploymentDetector()
        info = detector.get_deployment_info()  # cached
        detector.forget()  # next call detects again
    """

    CACHE_KEY = "deployment_info"

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
        root: Union[str, Path] = "/",
        runner: Optional[CommandRunner] = None,
        session: Optional[requests.Session] = None,
        kubectl_path: str = "kubectl",
        command_timeout: float = 10.0,
        cache: Optional[TTLCache] = None
    ):
        self.config = config or DetectionConfig()
        self._environ = environ
        self.root = Path(root)
        self.runner = runner or LocalCommandRunner()
        self.session = session or new_session()
        self.kubectl_path = kubectl_path
        self.command_timeout = command_timeout
        self._cache = cache or TTLCache(default_ttl=self.config.cache_ttl_seconds)

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def get_deployment_info(self) -> DeploymentInfo:
        """Cached detection result"""
        return self._cache.remember(self.CACHE_KEY, self.detect)

    def forget(self) -> None:
        """Invalidate the cached snapshot"""
        self._cache.forget(self.CACHE_KEY)

    def detect(self) -> DeploymentInfo:
        """Run every detection signal and build a fresh snapshot"""
        signals: List[str] = []
        degraded: List[str] = []

        mode = self._detect_mode(signals, degraded)
        provider = self._detect_cloud_provider(mode, signals, degraded)

        info = DeploymentInfo(
            mode=mode,
            cloud_provider=provider,
            signals=tuple(signals),
            degraded=tuple(degraded),
        )

        logger.info(
            f"Detected deployment mode={info.mode.value} cloud_provider={info.cloud_provider.value} "
            f"auto_scaling={info.supports_auto_scaling}"
        )
        if degraded:
            logger.debug(f"Degraded detection signals: {', '.join(degraded)}")
        return info

    # Mode

    def _detect_mode(self, signals: List[str], degraded: List[str]) -> DeploymentMode:
        if self._check(self._kubernetes_signal, degraded, signals):
            return DeploymentMode.KUBERNETES
        if self._check(self._docker_signal, degraded, signals):
            return DeploymentMode.DOCKER
        return DeploymentMode.STANDALONE

    def _kubernetes_signal(self) -> Optional[str]:
        unreadable = None
        try:
            if self._read_marker(
                    self.config.service_account_path, "kubernetes:serviceaccount", content=False
            ) is not None:
                return "kubernetes:serviceaccount"
        except DetectionDegraded as e:
            unreadable = e

        if self.environ.get("KUBERNETES_SERVICE_HOST"):
            return "kubernetes:env"

        if self.config.probe_kubectl_cluster:
            result = self.runner.run([self.kubectl_path, "cluster-info"], timeout=self.command_timeout)
            if result.timed_out:
                raise DetectionDegraded("kubectl cluster-info timed out", signal="kubernetes:cluster-info")
            if result.ok and "kubernetes" in result.stdout.lower():
                return "kubernetes:cluster-info"

        if unreadable is not None:
            raise unreadable
        return None

    def _docker_signal(self) -> Optional[str]:
        unreadable = None
        try:
            if self._read_marker(self.config.docker_env_path, "docker:dockerenv", content=False) is not None:
                return "docker:dockerenv"
        except DetectionDegraded as e:
            unreadable = e

        try:
            content = (self._read_marker(self.config.cgroup_path, "docker:cgroup") or "").lower()
        except DetectionDegraded as e:
            unreadable = unreadable or e
            content = ""
        if "docker" in content or "containerd" in content:
            return "docker:cgroup"

        if self._docker_env_set():
            return "docker:env"
        if unreadable is not None:
            raise unreadable
        return None

    def _read_marker(self, path: str, signal: str, content: bool = True) -> Optional[str]:
        """Marker file contents, "" when ``content`` is False, None when absent"""
        marker = self._host_path(path)
        try:
            if not marker.exists():
                return None
            return marker.read_text(errors="replace") if content else ""
        except OSError as e:
            raise DetectionDegraded(f"Cannot read {marker}: {e}", signal=signal) from e

    def _docker_env_set(self) -> bool:
        return self.environ.get("DOCKER_ENVIRONMENT", "").strip().lower() not in _FALSY

    # Cloud provider

    def _detect_cloud_provider(
        self,
        mode: DeploymentMode,
        signals: List[str],
        degraded: List[str]
    ) -> CloudProvider:
        checks = []
        if mode == DeploymentMode.KUBERNETES and self.config.probe_node_labels:
            checks.append(self._provider_from_node_labels)
        if self.config.probe_metadata:
            checks.append(self._provider_from_metadata)
        checks.append(self._provider_from_environment)

        for check in checks:
            found = self._check(check, degraded)
            if found is not None:
                provider, signal = found
                signals.append(signal)
                return provider

        return CloudProvider.NONE

    def _provider_from_node_labels(self) -> Optional[Tuple[CloudProvider, str]]:
        signal = "cloud:node-labels"
        result = self.runner.run(
            [self.kubectl_path, "get", "nodes", "-o", "json"],
            timeout=self.command_timeout
        )
        if not result.ok:
            reason = "timed out" if result.timed_out else result.error_output()
            raise DetectionDegraded(f"kubectl get nodes failed: {reason}", signal=signal)

        try:
            nodes = json.loads(result.stdout).get("items") or []
        except (ValueError, AttributeError) as e:
            raise DetectionDegraded(f"Unparseable node list: {e}", signal=signal) from e

        if not nodes:
            return None

        node = nodes[0]
        labels = (node.get("metadata") or {}).get("labels") or {}
        provider_id = ((node.get("spec") or {}).get("providerID") or "").lower()

        provider = provider_from_node(labels, provider_id)
        return (provider, signal) if provider else None

    def _provider_from_metadata(self) -> Optional[Tuple[CloudProvider, str]]:
        response = self._probe(AWS_METADATA_URL)
        # IMDSv2-only instances answer 401 without a session token
        if response is not None and response.status_code in (200, 401):
            return CloudProvider.AWS, "cloud:metadata:aws"

        response = self._probe(AZURE_METADATA_URL, {"Metadata": "true"})
        if response is not None and response.status_code == 200:
            return CloudProvider.AZURE, "cloud:metadata:azure"

        response = self._probe(GCP_METADATA_URL, {"Metadata-Flavor": "Google"})
        if response is not None and response.status_code == 200:
            return CloudProvider.GCP, "cloud:metadata:gcp"

        response = self._probe(DIGITALOCEAN_VENDOR_DATA_URL)
        if response is not None and response.status_code == 200 and "digitalocean" in response.text.lower():
            return CloudProvider.DIGITALOCEAN, "cloud:metadata:digitalocean"

        return None

    def _probe(self, url: str, headers: Optional[Dict[str, str]] = None) -> Optional[requests.Response]:
        # Unreachable metadata is the normal case off-cloud
        try:
            return self.session.get(url, headers=headers or {}, timeout=self.config.metadata_timeout)
        except requests.RequestException as e:
            logger.debug(f"Metadata probe {url} failed: {e}")
            return None

    def _provider_from_environment(self) -> Optional[Tuple[CloudProvider, str]]:
        env = self.environ

        explicit = env.get("CLOUD_PROVIDER", "").strip().lower()
        if explicit:
            if is_recognized_provider(explicit):
                return CloudProvider(explicit), "cloud:env:CLOUD_PROVIDER"
            return CloudProvider.UNKNOWN, "cloud:env:CLOUD_PROVIDER"

        for variables, provider in (
            (("AWS_REGION", "AWS_DEFAULT_REGION"), CloudProvider.AWS),
            (("AZURE_TENANT_ID", "AZURE_SUBSCRIPTION_ID"), CloudProvider.AZURE),
            (("GCP_PROJECT", "GOOGLE_CLOUD_PROJECT"), CloudProvider.GCP),
            (("DIGITALOCEAN_TOKEN",), CloudProvider.DIGITALOCEAN),
            (("OVH_ENDPOINT",), CloudProvider.OVH),
        ):
            for variable in variables:
                if env.get(variable):
                    return provider, f"cloud:env:{variable}"

        return None

    # Helpers

    def _host_path(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def _check(self, check, degraded: List[str], signals: Optional[List[str]] = None):
        try:
            found = check()
        except DetectionDegraded as e:
            logger.debug(f"Detection signal degraded: {e.message}")
            degraded.append(e.signal or check.__name__)
            return None

        if found is not None and signals is not None:
            signals.append(found)
        return found


def provider_from_node(labels: Dict[str, str], provider_id: str = "") -> Optional[CloudProvider]:
    """Identify the managed Kubernetes vendor from one node's labels and providerID"""
    provider_id = provider_id.lower()

    if "kubernetes.azure.com/cluster" in labels or "agentpool" in labels or provider_id.startswith("azure://"):
        return CloudProvider.AZURE

    if "eks.amazonaws.com/nodegroup" in labels or provider_id.startswith("aws://"):
        return CloudProvider.AWS

    if (
        "cloud.google.com/gke-nodepool" in labels
        or "cloud.google.com/gke-os-distribution" in labels
        or provider_id.startswith("gce://")
    ):
        return CloudProvider.GCP

    if "doks.digitalocean.com/node-pool" in labels or provider_id.startswith("digitalocean://"):
        return CloudProvider.DIGITALOCEAN

    if any(key.startswith("k8s.ovh.net/") for key in labels) or "ovh" in provider_id:
        return CloudProvider.OVH

    return None
