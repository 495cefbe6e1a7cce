"""
Pytest configuration and fixtures for hostscale tests
"""
import pytest
import tempfile
import shutil
import os
import sys
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import requests

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from hostscale.core.config import DetectionConfig, HostscaleConfig, KubernetesConfig, ProviderSettings
from hostscale.utils.caching import TTLCache
from hostscale.utils.commands import CommandResult, CommandRunner


def ok(stdout: str = "") -> CommandResult:
    """Successful command result"""
    return CommandResult(argv=[], exit_code=0, stdout=stdout)


def failed(stderr: str = "error", exit_code: int = 1) -> CommandResult:
    """Failed command result"""
    return CommandResult(argv=[], exit_code=exit_code, stderr=stderr)


def timed_out() -> CommandResult:
    """Command result of a timeout"""
    return CommandResult(argv=[], exit_code=-1, timed_out=True)


class FakeRunner(CommandRunner):
    """
    Command runner spy.

    Results come from routes (first route whose fragment appears in the
    joined argv) or from the queue, falling back to an empty success.
    """

    def __init__(self, *results: CommandResult):
        self.calls: List[Dict] = []
        self.queue: List[CommandResult] = list(results)
        self.routes: List = []

    def on(self, fragment: str, result: CommandResult) -> "FakeRunner":
        self.routes.append((fragment, result))
        return self

    def run(self, argv, timeout=60.0, stdin=None, env=None, cwd=None) -> CommandResult:
        argv = [str(arg) for arg in argv]
        self.calls.append({"argv": argv, "timeout": timeout, "stdin": stdin, "env": env, "cwd": cwd})

        command = " ".join(argv)
        for fragment, result in self.routes:
            if fragment in command:
                return self._bind(result, argv)
        if self.queue:
            return self._bind(self.queue.pop(0), argv)
        return CommandResult(argv=argv, exit_code=0)

    @staticmethod
    def _bind(result: CommandResult, argv: List[str]) -> CommandResult:
        return CommandResult(
            argv=argv,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration=result.duration,
            timed_out=result.timed_out
        )

    @property
    def argvs(self) -> List[List[str]]:
        return [call["argv"] for call in self.calls]

    def commands(self) -> List[str]:
        return [" ".join(argv) for argv in self.argvs]


class FakeSession:
    """requests.Session stand-in answering metadata probes by URL"""

    def __init__(self, responses: Optional[Dict[str, MagicMock]] = None):
        self.responses = responses or {}
        self.requests: List[Dict] = []

    def get(self, url, headers=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "timeout": timeout})
        if url not in self.responses:
            raise requests.ConnectionError(f"unreachable: {url}")
        return self.responses[url]

    def close(self):
        pass


def http_response(status_code: int = 200, text: str = "", json_data=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.content = text.encode() if text else (b"{}" if json_data is not None else b"")
    response.json.return_value = json_data
    return response


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests"""
    temp_path = tempfile.mkdtemp()
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def runner():
    """Fresh command runner spy"""
    return FakeRunner()


@pytest.fixture
def fake_session():
    """HTTP session where every metadata endpoint is unreachable"""
    return FakeSession()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment variables that influence detection and configuration"""
    for name in list(os.environ):
        if name.startswith(("HOSTSCALE_", "AWS_", "AZURE_", "GCP_", "GOOGLE_", "DO_", "DIGITALOCEAN_", "OVH_")):
            monkeypatch.delenv(name, raising=False)
    for name in ("KUBERNETES_SERVICE_HOST", "DOCKER_ENVIRONMENT", "CLOUD_PROVIDER", "MANAGED_DB_AUTO_TEST", "MANAGED_DB_ENFORCE_SSL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def detection_config():
    """Detection without metadata probes or node label lookups"""
    return DetectionConfig(probe_metadata=False, probe_node_labels=False)


@pytest.fixture
def kubernetes_config():
    return KubernetesConfig()


@pytest.fixture
def enabled_settings():
    """Factory for enabled provider settings"""
    def _make(**kwargs):
        kwargs.setdefault("enabled", True)
        return ProviderSettings(**kwargs)
    return _make


@pytest.fixture
def hostscale_config(temp_dir):
    """Configuration with local state under a temporary directory"""
    config = HostscaleConfig()
    config.storage.metadata_path = os.path.join(temp_dir, "metadata.json")
    config.detection.probe_metadata = False
    config.detection.probe_node_labels = False
    config.security.secret_key = "test passphrase"
    return config


@pytest.fixture
def frozen_cache():
    """Detection cache that never expires"""
    return TTLCache(default_ttl=None)
