"""
Tests for workload lifecycle operations per deployment mode
"""
import json
import pytest

from conftest import FakeRunner, failed, ok, timed_out

from hostscale.cloud import ScalingTarget, WorkloadController
from hostscale.core.config import DetectionConfig
from hostscale.core.exceptions import ProviderOperationFailed, ProviderOperationTimedOut
from hostscale.detection.detector import DeploymentDetector, DeploymentMode

TARGET = ScalingTarget(name="shop")


@pytest.fixture
def controller(temp_dir, runner):
    detector = DeploymentDetector(
        config=DetectionConfig(probe_metadata=False),
        environ={"DOCKER_ENVIRONMENT": "1"},
        root=temp_dir,
        runner=FakeRunner(),
    )
    return WorkloadController(detector, runner=runner)


class TestRestart:
    """Test restart commands"""

    def test_kubernetes(self, controller, runner):
        controller.restart(TARGET, mode=DeploymentMode.KUBERNETES)

        assert runner.argvs[0] == ["kubectl", "rollout", "restart", "deployment/shop", "-n", "hosting-shop"]

    def test_detected_mode_is_used(self, controller, runner):
        controller.restart(TARGET)

        assert runner.argvs[0] == ["docker", "restart", "shop"]

    def test_standalone_reloads_web_server(self, controller, runner):
        controller.restart(TARGET, mode="standalone")

        assert runner.argvs[0] == ["systemctl", "reload", "nginx"]

    def test_failure(self, controller, runner):
        runner.queue.append(failed("Error: No such container: shop"))

        with pytest.raises(ProviderOperationFailed) as excinfo:
            controller.restart(TARGET)

        assert excinfo.value.cause == "Error: No such container: shop"

    def test_timeout(self, controller, runner):
        runner.queue.append(timed_out())

        with pytest.raises(ProviderOperationTimedOut):
            controller.restart(TARGET, mode=DeploymentMode.KUBERNETES)


class TestStatus:
    """Test workload status"""

    def test_kubernetes_running(self, controller, runner):
        pods = {"items": [
            {"metadata": {"name": "shop-1"}, "status": {"phase": "Running"}},
            {"metadata": {"name": "shop-2"}, "status": {"phase": "Pending"}},
        ]}
        runner.queue.append(ok(json.dumps(pods)))

        status = controller.status(TARGET, mode=DeploymentMode.KUBERNETES)

        assert status.status == "running"
        assert status.details["running_pods"] == 1
        assert status.details["pods"] == ["shop-1", "shop-2"]
        assert "app=shop" in runner.argvs[0]

    def test_kubernetes_no_pods(self, controller, runner):
        runner.queue.append(ok(json.dumps({"items": []})))

        assert controller.status(TARGET, mode=DeploymentMode.KUBERNETES).status == "stopped"

    def test_docker_running(self, controller, runner):
        runner.queue.append(ok(json.dumps([{"State": {"Running": True, "Status": "running"}}])))

        status = controller.status(TARGET)

        assert status.status == "running"
        assert status.details["Status"] == "running"

    def test_docker_missing_container(self, controller, runner):
        runner.queue.append(failed("Error: No such object: shop"))

        assert controller.status(TARGET).status == "not_found"

    def test_standalone(self, controller, runner):
        assert controller.status(TARGET, mode="standalone").to_dict() == {
            "status": "unknown",
            "details": {"method": "standalone"},
        }
        assert runner.calls == []


class TestDelete:
    """Test workload removal"""

    def test_kubernetes_deletes_namespace(self, controller, runner):
        assert controller.delete(TARGET, mode=DeploymentMode.KUBERNETES) is True
        assert runner.argvs[0] == ["kubectl", "delete", "namespace", "hosting-shop", "--ignore-not-found=true"]

    def test_docker_compose_down(self, controller, runner):
        assert controller.delete(TARGET, compose_file="/srv/shop/docker-compose.yml") is True
        assert runner.argvs[0] == ["docker-compose", "-f", "/srv/shop/docker-compose.yml", "down", "-v"]

    def test_docker_without_compose_file(self, controller, runner):
        assert controller.delete(TARGET) is False
        assert runner.calls == []

    def test_standalone_has_nothing_to_remove(self, controller, runner):
        assert controller.delete(TARGET, mode="standalone") is False
        assert runner.calls == []
