"""
Tests for hostscale core: errors, notifications, metadata, secrets and caching
"""
import json
import os
import pytest

from hostscale.core.exceptions import (
    HostscaleError,
    ProviderOperationFailed,
    ProviderOperationTimedOut,
    ProvisioningTimedOut,
    SecretError,
    StorageError,
    ValidationError,
    command_failed_error,
    provider_not_found_error,
)
from hostscale.core.metadata import InstallationMetadata, cast_value, prepare_value
from hostscale.core.notifications import Notification, NotificationStatus
from hostscale.utils.caching import TTLCache
from hostscale.utils.secrets import SecretBox


class TestExceptions:
    """Test the error taxonomy"""

    def test_str_includes_code_and_guidance(self):
        """Test error string formatting"""
        error = HostscaleError("Something broke", error_code="X001", guidance="Try again")

        assert str(error).startswith("[X001] Something broke")
        assert "Try again" in str(error)

    def test_to_dict(self):
        """Test dictionary form used for logging"""
        error = ValidationError("bad", field="storage_gb", value=0)
        data = error.to_dict()

        assert data["type"] == "ValidationError"
        assert data["error_code"] == "VAL001"
        assert data["context"] == {"field": "storage_gb", "value": 0}

    def test_timeout_is_operation_failure(self):
        """Test that a timeout can be caught as a provider failure"""
        error = ProviderOperationTimedOut("slow", provider="aws", operation="create", timeout=5)

        assert isinstance(error, ProviderOperationFailed)
        assert error.error_code == "PRV003"
        assert error.context["timeout_seconds"] == 5

    def test_command_failed_keeps_cause(self):
        """Test that stderr is carried verbatim"""
        error = command_failed_error("kubectl", "apply", "error: the server doesn't have a resource type")

        assert error.cause == "error: the server doesn't have a resource type"
        assert error.provider == "kubectl"
        assert error.message == "kubectl apply failed: error: the server doesn't have a resource type"

    def test_provider_not_found_lists_available(self):
        error = provider_not_found_error("invalid", ["aws", "gcp"])

        assert error.provider == "invalid"
        assert "aws, gcp" in error.guidance

    def test_provisioning_timed_out_has_guidance(self):
        error = ProvisioningTimedOut("pending", provider="aws", instance_id="db-a", timeout=300)

        assert error.error_code == "DB001"
        assert "provider console" in error.guidance
        assert error.context["instance_id"] == "db-a"


class TestNotifications:
    """Test notification data objects"""

    def test_factories(self):
        assert Notification.success("ok").status == NotificationStatus.SUCCESS
        assert Notification.warning("careful").status == NotificationStatus.WARNING

    def test_only_danger_is_failure(self):
        assert Notification.danger("broken").is_failure
        assert not Notification.warning("careful").is_failure

    def test_to_dict(self):
        data = Notification.info("Hello", "World").to_dict()

        assert data["title"] == "Hello"
        assert data["status"] == "info"
        assert data["body"] == "World"


class TestInstallationMetadata:
    """Test the JSON metadata store"""

    def test_missing_file_starts_empty(self, temp_dir):
        metadata = InstallationMetadata(os.path.join(temp_dir, "metadata.json"))

        assert metadata.all() == {}
        assert metadata.get_value("deployment_mode", "standalone") == "standalone"

    def test_update_or_create_persists_typed_values(self, temp_dir):
        """Test values survive a reload with their types"""
        path = os.path.join(temp_dir, "state", "metadata.json")
        metadata = InstallationMetadata(path)
        metadata.update_or_create("auto_scaling_enabled", True, type="boolean")
        metadata.update_or_create("replicas", 3, type="integer")
        metadata.update_or_create("labels", {"a": 1}, type="json")

        reloaded = InstallationMetadata(path)

        assert reloaded.get_value("auto_scaling_enabled") is True
        assert reloaded.get_value("replicas") == 3
        assert reloaded.get_value("labels") == {"a": 1}

    def test_set_value_refuses_read_only(self, temp_dir):
        """Test that read-only entries cannot be changed through set_value"""
        metadata = InstallationMetadata(os.path.join(temp_dir, "metadata.json"))
        metadata.update_or_create("deployment_mode", "kubernetes", is_editable=False)

        assert metadata.set_value("deployment_mode", "docker") is False
        assert metadata.get_value("deployment_mode") == "kubernetes"

    def test_set_value_unknown_key(self, temp_dir):
        metadata = InstallationMetadata(os.path.join(temp_dir, "metadata.json"))

        assert metadata.set_value("missing", "x") is False

    def test_invalid_type_rejected(self, temp_dir):
        metadata = InstallationMetadata(os.path.join(temp_dir, "metadata.json"))

        with pytest.raises(ValidationError):
            metadata.update_or_create("key", "value", type="float")

    def test_delete(self, temp_dir):
        metadata = InstallationMetadata(os.path.join(temp_dir, "metadata.json"))
        metadata.update_or_create("key", "value")

        assert metadata.delete("key") is True
        assert metadata.delete("key") is False

    def test_corrupt_file_raises_storage_error(self, temp_dir):
        path = os.path.join(temp_dir, "metadata.json")
        with open(path, "w") as f:
            f.write("{not json")

        with pytest.raises(StorageError):
            InstallationMetadata(path)

    def test_cast_and_prepare(self):
        assert prepare_value(False, "boolean") == "false"
        assert cast_value("yes", "boolean") is True
        assert cast_value("abc", "integer") == 0
        assert cast_value(json.dumps([1, 2]), "json") == [1, 2]


class TestSecretBox:
    """Test encryption of secrets at rest"""

    def test_round_trip(self):
        box = SecretBox(SecretBox.generate_key())
        token = box.encrypt("p@ssw0rd")

        assert token != "p@ssw0rd"
        assert box.decrypt(token) == "p@ssw0rd"

    def test_passphrase_derivation_is_stable(self):
        """Test the same passphrase always decrypts earlier tokens"""
        token = SecretBox.from_passphrase("correct horse").encrypt("value")

        assert SecretBox.from_passphrase("correct horse").decrypt(token) == "value"

    def test_wrong_key_raises_secret_error(self):
        token = SecretBox(SecretBox.generate_key()).encrypt("value")

        with pytest.raises(SecretError):
            SecretBox(SecretBox.generate_key()).decrypt(token)

    def test_from_setting_requires_key(self):
        with pytest.raises(SecretError):
            SecretBox.from_setting(None)

    def test_from_setting_accepts_passphrase(self):
        box = SecretBox.from_setting("not a fernet key")

        assert box.decrypt(box.encrypt("x")) == "x"


class TestTTLCache:
    """Test the detection cache"""

    def test_remember_computes_once(self):
        cache = TTLCache(default_ttl=60)
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert cache.remember("key", factory) == "value"
        assert cache.remember("key", factory) == "value"
        assert len(calls) == 1

    def test_entries_expire(self):
        now = [0.0]
        cache = TTLCache(default_ttl=10, clock=lambda: now[0])
        cache.set("key", "value")

        now[0] = 11.0

        assert cache.get("key") is None
        assert "key" not in cache

    def test_forget(self):
        cache = TTLCache()
        cache.set("key", "value")

        assert cache.forget("key") is True
        assert cache.forget("key") is False
        assert len(cache) == 0
