"""
Tests for hostscale configuration loading
"""
import json
import os
import pytest

from hostscale.core.config import ConfigManager, HostscaleConfig, get_config_value
from hostscale.core.exceptions import ConfigurationError, ValidationError


class TestDefaults:
    """Test default configuration values"""

    def test_timeouts(self):
        config = HostscaleConfig()

        assert config.kubernetes.command_timeout_seconds == 60.0
        assert config.databases.operation_timeout_seconds == 300.0
        assert config.databases.poll_interval_seconds == 10.0
        assert config.detection.metadata_timeout == 1.0

    def test_provider_default_regions(self):
        providers = HostscaleConfig().databases.providers

        assert providers["aws"].default_region == "us-east-1"
        assert providers["azure"].default_region == "eastus"
        assert providers["gcp"].default_region == "us-central1"
        assert providers["digitalocean"].default_region == "nyc3"
        assert providers["ovh"].default_region == "GRA"
        assert not any(settings.enabled for settings in providers.values())


class TestConfigManager:
    """Test file and environment loading"""

    def test_load_toml_file(self, temp_dir):
        """Test values from an explicit TOML file"""
        path = os.path.join(temp_dir, "hostscale.toml")
        with open(path, "w") as f:
            f.write(
                '[kubernetes]\nnamespace_prefix = "sites-"\n\n'
                '[databases.providers.aws]\nenabled = true\n\n'
                '[databases.providers.aws.credentials]\naccess_key = "AKIA"\n'
            )

        config = ConfigManager(environ={}).load_config(path)

        assert config.kubernetes.namespace_prefix == "sites-"
        assert config.databases.providers["aws"].enabled is True
        assert config.databases.providers["aws"].credentials["access_key"] == "AKIA"
        assert config.databases.providers["aws"].defaults["instance_class"] == "db.t3.micro"

    def test_load_json_file(self, temp_dir):
        path = os.path.join(temp_dir, "config.json")
        with open(path, "w") as f:
            json.dump({"detection": {"probe_metadata": False}}, f)

        config = ConfigManager(environ={}).load_config(path)

        assert config.detection.probe_metadata is False

    def test_environment_overrides_file(self, temp_dir):
        """Test environment variables win over file values"""
        path = os.path.join(temp_dir, "hostscale.toml")
        with open(path, "w") as f:
            f.write('[kubernetes]\nkubectl_path = "/usr/bin/kubectl"\n')

        config = ConfigManager(environ={
            "HOSTSCALE_KUBECTL_PATH": "/opt/kubectl",
            "DO_API_TOKEN": "token",
            "DO_DATABASE_ENABLED": "true",
            "MANAGED_DB_TIMEOUT": "120",
        }).load_config(path)

        assert config.kubernetes.kubectl_path == "/opt/kubectl"
        assert config.databases.providers["digitalocean"].credentials["api_token"] == "token"
        assert config.databases.providers["digitalocean"].enabled is True
        assert config.databases.operation_timeout_seconds == 120.0

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigurationError):
            ConfigManager(environ={}).load_config(os.path.join(temp_dir, "missing.toml"))

    def test_unsupported_format(self, temp_dir):
        path = os.path.join(temp_dir, "config.ini")
        with open(path, "w") as f:
            f.write("[x]\n")

        with pytest.raises(ConfigurationError):
            ConfigManager(environ={}).load_config(path)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            ConfigManager(environ={"HOSTSCALE_LOG_LEVEL": "LOUD"}).load_config()

    def test_unknown_provider_rejected(self):
        manager = ConfigManager(environ={})
        manager.load_config()

        with pytest.raises(ValidationError):
            manager.update_config({"databases": {"providers": {"linode": {"enabled": True}}}})

    def test_non_positive_timeout_rejected(self):
        manager = ConfigManager(environ={})
        manager.load_config()

        with pytest.raises(ValidationError):
            manager.update_config({"kubernetes": {"command_timeout_seconds": 0}})

    def test_save_and_reload(self, temp_dir):
        """Test a saved TOML file loads back to the same values"""
        manager = ConfigManager(environ={})
        manager.load_config()
        manager.update_config({"kubernetes": {"namespace_prefix": "apps-"}})
        path = manager.save_config(os.path.join(temp_dir, "saved.toml"))

        reloaded = ConfigManager(environ={}).load_config(path)

        assert reloaded.kubernetes.namespace_prefix == "apps-"

    def test_summary(self):
        manager = ConfigManager(environ={"AWS_RDS_ENABLED": "1"})
        manager.load_config()

        assert manager.get_config_summary()["enabled_database_providers"] == ["aws"]


def test_get_config_value_dot_path():
    assert get_config_value("kubernetes.missing_key", "fallback") == "fallback"
