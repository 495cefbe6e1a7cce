"""
hostscale Configuration Management

Centralized configuration for detection, scaling and managed databases.
Supports environment variables, config files, and runtime overrides.
"""

import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union, Mapping
from dataclasses import dataclass, field, asdict, fields, is_dataclass
import toml

from .exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = ("aws", "azure", "gcp", "digitalocean", "ovh")


@dataclass
class DetectionConfig:
    """Deployment detection configuration"""
    metadata_timeout: float = 1.0  # seconds per metadata endpoint
    probe_metadata: bool = True
    probe_kubectl_cluster: bool = False
    probe_node_labels: bool = True
    cache_ttl_seconds: Optional[int] = 3600  # None keeps the snapshot until forget()
    service_account_path: str = "/var/run/secrets/kubernetes.io/serviceaccount"
    docker_env_path: str = "/.dockerenv"
    cgroup_path: str = "/proc/1/cgroup"


@dataclass
class KubernetesConfig:
    """kubectl invocation settings"""
    kubectl_path: str = "kubectl"
    namespace_prefix: str = "hosting-"
    command_timeout_seconds: float = 60.0
    # Per-provider override of VPA availability, e.g. {"ovh": False}
    vertical_scaling: Dict[str, bool] = field(default_factory=dict)


@dataclass
class ProviderSettings:
    """Credentials and defaults for one managed-database vendor"""
    enabled: bool = False
    default_region: str = ""
    cli_path: Optional[str] = None
    credentials: Dict[str, str] = field(default_factory=dict)
    defaults: Dict[str, Any] = field(default_factory=dict)


def _default_providers() -> Dict[str, ProviderSettings]:
    return {
        "aws": ProviderSettings(
            default_region="us-east-1",
            cli_path="aws",
            defaults={
                "instance_class": "db.t3.micro",
                "allocated_storage": 20,
                "storage_encrypted": True,
                "backup_retention": 7,
                "multi_az": False,
                "publicly_accessible": False,
            },
        ),
        "azure": ProviderSettings(
            default_region="eastus",
            cli_path="az",
            defaults={
                "sku_name": "B_Gen5_1",
                "sku_tier": "Burstable",
                "storage_gb": 32,
                "backup_retention": 7,
            },
        ),
        "gcp": ProviderSettings(
            default_region="us-central1",
            cli_path="gcloud",
            defaults={
                "tier": "db-f1-micro",
                "storage_auto_resize": True,
                "backup_start_time": "03:00",
            },
        ),
        "digitalocean": ProviderSettings(
            default_region="nyc3",
            cli_path="doctl",
            defaults={
                "size": "db-s-1vcpu-1gb",
                "num_nodes": 1,
            },
        ),
        "ovh": ProviderSettings(
            default_region="GRA",
            defaults={
                "plan": "essential",
                "flavor": "db1-4",
            },
        ),
    }


@dataclass
class ManagedDatabaseConfig:
    """Managed database provisioning configuration"""
    operation_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 10.0
    connection_test_timeout: float = 5.0
    auto_test_connection: bool = True
    enforce_ssl: bool = True
    providers: Dict[str, ProviderSettings] = field(default_factory=_default_providers)


@dataclass
class LoggingConfig:
    """Logging configuration"""
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file_path: Optional[str] = None
    enable_file_logging: bool = False
    max_log_file_size_mb: int = 10
    log_rotation_count: int = 5


@dataclass
class SecurityConfig:
    """Secret handling configuration"""
    secret_key: Optional[str] = None


@dataclass
class StorageConfig:
    """Local persistence configuration"""
    metadata_path: str = ".hostscale/metadata.json"


@dataclass
class HostscaleConfig:
    """Main hostscale configuration"""
    environment: str = "production"  # development, staging, production
    config_version: str = "1.0"

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    databases: ManagedDatabaseConfig = field(default_factory=ManagedDatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


# (provider, credential key, environment variable)
_CREDENTIAL_ENV = [
    ("aws", "access_key", "AWS_ACCESS_KEY_ID"),
    ("aws", "secret_key", "AWS_SECRET_ACCESS_KEY"),
    ("azure", "subscription_id", "AZURE_SUBSCRIPTION_ID"),
    ("azure", "tenant_id", "AZURE_TENANT_ID"),
    ("azure", "client_id", "AZURE_CLIENT_ID"),
    ("azure", "client_secret", "AZURE_CLIENT_SECRET"),
    ("azure", "resource_group", "AZURE_RESOURCE_GROUP"),
    ("gcp", "project_id", "GCP_PROJECT_ID"),
    ("gcp", "credentials_path", "GCP_CREDENTIALS_PATH"),
    ("digitalocean", "api_token", "DO_API_TOKEN"),
    ("ovh", "application_key", "OVH_APPLICATION_KEY"),
    ("ovh", "application_secret", "OVH_APPLICATION_SECRET"),
    ("ovh", "consumer_key", "OVH_CONSUMER_KEY"),
    ("ovh", "endpoint", "OVH_ENDPOINT"),
    ("ovh", "service_name", "OVH_SERVICE_NAME"),
]

_REGION_ENV = {
    "aws": "AWS_DEFAULT_REGION",
    "azure": "AZURE_DEFAULT_REGION",
    "gcp": "GCP_DEFAULT_REGION",
    "digitalocean": "DO_DEFAULT_REGION",
    "ovh": "OVH_DEFAULT_REGION",
}

_ENABLED_ENV = {
    "aws": "AWS_RDS_ENABLED",
    "azure": "AZURE_DATABASE_ENABLED",
    "gcp": "GCP_SQL_ENABLED",
    "digitalocean": "DO_DATABASE_ENABLED",
    "ovh": "OVH_DATABASE_ENABLED",
}


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Manages hostscale configuration loading and validation"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._config: Optional[HostscaleConfig] = None
        self.config_file_path: Optional[Path] = None
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    @property
    def config(self) -> HostscaleConfig:
        """Get current configuration, loading if necessary"""
        if self._config is None:
            self.load_config()
        return self._config

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> HostscaleConfig:
        """
        Load configuration from multiple sources in priority order:
        1. Explicit config file path
        2. hostscale.toml / pyproject.toml [tool.hostscale] / user config
        3. Environment variables (override file values)
        4. Default configuration
        """
        logger.debug("Loading hostscale configuration...")

        self._config = HostscaleConfig()

        if config_path:
            self._load_from_file(Path(config_path))
            self.config_file_path = Path(config_path)
        else:
            self._discover_and_load_config_file()

        self._load_from_environment()
        self.validate()

        logger.info(f"Configuration loaded for environment: {self._config.environment}")
        return self._config

    def _discover_and_load_config_file(self) -> None:
        """Discover and load config file from standard locations"""
        search_paths = [
            Path.cwd() / "hostscale.toml",
            Path.cwd() / "pyproject.toml",
            Path.cwd() / ".hostscale" / "config.toml",
            Path.home() / ".config" / "hostscale" / "config.toml",
        ]

        for config_path in search_paths:
            if config_path.exists():
                logger.debug(f"Found config file: {config_path}")
                self._load_from_file(config_path)
                self.config_file_path = config_path
                return

        logger.debug("No config file found, using defaults")

    def _load_from_file(self, file_path: Path) -> None:
        """Load configuration from a TOML or JSON file"""
        if not file_path.exists():
            raise ConfigurationError(f"Config file not found: {file_path}", config_file=str(file_path))

        try:
            if file_path.suffix.lower() == '.json':
                with open(file_path, 'r') as f:
                    data = json.load(f)
            elif file_path.suffix.lower() in ['.toml', '.tml']:
                with open(file_path, 'r') as f:
                    data = toml.load(f)

                if file_path.name == "pyproject.toml":
                    data = data.get("tool", {}).get("hostscale", {})
            else:
                raise ConfigurationError(
                    f"Unsupported config file format: {file_path.suffix}",
                    config_file=str(file_path)
                )
        except (OSError, ValueError, toml.TomlDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load config from {file_path}: {e}",
                config_file=str(file_path)
            ) from e

        self._merge_config_data(data)
        logger.debug(f"Loaded configuration from {file_path}")

    def _merge_config_data(self, data: Dict[str, Any]) -> None:
        """Merge configuration data into current config"""
        if not self._config:
            self._config = HostscaleConfig()
        _merge_into(self._config, data)

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables"""
        env = self.environ
        cfg = self._config

        if env.get("HOSTSCALE_ENVIRONMENT"):
            cfg.environment = env["HOSTSCALE_ENVIRONMENT"]

        # Logging
        if env.get("HOSTSCALE_LOG_LEVEL"):
            cfg.logging.log_level = env["HOSTSCALE_LOG_LEVEL"].upper()
        if env.get("HOSTSCALE_LOG_FILE"):
            cfg.logging.log_file_path = env["HOSTSCALE_LOG_FILE"]
            cfg.logging.enable_file_logging = True

        # Detection
        if env.get("HOSTSCALE_METADATA_TIMEOUT"):
            cfg.detection.metadata_timeout = float(env["HOSTSCALE_METADATA_TIMEOUT"])
        if env.get("HOSTSCALE_PROBE_METADATA"):
            cfg.detection.probe_metadata = _as_bool(env["HOSTSCALE_PROBE_METADATA"])
        if env.get("HOSTSCALE_DETECTION_CACHE_TTL"):
            cfg.detection.cache_ttl_seconds = int(env["HOSTSCALE_DETECTION_CACHE_TTL"])

        # Kubernetes
        if env.get("HOSTSCALE_KUBECTL_PATH"):
            cfg.kubernetes.kubectl_path = env["HOSTSCALE_KUBECTL_PATH"]
        if env.get("HOSTSCALE_NAMESPACE_PREFIX"):
            cfg.kubernetes.namespace_prefix = env["HOSTSCALE_NAMESPACE_PREFIX"]
        if env.get("HOSTSCALE_KUBECTL_TIMEOUT"):
            cfg.kubernetes.command_timeout_seconds = float(env["HOSTSCALE_KUBECTL_TIMEOUT"])

        # Managed databases
        db_timeout = env.get("HOSTSCALE_DB_TIMEOUT") or env.get("MANAGED_DB_TIMEOUT")
        if db_timeout:
            cfg.databases.operation_timeout_seconds = float(db_timeout)
        if env.get("MANAGED_DB_AUTO_TEST"):
            cfg.databases.auto_test_connection = _as_bool(env["MANAGED_DB_AUTO_TEST"])
        if env.get("MANAGED_DB_ENFORCE_SSL"):
            cfg.databases.enforce_ssl = _as_bool(env["MANAGED_DB_ENFORCE_SSL"])

        for provider, key, var in _CREDENTIAL_ENV:
            if env.get(var):
                cfg.databases.providers.setdefault(provider, ProviderSettings()).credentials[key] = env[var]
        for provider, var in _REGION_ENV.items():
            if env.get(var):
                cfg.databases.providers.setdefault(provider, ProviderSettings()).default_region = env[var]
        for provider, var in _ENABLED_ENV.items():
            if env.get(var):
                cfg.databases.providers.setdefault(provider, ProviderSettings()).enabled = _as_bool(env[var])

        # Security / storage
        if env.get("HOSTSCALE_SECRET_KEY"):
            cfg.security.secret_key = env["HOSTSCALE_SECRET_KEY"]
        if env.get("HOSTSCALE_METADATA_PATH"):
            cfg.storage.metadata_path = env["HOSTSCALE_METADATA_PATH"]

    def validate(self) -> bool:
        """Validate current configuration"""
        cfg = self._config

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if cfg.logging.log_level not in valid_levels:
            raise ValidationError(
                f"Invalid log level: {cfg.logging.log_level}",
                field="logging.log_level",
                value=cfg.logging.log_level,
                context={"valid_levels": valid_levels}
            )

        if cfg.detection.metadata_timeout <= 0:
            raise ValidationError(
                "metadata_timeout must be positive",
                field="detection.metadata_timeout",
                value=cfg.detection.metadata_timeout
            )

        if cfg.kubernetes.command_timeout_seconds <= 0:
            raise ValidationError(
                "command_timeout_seconds must be positive",
                field="kubernetes.command_timeout_seconds",
                value=cfg.kubernetes.command_timeout_seconds
            )

        if cfg.databases.operation_timeout_seconds <= 0:
            raise ValidationError(
                "operation_timeout_seconds must be positive",
                field="databases.operation_timeout_seconds",
                value=cfg.databases.operation_timeout_seconds
            )

        if cfg.databases.poll_interval_seconds <= 0:
            raise ValidationError(
                "poll_interval_seconds must be positive",
                field="databases.poll_interval_seconds",
                value=cfg.databases.poll_interval_seconds
            )

        unknown = sorted(set(cfg.databases.providers) - set(KNOWN_PROVIDERS))
        if unknown:
            raise ValidationError(
                f"Unknown managed database providers: {', '.join(unknown)}",
                field="databases.providers",
                value=unknown,
                context={"valid_providers": list(KNOWN_PROVIDERS)}
            )

        unknown = sorted(set(cfg.kubernetes.vertical_scaling) - set(KNOWN_PROVIDERS))
        if unknown:
            raise ValidationError(
                f"Unknown providers in kubernetes.vertical_scaling: {', '.join(unknown)}",
                field="kubernetes.vertical_scaling",
                value=unknown
            )

        return True

    def save_config(self, path: Optional[Union[str, Path]] = None, format: str = "toml") -> Path:
        """
        Save current configuration to file.

        Args:
            path: Path to save configuration
            format: File format (toml or json)
        """
        path = Path(path) if path else Path.cwd() / f"hostscale.{format}"
        config_dict = _drop_none(asdict(self.config))

        try:
            if format.lower() == "json":
                with open(path, 'w') as f:
                    json.dump(config_dict, f, indent=2, default=str)
            elif format.lower() in ["toml", "tml"]:
                with open(path, 'w') as f:
                    toml.dump(config_dict, f)
            else:
                raise ConfigurationError(f"Unsupported format: {format}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save config to {path}: {e}", config_file=str(path)) from e

        logger.info(f"Configuration saved to {path}")
        return path

    def update_config(self, updates: Dict[str, Any]) -> None:
        """Update configuration with new values"""
        self._merge_config_data(updates)
        self.validate()

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults"""
        self._config = HostscaleConfig()
        logger.info("Configuration reset to defaults")

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration"""
        cfg = self.config
        return {
            "environment": cfg.environment,
            "config_file": str(self.config_file_path) if self.config_file_path else None,
            "log_level": cfg.logging.log_level,
            "kubectl_path": cfg.kubernetes.kubectl_path,
            "namespace_prefix": cfg.kubernetes.namespace_prefix,
            "metadata_probe": cfg.detection.probe_metadata,
            "db_operation_timeout": cfg.databases.operation_timeout_seconds,
            "enabled_database_providers": sorted(
                name for name, settings in cfg.databases.providers.items() if settings.enabled
            ),
        }


def _merge_into(target: Any, data: Dict[str, Any]) -> None:
    """Recursively copy known keys of ``data`` onto a config dataclass"""
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue

        current = getattr(target, key)
        if is_dataclass(current) and isinstance(value, dict):
            _merge_into(current, value)
        elif key == "providers" and isinstance(value, dict):
            for name, provider_data in value.items():
                settings = current.setdefault(name, ProviderSettings())
                if isinstance(provider_data, dict):
                    for pkey, pvalue in provider_data.items():
                        if pkey in ("credentials", "defaults") and isinstance(pvalue, dict):
                            getattr(settings, pkey).update(pvalue)
                        elif hasattr(settings, pkey):
                            setattr(settings, pkey, pvalue)
        elif isinstance(current, dict) and isinstance(value, dict):
            current.update(value)
        else:
            setattr(target, key, value)


def _drop_none(data: Any) -> Any:
    # TOML has no null
    if isinstance(data, dict):
        return {k: _drop_none(v) for k, v in data.items() if v is not None}
    return data


# Global configuration manager instance
config_manager = ConfigManager()


def get_config() -> HostscaleConfig:
    """Current configuration, loaded on first access"""
    return config_manager.config


def reload_config(config_path: Optional[Union[str, Path]] = None) -> HostscaleConfig:
    """Reload configuration from sources"""
    return config_manager.load_config(config_path)


def get_config_value(key_path: str, default: Any = None) -> Any:
    """
    Get a configuration value using dot notation.

    Args:
        key_path: Dot-separated path (e.g., "kubernetes.kubectl_path")
        default: Default value if key not found
    """
    value: Any = get_config()
    try:
        for key in key_path.split('.'):
            value = value[key] if isinstance(value, dict) else getattr(value, key)
        return value
    except (AttributeError, KeyError):
        return default


def configure_logging(config: Optional[HostscaleConfig] = None) -> None:
    """Configure Python logging based on hostscale configuration"""
    log_config = (config or get_config()).logging

    logger = logging.getLogger("hostscale")
    logger.setLevel(getattr(logging, log_config.log_level))
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(log_config.log_format))
    logger.addHandler(console_handler)

    if log_config.enable_file_logging and log_config.log_file_path:
        from logging.handlers import RotatingFileHandler

        file_handler = RotatingFileHandler(
            log_config.log_file_path,
            maxBytes=log_config.max_log_file_size_mb * 1024 * 1024,
            backupCount=log_config.log_rotation_count
        )
        file_handler.setFormatter(logging.Formatter(log_config.log_format))
        logger.addHandler(file_handler)

    logger.propagate = False
