"""
hostscale Core Module

Configuration, error taxonomy, installation metadata and notifications
shared by every other hostscale component.
"""

# Configuration management
from .config import (
    HostscaleConfig,
    ConfigManager,
    ProviderSettings,
    config_manager,
    get_config,
    get_config_value,
    reload_config,
    configure_logging,
)

# Exception hierarchy
from .exceptions import (
    HostscaleError,
    DetectionDegraded,
    InvalidScalingParameters,
    ProviderNotSupported,
    ProviderOperationFailed,
    ProviderOperationTimedOut,
    ProvisioningTimedOut,
    ProvisioningInProgress,
    ValidationError,
    ConfigurationError,
    StorageError,
    SecretError,
)

from .metadata import InstallationMetadata, MetadataEntry
from .notifications import Notification, NotificationStatus

__all__ = [
    # Configuration
    "HostscaleConfig",
    "ConfigManager",
    "ProviderSettings",
    "config_manager",
    "get_config",
    "get_config_value",
    "reload_config",
    "configure_logging",

    # Exceptions
    "HostscaleError",
    "DetectionDegraded",
    "InvalidScalingParameters",
    "ProviderNotSupported",
    "ProviderOperationFailed",
    "ProviderOperationTimedOut",
    "ProvisioningTimedOut",
    "ProvisioningInProgress",
    "ValidationError",
    "ConfigurationError",
    "StorageError",
    "SecretError",

    # State
    "InstallationMetadata",
    "MetadataEntry",
    "Notification",
    "NotificationStatus",
]
