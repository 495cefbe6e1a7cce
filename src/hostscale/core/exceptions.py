"""
hostscale Core Exceptions

Error taxonomy shared by detection, scaling and managed-database code.
Every error carries a code, optional guidance for the operator and a
context dictionary that ends up in logs and notifications.
"""

from typing import Optional, List, Dict, Any


class HostscaleError(Exception):
    """
    Base exception for all hostscale errors.

    Provides error codes, user guidance, and context information so the
    orchestration layer can surface a readable message without inspecting
    the concrete type.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        guidance: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.guidance = guidance
        self.context = context or {}

    def __str__(self):
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.guidance:
            result += f"\n💡 {self.guidance}"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/debugging"""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "guidance": self.guidance,
            "context": self.context
        }


class DetectionDegraded(HostscaleError):
    """A detection signal could not be evaluated; the detector falls back to a safe default"""

    def __init__(self, message: str, signal: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "DET001")
        super().__init__(message, **kwargs)
        self.signal = signal
        if signal:
            self.context["signal"] = signal


class InvalidScalingParameters(HostscaleError):
    """Scaling input rejected before any external call was made"""

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        value: Any = None,
        **kwargs
    ):
        kwargs.setdefault("error_code", "SCL001")
        super().__init__(message, **kwargs)
        if parameter:
            self.context["parameter"] = parameter
            self.context["value"] = value


class ProviderNotSupported(HostscaleError):
    """No adapter registered for a provider, or the adapter lacks a capability"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        capability: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("error_code", "PRV001")
        super().__init__(message, **kwargs)
        self.provider = provider
        if provider:
            self.context["provider"] = provider
        if capability:
            self.context["capability"] = capability


class ProviderOperationFailed(HostscaleError):
    """An external command or API call reported an error"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        cause: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("error_code", "PRV002")
        super().__init__(message, **kwargs)
        self.provider = provider
        self.operation = operation
        self.cause = cause
        if provider:
            self.context["provider"] = provider
        if operation:
            self.context["operation"] = operation
        if cause:
            self.context["cause"] = cause


class ProviderOperationTimedOut(ProviderOperationFailed):
    """An external call did not finish within its timeout"""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        kwargs.setdefault("error_code", "PRV003")
        kwargs.setdefault(
            "guidance",
            "The command may still be running on the remote side. Check the platform before retrying."
        )
        super().__init__(message, **kwargs)
        self.timeout = timeout
        if timeout is not None:
            self.context["timeout_seconds"] = timeout


class ProvisioningTimedOut(HostscaleError):
    """Provisioning still pending at timeout; the remote resource may or may not exist"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        instance_id: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs
    ):
        kwargs.setdefault("error_code", "DB001")
        kwargs.setdefault(
            "guidance",
            "Verify in the provider console whether the instance was created before provisioning again."
        )
        super().__init__(message, **kwargs)
        self.provider = provider
        self.instance_id = instance_id
        if provider:
            self.context["provider"] = provider
        if instance_id:
            self.context["instance_id"] = instance_id
        if timeout is not None:
            self.context["timeout_seconds"] = timeout


class ProvisioningInProgress(HostscaleError):
    """A provision call was refused because the instance is already being created"""

    def __init__(self, message: str, instance_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "DB002")
        super().__init__(message, **kwargs)
        if instance_id:
            self.context["instance_id"] = instance_id


class ValidationError(HostscaleError):
    """Errors related to validation of requests or configuration values"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        validation_errors: Optional[List[str]] = None,
        **kwargs
    ):
        kwargs.setdefault("error_code", "VAL001")
        super().__init__(message, **kwargs)
        if field:
            self.context["field"] = field
            self.context["value"] = value
        if validation_errors:
            self.context["validation_errors"] = validation_errors


class ConfigurationError(HostscaleError):
    """Errors related to hostscale configuration"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("error_code", "CFG001")
        super().__init__(message, **kwargs)
        if config_key:
            self.context["config_key"] = config_key
        if config_file:
            self.context["config_file"] = config_file


class StorageError(HostscaleError):
    """Local state (installation metadata) could not be read or written"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "STO001")
        super().__init__(message, **kwargs)
        if path:
            self.context["path"] = path


class SecretError(HostscaleError):
    """Encryption key missing or a stored secret cannot be decrypted"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "SEC001")
        super().__init__(message, **kwargs)


# Common error factories with helpful guidance
def provider_not_found_error(name: str, available: List[str]) -> ProviderNotSupported:
    """Factory for unknown provider names"""
    available_str = ", ".join(sorted(available)) if available else "None"
    return ProviderNotSupported(
        f"Provider not found: {name}",
        provider=name,
        guidance=f"Registered providers: {available_str}.",
        context={"available_providers": sorted(available)}
    )


def command_failed_error(provider: str, operation: str, cause: str) -> ProviderOperationFailed:
    """Factory for external command failures; the cause is kept verbatim"""
    return ProviderOperationFailed(
        f"{provider} {operation} failed: {cause}",
        provider=provider,
        operation=operation,
        cause=cause
    )
