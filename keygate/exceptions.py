"""Keygate exceptions.

All exceptions inherit from KeygateError for easy catching.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

# Upstream messages carry service metadata from this marker onward
SERVICE_DETAIL_MARKER = "(Service:"

UNKNOWN_ERROR_MESSAGE = "Unknown error"


def sanitize_message(message: Optional[str]) -> str:
    """Strip upstream service details from a provider error message."""
    if not message:
        return UNKNOWN_ERROR_MESSAGE
    index = message.find(SERVICE_DETAIL_MARKER)
    if index >= 0:
        message = message[:index]
    return message.strip() or UNKNOWN_ERROR_MESSAGE


class ErrorKind(str, Enum):
    """Machine-readable failure tags returned by flow operations."""

    DUPLICATE_IDENTITY = "DUPLICATE_IDENTITY"
    CODE_MISMATCH = "CODE_MISMATCH"
    CODE_EXPIRED = "CODE_EXPIRED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    USER_NOT_CONFIRMED = "USER_NOT_CONFIRMED"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INTERNAL = "INTERNAL"


class KeygateError(Exception):
    """Base exception for Keygate errors."""

    def __init__(self, message: str, code: str):
        self.message = message
        self.code = code
        super().__init__(message)


# ==================== Tenant Resolution Errors ====================


class TenantResolutionError(KeygateError):
    """Base class for rejections raised before any provider call."""

    status_code = 401


class MissingTenantKeyError(TenantResolutionError):
    """Raised when the tenant-key header is absent or blank."""

    def __init__(self, header_name: str = "X-APP-KEY"):
        super().__init__(
            message=f"Missing {header_name} header",
            code="TENANT_KEY_MISSING",
        )
        self.header_name = header_name


class MalformedTenantKeyError(TenantResolutionError):
    """Raised when the tenant key is not a valid UUID."""

    def __init__(self, tenant_key: str, header_name: str = "X-APP-KEY"):
        super().__init__(
            message=f"Invalid {header_name} format",
            code="TENANT_KEY_MALFORMED",
        )
        self.tenant_key = tenant_key


class UnknownTenantError(TenantResolutionError):
    """Raised when no tenant is registered under the key."""

    def __init__(self, tenant_key: str, header_name: str = "X-APP-KEY"):
        super().__init__(
            message=f"Invalid {header_name}",
            code="TENANT_UNKNOWN",
        )
        self.tenant_key = tenant_key


class TenantDisabledError(TenantResolutionError):
    """Raised when the tenant exists but is disabled."""

    status_code = 403

    def __init__(self, tenant_key: str):
        super().__init__(message="App is disabled", code="TENANT_DISABLED")
        self.tenant_key = tenant_key


# ==================== Provider Errors ====================


class ProviderError(KeygateError):
    """Raised by provider clients when an identity-provider call fails.

    The message is sanitized before the exception is built.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str],
        operation: str,
        provider_code: Optional[str] = None,
    ):
        super().__init__(message=sanitize_message(message), code=kind.value)
        self.kind = kind
        self.operation = operation
        self.provider_code = provider_code


# ==================== Collaborator Errors ====================


class RegistryError(KeygateError):
    """Raised when the tenant registry cannot be read."""

    def __init__(self, message: str):
        super().__init__(message=message, code="REGISTRY_ERROR")


class ActivityStoreError(KeygateError):
    """Raised when an activity entry cannot be written."""

    def __init__(self, message: str):
        super().__init__(message=message, code="ACTIVITY_STORE_ERROR")


class SecretCipherError(KeygateError):
    """Raised when a stored secret cannot be encrypted or decrypted."""

    def __init__(self, message: str):
        super().__init__(message=message, code="SECRET_CIPHER_ERROR")
