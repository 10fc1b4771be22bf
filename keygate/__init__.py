"""Keygate - multi-tenant authentication gateway for AWS Cognito.

Keygate resolves the calling application from a tenant key header, binds
a per-request Cognito client to that tenant's user pool, runs the
requested flow and records exactly one activity entry per attempt.

Features:
- Tenant resolution from the X-APP-KEY header (UUID), per request
- Sign-up, confirmation, login, password reset
- MFA preference, TOTP association/verification, challenge responses
- Access token introspection
- Append-only activity log with sanitized error details
"""

from keygate.activity import ActivityLogger, extract_client_ip
from keygate.binder import CredentialBinder
from keygate.config import GatewaySettings
from keygate.core import (
    ActivityLogStore,
    IdentityProviderClient,
    SecretCipher,
    TenantRegistry,
    create_gateway,
)
from keygate.engine import AuthFlowEngine
from keygate.exceptions import (
    ActivityStoreError,
    ErrorKind,
    KeygateError,
    MalformedTenantKeyError,
    MissingTenantKeyError,
    ProviderError,
    RegistryError,
    SecretCipherError,
    TenantDisabledError,
    TenantResolutionError,
    UnknownTenantError,
    sanitize_message,
)
from keygate.gate import TENANT_KEY_HEADER, TenantGate
from keygate.gateway import AuthGateway, GatewayResponse
from keygate.models import (
    UNKNOWN_ACTOR,
    ActivityKind,
    ActivityLogEntry,
    AuthTokens,
    ChallengeKind,
    CodeDelivery,
    MfaChallengeSession,
    MfaKind,
    Outcome,
    RequestContext,
    SignUpResult,
    SoftwareTokenAssociation,
    TenantConfig,
    TokenIdentity,
    UserStatus,
)
from keygate.results import FlowError, FlowResult

__version__ = "0.1.0"

__all__ = [
    # Core interfaces
    "ActivityLogStore",
    "IdentityProviderClient",
    "SecretCipher",
    "TenantRegistry",
    # Entry point
    "create_gateway",
    "GatewaySettings",
    "AuthGateway",
    "GatewayResponse",
    # Components
    "ActivityLogger",
    "AuthFlowEngine",
    "CredentialBinder",
    "TenantGate",
    "TENANT_KEY_HEADER",
    "extract_client_ip",
    # Results
    "FlowError",
    "FlowResult",
    # Models
    "ActivityKind",
    "ActivityLogEntry",
    "AuthTokens",
    "ChallengeKind",
    "CodeDelivery",
    "MfaChallengeSession",
    "MfaKind",
    "Outcome",
    "RequestContext",
    "SignUpResult",
    "SoftwareTokenAssociation",
    "TenantConfig",
    "TokenIdentity",
    "UNKNOWN_ACTOR",
    "UserStatus",
    # Exceptions
    "KeygateError",
    "ErrorKind",
    "ProviderError",
    "TenantResolutionError",
    "MissingTenantKeyError",
    "MalformedTenantKeyError",
    "UnknownTenantError",
    "TenantDisabledError",
    "RegistryError",
    "ActivityStoreError",
    "SecretCipherError",
    "sanitize_message",
]
