"""Core abstractions for the Keygate authentication gateway."""

from keygate.core.activity_store import ActivityLogStore
from keygate.core.identity_provider import IdentityProviderClient
from keygate.core.secret_cipher import SecretCipher
from keygate.core.tenant_registry import TenantRegistry
from keygate.core.factory import create_gateway

__all__ = [
    "ActivityLogStore",
    "IdentityProviderClient",
    "SecretCipher",
    "TenantRegistry",
    "create_gateway",
]
