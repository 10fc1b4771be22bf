"""Identity provider client implementations."""

from keygate.identity_providers.cognito import CognitoClient, compute_secret_hash
from keygate.identity_providers.mock import (
    MOCK_CONFIRMATION_CODE,
    MOCK_MFA_CODE,
    MockIdentityProviderClient,
    MockIdentityProviderState,
)

__all__ = [
    "CognitoClient",
    "MockIdentityProviderClient",
    "MockIdentityProviderState",
    "MOCK_CONFIRMATION_CODE",
    "MOCK_MFA_CODE",
    "compute_secret_hash",
]
