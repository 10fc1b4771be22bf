"""Abstract identity provider client interface.

This module defines the calls the gateway makes against an identity
provider on behalf of one tenant. A client instance is bound to a single
tenant's region, pool and app client, lives for one request, and is
closed when the request ends.

Methods are synchronous; the flow engine runs them off the event loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from keygate.models import (
    AuthTokens,
    CodeDelivery,
    MfaChallengeSession,
    SignUpResult,
    SoftwareTokenAssociation,
    TenantConfig,
    TokenIdentity,
)


class IdentityProviderClient(ABC):
    """Tenant-scoped client for identity provider operations.

    Implementations:
        - CognitoClient: AWS Cognito user pools
        - MockIdentityProviderClient: In-memory for testing

    All methods raise ProviderError on provider-side failures.
    """

    def __init__(self, tenant: TenantConfig):
        self.tenant = tenant

    # ==================== Registration ====================

    @abstractmethod
    def sign_up(
        self,
        username: str,
        password: str,
        attributes: dict[str, str],
    ) -> SignUpResult:
        """Self-service sign-up.

        Args:
            username: Username (the email address)
            password: Initial password
            attributes: User attributes, already merged and filtered

        Returns:
            SignUpResult with the provisional user id
        """

    @abstractmethod
    def confirm_sign_up(self, username: str, code: str) -> None:
        """Confirm a pending registration with the emailed code."""

    @abstractmethod
    def resend_confirmation_code(self, username: str) -> CodeDelivery:
        """Send a new confirmation code for an unconfirmed account."""

    # ==================== Authentication ====================

    @abstractmethod
    def initiate_auth(
        self,
        username: str,
        password: str,
    ) -> AuthTokens | MfaChallengeSession:
        """Start a password authentication.

        Returns:
            AuthTokens when authentication completes, or
            MfaChallengeSession when the provider asks for a second factor
        """

    @abstractmethod
    def respond_to_auth_challenge(
        self,
        challenge_name: str,
        session: str,
        responses: dict[str, str],
    ) -> AuthTokens | MfaChallengeSession:
        """Answer a challenge issued by initiate_auth.

        Args:
            challenge_name: Challenge name exactly as issued
            session: Session token exactly as issued
            responses: Challenge responses, including USERNAME
        """

    # ==================== Password Reset ====================

    @abstractmethod
    def forgot_password(self, username: str) -> CodeDelivery:
        """Send a password reset code."""

    @abstractmethod
    def confirm_forgot_password(
        self,
        username: str,
        code: str,
        new_password: str,
    ) -> None:
        """Exchange a reset code and new password for a completed reset."""

    # ==================== MFA (access token) ====================

    @abstractmethod
    def set_user_mfa_preference(self, access_token: str, mfa_kind: str) -> None:
        """Enable and prefer one MFA kind for the token's user."""

    @abstractmethod
    def update_user_attributes(
        self,
        access_token: str,
        attributes: dict[str, str],
    ) -> None:
        """Update attributes of the token's user."""

    @abstractmethod
    def associate_software_token(self, access_token: str) -> SoftwareTokenAssociation:
        """Request a new TOTP secret for the token's user."""

    @abstractmethod
    def verify_software_token(
        self,
        access_token: str,
        user_code: str,
        device_name: Optional[str] = None,
    ) -> str:
        """Verify a TOTP code and register the device.

        Returns:
            Provider verification status (e.g. SUCCESS)
        """

    @abstractmethod
    def get_user(self, access_token: str) -> TokenIdentity:
        """Resolve an access token to its user."""

    # ==================== Lifecycle ====================

    @abstractmethod
    def close(self) -> None:
        """Release the underlying transport."""
