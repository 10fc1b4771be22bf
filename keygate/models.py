"""Gateway models - tenant, flow and audit data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

# Actor recorded when the caller's identity is not known
UNKNOWN_ACTOR = "UNKNOWN"


class UserStatus(str, Enum):
    """User account status in identity provider."""

    UNCONFIRMED = "UNCONFIRMED"
    CONFIRMED = "CONFIRMED"


class ChallengeKind(str, Enum):
    """Second-factor challenges the gateway knows how to answer."""

    SMS_MFA = "SMS_MFA"
    SOFTWARE_TOKEN_MFA = "SOFTWARE_TOKEN_MFA"
    EMAIL_OTP = "EMAIL_OTP"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ChallengeKind"]:
        """Return the matching kind, or None for names outside the set."""
        try:
            return cls(value)
        except ValueError:
            return None


class MfaKind(str, Enum):
    """Second factor a user can mark as preferred."""

    SMS_MFA = "SMS_MFA"
    SOFTWARE_TOKEN_MFA = "SOFTWARE_TOKEN_MFA"
    EMAIL_OTP = "EMAIL_OTP"


class ActivityKind(str, Enum):
    """Flow attempts recorded in the activity log."""

    REGISTER = "REGISTER"
    VERIFY = "VERIFY"
    RESEND_OTP = "RESEND_OTP"
    LOGIN = "LOGIN"
    FORGOT_PASSWORD_REQUEST = "FORGOT_PASSWORD_REQUEST"
    RESET_PASSWORD = "RESET_PASSWORD"
    MFA_SETUP = "MFA_SETUP"
    MFA_TOKEN_ASSOCIATE = "MFA_TOKEN_ASSOCIATE"
    MFA_TOKEN_VERIFY = "MFA_TOKEN_VERIFY"
    MFA_VERIFY = "MFA_VERIFY"
    TOKEN_INTROSPECT = "TOKEN_INTROSPECT"


class Outcome(str, Enum):
    """Result of a logged flow attempt."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass
class TenantConfig:
    """Configuration for one tenant integration.

    The tenant key is the public token callers present in the tenant-key
    header. The client secret is only ever held here in decrypted form.
    """

    id: str
    tenant_key: str  # Canonical UUID string
    name: str
    region: str  # Provider region
    pool_id: str  # Provider-specific pool identifier
    client_id: str  # Provider-specific client identifier
    client_secret: Optional[str] = field(default=None, repr=False)
    enabled: bool = True


@dataclass
class RequestContext:
    """Per-request state handed explicitly through a flow."""

    tenant: TenantConfig
    caller_ip: Optional[str] = None
    request_id: str = ""


@dataclass
class AuthTokens:
    """Tokens from a completed authentication."""

    access_token: str
    refresh_token: str
    id_token: str
    expires_in: int
    token_type: str = "Bearer"


@dataclass
class MfaChallengeSession:
    """Challenge returned by the provider in place of tokens.

    The session is opaque and must be sent back verbatim with the
    challenge response.
    """

    challenge_name: str
    session: str
    challenge_parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[ChallengeKind]:
        return ChallengeKind.parse(self.challenge_name)


@dataclass
class CodeDelivery:
    """Where a confirmation or reset code was sent."""

    medium: Optional[str] = None
    destination: Optional[str] = None
    attribute: Optional[str] = None


@dataclass
class SignUpResult:
    """Result of a self-service sign-up."""

    user_sub: str
    status: UserStatus = UserStatus.UNCONFIRMED
    confirmation_required: bool = True
    delivery: Optional[CodeDelivery] = None


@dataclass
class SoftwareTokenAssociation:
    """New TOTP secret bound to an authenticated user."""

    secret_code: str
    session: Optional[str] = None


@dataclass
class TokenIdentity:
    """Identity an access token resolves to."""

    username: str
    attributes: dict[str, str] = field(default_factory=dict)

    @property
    def email(self) -> Optional[str]:
        return self.attributes.get("email")


@dataclass(frozen=True)
class ActivityLogEntry:
    """Immutable audit record for one flow attempt."""

    id: str
    activity: ActivityKind
    actor: str
    pool_id: str
    tenant_name: str
    outcome: Outcome
    created_at: datetime
    error_detail: Optional[str] = None
    caller_ip: Optional[str] = None
