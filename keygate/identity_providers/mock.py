"""Mock identity provider client for local development without AWS Cognito.

Simulates the subset of Cognito user pool behaviour the gateway relies on:
self-service sign-up, confirmation codes, password auth with MFA
challenges, password reset, TOTP association and access tokens. Every
call is recorded so tests can assert on provider traffic.
"""

from __future__ import annotations

import secrets
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from keygate.core.identity_provider import IdentityProviderClient
from keygate.exceptions import ErrorKind, ProviderError
from keygate.identity_providers.cognito import CHALLENGE_RESPONSE_KEYS, MFA_SETTINGS_KEYS
from keygate.models import (
    AuthTokens,
    ChallengeKind,
    CodeDelivery,
    MfaChallengeSession,
    MfaKind,
    SignUpResult,
    SoftwareTokenAssociation,
    TenantConfig,
    TokenIdentity,
    UserStatus,
)

# Mock codes for development - intentionally simple
MOCK_CONFIRMATION_CODE = "123456"
MOCK_MFA_CODE = "654321"


def _mask(value: str) -> str:
    if "@" in value:
        name, domain = value.split("@", 1)
        return f"{name[:1]}***@{domain}"
    return f"***{value[-4:]}"


@dataclass
class MockUser:
    """User record held by the mock provider."""

    username: str
    password: str
    sub: str
    status: UserStatus = UserStatus.UNCONFIRMED
    attributes: dict[str, str] = field(default_factory=dict)
    code_expired: bool = False
    reset_pending: bool = False
    preferred_mfa: Optional[str] = None
    totp_secret: Optional[str] = None
    devices: list[str] = field(default_factory=list)


@dataclass
class MockCall:
    """One recorded provider call."""

    operation: str
    pool_id: str


class MockIdentityProviderState:
    """Shared in-memory state behind MockIdentityProviderClient instances.

    One state object stands in for the remote identity provider. Clients
    are created per request and share it, the same way real per-request
    clients share the remote service.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.users: dict[tuple[str, str], MockUser] = {}
        self.access_tokens: dict[str, tuple[str, str]] = {}
        self.sessions: dict[str, tuple[str, str, str]] = {}
        self.calls: list[MockCall] = []
        self.clients_opened = 0
        self.clients_closed = 0
        self.latency = 0.0
        self._failures: dict[str, Exception] = {}

    # ==================== Test helpers ====================

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call to an operation raise the given error."""
        self._failures[operation] = error

    def add_user(
        self,
        pool_id: str,
        username: str,
        password: str,
        confirmed: bool = True,
        preferred_mfa: Optional[str] = None,
        attributes: Optional[dict[str, str]] = None,
    ) -> MockUser:
        """Seed a user directly, bypassing sign-up."""
        user = MockUser(
            username=username,
            password=password,
            sub=str(uuid.uuid4()),
            status=UserStatus.CONFIRMED if confirmed else UserStatus.UNCONFIRMED,
            attributes={"email": username, **(attributes or {})},
            preferred_mfa=preferred_mfa,
        )
        with self._lock:
            self.users[(pool_id, username)] = user
        return user

    def issue_access_token(self, pool_id: str, username: str) -> str:
        token = f"mock-access-{secrets.token_hex(16)}"
        with self._lock:
            self.access_tokens[token] = (pool_id, username)
        return token

    def expire_access_token(self, token: str) -> None:
        with self._lock:
            self.access_tokens.pop(token, None)

    def expire_code(self, pool_id: str, username: str) -> None:
        with self._lock:
            self.users[(pool_id, username)].code_expired = True

    def get_user(self, pool_id: str, username: str) -> Optional[MockUser]:
        return self.users.get((pool_id, username))

    def call_count(self, operation: Optional[str] = None) -> int:
        if operation is None:
            return len(self.calls)
        return sum(1 for call in self.calls if call.operation == operation)

    # ==================== Internals ====================

    def record(self, operation: str, pool_id: str) -> None:
        with self._lock:
            self.calls.append(MockCall(operation=operation, pool_id=pool_id))
            failure = self._failures.pop(operation, None)
        if self.latency:
            time.sleep(self.latency)
        if failure is not None:
            raise failure


def _error(kind: ErrorKind, code: str, message: str, operation: str) -> ProviderError:
    # Mirror the service detail suffix real SDK messages carry
    raw = (
        f"{message} (Service: CognitoIdentityProvider, Status Code: 400, "
        f"Request ID: {uuid.uuid4()})"
    )
    return ProviderError(kind, raw, operation, code)


class MockIdentityProviderClient(IdentityProviderClient):
    """
    Mock identity provider client.

    Provides in-memory Cognito-like behaviour without AWS. Confirmation and
    reset codes are always MOCK_CONFIRMATION_CODE; MFA and TOTP codes are
    always MOCK_MFA_CODE.
    """

    def __init__(self, tenant: TenantConfig, state: MockIdentityProviderState):
        super().__init__(tenant)
        self._state = state
        self.closed = False
        with state._lock:
            state.clients_opened += 1

    @property
    def _pool(self) -> str:
        return self.tenant.pool_id

    def _user(self, username: str, operation: str) -> MockUser:
        user = self._state.users.get((self._pool, username))
        if user is None:
            raise _error(
                ErrorKind.USER_NOT_FOUND,
                "UserNotFoundException",
                "Username/client id combination not found.",
                operation,
            )
        return user

    def _token_user(self, access_token: str, operation: str) -> MockUser:
        owner = self._state.access_tokens.get(access_token)
        if owner is None or owner[0] != self._pool:
            raise _error(
                ErrorKind.NOT_AUTHORIZED,
                "NotAuthorizedException",
                "Invalid Access Token",
                operation,
            )
        return self._user(owner[1], operation)

    def _check_code(self, user: MockUser, code: str, operation: str) -> None:
        if user.code_expired:
            raise _error(
                ErrorKind.CODE_EXPIRED,
                "ExpiredCodeException",
                "Invalid code provided, please request a code again.",
                operation,
            )
        if code != MOCK_CONFIRMATION_CODE:
            raise _error(
                ErrorKind.CODE_MISMATCH,
                "CodeMismatchException",
                "Invalid verification code provided, please try again.",
                operation,
            )

    def _tokens_for(self, user: MockUser) -> AuthTokens:
        return AuthTokens(
            access_token=self._state.issue_access_token(self._pool, user.username),
            refresh_token=f"mock-refresh-{secrets.token_hex(16)}",
            id_token=f"mock-id-{secrets.token_hex(16)}",
            expires_in=3600,
        )

    # ==================== Registration ====================

    def sign_up(
        self,
        username: str,
        password: str,
        attributes: dict[str, str],
    ) -> SignUpResult:
        self._state.record("sign_up", self._pool)
        if (self._pool, username) in self._state.users:
            raise _error(
                ErrorKind.DUPLICATE_IDENTITY,
                "UsernameExistsException",
                "User already exists",
                "sign_up",
            )
        user = self._state.add_user(
            self._pool, username, password, confirmed=False, attributes=attributes
        )
        return SignUpResult(
            user_sub=user.sub,
            delivery=CodeDelivery(medium="EMAIL", destination=_mask(username), attribute="email"),
        )

    def confirm_sign_up(self, username: str, code: str) -> None:
        self._state.record("confirm_sign_up", self._pool)
        user = self._user(username, "confirm_sign_up")
        if user.status == UserStatus.CONFIRMED:
            raise _error(
                ErrorKind.NOT_AUTHORIZED,
                "NotAuthorizedException",
                "User cannot be confirmed. Current status is CONFIRMED",
                "confirm_sign_up",
            )
        self._check_code(user, code, "confirm_sign_up")
        user.status = UserStatus.CONFIRMED

    def resend_confirmation_code(self, username: str) -> CodeDelivery:
        self._state.record("resend_confirmation_code", self._pool)
        user = self._user(username, "resend_confirmation_code")
        if user.status == UserStatus.CONFIRMED:
            raise _error(
                ErrorKind.NOT_AUTHORIZED,
                "NotAuthorizedException",
                "User is already confirmed.",
                "resend_confirmation_code",
            )
        user.code_expired = False
        return CodeDelivery(medium="EMAIL", destination=_mask(username), attribute="email")

    # ==================== Authentication ====================

    def initiate_auth(
        self,
        username: str,
        password: str,
    ) -> AuthTokens | MfaChallengeSession:
        self._state.record("initiate_auth", self._pool)
        user = self._state.users.get((self._pool, username))
        if user is None or user.password != password:
            raise _error(
                ErrorKind.NOT_AUTHORIZED,
                "NotAuthorizedException",
                "Incorrect username or password.",
                "initiate_auth",
            )
        if user.status != UserStatus.CONFIRMED:
            raise _error(
                ErrorKind.USER_NOT_CONFIRMED,
                "UserNotConfirmedException",
                "User is not confirmed.",
                "initiate_auth",
            )
        if user.preferred_mfa:
            session = secrets.token_urlsafe(32)
            with self._state._lock:
                self._state.sessions[session] = (self._pool, username, user.preferred_mfa)
            parameters: dict[str, Any] = {"USER_ID_FOR_SRP": user.sub}
            if user.preferred_mfa != ChallengeKind.SOFTWARE_TOKEN_MFA.value:
                parameters["CODE_DELIVERY_DESTINATION"] = _mask(
                    user.attributes.get("phone_number", username)
                )
            return MfaChallengeSession(
                challenge_name=user.preferred_mfa,
                session=session,
                challenge_parameters=parameters,
            )
        return self._tokens_for(user)

    def respond_to_auth_challenge(
        self,
        challenge_name: str,
        session: str,
        responses: dict[str, str],
    ) -> AuthTokens | MfaChallengeSession:
        self._state.record("respond_to_auth_challenge", self._pool)
        with self._state._lock:
            issued = self._state.sessions.get(session)
        username = responses.get("USERNAME", "")
        if issued is None or issued[:2] != (self._pool, username) or issued[2] != challenge_name:
            raise _error(
                ErrorKind.NOT_AUTHORIZED,
                "NotAuthorizedException",
                "Invalid session for the user.",
                "respond_to_auth_challenge",
            )
        key = CHALLENGE_RESPONSE_KEYS.get(challenge_name)
        if key is None or key not in responses:
            raise _error(
                ErrorKind.INVALID_PARAMETER,
                "InvalidParameterException",
                f"Missing required parameter {key or 'ANSWER'}",
                "respond_to_auth_challenge",
            )
        if responses[key] != MOCK_MFA_CODE:
            raise _error(
                ErrorKind.CODE_MISMATCH,
                "CodeMismatchException",
                "Invalid code or auth state for the user.",
                "respond_to_auth_challenge",
            )
        with self._state._lock:
            self._state.sessions.pop(session, None)
        return self._tokens_for(self._user(username, "respond_to_auth_challenge"))

    # ==================== Password Reset ====================

    def forgot_password(self, username: str) -> CodeDelivery:
        self._state.record("forgot_password", self._pool)
        user = self._user(username, "forgot_password")
        user.reset_pending = True
        user.code_expired = False
        return CodeDelivery(medium="EMAIL", destination=_mask(username), attribute="email")

    def confirm_forgot_password(
        self,
        username: str,
        code: str,
        new_password: str,
    ) -> None:
        self._state.record("confirm_forgot_password", self._pool)
        user = self._user(username, "confirm_forgot_password")
        if not user.reset_pending:
            raise _error(
                ErrorKind.CODE_MISMATCH,
                "CodeMismatchException",
                "Invalid verification code provided, please try again.",
                "confirm_forgot_password",
            )
        self._check_code(user, code, "confirm_forgot_password")
        user.password = new_password
        user.reset_pending = False

    # ==================== MFA (access token) ====================

    def set_user_mfa_preference(self, access_token: str, mfa_kind: str) -> None:
        self._state.record("set_user_mfa_preference", self._pool)
        if mfa_kind not in {kind.value for kind in MFA_SETTINGS_KEYS}:
            raise _error(
                ErrorKind.INVALID_PARAMETER,
                "InvalidParameterException",
                f"Unsupported MFA type: {mfa_kind}",
                "set_user_mfa_preference",
            )
        user = self._token_user(access_token, "set_user_mfa_preference")
        if mfa_kind == MfaKind.SOFTWARE_TOKEN_MFA.value and not user.devices:
            raise _error(
                ErrorKind.INVALID_PARAMETER,
                "InvalidParameterException",
                "User has not verified software token mfa",
                "set_user_mfa_preference",
            )
        user.preferred_mfa = mfa_kind

    def update_user_attributes(
        self,
        access_token: str,
        attributes: dict[str, str],
    ) -> None:
        self._state.record("update_user_attributes", self._pool)
        user = self._token_user(access_token, "update_user_attributes")
        user.attributes.update(attributes)

    def associate_software_token(self, access_token: str) -> SoftwareTokenAssociation:
        self._state.record("associate_software_token", self._pool)
        user = self._token_user(access_token, "associate_software_token")
        user.totp_secret = secrets.token_hex(16).upper()
        return SoftwareTokenAssociation(
            secret_code=user.totp_secret,
            session=secrets.token_urlsafe(32),
        )

    def verify_software_token(
        self,
        access_token: str,
        user_code: str,
        device_name: Optional[str] = None,
    ) -> str:
        self._state.record("verify_software_token", self._pool)
        user = self._token_user(access_token, "verify_software_token")
        if user.totp_secret is None:
            raise _error(
                ErrorKind.INVALID_PARAMETER,
                "InvalidParameterException",
                "Software token has not been associated",
                "verify_software_token",
            )
        if user_code != MOCK_MFA_CODE:
            raise _error(
                ErrorKind.CODE_MISMATCH,
                "EnableSoftwareTokenMFAException",
                "Code mismatch and fail enable Software Token MFA",
                "verify_software_token",
            )
        user.devices.append(device_name or "TOTP device")
        return "SUCCESS"

    def get_user(self, access_token: str) -> TokenIdentity:
        self._state.record("get_user", self._pool)
        user = self._token_user(access_token, "get_user")
        return TokenIdentity(
            username=user.username,
            attributes={"sub": user.sub, **user.attributes},
        )

    # ==================== Lifecycle ====================

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            with self._state._lock:
                self._state.clients_closed += 1
