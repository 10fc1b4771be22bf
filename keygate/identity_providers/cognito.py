"""AWS Cognito implementation of IdentityProviderClient."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any, Callable, Optional

import boto3
import structlog
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from keygate.core.identity_provider import IdentityProviderClient
from keygate.exceptions import ErrorKind, ProviderError
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

log = structlog.get_logger()

AUTH_FLOW = "USER_PASSWORD_AUTH"

SERVICE_UNAVAILABLE_MESSAGE = "Identity service unavailable. Please contact support."

# Cognito error codes -> gateway error kinds
ERROR_KINDS: dict[str, ErrorKind] = {
    "UsernameExistsException": ErrorKind.DUPLICATE_IDENTITY,
    "AliasExistsException": ErrorKind.DUPLICATE_IDENTITY,
    "CodeMismatchException": ErrorKind.CODE_MISMATCH,
    "EnableSoftwareTokenMFAException": ErrorKind.CODE_MISMATCH,
    "ExpiredCodeException": ErrorKind.CODE_EXPIRED,
    "UserNotFoundException": ErrorKind.USER_NOT_FOUND,
    "NotAuthorizedException": ErrorKind.NOT_AUTHORIZED,
    "UserNotConfirmedException": ErrorKind.USER_NOT_CONFIRMED,
    "InvalidPasswordException": ErrorKind.INVALID_PASSWORD,
    "InvalidParameterException": ErrorKind.INVALID_PARAMETER,
    "LimitExceededException": ErrorKind.TOO_MANY_REQUESTS,
    "TooManyRequestsException": ErrorKind.TOO_MANY_REQUESTS,
    "TooManyFailedAttemptsException": ErrorKind.TOO_MANY_REQUESTS,
}

# Challenge response field for each challenge kind
CHALLENGE_RESPONSE_KEYS: dict[str, str] = {
    ChallengeKind.SMS_MFA.value: "SMS_MFA_CODE",
    ChallengeKind.SOFTWARE_TOKEN_MFA.value: "SOFTWARE_TOKEN_MFA_CODE",
    ChallengeKind.EMAIL_OTP.value: "EMAIL_OTP_CODE",
}
GENERIC_CHALLENGE_RESPONSE_KEY = "ANSWER"

# Preference settings block for each MFA kind
MFA_SETTINGS_KEYS: dict[MfaKind, str] = {
    MfaKind.SMS_MFA: "SMSMfaSettings",
    MfaKind.SOFTWARE_TOKEN_MFA: "SoftwareTokenMfaSettings",
    MfaKind.EMAIL_OTP: "EmailMfaSettings",
}


def compute_secret_hash(username: str, client_id: str, client_secret: str) -> str:
    """Compute the SECRET_HASH Cognito requires for app clients with a secret."""
    digest = hmac.new(
        client_secret.encode("utf-8"),
        (username + client_id).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


def translate_error(error: Exception, operation: str) -> ProviderError:
    """Convert a botocore exception into a sanitized ProviderError."""
    if isinstance(error, ClientError):
        details = error.response.get("Error", {})
        code = details.get("Code", "")
        kind = ERROR_KINDS.get(code, ErrorKind.PROVIDER_ERROR)
        return ProviderError(kind, details.get("Message") or str(error), operation, code)
    return ProviderError(
        ErrorKind.SERVICE_UNAVAILABLE,
        SERVICE_UNAVAILABLE_MESSAGE,
        operation,
        type(error).__name__,
    )


def _parse_code_delivery(details: Optional[dict[str, Any]]) -> CodeDelivery:
    details = details or {}
    return CodeDelivery(
        medium=details.get("DeliveryMedium"),
        destination=details.get("Destination"),
        attribute=details.get("AttributeName"),
    )


def _parse_auth_response(resp: dict[str, Any]) -> AuthTokens | MfaChallengeSession:
    if resp.get("ChallengeName"):
        return MfaChallengeSession(
            challenge_name=resp["ChallengeName"],
            session=resp.get("Session", ""),
            challenge_parameters=resp.get("ChallengeParameters") or {},
        )

    result = resp.get("AuthenticationResult", {})
    return AuthTokens(
        access_token=result.get("AccessToken", ""),
        refresh_token=result.get("RefreshToken", ""),
        id_token=result.get("IdToken", ""),
        expires_in=result.get("ExpiresIn", 3600),
        token_type=result.get("TokenType", "Bearer"),
    )


class CognitoClient(IdentityProviderClient):
    """AWS Cognito client bound to one tenant's user pool.

    The underlying boto3 client is unsigned: the tenant's pool and app
    client identifiers are the only credentials, so no ambient AWS
    credentials from the host environment are ever attached.

    Args:
        tenant: Resolved tenant configuration
        endpoint_url: Custom endpoint URL for LocalStack or other AWS-compatible services
        client: Pre-built boto3 cognito-idp client (tests)

    Note:
        Obtain instances through CredentialBinder.bind() so the client is
        closed when the request ends.
    """

    def __init__(
        self,
        tenant: TenantConfig,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ):
        super().__init__(tenant)
        if client is None:
            client_kwargs: dict[str, Any] = {
                "region_name": tenant.region,
                "config": Config(signature_version=UNSIGNED),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            try:
                client = boto3.client("cognito-idp", **client_kwargs)
            except BotoCoreError as e:
                error = translate_error(e, "create_client")
                log.warning(
                    "cognito_client_init_failed",
                    pool_id=tenant.pool_id,
                    region=tenant.region,
                    provider_code=error.provider_code,
                )
                raise error from e
        self._client = client

    def _call(self, operation: str, method: Callable[..., dict[str, Any]], **kwargs) -> dict[str, Any]:
        try:
            return method(**kwargs)
        except (ClientError, BotoCoreError) as e:
            error = translate_error(e, operation)
            log.info(
                "cognito_call_failed",
                operation=operation,
                pool_id=self.tenant.pool_id,
                provider_code=error.provider_code,
                error=error.message,
            )
            raise error from e

    def _with_secret_hash(self, username: str, params: dict[str, Any], key: str) -> dict[str, Any]:
        if self.tenant.client_secret:
            params[key] = compute_secret_hash(
                username, self.tenant.client_id, self.tenant.client_secret
            )
        return params

    # ==================== Registration ====================

    def sign_up(
        self,
        username: str,
        password: str,
        attributes: dict[str, str],
    ) -> SignUpResult:
        params = self._with_secret_hash(
            username,
            {
                "ClientId": self.tenant.client_id,
                "Username": username,
                "Password": password,
                "UserAttributes": [
                    {"Name": name, "Value": value} for name, value in attributes.items()
                ],
            },
            "SecretHash",
        )
        resp = self._call("sign_up", self._client.sign_up, **params)

        confirmed = bool(resp.get("UserConfirmed", False))
        return SignUpResult(
            user_sub=resp.get("UserSub", ""),
            status=UserStatus.CONFIRMED if confirmed else UserStatus.UNCONFIRMED,
            confirmation_required=not confirmed,
            delivery=(
                _parse_code_delivery(resp["CodeDeliveryDetails"])
                if resp.get("CodeDeliveryDetails")
                else None
            ),
        )

    def confirm_sign_up(self, username: str, code: str) -> None:
        params = self._with_secret_hash(
            username,
            {
                "ClientId": self.tenant.client_id,
                "Username": username,
                "ConfirmationCode": code,
            },
            "SecretHash",
        )
        self._call("confirm_sign_up", self._client.confirm_sign_up, **params)

    def resend_confirmation_code(self, username: str) -> CodeDelivery:
        params = self._with_secret_hash(
            username,
            {"ClientId": self.tenant.client_id, "Username": username},
            "SecretHash",
        )
        resp = self._call(
            "resend_confirmation_code", self._client.resend_confirmation_code, **params
        )
        return _parse_code_delivery(resp.get("CodeDeliveryDetails"))

    # ==================== Authentication ====================

    def initiate_auth(
        self,
        username: str,
        password: str,
    ) -> AuthTokens | MfaChallengeSession:
        auth_params = self._with_secret_hash(
            username,
            {"USERNAME": username, "PASSWORD": password},
            "SECRET_HASH",
        )
        resp = self._call(
            "initiate_auth",
            self._client.initiate_auth,
            ClientId=self.tenant.client_id,
            AuthFlow=AUTH_FLOW,
            AuthParameters=auth_params,
        )
        return _parse_auth_response(resp)

    def respond_to_auth_challenge(
        self,
        challenge_name: str,
        session: str,
        responses: dict[str, str],
    ) -> AuthTokens | MfaChallengeSession:
        responses = dict(responses)
        if "USERNAME" in responses:
            responses = self._with_secret_hash(responses["USERNAME"], responses, "SECRET_HASH")
        resp = self._call(
            "respond_to_auth_challenge",
            self._client.respond_to_auth_challenge,
            ClientId=self.tenant.client_id,
            ChallengeName=challenge_name,
            Session=session,
            ChallengeResponses=responses,
        )
        return _parse_auth_response(resp)

    # ==================== Password Reset ====================

    def forgot_password(self, username: str) -> CodeDelivery:
        params = self._with_secret_hash(
            username,
            {"ClientId": self.tenant.client_id, "Username": username},
            "SecretHash",
        )
        resp = self._call("forgot_password", self._client.forgot_password, **params)
        return _parse_code_delivery(resp.get("CodeDeliveryDetails"))

    def confirm_forgot_password(
        self,
        username: str,
        code: str,
        new_password: str,
    ) -> None:
        params = self._with_secret_hash(
            username,
            {
                "ClientId": self.tenant.client_id,
                "Username": username,
                "ConfirmationCode": code,
                "Password": new_password,
            },
            "SecretHash",
        )
        self._call("confirm_forgot_password", self._client.confirm_forgot_password, **params)

    # ==================== MFA (access token) ====================

    def set_user_mfa_preference(self, access_token: str, mfa_kind: str) -> None:
        try:
            settings_key = MFA_SETTINGS_KEYS[MfaKind(mfa_kind)]
        except ValueError:
            raise ProviderError(
                ErrorKind.INVALID_PARAMETER,
                f"Unsupported MFA type: {mfa_kind}",
                "set_user_mfa_preference",
            )
        self._call(
            "set_user_mfa_preference",
            self._client.set_user_mfa_preference,
            AccessToken=access_token,
            **{settings_key: {"Enabled": True, "PreferredMfa": True}},
        )

    def update_user_attributes(
        self,
        access_token: str,
        attributes: dict[str, str],
    ) -> None:
        self._call(
            "update_user_attributes",
            self._client.update_user_attributes,
            AccessToken=access_token,
            UserAttributes=[{"Name": name, "Value": value} for name, value in attributes.items()],
        )

    def associate_software_token(self, access_token: str) -> SoftwareTokenAssociation:
        resp = self._call(
            "associate_software_token",
            self._client.associate_software_token,
            AccessToken=access_token,
        )
        return SoftwareTokenAssociation(
            secret_code=resp.get("SecretCode", ""),
            session=resp.get("Session"),
        )

    def verify_software_token(
        self,
        access_token: str,
        user_code: str,
        device_name: Optional[str] = None,
    ) -> str:
        params: dict[str, Any] = {"AccessToken": access_token, "UserCode": user_code}
        if device_name:
            params["FriendlyDeviceName"] = device_name
        resp = self._call(
            "verify_software_token", self._client.verify_software_token, **params
        )
        return resp.get("Status", "SUCCESS")

    def get_user(self, access_token: str) -> TokenIdentity:
        resp = self._call("get_user", self._client.get_user, AccessToken=access_token)
        return TokenIdentity(
            username=resp.get("Username", ""),
            attributes={
                attr["Name"]: attr.get("Value", "") for attr in resp.get("UserAttributes", [])
            },
        )

    # ==================== Lifecycle ====================

    def close(self) -> None:
        self._client.close()
