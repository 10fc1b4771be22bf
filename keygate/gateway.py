"""Gateway boundary - maps inbound requests onto gate + engine calls.

The gateway is framework-agnostic: a host web framework hands it the
operation name, the request headers and the decoded JSON payload, and
serializes the returned GatewayResponse. Bodies use the envelope

    {"success": bool, "message": str, "data": dict | None}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

import structlog

from keygate.engine import AuthFlowEngine
from keygate.exceptions import ErrorKind, TenantResolutionError
from keygate.gate import TenantGate
from keygate.models import (
    AuthTokens,
    CodeDelivery,
    MfaChallengeSession,
    RequestContext,
    SignUpResult,
    SoftwareTokenAssociation,
    TokenIdentity,
)
from keygate.results import FlowResult

log = structlog.get_logger()

RESEND_ENDPOINT = "/api/auth/resend-otp"

# Operations authenticated by an access token rather than credentials
ACCESS_TOKEN_OPERATIONS = frozenset(
    {"mfa/setup", "mfa/associate-token", "mfa/verify-token", "token/introspect"}
)

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.INTERNAL: 500,
}

FAILURE_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.DUPLICATE_IDENTITY: "User with this email already exists",
    ErrorKind.CODE_MISMATCH: "Invalid verification code",
    ErrorKind.CODE_EXPIRED: "Verification code has expired. Please request a new code.",
    ErrorKind.USER_NOT_FOUND: "User not found",
    ErrorKind.NOT_AUTHORIZED: "Invalid credentials",
    ErrorKind.USER_NOT_CONFIRMED: "User is not confirmed",
    ErrorKind.INVALID_PASSWORD: "Password does not meet the pool's policy",
    ErrorKind.INVALID_PARAMETER: "Invalid request parameters",
    ErrorKind.TOO_MANY_REQUESTS: "Too many requests. Please try again later.",
    ErrorKind.SERVICE_UNAVAILABLE: "Identity service unavailable. Please contact support.",
    ErrorKind.TIMEOUT: "Identity service did not respond in time",
    ErrorKind.PROVIDER_ERROR: "Identity service rejected the request",
    ErrorKind.INTERNAL: "An unexpected error occurred",
}

VERIFY_HINTS: dict[ErrorKind, tuple[str, str]] = {
    ErrorKind.CODE_EXPIRED: (
        "Verification code has expired. Please request a new code.",
        "Please use the resend OTP endpoint to get a new code",
    ),
    ErrorKind.CODE_MISMATCH: (
        "Invalid confirmation code. Please check and try again.",
        "Please check the code and try again, or request a new code",
    ),
}


@dataclass
class GatewayResponse:
    """Status code and JSON-serializable body for the host framework."""

    status_code: int
    body: dict[str, Any]


def envelope(success: bool, message: str, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    return {"success": success, "message": message, "data": data}


def _delivery_data(delivery: Optional[CodeDelivery]) -> dict[str, Any]:
    if delivery is None:
        return {}
    return {"deliveryMedium": delivery.medium, "destination": delivery.destination}


def _tokens_data(tokens: AuthTokens) -> dict[str, Any]:
    return {
        "accessToken": tokens.access_token,
        "refreshToken": tokens.refresh_token,
        "idToken": tokens.id_token,
        "expiresIn": str(tokens.expires_in),
        "tokenType": tokens.token_type,
    }


def _challenge_data(challenge: MfaChallengeSession) -> dict[str, Any]:
    return {
        "challengeName": challenge.challenge_name,
        "session": challenge.session,
        "challengeParameters": challenge.challenge_parameters,
    }


class ValidationError(Exception):
    """Raised when a payload is missing a required field."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__("Validation failed")


def _require(payload: Mapping[str, Any], *fields: str) -> dict[str, str]:
    values = {}
    errors = {}
    for name in fields:
        value = payload.get(name)
        if value is None or not str(value).strip():
            errors[name] = f"{name} is required"
        else:
            values[name] = str(value)
    if errors:
        raise ValidationError(errors)
    return values


@dataclass
class Route:
    """One gateway operation."""

    invoke: Callable[[RequestContext, Mapping[str, Any]], Awaitable[FlowResult]]
    render: Callable[[Any], tuple[str, dict[str, Any]]]


class AuthGateway:
    """Entry point for the host web layer.

    Args:
        gate: Resolves the tenant from request headers
        engine: Runs the flows

    Example:
        >>> gateway = create_gateway(GatewaySettings.from_env())
        >>> response = await gateway.handle(
        ...     "login",
        ...     headers={"X-APP-KEY": app_key},
        ...     payload={"email": "a@example.com", "password": "..."},
        ... )
        >>> response.status_code
        200
    """

    def __init__(self, gate: TenantGate, engine: AuthFlowEngine):
        self._gate = gate
        self._engine = engine
        self._routes: dict[str, Route] = {
            "register": Route(self._register, self._render_register),
            "verify": Route(self._verify, self._render_status("User verified successfully")),
            "resend-otp": Route(self._resend, self._render_resend),
            "login": Route(self._login, self._render_login),
            "forgot-password": Route(self._forgot, self._render_forgot),
            "confirm-forgot-password": Route(
                self._confirm_forgot, self._render_status("Password reset successful")
            ),
            "mfa/setup": Route(self._mfa_setup, self._render_mfa_setup),
            "mfa/associate-token": Route(self._associate, self._render_associate),
            "mfa/verify-token": Route(
                self._verify_token, self._render_status("Software token verified successfully")
            ),
            "mfa/verify": Route(self._mfa_verify, self._render_mfa_verify),
            "token/introspect": Route(self._introspect, self._render_introspect),
        }

    @property
    def operations(self) -> list[str]:
        return sorted(self._routes)

    async def handle(
        self,
        operation: str,
        headers: Optional[Mapping[str, str]],
        payload: Optional[Mapping[str, Any]],
        remote_addr: Optional[str] = None,
    ) -> GatewayResponse:
        """Resolve the tenant, validate the payload, run the flow and render it."""
        route = self._routes.get(operation)
        if route is None:
            return GatewayResponse(404, envelope(False, f"Unknown operation: {operation}"))

        try:
            ctx = await self._gate.resolve(headers, remote_addr)
        except TenantResolutionError as e:
            return GatewayResponse(
                e.status_code, envelope(False, e.message, {"errorType": e.code})
            )
        except Exception:
            log.exception("tenant_resolution_failed", operation=operation)
            return GatewayResponse(500, envelope(False, FAILURE_MESSAGES[ErrorKind.INTERNAL]))

        try:
            result = await route.invoke(ctx, payload or {})
        except ValidationError as e:
            log.info("request_validation_failed", operation=operation, fields=sorted(e.errors))
            return GatewayResponse(400, envelope(False, "Validation failed", {
                "errorType": "VALIDATION_ERROR",
                "errors": e.errors,
            }))
        except Exception:
            log.exception("gateway_request_failed", operation=operation, request_id=ctx.request_id)
            return GatewayResponse(500, envelope(False, FAILURE_MESSAGES[ErrorKind.INTERNAL]))

        if result.ok:
            message, data = route.render(result.value)
            return GatewayResponse(200, envelope(True, message, data))
        return self._failure(operation, result)

    def _failure(self, operation: str, result: FlowResult) -> GatewayResponse:
        error = result.error
        status = ERROR_STATUS.get(error.kind, 400)
        if error.kind is ErrorKind.NOT_AUTHORIZED and operation in ACCESS_TOKEN_OPERATIONS:
            status = 401

        message = FAILURE_MESSAGES[error.kind]
        data: dict[str, Any] = {"errorType": error.kind.value, "errorMessage": error.message}
        if operation == "verify" and error.kind in VERIFY_HINTS:
            message, action = VERIFY_HINTS[error.kind]
            data["action"] = action
            data["resendEndpoint"] = RESEND_ENDPOINT
        if operation == "token/introspect":
            data["valid"] = False
            if error.kind is ErrorKind.NOT_AUTHORIZED:
                message = "Invalid or expired token"
        return GatewayResponse(status, envelope(False, message, data))

    # ==================== Invokers ====================

    async def _register(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email", "password")
        attributes = payload.get("attributes")
        if attributes is not None and not isinstance(attributes, Mapping):
            raise ValidationError({"attributes": "attributes must be an object"})
        return await self._engine.register(ctx, fields["email"], fields["password"], attributes)

    async def _verify(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email", "confirmationCode")
        return await self._engine.verify(ctx, fields["email"], fields["confirmationCode"])

    async def _resend(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email")
        return await self._engine.resend_code(ctx, fields["email"])

    async def _login(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email", "password")
        return await self._engine.login(ctx, fields["email"], fields["password"])

    async def _forgot(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email")
        return await self._engine.forgot_password(ctx, fields["email"])

    async def _confirm_forgot(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email", "confirmationCode", "newPassword")
        return await self._engine.confirm_forgot_password(
            ctx, fields["email"], fields["confirmationCode"], fields["newPassword"]
        )

    async def _mfa_setup(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "accessToken", "mfaType")
        return await self._engine.set_mfa_preference(
            ctx, fields["accessToken"], fields["mfaType"], payload.get("phoneNumber")
        )

    async def _associate(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "accessToken")
        return await self._engine.associate_software_token(ctx, fields["accessToken"])

    async def _verify_token(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "accessToken", "userCode")
        return await self._engine.verify_software_token(
            ctx, fields["accessToken"], fields["userCode"], payload.get("deviceName")
        )

    async def _mfa_verify(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "email", "session", "mfaCode", "challengeName")
        return await self._engine.respond_to_challenge(
            ctx,
            fields["email"],
            fields["session"],
            fields["mfaCode"],
            fields["challengeName"],
        )

    async def _introspect(self, ctx: RequestContext, payload: Mapping[str, Any]) -> FlowResult:
        fields = _require(payload, "accessToken")
        return await self._engine.introspect_token(ctx, fields["accessToken"])

    # ==================== Renderers ====================

    @staticmethod
    def _render_status(message: str) -> Callable[[dict[str, str]], tuple[str, dict[str, Any]]]:
        def render(value: dict[str, str]) -> tuple[str, dict[str, Any]]:
            return message, {"status": value["status"]}

        return render

    @staticmethod
    def _render_register(value: SignUpResult) -> tuple[str, dict[str, Any]]:
        return (
            "User registered successfully. Please check your email for verification code",
            {
                "username": value.user_sub,
                "status": value.status.value,
                "userConfirmationNecessary": str(value.confirmation_required).lower(),
                **_delivery_data(value.delivery),
            },
        )

    @staticmethod
    def _render_resend(value: CodeDelivery) -> tuple[str, dict[str, Any]]:
        data = _delivery_data(value)
        data["message"] = "A new verification code has been sent to your email"
        return "Confirmation code resent successfully to email", data

    @staticmethod
    def _render_login(value: AuthTokens | MfaChallengeSession) -> tuple[str, dict[str, Any]]:
        if isinstance(value, MfaChallengeSession):
            return "MFA verification required. Please provide the MFA code.", _challenge_data(value)
        return "Login successful", _tokens_data(value)

    @staticmethod
    def _render_forgot(value: CodeDelivery) -> tuple[str, dict[str, Any]]:
        return "Password reset code sent to email", _delivery_data(value)

    @staticmethod
    def _render_mfa_setup(value: dict[str, str]) -> tuple[str, dict[str, Any]]:
        return "MFA setup successful", {"mfaType": value["mfa_type"], "status": value["status"]}

    @staticmethod
    def _render_associate(value: SoftwareTokenAssociation) -> tuple[str, dict[str, Any]]:
        return (
            "Software token associated. Use the secret code with your authenticator app",
            {"secretCode": value.secret_code, "session": value.session},
        )

    @staticmethod
    def _render_mfa_verify(value: AuthTokens | MfaChallengeSession) -> tuple[str, dict[str, Any]]:
        if isinstance(value, MfaChallengeSession):
            return "Additional verification required", _challenge_data(value)
        return "MFA verification successful", _tokens_data(value)

    @staticmethod
    def _render_introspect(value: TokenIdentity) -> tuple[str, dict[str, Any]]:
        return "Token is valid", {
            "valid": True,
            "username": value.username,
            "email": value.email,
            "attributes": dict(value.attributes),
        }


__all__ = ["AuthGateway", "GatewayResponse", "ValidationError", "envelope"]
