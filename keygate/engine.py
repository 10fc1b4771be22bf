"""Auth flow engine - tenant-bound sign-up, sign-in, reset and MFA flows.

Every operation follows the same shape:

1. bind a provider client to the request's tenant (released on every path)
2. make one provider call (set_mfa_preference may make one secondary call)
3. write exactly one activity entry once the outcome is known
4. return a FlowResult carrying either the value or a sanitized FlowError

Operations never raise for provider, timeout or unexpected failures; the
boundary layer matches on FlowError.kind.

Cancellation policy: the provider call and its audit write run in a task
shielded from the caller. If the inbound request is cancelled, the flow
still finishes and its entry is still written; the caller sees
CancelledError.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import structlog

from keygate.activity import ActivityLogger
from keygate.binder import CredentialBinder
from keygate.core.identity_provider import IdentityProviderClient
from keygate.exceptions import ErrorKind, ProviderError
from keygate.identity_providers.cognito import (
    CHALLENGE_RESPONSE_KEYS,
    GENERIC_CHALLENGE_RESPONSE_KEY,
)
from keygate.models import (
    UNKNOWN_ACTOR,
    ActivityKind,
    AuthTokens,
    ChallengeKind,
    MfaChallengeSession,
    MfaKind,
    Outcome,
    RequestContext,
    SignUpResult,
    TokenIdentity,
)
from keygate.results import FlowError, FlowResult

log = structlog.get_logger()

DEFAULT_REQUEST_TIMEOUT = 10.0

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"
TIMEOUT_ERROR_MESSAGE = "Identity service did not respond in time"

ProviderCall = Callable[[IdentityProviderClient], Any]


def merge_attributes(email: str, attributes: Optional[dict[str, Any]]) -> dict[str, str]:
    """Build sign-up attributes: email first, then non-empty custom values."""
    merged = {"email": email}
    for name, value in (attributes or {}).items():
        if name == "email" or value is None or str(value) == "":
            continue
        merged[name] = str(value)
    return merged


def challenge_response_key(challenge_kind: str) -> str:
    """Response field for a challenge, falling back to the generic answer field."""
    key = CHALLENGE_RESPONSE_KEYS.get(challenge_kind)
    if key is None:
        log.warning("unrecognized_challenge_kind", challenge=challenge_kind)
        return GENERIC_CHALLENGE_RESPONSE_KEY
    return key


class AuthFlowEngine:
    """Runs authentication flows against the request tenant's identity provider.

    Args:
        binder: Builds tenant-scoped provider clients
        activity_logger: Records the outcome of every flow
        request_timeout: Seconds to wait for the provider before failing
            with ErrorKind.TIMEOUT
    """

    def __init__(
        self,
        binder: CredentialBinder,
        activity_logger: ActivityLogger,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self._binder = binder
        self._activity = activity_logger
        self._request_timeout = request_timeout
        self._inflight: set[asyncio.Task] = set()

    # ==================== Flow plumbing ====================

    async def _run(
        self,
        ctx: RequestContext,
        activity: ActivityKind,
        actor: str,
        call: ProviderCall,
        resolve_actor: Optional[Callable[[Any], str]] = None,
        rejection: Optional[FlowError] = None,
    ) -> FlowResult:
        task = asyncio.ensure_future(
            self._execute(ctx, activity, actor, call, resolve_actor, rejection)
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _execute(
        self,
        ctx: RequestContext,
        activity: ActivityKind,
        actor: str,
        call: ProviderCall,
        resolve_actor: Optional[Callable[[Any], str]],
        rejection: Optional[FlowError],
    ) -> FlowResult:
        def invoke() -> Any:
            with self._binder.bind(ctx.tenant) as client:
                return call(client)

        value: Any = None
        error = rejection
        if error is None:
            try:
                value = await asyncio.wait_for(
                    asyncio.to_thread(invoke), timeout=self._request_timeout
                )
            except ProviderError as e:
                error = FlowError.from_provider_error(e)
            except asyncio.TimeoutError:
                log.warning(
                    "auth_flow_timeout",
                    activity=activity.value,
                    tenant=ctx.tenant.name,
                    timeout=self._request_timeout,
                )
                error = FlowError(ErrorKind.TIMEOUT, TIMEOUT_ERROR_MESSAGE)
            except Exception:
                log.exception(
                    "auth_flow_unexpected_error",
                    activity=activity.value,
                    tenant=ctx.tenant.name,
                    request_id=ctx.request_id,
                )
                error = FlowError(ErrorKind.INTERNAL, INTERNAL_ERROR_MESSAGE)

        if error is None and resolve_actor is not None:
            actor = resolve_actor(value)

        await self._activity.log_activity(
            kind=activity,
            actor=actor,
            pool_id=ctx.tenant.pool_id,
            tenant_name=ctx.tenant.name,
            outcome=Outcome.SUCCESS if error is None else Outcome.FAILURE,
            error_detail=error.message if error is not None else None,
            caller_ip=ctx.caller_ip,
        )

        log.info(
            "auth_flow_completed",
            activity=activity.value,
            tenant=ctx.tenant.name,
            request_id=ctx.request_id,
            outcome="SUCCESS" if error is None else "FAILURE",
            error_kind=error.kind.value if error is not None else None,
        )
        if error is not None:
            return FlowResult.failure(activity, error)
        return FlowResult.success(activity, value)

    # ==================== Registration ====================

    async def register(
        self,
        ctx: RequestContext,
        email: str,
        password: str,
        attributes: Optional[dict[str, Any]] = None,
    ) -> FlowResult:
        """Self-service sign-up. Succeeds with a SignUpResult in UNCONFIRMED status."""

        def call(client: IdentityProviderClient) -> SignUpResult:
            return client.sign_up(email, password, merge_attributes(email, attributes))

        return await self._run(ctx, ActivityKind.REGISTER, email, call)

    async def verify(self, ctx: RequestContext, email: str, code: str) -> FlowResult:
        """Confirm a registration.

        Fails with CODE_MISMATCH on a wrong code and CODE_EXPIRED when the
        code has lapsed (the caller should resend, not retry).
        """

        def call(client: IdentityProviderClient) -> dict[str, str]:
            client.confirm_sign_up(email, code)
            return {"status": "CONFIRMED"}

        return await self._run(ctx, ActivityKind.VERIFY, email, call)

    async def resend_code(self, ctx: RequestContext, email: str) -> FlowResult:
        """Send a new confirmation code to an unconfirmed user.

        Args:
            ctx: Resolved request context
            email: Username of the pending registration

        Returns:
            FlowResult whose value is the CodeDelivery. Fails with
            NOT_AUTHORIZED when the user is already confirmed.
        """
        return await self._run(
            ctx,
            ActivityKind.RESEND_OTP,
            email,
            lambda client: client.resend_confirmation_code(email),
        )

    # ==================== Authentication ====================

    async def login(self, ctx: RequestContext, email: str, password: str) -> FlowResult:
        """Password sign-in.

        Succeeds with AuthTokens, or with an MfaChallengeSession when the
        provider asks for a second factor. Issuing a challenge is logged as
        a successful LOGIN.
        """

        def call(client: IdentityProviderClient) -> AuthTokens | MfaChallengeSession:
            result = client.initiate_auth(email, password)
            if isinstance(result, MfaChallengeSession):
                log.info(
                    "auth_challenge_required",
                    tenant=ctx.tenant.name,
                    challenge=result.challenge_name,
                )
            return result

        return await self._run(ctx, ActivityKind.LOGIN, email, call)

    async def respond_to_challenge(
        self,
        ctx: RequestContext,
        email: str,
        session: str,
        code: str,
        challenge_kind: str,
    ) -> FlowResult:
        """Answer the challenge returned by login.

        The session is passed through untouched. A challenge kind that does
        not match the session is still sent; the provider rejects it.
        """
        challenge_name = (
            challenge_kind.value if isinstance(challenge_kind, ChallengeKind) else challenge_kind
        )
        responses = {
            "USERNAME": email,
            challenge_response_key(challenge_name): code,
        }
        return await self._run(
            ctx,
            ActivityKind.MFA_VERIFY,
            email,
            lambda client: client.respond_to_auth_challenge(challenge_name, session, responses),
        )

    # ==================== Password Reset ====================

    async def forgot_password(self, ctx: RequestContext, email: str) -> FlowResult:
        """Start a password reset by sending a reset code.

        Args:
            ctx: Resolved request context
            email: Username to reset

        Returns:
            FlowResult whose value is the CodeDelivery
        """
        return await self._run(
            ctx,
            ActivityKind.FORGOT_PASSWORD_REQUEST,
            email,
            lambda client: client.forgot_password(email),
        )

    async def confirm_forgot_password(
        self,
        ctx: RequestContext,
        email: str,
        code: str,
        new_password: str,
    ) -> FlowResult:
        """Finish a password reset.

        Args:
            ctx: Resolved request context
            email: Username being reset
            code: Reset code from forgot_password
            new_password: Replacement password

        Returns:
            FlowResult with {"status": "PASSWORD_RESET"} on success
        """
        def call(client: IdentityProviderClient) -> dict[str, str]:
            client.confirm_forgot_password(email, code, new_password)
            return {"status": "PASSWORD_RESET"}

        return await self._run(ctx, ActivityKind.RESET_PASSWORD, email, call)

    # ==================== MFA ====================

    async def set_mfa_preference(
        self,
        ctx: RequestContext,
        access_token: str,
        mfa_kind: str,
        phone_number: Optional[str] = None,
    ) -> FlowResult:
        """Mark one MFA kind as preferred.

        For SMS with a phone number, the phone attribute is updated first.
        That update is best-effort: its failure is reported through structlog
        and the preference call still runs.
        """
        try:
            kind = MfaKind(mfa_kind)
        except ValueError:
            return await self._run(
                ctx,
                ActivityKind.MFA_SETUP,
                UNKNOWN_ACTOR,
                lambda client: None,
                rejection=FlowError(
                    ErrorKind.INVALID_PARAMETER,
                    f"Unsupported MFA type: {mfa_kind}",
                ),
            )

        def call(client: IdentityProviderClient) -> dict[str, str]:
            if kind is MfaKind.SMS_MFA and phone_number:
                try:
                    client.update_user_attributes(access_token, {"phone_number": phone_number})
                except ProviderError as e:
                    log.warning(
                        "mfa_phone_update_failed",
                        tenant=ctx.tenant.name,
                        error_kind=e.kind.value,
                        error=e.message,
                    )
            client.set_user_mfa_preference(access_token, kind.value)
            return {"mfa_type": kind.value, "status": "MFA_ENABLED"}

        return await self._run(ctx, ActivityKind.MFA_SETUP, UNKNOWN_ACTOR, call)

    async def associate_software_token(
        self,
        ctx: RequestContext,
        access_token: str,
    ) -> FlowResult:
        """Issue a new TOTP secret for the token's user.

        Args:
            ctx: Resolved request context
            access_token: Access token of the signed-in user

        Returns:
            FlowResult whose value is a SoftwareTokenAssociation
        """
        return await self._run(
            ctx,
            ActivityKind.MFA_TOKEN_ASSOCIATE,
            UNKNOWN_ACTOR,
            lambda client: client.associate_software_token(access_token),
        )

    async def verify_software_token(
        self,
        ctx: RequestContext,
        access_token: str,
        user_code: str,
        device_name: Optional[str] = None,
    ) -> FlowResult:
        """Confirm a TOTP code and register the device.

        Args:
            ctx: Resolved request context
            access_token: Access token of the signed-in user
            user_code: Code generated from the associated secret
            device_name: Friendly name for the device

        Returns:
            FlowResult with {"status": ...} as reported by the provider
        """
        def call(client: IdentityProviderClient) -> dict[str, str]:
            status = client.verify_software_token(access_token, user_code, device_name)
            return {"status": status}

        return await self._run(ctx, ActivityKind.MFA_TOKEN_VERIFY, UNKNOWN_ACTOR, call)

    # ==================== Tokens ====================

    async def introspect_token(self, ctx: RequestContext, access_token: str) -> FlowResult:
        """Resolve an access token to its user.

        The actor is only known once the provider answers, so failures are
        logged against UNKNOWN_ACTOR.
        """

        def resolve_actor(identity: TokenIdentity) -> str:
            return identity.username or UNKNOWN_ACTOR

        return await self._run(
            ctx,
            ActivityKind.TOKEN_INTROSPECT,
            UNKNOWN_ACTOR,
            lambda client: client.get_user(access_token),
            resolve_actor=resolve_actor,
        )
