"""Tests for AuthFlowEngine against the in-memory identity provider."""

import asyncio
from dataclasses import replace

import pytest

from keygate.activity import ActivityLogger
from keygate.activity_stores import InMemoryActivityLogStore
from keygate.binder import CredentialBinder
from keygate.engine import AuthFlowEngine, challenge_response_key, merge_attributes
from keygate.exceptions import ErrorKind, ProviderError
from keygate.identity_providers import MOCK_CONFIRMATION_CODE, MOCK_MFA_CODE
from keygate.models import (
    UNKNOWN_ACTOR,
    ActivityKind,
    AuthTokens,
    MfaChallengeSession,
    Outcome,
    RequestContext,
    SignUpResult,
    UserStatus,
)

EMAIL = "jane@example.com"
PASSWORD = "Sup3r-Secret!"


def only_entry(store):
    assert store.count() == 1
    return store.entries[0]


# ==================== Helpers ====================


def test_merge_attributes_puts_email_first_and_drops_empty():
    merged = merge_attributes(
        EMAIL,
        {"email": "spoof@example.com", "given_name": "Jane", "family_name": "", "nickname": None},
    )
    assert merged == {"email": EMAIL, "given_name": "Jane"}
    assert list(merged)[0] == "email"


def test_challenge_response_keys():
    assert challenge_response_key("SMS_MFA") == "SMS_MFA_CODE"
    assert challenge_response_key("SOFTWARE_TOKEN_MFA") == "SOFTWARE_TOKEN_MFA_CODE"
    assert challenge_response_key("EMAIL_OTP") == "EMAIL_OTP_CODE"
    assert challenge_response_key("CUSTOM_CHALLENGE") == "ANSWER"


# ==================== Registration ====================


@pytest.mark.asyncio
async def test_register_success(engine, ctx, activity_store, provider_state):
    result = await engine.register(ctx, EMAIL, PASSWORD, {"given_name": "Jane"})

    assert result.ok
    assert isinstance(result.value, SignUpResult)
    assert result.value.status == UserStatus.UNCONFIRMED
    assert result.value.confirmation_required is True

    user = provider_state.get_user(ctx.tenant.pool_id, EMAIL)
    assert user.attributes == {"email": EMAIL, "given_name": "Jane"}

    entry = only_entry(activity_store)
    assert entry.activity is ActivityKind.REGISTER
    assert entry.actor == EMAIL
    assert entry.outcome is Outcome.SUCCESS
    assert entry.pool_id == ctx.tenant.pool_id
    assert entry.tenant_name == ctx.tenant.name
    assert entry.caller_ip == "203.0.113.7"
    assert entry.error_detail is None


@pytest.mark.asyncio
async def test_register_duplicate(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)

    result = await engine.register(ctx, EMAIL, PASSWORD)

    assert not result.ok
    assert result.error.kind is ErrorKind.DUPLICATE_IDENTITY
    assert "(Service:" not in result.error.message

    entry = only_entry(activity_store)
    assert entry.outcome is Outcome.FAILURE
    assert entry.error_detail == "User already exists"


@pytest.mark.asyncio
async def test_register_with_malformed_attributes_is_still_audited(engine, ctx, activity_store, provider_state):
    result = await engine.register(ctx, EMAIL, PASSWORD, ["given_name"])

    assert not result.ok
    assert result.error.kind is ErrorKind.INTERNAL
    assert provider_state.get_user(ctx.tenant.pool_id, EMAIL) is None

    entry = only_entry(activity_store)
    assert entry.activity is ActivityKind.REGISTER
    assert entry.outcome is Outcome.FAILURE


@pytest.mark.asyncio
async def test_verify_success(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, confirmed=False)

    result = await engine.verify(ctx, EMAIL, MOCK_CONFIRMATION_CODE)

    assert result.ok
    assert result.value == {"status": "CONFIRMED"}
    assert provider_state.get_user(ctx.tenant.pool_id, EMAIL).status == UserStatus.CONFIRMED
    assert only_entry(activity_store).activity is ActivityKind.VERIFY


@pytest.mark.asyncio
async def test_verify_wrong_code(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, confirmed=False)

    result = await engine.verify(ctx, EMAIL, "000000")

    assert result.error.kind is ErrorKind.CODE_MISMATCH
    assert only_entry(activity_store).outcome is Outcome.FAILURE


@pytest.mark.asyncio
async def test_verify_expired_code(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, confirmed=False)
    provider_state.expire_code(ctx.tenant.pool_id, EMAIL)

    result = await engine.verify(ctx, EMAIL, MOCK_CONFIRMATION_CODE)

    assert result.error.kind is ErrorKind.CODE_EXPIRED
    assert activity_store.count() == 1


@pytest.mark.asyncio
async def test_resend_then_verify(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, confirmed=False)
    provider_state.expire_code(ctx.tenant.pool_id, EMAIL)

    resend = await engine.resend_code(ctx, EMAIL)
    verify = await engine.verify(ctx, EMAIL, MOCK_CONFIRMATION_CODE)

    assert resend.ok
    assert resend.value.medium == "EMAIL"
    assert verify.ok
    assert [e.activity for e in activity_store.entries] == [
        ActivityKind.RESEND_OTP,
        ActivityKind.VERIFY,
    ]


# ==================== Login ====================


@pytest.mark.asyncio
async def test_login_returns_tokens(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)

    result = await engine.login(ctx, EMAIL, PASSWORD)

    assert result.ok
    assert isinstance(result.value, AuthTokens)
    assert result.value.access_token
    entry = only_entry(activity_store)
    assert entry.activity is ActivityKind.LOGIN
    assert entry.outcome is Outcome.SUCCESS


@pytest.mark.asyncio
async def test_login_wrong_password(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)

    result = await engine.login(ctx, EMAIL, "wrong")

    assert result.error.kind is ErrorKind.NOT_AUTHORIZED
    assert result.error.message == "Incorrect username or password."
    entry = only_entry(activity_store)
    assert entry.outcome is Outcome.FAILURE
    assert entry.error_detail == "Incorrect username or password."


@pytest.mark.asyncio
async def test_login_unconfirmed_user(engine, ctx, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, confirmed=False)

    result = await engine.login(ctx, EMAIL, PASSWORD)

    assert result.error.kind is ErrorKind.USER_NOT_CONFIRMED


@pytest.mark.asyncio
async def test_login_challenge_is_logged_as_success(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, preferred_mfa="SMS_MFA")

    result = await engine.login(ctx, EMAIL, PASSWORD)

    assert result.ok
    assert isinstance(result.value, MfaChallengeSession)
    assert result.value.challenge_name == "SMS_MFA"
    assert result.value.session
    assert only_entry(activity_store).outcome is Outcome.SUCCESS


@pytest.mark.asyncio
async def test_login_is_isolated_per_tenant(engine, ctx, other_tenant, provider_state):
    """Test a user of one tenant cannot sign in through another."""
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    other_ctx = RequestContext(tenant=other_tenant)

    result = await engine.login(other_ctx, EMAIL, PASSWORD)

    assert result.error.kind is ErrorKind.NOT_AUTHORIZED
    assert provider_state.calls[-1].pool_id == other_tenant.pool_id


# ==================== MFA Challenge ====================


@pytest.mark.asyncio
async def test_respond_to_challenge(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, preferred_mfa="SMS_MFA")
    login = await engine.login(ctx, EMAIL, PASSWORD)

    result = await engine.respond_to_challenge(
        ctx, EMAIL, login.value.session, MOCK_MFA_CODE, "SMS_MFA"
    )

    assert result.ok
    assert isinstance(result.value, AuthTokens)
    assert [e.activity for e in activity_store.entries] == [
        ActivityKind.LOGIN,
        ActivityKind.MFA_VERIFY,
    ]


@pytest.mark.asyncio
async def test_respond_with_wrong_code(engine, ctx, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, preferred_mfa="EMAIL_OTP")
    login = await engine.login(ctx, EMAIL, PASSWORD)

    result = await engine.respond_to_challenge(ctx, EMAIL, login.value.session, "111111", "EMAIL_OTP")

    assert result.error.kind is ErrorKind.CODE_MISMATCH


@pytest.mark.asyncio
async def test_respond_with_mismatched_challenge_kind(engine, ctx, activity_store, provider_state):
    """Test the provider's rejection is surfaced when the kind does not match the session."""
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD, preferred_mfa="SMS_MFA")
    login = await engine.login(ctx, EMAIL, PASSWORD)

    result = await engine.respond_to_challenge(
        ctx, EMAIL, login.value.session, MOCK_MFA_CODE, "SOFTWARE_TOKEN_MFA"
    )

    assert result.error.kind is ErrorKind.NOT_AUTHORIZED
    assert provider_state.call_count("respond_to_auth_challenge") == 1
    assert activity_store.entries[-1].activity is ActivityKind.MFA_VERIFY
    assert activity_store.entries[-1].outcome is Outcome.FAILURE


# ==================== Password Reset ====================


@pytest.mark.asyncio
async def test_password_reset_flow(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)

    forgot = await engine.forgot_password(ctx, EMAIL)
    confirm = await engine.confirm_forgot_password(ctx, EMAIL, MOCK_CONFIRMATION_CODE, "N3w-Pass!")
    login = await engine.login(ctx, EMAIL, "N3w-Pass!")

    assert forgot.ok
    assert confirm.value == {"status": "PASSWORD_RESET"}
    assert login.ok
    assert [e.activity for e in activity_store.entries] == [
        ActivityKind.FORGOT_PASSWORD_REQUEST,
        ActivityKind.RESET_PASSWORD,
        ActivityKind.LOGIN,
    ]


@pytest.mark.asyncio
async def test_forgot_password_unknown_user(engine, ctx, activity_store):
    result = await engine.forgot_password(ctx, "nobody@example.com")

    assert result.error.kind is ErrorKind.USER_NOT_FOUND
    assert only_entry(activity_store).actor == "nobody@example.com"


# ==================== MFA Setup ====================


@pytest.mark.asyncio
async def test_sms_mfa_setup_updates_phone(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    token = provider_state.issue_access_token(ctx.tenant.pool_id, EMAIL)

    result = await engine.set_mfa_preference(ctx, token, "SMS_MFA", "+15555550100")

    assert result.value == {"mfa_type": "SMS_MFA", "status": "MFA_ENABLED"}
    user = provider_state.get_user(ctx.tenant.pool_id, EMAIL)
    assert user.attributes["phone_number"] == "+15555550100"
    assert user.preferred_mfa == "SMS_MFA"

    entry = only_entry(activity_store)
    assert entry.activity is ActivityKind.MFA_SETUP
    assert entry.actor == UNKNOWN_ACTOR


@pytest.mark.asyncio
async def test_phone_update_failure_does_not_block_preference(engine, ctx, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    token = provider_state.issue_access_token(ctx.tenant.pool_id, EMAIL)
    provider_state.fail_next(
        "update_user_attributes",
        ProviderError(ErrorKind.INVALID_PARAMETER, "Invalid phone number format.", "update_user_attributes"),
    )

    result = await engine.set_mfa_preference(ctx, token, "SMS_MFA", "12")

    assert result.ok
    assert provider_state.call_count("set_user_mfa_preference") == 1


@pytest.mark.asyncio
async def test_unknown_mfa_kind_is_rejected_without_provider_call(
    engine, ctx, activity_store, provider_state
):
    result = await engine.set_mfa_preference(ctx, "token", "CARRIER_PIGEON")

    assert result.error.kind is ErrorKind.INVALID_PARAMETER
    assert provider_state.call_count() == 0
    assert provider_state.clients_opened == 0
    assert only_entry(activity_store).outcome is Outcome.FAILURE


@pytest.mark.asyncio
async def test_mfa_setup_with_invalid_token(engine, ctx, activity_store):
    result = await engine.set_mfa_preference(ctx, "expired-token", "EMAIL_OTP")

    assert result.error.kind is ErrorKind.NOT_AUTHORIZED
    assert only_entry(activity_store).actor == UNKNOWN_ACTOR


@pytest.mark.asyncio
async def test_totp_enrollment(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    token = provider_state.issue_access_token(ctx.tenant.pool_id, EMAIL)

    associate = await engine.associate_software_token(ctx, token)
    bad = await engine.verify_software_token(ctx, token, "000000")
    verify = await engine.verify_software_token(ctx, token, MOCK_MFA_CODE, "Phone")
    setup = await engine.set_mfa_preference(ctx, token, "SOFTWARE_TOKEN_MFA")

    assert associate.value.secret_code
    assert bad.error.kind is ErrorKind.CODE_MISMATCH
    assert verify.value == {"status": "SUCCESS"}
    assert setup.ok
    assert [e.activity for e in activity_store.entries] == [
        ActivityKind.MFA_TOKEN_ASSOCIATE,
        ActivityKind.MFA_TOKEN_VERIFY,
        ActivityKind.MFA_TOKEN_VERIFY,
        ActivityKind.MFA_SETUP,
    ]


# ==================== Introspection ====================


@pytest.mark.asyncio
async def test_introspect_valid_token(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    token = provider_state.issue_access_token(ctx.tenant.pool_id, EMAIL)

    result = await engine.introspect_token(ctx, token)

    assert result.value.username == EMAIL
    assert result.value.email == EMAIL
    assert only_entry(activity_store).actor == EMAIL


@pytest.mark.asyncio
async def test_introspect_expired_token(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    token = provider_state.issue_access_token(ctx.tenant.pool_id, EMAIL)
    provider_state.expire_access_token(token)

    result = await engine.introspect_token(ctx, token)

    assert result.error.kind is ErrorKind.NOT_AUTHORIZED
    assert only_entry(activity_store).actor == UNKNOWN_ACTOR


# ==================== Failure Handling ====================


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal(engine, ctx, activity_store, provider_state):
    provider_state.fail_next("initiate_auth", RuntimeError("socket exploded"))

    result = await engine.login(ctx, EMAIL, PASSWORD)

    assert result.error.kind is ErrorKind.INTERNAL
    assert result.error.message == "An unexpected error occurred"
    assert only_entry(activity_store).error_detail == "An unexpected error occurred"
    assert provider_state.clients_closed == 1


@pytest.mark.asyncio
async def test_timeout_is_logged_and_client_released(ctx, provider_state):
    store = InMemoryActivityLogStore()
    engine = AuthFlowEngine(
        binder=CredentialBinder.for_mock(provider_state),
        activity_logger=ActivityLogger(store),
        request_timeout=0.05,
    )
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    provider_state.latency = 0.3

    result = await engine.login(ctx, EMAIL, PASSWORD)

    assert result.error.kind is ErrorKind.TIMEOUT
    assert only_entry(store).outcome is Outcome.FAILURE

    await asyncio.sleep(0.5)
    assert provider_state.clients_closed == provider_state.clients_opened == 1


@pytest.mark.asyncio
async def test_misconfigured_region_is_service_unavailable(ctx):
    store = InMemoryActivityLogStore()
    engine = AuthFlowEngine(
        binder=CredentialBinder(),
        activity_logger=ActivityLogger(store),
        request_timeout=2.0,
    )
    bad_ctx = RequestContext(
        tenant=replace(ctx.tenant, region="not a region!"),
        caller_ip=ctx.caller_ip,
        request_id=ctx.request_id,
    )

    result = await engine.login(bad_ctx, EMAIL, PASSWORD)

    assert result.error.kind is ErrorKind.SERVICE_UNAVAILABLE
    entry = only_entry(store)
    assert entry.activity is ActivityKind.LOGIN
    assert entry.outcome is Outcome.FAILURE


@pytest.mark.asyncio
async def test_cancelled_request_still_logs(engine, ctx, activity_store, provider_state):
    """Test a flow whose caller is cancelled still finishes and writes its entry."""
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    provider_state.latency = 0.2

    task = asyncio.ensure_future(engine.login(ctx, EMAIL, PASSWORD))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(0.5)
    entry = only_entry(activity_store)
    assert entry.activity is ActivityKind.LOGIN
    assert entry.outcome is Outcome.SUCCESS
    assert provider_state.clients_closed == 1


@pytest.mark.asyncio
async def test_activity_store_failure_does_not_change_outcome(ctx, provider_state):
    engine = AuthFlowEngine(
        binder=CredentialBinder.for_mock(provider_state),
        activity_logger=ActivityLogger(InMemoryActivityLogStore(fail_with=RuntimeError("down"))),
    )
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)

    result = await engine.login(ctx, EMAIL, PASSWORD)

    assert result.ok


@pytest.mark.asyncio
async def test_every_flow_writes_exactly_one_entry(engine, ctx, activity_store, provider_state):
    provider_state.add_user(ctx.tenant.pool_id, EMAIL, PASSWORD)
    token = provider_state.issue_access_token(ctx.tenant.pool_id, EMAIL)

    calls = [
        engine.register(ctx, "new@example.com", PASSWORD),
        engine.verify(ctx, "new@example.com", "bad"),
        engine.resend_code(ctx, "new@example.com"),
        engine.login(ctx, EMAIL, PASSWORD),
        engine.respond_to_challenge(ctx, EMAIL, "stale-session", MOCK_MFA_CODE, "SMS_MFA"),
        engine.forgot_password(ctx, EMAIL),
        engine.confirm_forgot_password(ctx, EMAIL, "bad", PASSWORD),
        engine.set_mfa_preference(ctx, token, "EMAIL_OTP"),
        engine.associate_software_token(ctx, token),
        engine.verify_software_token(ctx, token, "bad"),
        engine.introspect_token(ctx, token),
    ]
    for expected, call in enumerate(calls, start=1):
        await call
        assert activity_store.count() == expected

    assert provider_state.clients_closed == provider_state.clients_opened
