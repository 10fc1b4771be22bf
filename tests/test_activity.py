"""Tests for the activity logger and caller IP extraction."""

import pytest

from keygate.activity import ActivityLogger, extract_client_ip
from keygate.activity_stores import InMemoryActivityLogStore
from keygate.models import ActivityKind, Outcome


# ==================== Caller IP ====================


def test_forwarded_for_wins():
    headers = {
        "X-Forwarded-For": "198.51.100.20",
        "Proxy-Client-IP": "198.51.100.21",
        "WL-Proxy-Client-IP": "198.51.100.22",
    }
    assert extract_client_ip(headers, "10.0.0.1") == "198.51.100.20"


def test_proxy_headers_in_order():
    assert extract_client_ip({"Proxy-Client-IP": "198.51.100.21"}, "10.0.0.1") == "198.51.100.21"
    assert extract_client_ip({"WL-Proxy-Client-IP": "198.51.100.22"}) == "198.51.100.22"


def test_unknown_header_values_are_skipped():
    headers = {"X-Forwarded-For": "unknown", "Proxy-Client-IP": ""}
    assert extract_client_ip(headers, "10.0.0.1") == "10.0.0.1"


def test_blank_header_values_are_skipped():
    headers = {"X-Forwarded-For": "  ", "Proxy-Client-IP": "198.51.100.21"}
    assert extract_client_ip(headers, "10.0.0.1") == "198.51.100.21"
    assert extract_client_ip({"X-Forwarded-For": "\t "}, "10.0.0.1") == "10.0.0.1"


def test_header_lookup_is_case_insensitive():
    assert extract_client_ip({"x-forwarded-for": "198.51.100.20"}) == "198.51.100.20"


def test_no_ip_available():
    assert extract_client_ip({}) is None
    assert extract_client_ip(None, None) is None


# ==================== Logger ====================


@pytest.mark.asyncio
async def test_log_activity_appends_entry():
    store = InMemoryActivityLogStore()
    logger = ActivityLogger(store)

    entry = await logger.log_activity(
        kind=ActivityKind.LOGIN,
        actor="jane@example.com",
        pool_id="us-east-1_POOL",
        tenant_name="Test App",
        outcome=Outcome.SUCCESS,
        caller_ip="198.51.100.20",
    )

    assert store.entries == [entry]
    assert entry.id
    assert entry.created_at.tzinfo is not None
    assert entry.error_detail is None


@pytest.mark.asyncio
async def test_log_activity_sanitizes_error_detail():
    store = InMemoryActivityLogStore()
    logger = ActivityLogger(store)

    entry = await logger.log_activity(
        kind=ActivityKind.VERIFY,
        actor="jane@example.com",
        pool_id="us-east-1_POOL",
        tenant_name="Test App",
        outcome=Outcome.FAILURE,
        error_detail="Invalid code. (Service: CognitoIdentityProvider, Status Code: 400)",
    )

    assert entry.error_detail == "Invalid code."


@pytest.mark.asyncio
async def test_store_failure_is_swallowed():
    """Test a failing store never breaks the caller."""
    store = InMemoryActivityLogStore(fail_with=RuntimeError("table unavailable"))
    logger = ActivityLogger(store)

    entry = await logger.log_activity(
        kind=ActivityKind.REGISTER,
        actor="jane@example.com",
        pool_id="us-east-1_POOL",
        tenant_name="Test App",
        outcome=Outcome.SUCCESS,
    )

    assert entry.activity is ActivityKind.REGISTER
    assert store.count() == 0
