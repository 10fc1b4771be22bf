"""Tests for per-request provider client binding."""

from dataclasses import replace

import pytest
from botocore import UNSIGNED

from keygate.binder import CredentialBinder
from keygate.identity_providers import CognitoClient, MockIdentityProviderClient


def test_bind_closes_client(provider_state, tenant):
    binder = CredentialBinder.for_mock(provider_state)

    with binder.bind(tenant) as client:
        assert isinstance(client, MockIdentityProviderClient)
        assert client.tenant.pool_id == tenant.pool_id

    assert client.closed
    assert provider_state.clients_opened == 1
    assert provider_state.clients_closed == 1


def test_bind_closes_client_on_error(provider_state, tenant):
    binder = CredentialBinder.for_mock(provider_state)

    with pytest.raises(RuntimeError):
        with binder.bind(tenant):
            raise RuntimeError("boom")

    assert provider_state.clients_closed == 1


def test_each_bind_builds_a_new_client(provider_state, tenant, other_tenant):
    """Test clients are never shared across requests or tenants."""
    binder = CredentialBinder.for_mock(provider_state)

    with binder.bind(tenant) as first:
        pass
    with binder.bind(other_tenant) as second:
        pass

    assert first is not second
    assert second.tenant.pool_id == other_tenant.pool_id
    assert provider_state.clients_opened == 2


def test_config_change_applies_to_next_bind(provider_state, tenant):
    binder = CredentialBinder.for_mock(provider_state)
    moved = replace(tenant, region="eu-central-1", pool_id="eu-central-1_MOVED")

    with binder.bind(moved) as client:
        assert client.tenant.region == "eu-central-1"
        assert client.tenant.pool_id == "eu-central-1_MOVED"


def test_default_binder_builds_unsigned_cognito_client(tenant):
    binder = CredentialBinder()

    with binder.bind(tenant) as client:
        assert isinstance(client, CognitoClient)
        assert client._client.meta.region_name == tenant.region
        assert client._client.meta.config.signature_version is UNSIGNED
