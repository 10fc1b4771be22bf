"""Shared pytest fixtures for keygate tests."""

import os

import pytest
from moto import mock_aws

from keygate.activity import ActivityLogger
from keygate.activity_stores import InMemoryActivityLogStore
from keygate.binder import CredentialBinder
from keygate.engine import AuthFlowEngine
from keygate.gate import TenantGate
from keygate.gateway import AuthGateway
from keygate.identity_providers import MockIdentityProviderState
from keygate.models import RequestContext, TenantConfig
from keygate.tenant_registries import InMemoryTenantRegistry

TENANT_KEY = "6f1c1c0e-4f3b-4bde-9d43-2a4f1f0b8a11"
OTHER_TENANT_KEY = "0b6f7a52-93a4-4c1e-8f0e-2b7c5d1e9a44"
DISABLED_TENANT_KEY = "c3d2e1f0-1a2b-4c3d-8e9f-0a1b2c3d4e5f"


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for testing."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def mock_aws_services(aws_credentials):
    """Mock Cognito, DynamoDB and KMS."""
    with mock_aws():
        yield


@pytest.fixture
def region():
    """AWS region for tests."""
    return "us-east-1"


@pytest.fixture
def tenant():
    return TenantConfig(
        id="tenant-1",
        tenant_key=TENANT_KEY,
        name="Test App",
        region="us-east-1",
        pool_id="us-east-1_TESTPOOL",
        client_id="test-client",
    )


@pytest.fixture
def other_tenant():
    return TenantConfig(
        id="tenant-2",
        tenant_key=OTHER_TENANT_KEY,
        name="Other App",
        region="eu-west-1",
        pool_id="eu-west-1_OTHERPOOL",
        client_id="other-client",
        client_secret="other-secret",
    )


@pytest.fixture
def disabled_tenant():
    return TenantConfig(
        id="tenant-3",
        tenant_key=DISABLED_TENANT_KEY,
        name="Disabled App",
        region="us-east-1",
        pool_id="us-east-1_DISABLED",
        client_id="disabled-client",
        enabled=False,
    )


@pytest.fixture
def registry(tenant, other_tenant, disabled_tenant):
    return InMemoryTenantRegistry([tenant, other_tenant, disabled_tenant])


@pytest.fixture
def activity_store():
    return InMemoryActivityLogStore()


@pytest.fixture
def provider_state():
    """Shared in-memory identity provider behind every mock client."""
    return MockIdentityProviderState()


@pytest.fixture
def engine(provider_state, activity_store):
    return AuthFlowEngine(
        binder=CredentialBinder.for_mock(provider_state),
        activity_logger=ActivityLogger(activity_store),
        request_timeout=2.0,
    )


@pytest.fixture
def ctx(tenant):
    return RequestContext(tenant=tenant, caller_ip="203.0.113.7", request_id="req-1")


@pytest.fixture
def gateway(registry, engine):
    return AuthGateway(TenantGate(registry), engine)


@pytest.fixture
def headers():
    return {"X-APP-KEY": TENANT_KEY, "X-Forwarded-For": "198.51.100.20"}
