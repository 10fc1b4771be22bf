"""Credential binder - tenant-scoped provider clients with guaranteed release."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import structlog

from keygate.core.identity_provider import IdentityProviderClient
from keygate.identity_providers.cognito import CognitoClient
from keygate.identity_providers.mock import (
    MockIdentityProviderClient,
    MockIdentityProviderState,
)
from keygate.models import TenantConfig

log = structlog.get_logger()

ClientFactory = Callable[[TenantConfig], IdentityProviderClient]


class CredentialBinder:
    """Builds one provider client per request from the resolved tenant.

    Clients are never cached or shared. Each bind() reads the tenant
    configuration it is given, so a changed region, pool or secret applies
    to the next request without any invalidation step.

    Args:
        endpoint_url: Custom Cognito endpoint URL for LocalStack testing
        client_factory: Override for building clients (mock provider, tests)

    Example:
        >>> binder = CredentialBinder()
        >>> with binder.bind(ctx.tenant) as client:
        ...     client.initiate_auth(email, password)
    """

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._endpoint_url = endpoint_url
        self._client_factory = client_factory

    @classmethod
    def for_mock(cls, state: MockIdentityProviderState) -> "CredentialBinder":
        """Binder whose clients talk to an in-memory mock provider."""
        return cls(client_factory=lambda tenant: MockIdentityProviderClient(tenant, state))

    def create_client(self, tenant: TenantConfig) -> IdentityProviderClient:
        if self._client_factory is not None:
            return self._client_factory(tenant)
        return CognitoClient(tenant, endpoint_url=self._endpoint_url)

    @contextmanager
    def bind(self, tenant: TenantConfig) -> Iterator[IdentityProviderClient]:
        """Yield a client scoped to the tenant and close it on every exit path."""
        client = self.create_client(tenant)
        log.debug("provider_client_bound", pool_id=tenant.pool_id, region=tenant.region)
        try:
            yield client
        finally:
            client.close()
            log.debug("provider_client_released", pool_id=tenant.pool_id)
