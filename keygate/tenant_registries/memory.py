"""In-memory tenant registry for testing."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, Optional

import structlog

from keygate.core.tenant_registry import TenantRegistry
from keygate.models import TenantConfig

log = structlog.get_logger()


class InMemoryTenantRegistry(TenantRegistry):
    """
    In-memory tenant registry for testing and local development.

    Lookups return copies, so callers never mutate stored records and a
    later add() (for example disabling a tenant) is seen by the next lookup.

    Example:
        registry = InMemoryTenantRegistry([
            TenantConfig(
                id="1",
                tenant_key="6f1c1c0e-4f3b-4bde-9d43-2a4f1f0b8a11",
                name="Test App",
                region="us-east-1",
                pool_id="us-east-1_TEST",
                client_id="test-client",
            )
        ])
    """

    def __init__(self, tenants: Optional[Iterable[TenantConfig]] = None):
        self._tenants: Dict[str, TenantConfig] = {}
        self.lookups = 0
        for config in tenants or []:
            self.add(config)

    def add(self, config: TenantConfig) -> None:
        """Insert or replace a tenant."""
        self._tenants[config.tenant_key] = replace(config)

    def remove(self, tenant_key: str) -> None:
        self._tenants.pop(tenant_key, None)

    async def find_by_key(self, tenant_key: str) -> Optional[TenantConfig]:
        self.lookups += 1
        config = self._tenants.get(tenant_key)
        if config is None:
            log.debug("In-memory tenant not found", tenant_key=tenant_key)
            return None
        return replace(config)
