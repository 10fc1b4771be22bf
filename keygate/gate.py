"""Tenant gate - resolves the tenant key on every request before any flow runs."""

from __future__ import annotations

import uuid
from typing import Mapping, Optional

import structlog

from keygate.activity import extract_client_ip, header_value
from keygate.core.tenant_registry import TenantRegistry
from keygate.exceptions import (
    MalformedTenantKeyError,
    MissingTenantKeyError,
    TenantDisabledError,
    UnknownTenantError,
)
from keygate.models import RequestContext

log = structlog.get_logger()

TENANT_KEY_HEADER = "X-APP-KEY"


def parse_tenant_key(value: str) -> Optional[str]:
    """Return the canonical form of a tenant key, or None if it is not a UUID."""
    try:
        return str(uuid.UUID(value.strip()))
    except (ValueError, AttributeError):
        return None


class TenantGate:
    """Rejects unknown or disabled tenants and builds the request context.

    The four rejection paths raise before any identity-provider call:

    - header missing or blank: MissingTenantKeyError (no registry lookup)
    - header not a UUID: MalformedTenantKeyError (no registry lookup)
    - key not registered: UnknownTenantError
    - tenant disabled: TenantDisabledError
    """

    def __init__(self, registry: TenantRegistry, header_name: str = TENANT_KEY_HEADER):
        self._registry = registry
        self.header_name = header_name

    async def resolve(
        self,
        headers: Optional[Mapping[str, str]],
        remote_addr: Optional[str] = None,
    ) -> RequestContext:
        raw_key = header_value(headers, self.header_name)
        if raw_key is None or not raw_key.strip():
            log.warning("tenant_key_missing", header=self.header_name)
            raise MissingTenantKeyError(self.header_name)

        tenant_key = parse_tenant_key(raw_key)
        if tenant_key is None:
            log.warning("tenant_key_malformed", header=self.header_name)
            raise MalformedTenantKeyError(raw_key, self.header_name)

        tenant = await self._registry.find_by_key(tenant_key)
        if tenant is None:
            log.warning("tenant_unknown", tenant_key=tenant_key)
            raise UnknownTenantError(tenant_key, self.header_name)

        if not tenant.enabled:
            log.warning("tenant_disabled", tenant_key=tenant_key, tenant=tenant.name)
            raise TenantDisabledError(tenant_key)

        ctx = RequestContext(
            tenant=tenant,
            caller_ip=extract_client_ip(headers, remote_addr),
            request_id=str(uuid.uuid4()),
        )
        log.debug("tenant_resolved", tenant=tenant.name, request_id=ctx.request_id)
        return ctx
