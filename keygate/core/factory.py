"""Wiring entry point for the Keygate gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog

from keygate.core.activity_store import ActivityLogStore
from keygate.core.tenant_registry import TenantRegistry

if TYPE_CHECKING:
    from keygate.config import GatewaySettings
    from keygate.gateway import AuthGateway

log = structlog.get_logger()


def create_gateway(
    settings: Optional["GatewaySettings"] = None,
    registry: Optional[TenantRegistry] = None,
    activity_store: Optional[ActivityLogStore] = None,
) -> "AuthGateway":
    """Build an AuthGateway from settings.

    This is the main entry point for host applications. It wires the tenant
    registry, secret cipher, credential binder, activity logger and flow
    engine so that they work together.

    Args:
        settings: Gateway settings. Defaults to GatewaySettings.from_env().
        registry: Custom TenantRegistry. If provided, it is used instead of
            the registry the settings describe (e.g. a registry shared with
            an admin service).
        activity_store: Custom ActivityLogStore, used the same way.

    Returns:
        AuthGateway: Ready to handle requests.

    Raises:
        ValueError: If the settings are invalid.

    Examples:
        From the environment:
            >>> gateway = create_gateway()

        Local development without AWS:
            >>> gateway = create_gateway(GatewaySettings(provider="mock"))

        With LocalStack:
            >>> gateway = create_gateway(
            ...     GatewaySettings(region="us-east-1", endpoint_url="http://localhost:4566")
            ... )
    """
    from keygate.activity import ActivityLogger
    from keygate.binder import CredentialBinder
    from keygate.config import GatewaySettings
    from keygate.engine import AuthFlowEngine
    from keygate.gate import TenantGate
    from keygate.gateway import AuthGateway

    if settings is None:
        settings = GatewaySettings.from_env()

    if settings.provider == "mock":
        from keygate.activity_stores import InMemoryActivityLogStore
        from keygate.identity_providers import MockIdentityProviderState
        from keygate.tenant_registries import InMemoryTenantRegistry

        registry = registry or InMemoryTenantRegistry()
        activity_store = activity_store or InMemoryActivityLogStore()
        binder = CredentialBinder.for_mock(MockIdentityProviderState())
    else:
        if registry is None:
            from keygate.tenant_registries import DynamoDBTenantRegistry

            registry = DynamoDBTenantRegistry(
                table_name=settings.tenant_table,
                region=settings.region,
                cipher=_create_cipher(settings),
                endpoint_url=settings.endpoint_url,
            )
        if activity_store is None:
            from keygate.activity_stores import DynamoDBActivityLogStore

            activity_store = DynamoDBActivityLogStore(
                table_name=settings.activity_table,
                region=settings.region,
                endpoint_url=settings.endpoint_url,
            )
        binder = CredentialBinder(endpoint_url=settings.endpoint_url)

    engine = AuthFlowEngine(
        binder=binder,
        activity_logger=ActivityLogger(activity_store),
        request_timeout=settings.request_timeout,
    )
    gate = TenantGate(registry, header_name=settings.tenant_header)

    log.info(
        "gateway_created",
        provider=settings.provider,
        region=settings.region,
        request_timeout=settings.request_timeout,
    )
    return AuthGateway(gate, engine)


def _create_cipher(settings: "GatewaySettings"):
    if settings.kms_key_id:
        from keygate.ciphers import KmsSecretCipher

        return KmsSecretCipher(
            key_id=settings.kms_key_id,
            region=settings.region,
            endpoint_url=settings.endpoint_url,
        )

    from keygate.ciphers import PlaintextCipher

    log.warning("tenant_secrets_unencrypted", reason="KEYGATE_KMS_KEY_ID not set")
    return PlaintextCipher()
