"""Gateway settings loaded from KEYGATE_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from keygate.gate import TENANT_KEY_HEADER

DEFAULT_REGION = "us-east-1"
DEFAULT_TENANT_TABLE = "keygate-tenants"
DEFAULT_ACTIVITY_TABLE = "keygate-activity"
DEFAULT_REQUEST_TIMEOUT = 10.0

PROVIDER_TYPES = ("cognito", "mock")


@dataclass
class GatewaySettings:
    """Wiring configuration for create_gateway().

    Attributes:
        provider: "cognito" for real user pools, "mock" for local development
            (in-memory registry, activity store and identity provider)
        region: AWS region of the registry table, activity table and KMS key
        tenant_table: DynamoDB table holding tenant configurations
        activity_table: DynamoDB table receiving activity entries
        kms_key_id: KMS key for client secrets; plaintext storage when unset
        endpoint_url: Custom AWS endpoint (LocalStack)
        request_timeout: Seconds to wait on the identity provider
        tenant_header: Header carrying the tenant key
    """

    provider: str = "cognito"
    region: str = DEFAULT_REGION
    tenant_table: str = DEFAULT_TENANT_TABLE
    activity_table: str = DEFAULT_ACTIVITY_TABLE
    kms_key_id: Optional[str] = None
    endpoint_url: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    tenant_header: str = TENANT_KEY_HEADER

    def __post_init__(self) -> None:
        if self.provider not in PROVIDER_TYPES:
            raise ValueError(
                f"Unknown provider type: '{self.provider}'. "
                f"Valid types: {', '.join(repr(p) for p in PROVIDER_TYPES)}"
            )
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewaySettings":
        """Build settings from the environment.

        Raises:
            ValueError: If KEYGATE_REQUEST_TIMEOUT is not a positive number
                or KEYGATE_PROVIDER is unknown
        """
        env = os.environ if environ is None else environ

        raw_timeout = env.get("KEYGATE_REQUEST_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_REQUEST_TIMEOUT
        except ValueError:
            raise ValueError(
                f"KEYGATE_REQUEST_TIMEOUT must be a number of seconds, got {raw_timeout!r}"
            )

        return cls(
            provider=env.get("KEYGATE_PROVIDER", "cognito"),
            region=env.get("KEYGATE_REGION", DEFAULT_REGION),
            tenant_table=env.get("KEYGATE_TENANT_TABLE", DEFAULT_TENANT_TABLE),
            activity_table=env.get("KEYGATE_ACTIVITY_TABLE", DEFAULT_ACTIVITY_TABLE),
            kms_key_id=env.get("KEYGATE_KMS_KEY_ID") or None,
            endpoint_url=env.get("KEYGATE_ENDPOINT_URL") or None,
            request_timeout=timeout,
            tenant_header=env.get("KEYGATE_TENANT_HEADER", TENANT_KEY_HEADER),
        )
