"""Abstract interface for tenant configuration lookup.

The registry is the persisted store of tenant configurations. The gateway
only reads it; creating, updating and deleting tenants belongs to an
administrative surface outside this package.

Implementations must not cache: a disabled tenant or rotated secret has to
take effect on the very next request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from keygate.models import TenantConfig


class TenantRegistry(ABC):
    """Abstract interface for reading tenant configurations.

    Implementations:
        - DynamoDBTenantRegistry: DynamoDB table with encrypted secrets
        - InMemoryTenantRegistry: In-memory for testing
    """

    @abstractmethod
    async def find_by_key(self, tenant_key: str) -> Optional[TenantConfig]:
        """Get configuration for a tenant key.

        Args:
            tenant_key: Canonical tenant key (UUID string)

        Returns:
            TenantConfig with a decrypted client secret, or None if no
            tenant is registered under the key

        Raises:
            RegistryError: If the backing store cannot be read
        """
