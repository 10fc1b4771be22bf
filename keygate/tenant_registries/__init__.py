"""Tenant registry implementations for reading tenant configurations."""

from keygate.tenant_registries.dynamodb import DynamoDBTenantRegistry
from keygate.tenant_registries.memory import InMemoryTenantRegistry

__all__ = [
    "DynamoDBTenantRegistry",
    "InMemoryTenantRegistry",
]
