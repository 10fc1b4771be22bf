"""DynamoDB-based tenant registry for reading tenant configurations."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from keygate.core.secret_cipher import SecretCipher
from keygate.core.tenant_registry import TenantRegistry
from keygate.exceptions import RegistryError
from keygate.models import TenantConfig

log = structlog.get_logger()


def tenant_item_key(tenant_key: str) -> Dict[str, Dict[str, str]]:
    """Primary key of a tenant item."""
    return {
        'PK': {'S': f'TENANT#{tenant_key}'},
        'SK': {'S': 'CONFIG'},
    }


class DynamoDBTenantRegistry(TenantRegistry):
    """
    Reads tenant configurations from a DynamoDB table.

    Expects table schema:
    - PK: TENANT#{tenant_key}
    - SK: CONFIG
    - Attributes: id, tenant_key, name, region, pool_id, client_id,
      client_secret (ciphertext, optional), enabled

    Requires AWS credentials with dynamodb:GetItem permission. Every lookup
    is a GetItem; nothing is cached, so admin changes apply to the next
    request.

    Example:
        registry = DynamoDBTenantRegistry(
            table_name="keygate-tenants",
            region="us-east-1",
            cipher=KmsSecretCipher("alias/keygate", "us-east-1"),
        )
        config = await registry.find_by_key(tenant_key)
    """

    def __init__(
        self,
        table_name: str,
        region: str,
        cipher: SecretCipher,
        endpoint_url: Optional[str] = None,  # For LocalStack testing
    ):
        """Initialize DynamoDB tenant registry.

        Args:
            table_name: Name of the DynamoDB table containing tenant data
            region: AWS region where the table is located
            cipher: Cipher used to decrypt stored client secrets
            endpoint_url: Optional endpoint URL for LocalStack/testing
        """
        self._table_name = table_name
        self._cipher = cipher
        self._dynamodb = boto3.client(
            'dynamodb',
            region_name=region,
            endpoint_url=endpoint_url
        )
        log.info("Initialized DynamoDB tenant registry", table_name=table_name, region=region)

    async def find_by_key(self, tenant_key: str) -> Optional[TenantConfig]:
        try:
            response = await asyncio.to_thread(
                self._dynamodb.get_item,
                TableName=self._table_name,
                Key=tenant_item_key(tenant_key),
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            log.error(
                "DynamoDB tenant lookup failed",
                tenant_key=tenant_key,
                error=str(e)
            )
            raise RegistryError(f"Failed to query tenant from DynamoDB: {e}") from e

        if 'Item' not in response:
            log.info("Tenant not found in DynamoDB", tenant_key=tenant_key)
            return None

        return await asyncio.to_thread(self._parse_item, tenant_key, response['Item'])

    def _parse_item(self, tenant_key: str, item: Dict[str, Any]) -> TenantConfig:
        try:
            secret_blob = item.get('client_secret', {}).get('S')
            return TenantConfig(
                id=item['id']['S'],
                tenant_key=item['tenant_key']['S'],
                name=item['name']['S'],
                region=item['region']['S'],
                pool_id=item['pool_id']['S'],
                client_id=item['client_id']['S'],
                client_secret=self._cipher.decrypt(secret_blob) if secret_blob else None,
                enabled=item.get('enabled', {}).get('BOOL', False),
            )
        except KeyError as e:
            log.error(
                "DynamoDB tenant item missing required field",
                tenant_key=tenant_key,
                field=str(e)
            )
            raise RegistryError(f"Invalid tenant data in DynamoDB (missing {e})") from e
