"""DynamoDB-backed append-only activity log store."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from keygate.core.activity_store import ActivityLogStore
from keygate.exceptions import ActivityStoreError
from keygate.models import ActivityLogEntry

log = structlog.get_logger()


def entry_to_item(entry: ActivityLogEntry) -> Dict[str, Dict[str, Any]]:
    """Serialize an entry to a DynamoDB item.

    Entries are partitioned by pool and sorted by creation time; the id
    suffix keeps sort keys unique for entries written in the same instant.
    """
    created_at = entry.created_at.isoformat()
    item: Dict[str, Dict[str, Any]] = {
        'PK': {'S': f'POOL#{entry.pool_id}'},
        'SK': {'S': f'{created_at}#{entry.id}'},
        'id': {'S': entry.id},
        'activity': {'S': entry.activity.value},
        'actor': {'S': entry.actor},
        'pool_id': {'S': entry.pool_id},
        'tenant_name': {'S': entry.tenant_name},
        'outcome': {'S': entry.outcome.value},
        'created_at': {'S': created_at},
    }
    if entry.error_detail is not None:
        item['error_detail'] = {'S': entry.error_detail}
    if entry.caller_ip is not None:
        item['caller_ip'] = {'S': entry.caller_ip}
    return item


class DynamoDBActivityLogStore(ActivityLogStore):
    """
    Appends activity entries to a DynamoDB table.

    Expects table schema:
    - PK: POOL#{pool_id}
    - SK: {created_at}#{entry_id}

    Writes are conditional on the key not existing, so an entry is never
    overwritten.
    """

    def __init__(
        self,
        table_name: str,
        region: str,
        endpoint_url: Optional[str] = None,  # For LocalStack testing
    ):
        self._table_name = table_name
        self._dynamodb = boto3.client(
            'dynamodb',
            region_name=region,
            endpoint_url=endpoint_url
        )
        log.info("Initialized DynamoDB activity log store", table_name=table_name, region=region)

    async def append(self, entry: ActivityLogEntry) -> None:
        try:
            await asyncio.to_thread(
                self._dynamodb.put_item,
                TableName=self._table_name,
                Item=entry_to_item(entry),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except (ClientError, BotoCoreError) as e:
            raise ActivityStoreError(f"Failed to write activity entry: {e}") from e
