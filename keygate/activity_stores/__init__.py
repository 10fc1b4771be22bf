"""Activity log store implementations."""

from keygate.activity_stores.dynamodb import DynamoDBActivityLogStore
from keygate.activity_stores.memory import InMemoryActivityLogStore

__all__ = [
    "DynamoDBActivityLogStore",
    "InMemoryActivityLogStore",
]
