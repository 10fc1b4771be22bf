"""Abstract append-only store for activity log entries."""

from __future__ import annotations

from abc import ABC, abstractmethod

from keygate.models import ActivityLogEntry


class ActivityLogStore(ABC):
    """Append-only persistence for audit records.

    Reading, filtering and retention are administrative concerns and are
    not part of this interface.

    Implementations:
        - DynamoDBActivityLogStore: DynamoDB table
        - InMemoryActivityLogStore: In-memory for testing
    """

    @abstractmethod
    async def append(self, entry: ActivityLogEntry) -> None:
        """Persist one entry.

        Raises:
            ActivityStoreError: If the entry could not be written
        """
