"""In-memory activity log store for testing."""

from __future__ import annotations

from typing import List, Optional

from keygate.core.activity_store import ActivityLogStore
from keygate.exceptions import ActivityStoreError
from keygate.models import ActivityLogEntry


class InMemoryActivityLogStore(ActivityLogStore):
    """List-backed activity store.

    Set fail_with to make every append raise, simulating an unavailable
    backing store.
    """

    def __init__(self, fail_with: Optional[Exception] = None):
        self._entries: List[ActivityLogEntry] = []
        self.fail_with = fail_with

    @property
    def entries(self) -> List[ActivityLogEntry]:
        return list(self._entries)

    def count(self) -> int:
        return len(self._entries)

    async def append(self, entry: ActivityLogEntry) -> None:
        if self.fail_with is not None:
            raise ActivityStoreError(str(self.fail_with)) from self.fail_with
        self._entries.append(entry)
