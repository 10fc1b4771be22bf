"""Activity logger - exactly one audit entry per flow attempt."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Mapping, Optional

import structlog

from keygate.core.activity_store import ActivityLogStore
from keygate.exceptions import sanitize_message
from keygate.models import ActivityKind, ActivityLogEntry, Outcome

log = structlog.get_logger()

# Checked in order before falling back to the peer address
CLIENT_IP_HEADERS = ("X-Forwarded-For", "Proxy-Client-IP", "WL-Proxy-Client-IP")


def header_value(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _usable(value: Optional[str]) -> bool:
    if value is None:
        return False
    stripped = value.strip()
    return stripped != "" and stripped.lower() != "unknown"


def extract_client_ip(
    headers: Optional[Mapping[str, str]],
    remote_addr: Optional[str] = None,
) -> Optional[str]:
    """Pick the caller IP from proxy headers, then the direct connection."""
    for name in CLIENT_IP_HEADERS:
        value = header_value(headers, name)
        if _usable(value):
            return value.strip()
    if _usable(remote_addr):
        return remote_addr
    return None


class ActivityLogger:
    """Writes audit entries to an append-only store.

    log_activity() never raises because of the store: a failed write is
    reported through structlog and the flow's own outcome stands.
    """

    def __init__(self, store: ActivityLogStore):
        self._store = store

    async def log_activity(
        self,
        kind: ActivityKind,
        actor: str,
        pool_id: str,
        tenant_name: str,
        outcome: Outcome,
        error_detail: Optional[str] = None,
        caller_ip: Optional[str] = None,
    ) -> ActivityLogEntry:
        """Record one flow attempt.

        Args:
            kind: Flow that was attempted
            actor: Email/username, or UNKNOWN_ACTOR
            pool_id: Tenant pool identifier
            tenant_name: Tenant display name
            outcome: SUCCESS or FAILURE
            error_detail: Failure message, sanitized before storage
            caller_ip: Caller address

        Returns:
            The entry as built, whether or not the write succeeded
        """
        entry = ActivityLogEntry(
            id=str(uuid.uuid4()),
            activity=kind,
            actor=actor,
            pool_id=pool_id,
            tenant_name=tenant_name,
            outcome=outcome,
            created_at=datetime.now(timezone.utc),
            error_detail=sanitize_message(error_detail) if error_detail is not None else None,
            caller_ip=caller_ip,
        )

        try:
            await self._store.append(entry)
        except Exception:
            log.exception(
                "activity_log_write_failed",
                activity=kind.value,
                outcome=outcome.value,
                pool_id=pool_id,
                entry_id=entry.id,
            )
        else:
            log.debug(
                "activity_logged",
                activity=kind.value,
                outcome=outcome.value,
                pool_id=pool_id,
            )
        return entry
