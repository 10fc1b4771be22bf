"""Tagged results returned by auth flow operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from keygate.exceptions import ErrorKind, ProviderError
from keygate.models import ActivityKind


@dataclass(frozen=True)
class FlowError:
    """Sanitized failure detail."""

    kind: ErrorKind
    message: str
    provider_code: Optional[str] = None

    @classmethod
    def from_provider_error(cls, error: ProviderError) -> "FlowError":
        return cls(kind=error.kind, message=error.message, provider_code=error.provider_code)


@dataclass(frozen=True)
class FlowResult:
    """Outcome of one flow operation: a value or an error, never both."""

    activity: ActivityKind
    value: Any = None
    error: Optional[FlowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, activity: ActivityKind, value: Any = None) -> "FlowResult":
        return cls(activity=activity, value=value)

    @classmethod
    def failure(cls, activity: ActivityKind, error: FlowError) -> "FlowResult":
        return cls(activity=activity, error=error)
