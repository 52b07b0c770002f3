"""Core types for the dashsync synchronization layer."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds

# Clock returning Unix time in milliseconds
Clock = Callable[[], float]


class ErrorKind(str, Enum):
    """Why a request failed."""

    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    APPLICATION = "application"
    MALFORMED = "malformed"


@dataclass(frozen=True, slots=True)
class ResponseEnvelope(Generic[T]):
    """Uniform result of every network call."""

    success: bool
    data: T | None = None
    error: str | None = None
    kind: ErrorKind | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "ResponseEnvelope[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, kind: ErrorKind) -> "ResponseEnvelope[T]":
        return cls(success=False, error=error, kind=kind)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "ResponseEnvelope[Any]":
        """Build an envelope from a body already shaped {success, data, error}."""
        if body.get("success"):
            return cls(success=True, data=body.get("data"))
        return cls(
            success=False,
            data=body.get("data"),
            error=str(body.get("error") or "Request failed"),
            kind=ErrorKind.APPLICATION,
        )

    @property
    def rate_limited(self) -> bool:
        return self.kind is ErrorKind.RATE_LIMITED


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached envelope with metadata."""

    key: str
    value: ResponseEnvelope[T]
    stored_at: int  # Unix timestamp ms
    ttl_ms: int

    @property
    def expires_at(self) -> int:
        return self.stored_at + self.ttl_ms

    def is_fresh(self, now_ms: float) -> bool:
        """Check if entry is still within its TTL window."""
        return now_ms - self.stored_at <= self.ttl_ms
