"""Market data models: snapshots, history windows and resolution results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class SnapshotSource(str, Enum):
    """Where a snapshot came from."""

    UPSTREAM = "upstream"
    CACHE = "cache"
    HISTORY = "history"


class MarketSnapshot(BaseModel):
    """Latest quote for one symbol. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    volume_24h: float = 0.0
    change_1h: float = 0.0
    change_24h: float = 0.0
    change_7d: float = 0.0
    market_cap: float = 0.0
    timestamp: datetime
    source: SnapshotSource = SnapshotSource.UPSTREAM

    def with_source(self, source: SnapshotSource) -> MarketSnapshot:
        """Return a copy tagged with a different source."""
        if source == self.source:
            return self
        return self.model_copy(update={"source": source})


# =============================================================================
# Data quality tiers
# =============================================================================

class QualityTier(str, Enum):
    """How much history backs a computation."""

    INSUFFICIENT = "insufficient"
    BASIC = "basic"
    GOOD = "good"
    EXCELLENT = "excellent"


TIER_BASIC_MIN = 20
TIER_GOOD_MIN = 50
TIER_EXCELLENT_MIN = 100


def quality_tier(count: int) -> QualityTier:
    """Map a point count to its quality tier."""
    if count >= TIER_EXCELLENT_MIN:
        return QualityTier.EXCELLENT
    if count >= TIER_GOOD_MIN:
        return QualityTier.GOOD
    if count >= TIER_BASIC_MIN:
        return QualityTier.BASIC
    return QualityTier.INSUFFICIENT


@dataclass(frozen=True)
class PriceHistoryWindow:
    """Ordered, read-only view of a symbol's recent snapshots (oldest first)."""

    symbol: str
    points: tuple[MarketSnapshot, ...] = ()

    @property
    def tier(self) -> QualityTier:
        return quality_tier(len(self.points))

    @property
    def latest(self) -> MarketSnapshot | None:
        return self.points[-1] if self.points else None

    @property
    def closes(self) -> list[float]:
        return [p.price for p in self.points]

    def __len__(self) -> int:
        return len(self.points)


# =============================================================================
# Snapshot resolution results
# =============================================================================

class ErrorKind(str, Enum):
    """Classification of an upstream failure."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    TRANSPORT = "transport"
    MALFORMED = "malformed"

    @property
    def is_hard(self) -> bool:
        """Failures that count toward the breaker's error threshold."""
        return self in (
            ErrorKind.TIMEOUT,
            ErrorKind.RATE_LIMITED,
            ErrorKind.SERVER_ERROR,
            ErrorKind.TRANSPORT,
        )


class AbsentReason(str, Enum):
    """Why no snapshot could be resolved."""

    CIRCUIT_OPEN = "circuit_open"
    BUDGET_EXCEEDED = "budget_exceeded"
    NOT_LISTED = "not_listed"


@dataclass(frozen=True)
class Resolved:
    """A snapshot was found (upstream, cache or history)."""

    snapshot: MarketSnapshot


@dataclass(frozen=True)
class Absent:
    """No snapshot available this cycle; not an error."""

    symbol: str
    reason: AbsentReason


@dataclass(frozen=True)
class FetchFailed:
    """The upstream call failed and nothing could stand in for it."""

    symbol: str
    kind: ErrorKind
    message: str = ""


SnapshotResult = Resolved | Absent | FetchFailed
