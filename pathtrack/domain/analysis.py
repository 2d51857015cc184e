"""Domain entities for sequence-similarity analysis sessions."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT}


class LoadState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class MatchStrategy(str, Enum):
    """How a result identifier was tied to a reference entry."""

    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    VERSION_STRIPPED = "version_stripped"
    PREFIX_STRIPPED = "prefix_stripped"
    CONTAINS = "contains"
    PROVIDED = "provided"
    PROJECTION = "projection"

    @property
    def is_low_confidence(self) -> bool:
        return self is MatchStrategy.CONTAINS


Coordinates = tuple[float, float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Job:
    """A single remote analysis request tracked by polling."""

    job_id: str
    status: JobStatus = JobStatus.SUBMITTED
    submitted_at: datetime = field(default_factory=_utcnow)
    model: str | None = None
    filename: str | None = None
    remote_status: str | None = None
    attempts: int = 0
    progress: float = 0.0
    error: str | None = None
    terminal_result: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "submitted_at": self.submitted_at.isoformat(),
            "model": self.model,
            "filename": self.filename,
            "remote_status": self.remote_status,
            "attempts": self.attempts,
            "progress": round(self.progress, 2),
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class ReferenceEntry:
    """A known reference sequence with its precomputed embedding position."""

    identifier: str
    normalized_keys: frozenset[str]
    coordinates: Coordinates
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True, slots=True)
class SimilarityResult:
    """A ranked record returned by the similarity endpoint."""

    id: str
    similarity_score: float
    distance: float | None
    raw_identifier: str | None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    coordinates: Coordinates | None = None

    @property
    def year(self) -> int | None:
        return self.metadata.get("year")


@dataclass(frozen=True, slots=True)
class ResolvedPoint:
    """Canonical per-point view model consumed by every visual."""

    id: str
    similarity_score: float
    distance: float | None
    raw_identifier: str | None
    coordinates: Coordinates | None
    match_strategy: MatchStrategy | None
    is_user_sequence: bool = False
    rank_within_results: int = 0
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    matched_identifier: str | None = None

    @property
    def unresolved(self) -> bool:
        return self.coordinates is None

    @property
    def year(self) -> int | None:
        return self.metadata.get("year")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "similarity_score": self.similarity_score,
            "distance": self.distance,
            "raw_identifier": self.raw_identifier,
            "matched_identifier": self.matched_identifier,
            "coordinates": list(self.coordinates) if self.coordinates else None,
            "match_strategy": self.match_strategy.value if self.match_strategy else None,
            "is_user_sequence": self.is_user_sequence,
            "rank_within_results": self.rank_within_results,
            "unresolved": self.unresolved,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True, slots=True)
class TimeWindowState:
    min_year: int | None = None
    max_year: int | None = None
    current_year: int | None = None
    similarity_threshold: float = 0.0
    is_playing: bool = False

    def evolve(self, **changes: Any) -> "TimeWindowState":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_year": self.min_year,
            "max_year": self.max_year,
            "current_year": self.current_year,
            "similarity_threshold": self.similarity_threshold,
            "is_playing": self.is_playing,
        }
