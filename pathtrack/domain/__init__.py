"""Domain layer definitions."""

from .analysis import (
    Coordinates,
    Job,
    JobStatus,
    LoadState,
    MatchStrategy,
    ReferenceEntry,
    ResolvedPoint,
    SimilarityResult,
    TimeWindowState,
)

__all__ = [
    "Coordinates",
    "Job",
    "JobStatus",
    "LoadState",
    "MatchStrategy",
    "ReferenceEntry",
    "ResolvedPoint",
    "SimilarityResult",
    "TimeWindowState",
]
