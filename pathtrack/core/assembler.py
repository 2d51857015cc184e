"""Turn raw similarity results into the per-point view model."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from pathtrack.core.resolver import AccessionResolver, Resolution
from pathtrack.domain import Coordinates, Job, MatchStrategy, ResolvedPoint, SimilarityResult

logger = logging.getLogger(__name__)

USER_SEQUENCE_ID = "self"


@dataclass(frozen=True, slots=True)
class AssemblySummary:
    total: int
    matched: int
    by_strategy: dict[str, int] = field(default_factory=dict)
    low_confidence: int = 0
    user_resolved: bool = False

    @property
    def unresolved(self) -> int:
        return self.total - self.matched

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "matched": self.matched,
            "unresolved": self.unresolved,
            "low_confidence": self.low_confidence,
            "by_strategy": dict(self.by_strategy),
            "user_resolved": self.user_resolved,
        }


def _merge_metadata(primary: dict[str, Any], fallback: dict[str, Any]) -> dict[str, Any]:
    merged = dict(fallback)
    for key, value in primary.items():
        if value is not None or key not in merged:
            merged[key] = value
    return merged


class ResultAssembler:
    def __init__(self, resolver: AccessionResolver) -> None:
        self._resolver = resolver

    def user_point(self, job: Job, coordinates: Coordinates | None) -> ResolvedPoint:
        return ResolvedPoint(
            id=USER_SEQUENCE_ID,
            similarity_score=1.0,
            distance=0.0,
            raw_identifier=None,
            coordinates=coordinates,
            match_strategy=MatchStrategy.PROJECTION if coordinates is not None else None,
            is_user_sequence=True,
            rank_within_results=0,
            metadata={"job_id": job.job_id, "filename": job.filename, "model": job.model},
        )

    def _point(self, rank: int, result: SimilarityResult, resolution: Resolution | None) -> ResolvedPoint:
        if resolution is not None:
            entry = resolution.entry
            return ResolvedPoint(
                id=result.id,
                similarity_score=result.similarity_score,
                distance=result.distance,
                raw_identifier=result.raw_identifier,
                coordinates=entry.coordinates,
                match_strategy=resolution.strategy,
                rank_within_results=rank,
                metadata=_merge_metadata(result.metadata, entry.metadata),
                matched_identifier=entry.identifier,
            )
        if result.coordinates is not None:
            strategy: MatchStrategy | None = MatchStrategy.PROVIDED
        else:
            strategy = None
        return ResolvedPoint(
            id=result.id,
            similarity_score=result.similarity_score,
            distance=result.distance,
            raw_identifier=result.raw_identifier,
            coordinates=result.coordinates,
            match_strategy=strategy,
            rank_within_results=rank,
            metadata=dict(result.metadata),
        )

    def assemble(
        self,
        job: Job,
        raw_results: Sequence[SimilarityResult],
        user_coordinates: Coordinates | None = None,
    ) -> list[ResolvedPoint]:
        """Resolve every raw result, keeping unmatched ones flagged as unresolved.

        The user's own sequence always comes first.  Its position comes from the
        projection endpoint, never from the accession resolver.
        """

        resolutions = self._resolver.resolve_all(result.raw_identifier for result in raw_results)
        points = [self.user_point(job, user_coordinates)]
        points.extend(
            self._point(rank, result, resolution)
            for rank, (result, resolution) in enumerate(zip(raw_results, resolutions), start=1)
        )

        summary = self.summarize(points)
        logger.info(
            "Job %s: %d of %d similar sequences resolved to coordinates",
            job.job_id,
            summary.matched,
            summary.total,
        )
        return points

    @staticmethod
    def summarize(points: Iterable[ResolvedPoint]) -> AssemblySummary:
        counts: Counter[str] = Counter()
        total = matched = low_confidence = 0
        user_resolved = False
        for point in points:
            if point.is_user_sequence:
                user_resolved = not point.unresolved
                continue
            total += 1
            if point.unresolved:
                counts["unresolved"] += 1
                continue
            matched += 1
            if point.match_strategy is not None:
                counts[point.match_strategy.value] += 1
                if point.match_strategy.is_low_confidence:
                    low_confidence += 1
        return AssemblySummary(
            total=total,
            matched=matched,
            by_strategy=dict(counts),
            low_confidence=low_confidence,
            user_resolved=user_resolved,
        )
