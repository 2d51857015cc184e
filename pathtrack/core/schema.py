from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pathtrack.domain import Coordinates, SimilarityResult

_YEAR_PATTERN = re.compile(r"^\s*(\d{4})")


def parse_year(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _YEAR_PATTERN.match(str(value))
    return int(match.group(1)) if match else None


def parse_coordinates(value: Any) -> Coordinates | None:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    try:
        x, y = float(value[0]), float(value[1])
    except (TypeError, ValueError):
        return None
    return (x, y)


class UploadResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    job_id: str


class JobStatusPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str = "unknown"
    result: Any | None = None
    error: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, value: Any) -> str:
        return str(value or "unknown").strip().lower()


class SequenceRecord(BaseModel):
    """Sequence-shaped record shared by the similarity and reference endpoints."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    sequence_hash: str | None = None
    accession: str | None = None
    accessions: list[str] = Field(default_factory=list)
    similarity: float | None = None
    distance: float | None = None
    first_country: str | None = None
    first_date: str | int | None = None
    host: str | None = None
    organism: str | None = None
    coordinates: Coordinates | None = None

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coerce_coordinates(cls, value: Any) -> Coordinates | None:
        return parse_coordinates(value)

    @field_validator("accessions", mode="before")
    @classmethod
    def _coerce_accessions(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value if item]

    @property
    def identifier(self) -> str | None:
        if self.accession:
            return self.accession.strip()
        if self.accessions:
            return self.accessions[0].strip()
        return None

    @property
    def record_id(self) -> str | None:
        return self.sequence_hash or self.id or self.identifier

    def metadata(self) -> dict[str, Any]:
        accessions = list(self.accessions)
        if self.accession and self.accession not in accessions:
            accessions.insert(0, self.accession)
        return {
            "sequence_hash": self.sequence_hash,
            "accessions": accessions,
            "country": self.first_country or "Unknown",
            "first_date": self.first_date,
            "year": parse_year(self.first_date),
            "host": self.host,
            "organism": self.organism,
        }

    def similarity_score(self) -> float:
        if self.similarity is not None:
            score = self.similarity
        elif self.distance is not None:
            score = 1.0 - self.distance
        else:
            score = 0.0
        return min(1.0, max(0.0, float(score)))

    def to_result(self, rank: int) -> SimilarityResult:
        return SimilarityResult(
            id=self.record_id or f"result-{rank}",
            similarity_score=self.similarity_score(),
            distance=self.distance,
            raw_identifier=self.identifier,
            metadata=self.metadata(),
            coordinates=self.coordinates,
        )


class SimilarityQuery(BaseModel):
    n_results: int = Field(default=10, ge=1)
    min_distance: float = -1
    max_year: int = 0
    include_unknown_dates: bool = False


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Return the list of records from either a bare list or a ``result`` envelope."""

    if isinstance(payload, dict):
        for key in ("result", "results", "data", "items"):
            if key in payload:
                return extract_records(payload[key])
        return []
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    return []


def extract_projection(payload: Any) -> Coordinates | None:
    if not isinstance(payload, dict):
        return None
    result = payload.get("result")
    if isinstance(result, dict) and "coordinates" in result:
        return parse_coordinates(result["coordinates"])
    return parse_coordinates(payload.get("coordinates"))
