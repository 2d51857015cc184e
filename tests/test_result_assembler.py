from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pathtrack.core.assembler import USER_SEQUENCE_ID, ResultAssembler
from pathtrack.core.resolver import AccessionResolver
from pathtrack.core.schema import SequenceRecord
from pathtrack.domain import Job, MatchStrategy
from pathtrack.infrastructure import ReferenceCache


def _assembler() -> ResultAssembler:
    async def loader():
        return [
            {"accession": "NZ_ABC.1", "coordinates": [1, 2], "first_country": "Kenya", "host": "Homo sapiens"},
            {"accession": "MN908947.3", "coordinates": [3, 4], "first_date": "2019-12-26"},
        ]

    cache = ReferenceCache(loader)
    asyncio.run(cache.ensure_loaded())
    return ResultAssembler(AccessionResolver(cache))


def _results():
    raw = [
        {"sequence_hash": "r1", "accession": "NZ_ABC", "similarity": 0.91, "first_date": "2021-03-01"},
        {"sequence_hash": "r2", "accession": "XX000001.1", "distance": 0.4},
        {"sequence_hash": "r3", "accession": "PROV.1", "similarity": 0.5, "coordinates": [9, 9]},
        {"sequence_hash": "r4", "accession": "mn908947.3", "similarity": 0.72},
    ]
    return [SequenceRecord.model_validate(item).to_result(rank) for rank, item in enumerate(raw, start=1)]


def test_user_sequence_comes_first_with_projection_coordinates():
    job = Job(job_id="job-7", filename="query.fasta", model="DNABERT-S")

    points = _assembler().assemble(job, _results(), user_coordinates=(0.5, -0.5))

    user = points[0]
    assert user.id == USER_SEQUENCE_ID
    assert user.is_user_sequence
    assert user.coordinates == (0.5, -0.5)
    assert user.match_strategy is MatchStrategy.PROJECTION
    assert user.metadata["job_id"] == "job-7"
    assert not any(point.is_user_sequence for point in points[1:])


def test_every_raw_result_is_kept_in_rank_order():
    points = _assembler().assemble(Job(job_id="job-7"), _results(), user_coordinates=(0, 0))

    assert [point.id for point in points[1:]] == ["r1", "r2", "r3", "r4"]
    assert [point.rank_within_results for point in points[1:]] == [1, 2, 3, 4]

    matched, unresolved, provided, case = points[1:]
    assert matched.match_strategy is MatchStrategy.VERSION_STRIPPED
    assert matched.coordinates == (1.0, 2.0)
    assert matched.matched_identifier == "NZ_ABC.1"
    assert matched.metadata["year"] == 2021
    assert matched.metadata["host"] == "Homo sapiens"

    assert unresolved.unresolved
    assert unresolved.match_strategy is None
    assert unresolved.similarity_score == 0.6

    assert provided.match_strategy is MatchStrategy.PROVIDED
    assert provided.coordinates == (9.0, 9.0)

    assert case.match_strategy is MatchStrategy.CASE_INSENSITIVE
    assert case.metadata["year"] == 2019


def test_missing_projection_leaves_user_point_unresolved():
    points = _assembler().assemble(Job(job_id="job-8"), [], user_coordinates=None)

    assert len(points) == 1
    assert points[0].unresolved
    assert points[0].match_strategy is None


def test_summary_reports_matched_out_of_total():
    assembler = _assembler()
    points = assembler.assemble(Job(job_id="job-7"), _results(), user_coordinates=(0, 0))

    summary = assembler.summarize(points)

    assert summary.total == 4
    assert summary.matched == 3
    assert summary.unresolved == 1
    assert summary.user_resolved
    assert summary.by_strategy == {
        "version_stripped": 1,
        "unresolved": 1,
        "provided": 1,
        "case_insensitive": 1,
    }
    assert summary.to_dict()["unresolved"] == 1


def test_point_serialisation_flags_unresolved_points():
    points = _assembler().assemble(Job(job_id="job-7"), _results(), user_coordinates=(0, 0))

    payload = points[2].to_dict()

    assert payload["unresolved"] is True
    assert payload["coordinates"] is None
    assert payload["match_strategy"] is None
    assert points[1].to_dict()["coordinates"] == [1.0, 2.0]
