from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pathtrack.core import accession
from pathtrack.core.errors import CacheLoadError, NotFoundError
from pathtrack.core.resolver import AccessionResolver
from pathtrack.domain import MatchStrategy
from pathtrack.infrastructure import ReferenceCache


REFERENCE_RECORDS = [
    {"sequence_hash": "h1", "accession": "NZ_ABC.1", "coordinates": [1, 2], "first_country": "Kenya"},
    {"sequence_hash": "h2", "accession": "CP012345.2", "coordinates": [3.5, -1], "first_date": "2019-04-01"},
    {"sequence_hash": "h3", "accession": "MN908947.3", "coordinates": [0, 0]},
    {"sequence_hash": "h4", "accession": "NZ_QTIX00000000.1", "coordinates": [7, 8]},
]


def _loaded_cache(records=REFERENCE_RECORDS, **kwargs) -> ReferenceCache:
    async def loader():
        return list(records)

    cache = ReferenceCache(loader, **kwargs)
    asyncio.run(cache.ensure_loaded())
    return cache


@pytest.fixture()
def resolver() -> AccessionResolver:
    return AccessionResolver(_loaded_cache())


def test_helpers_normalise_identifiers():
    assert accession.strip_version("NZ_ABC.1") == "NZ_ABC"
    assert accession.strip_prefix("nz_ABC.1") == "ABC.1"
    assert accession.strip_prefix("ABC.1") == "ABC.1"
    assert accession.unprefixed_key(" NZ_ABC.1 ") == "abc"
    assert accession.normalized_keys("NZ_ABC.1") == frozenset({"nz_abc.1", "nz_abc", "abc"})


@pytest.mark.parametrize("identifier", [record["accession"] for record in REFERENCE_RECORDS])
def test_verbatim_identifiers_match_exactly(resolver, identifier):
    resolution = resolver.resolve(identifier)

    assert resolution.strategy is MatchStrategy.EXACT
    assert resolution.entry.identifier == identifier


def test_case_only_difference_uses_case_insensitive_strategy(resolver):
    resolution = resolver.resolve("mn908947.3")

    assert resolution.strategy is MatchStrategy.CASE_INSENSITIVE
    assert resolution.entry.identifier == "MN908947.3"


@pytest.mark.parametrize("identifier", ["MN908947", "MN908947.1", "cp012345"])
def test_version_difference_uses_version_stripped_strategy(resolver, identifier):
    resolution = resolver.resolve(identifier)

    assert resolution.strategy is MatchStrategy.VERSION_STRIPPED


def test_reference_scenario_with_symmetric_prefix_handling():
    resolver = AccessionResolver(_loaded_cache([{"accession": "NZ_ABC.1", "coordinates": [1, 2]}]))

    versionless = resolver.resolve("NZ_ABC")
    assert versionless.strategy is MatchStrategy.VERSION_STRIPPED
    assert versionless.entry.coordinates == (1.0, 2.0)

    # the organisational prefix is stripped from both sides, so bare accessions
    # find their prefixed reference entry
    bare = resolver.resolve("ABC.1")
    assert bare.strategy is MatchStrategy.PREFIX_STRIPPED
    assert bare.entry.identifier == "NZ_ABC.1"

    lowercase = resolver.resolve("abc")
    assert lowercase.strategy is MatchStrategy.PREFIX_STRIPPED


def test_prefixed_query_matches_unprefixed_entry():
    resolver = AccessionResolver(_loaded_cache([{"accession": "QTIX01.2", "coordinates": [5, 5]}]))

    resolution = resolver.resolve("NZ_QTIX01.1")

    assert resolution.strategy is MatchStrategy.PREFIX_STRIPPED
    assert resolution.entry.identifier == "QTIX01.2"


def test_unknown_identifier_raises_not_found(resolver):
    with pytest.raises(NotFoundError) as excinfo:
        resolver.resolve("ZZ999999.1")

    assert excinfo.value.identifier == "ZZ999999.1"
    assert resolver.try_resolve("ZZ999999.1") is None
    assert resolver.try_resolve("") is None
    assert resolver.try_resolve(None) is None


def test_contains_strategy_is_opt_in():
    cache = _loaded_cache()
    default = AccessionResolver(cache)
    permissive = AccessionResolver(cache, allow_contains=True)

    assert default.try_resolve("QTIX") is None

    resolution = permissive.resolve("QTIX")
    assert resolution.strategy is MatchStrategy.CONTAINS
    assert resolution.is_low_confidence
    assert resolution.entry.identifier == "NZ_QTIX00000000.1"


def test_contains_strategy_ignores_short_fragments():
    permissive = AccessionResolver(_loaded_cache(), allow_contains=True)

    assert permissive.try_resolve("AB") is None


def test_batch_resolution_matches_individual_resolution(resolver):
    identifiers = ["NZ_ABC.1", "nz_abc.1", "CP012345", "ABC", "missing", None, "MN908947.9"]

    batched = resolver.resolve_all(identifiers)
    individual = [resolver.try_resolve(identifier) for identifier in identifiers]

    assert batched == individual
    assert batched[4] is None and batched[5] is None


def test_first_entry_in_load_order_wins_for_shared_keys():
    records = [
        {"accession": "AB000001.1", "coordinates": [1, 1]},
        {"accession": "AB000001.2", "coordinates": [2, 2]},
    ]
    resolver = AccessionResolver(_loaded_cache(records))

    resolution = resolver.resolve("AB000001")

    assert resolution.entry.identifier == "AB000001.1"


def test_custom_prefixes_are_honoured():
    resolver = AccessionResolver(
        _loaded_cache([{"accession": "GCF_000123.1", "coordinates": [1, 1]}], prefixes=("GCF_",))
    )

    assert resolver.resolve("000123").strategy is MatchStrategy.PREFIX_STRIPPED


def test_resolving_before_cache_load_is_an_error():
    async def loader():
        return list(REFERENCE_RECORDS)

    resolver = AccessionResolver(ReferenceCache(loader))

    with pytest.raises(CacheLoadError):
        resolver.resolve("NZ_ABC.1")
