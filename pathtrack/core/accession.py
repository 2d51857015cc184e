"""Accession normalisation and ordered matching strategies.

Every strategy is a pure function over ``(raw_identifier, index)`` returning the
first matching :class:`ReferenceEntry` or ``None``.  The :class:`AccessionIndex`
is built once per reference snapshot, so resolving a batch costs one dictionary
lookup per identifier and strategy.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from pathtrack.domain import MatchStrategy, ReferenceEntry

DEFAULT_PREFIXES: tuple[str, ...] = ("NZ_",)
MIN_CONTAINS_LENGTH = 4


def normalize(identifier: str) -> str:
    return identifier.strip().lower()


def strip_version(identifier: str) -> str:
    return identifier.split(".", 1)[0]


def strip_prefix(identifier: str, prefixes: Sequence[str] = DEFAULT_PREFIXES) -> str:
    upper = identifier.upper()
    for prefix in prefixes:
        if prefix and upper.startswith(prefix.upper()):
            return identifier[len(prefix):]
    return identifier


def base_key(identifier: str) -> str:
    return normalize(strip_version(identifier))


def unprefixed_key(identifier: str, prefixes: Sequence[str] = DEFAULT_PREFIXES) -> str:
    return normalize(strip_version(strip_prefix(identifier.strip(), prefixes)))


def normalized_keys(identifier: str, prefixes: Sequence[str] = DEFAULT_PREFIXES) -> frozenset[str]:
    return frozenset(
        {
            normalize(identifier),
            base_key(identifier),
            unprefixed_key(identifier, prefixes),
        }
    )


@dataclass(eq=False)
class AccessionIndex:
    """Lookup tables derived from one immutable reference snapshot."""

    entries: tuple[ReferenceEntry, ...]
    prefixes: tuple[str, ...] = DEFAULT_PREFIXES
    exact: dict[str, ReferenceEntry] = field(default_factory=dict)
    casefold: dict[str, ReferenceEntry] = field(default_factory=dict)
    base: dict[str, ReferenceEntry] = field(default_factory=dict)
    unprefixed: dict[str, ReferenceEntry] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        entries: Iterable[ReferenceEntry],
        prefixes: Sequence[str] = DEFAULT_PREFIXES,
    ) -> "AccessionIndex":
        index = cls(entries=tuple(entries), prefixes=tuple(prefixes))
        # setdefault keeps the first entry in load order for each key
        for entry in index.entries:
            identifier = entry.identifier
            index.exact.setdefault(identifier, entry)
            index.casefold.setdefault(normalize(identifier), entry)
            index.base.setdefault(base_key(identifier), entry)
            index.unprefixed.setdefault(unprefixed_key(identifier, index.prefixes), entry)
        return index

    def __len__(self) -> int:
        return len(self.entries)


def match_exact(raw_identifier: str, index: AccessionIndex) -> ReferenceEntry | None:
    return index.exact.get(raw_identifier)


def match_case_insensitive(raw_identifier: str, index: AccessionIndex) -> ReferenceEntry | None:
    return index.casefold.get(normalize(raw_identifier))


def match_version_stripped(raw_identifier: str, index: AccessionIndex) -> ReferenceEntry | None:
    return index.base.get(base_key(raw_identifier))


def match_prefix_stripped(raw_identifier: str, index: AccessionIndex) -> ReferenceEntry | None:
    return index.unprefixed.get(unprefixed_key(raw_identifier, index.prefixes))


def match_contains(raw_identifier: str, index: AccessionIndex) -> ReferenceEntry | None:
    needle = unprefixed_key(raw_identifier, index.prefixes)
    if len(needle) < MIN_CONTAINS_LENGTH:
        return None
    for entry in index.entries:
        if needle in normalize(entry.identifier):
            return entry
    return None


Strategy = Callable[[str, AccessionIndex], "ReferenceEntry | None"]

STRATEGIES: tuple[tuple[MatchStrategy, Strategy], ...] = (
    (MatchStrategy.EXACT, match_exact),
    (MatchStrategy.CASE_INSENSITIVE, match_case_insensitive),
    (MatchStrategy.VERSION_STRIPPED, match_version_stripped),
    (MatchStrategy.PREFIX_STRIPPED, match_prefix_stripped),
)

CONTAINS_STRATEGY: tuple[MatchStrategy, Strategy] = (MatchStrategy.CONTAINS, match_contains)


def strategies_for(*, allow_contains: bool = False) -> tuple[tuple[MatchStrategy, Strategy], ...]:
    if allow_contains:
        return STRATEGIES + (CONTAINS_STRATEGY,)
    return STRATEGIES
