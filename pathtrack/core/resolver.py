from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Protocol

from pathtrack.core.accession import AccessionIndex, strategies_for
from pathtrack.core.errors import NotFoundError
from pathtrack.domain import MatchStrategy, ReferenceEntry

logger = logging.getLogger(__name__)


class IndexSource(Protocol):
    """Anything that can hand out the accession index of its current snapshot."""

    def index(self) -> AccessionIndex: ...


@dataclass(frozen=True, slots=True)
class Resolution:
    entry: ReferenceEntry
    strategy: MatchStrategy

    @property
    def is_low_confidence(self) -> bool:
        return self.strategy.is_low_confidence


class AccessionResolver:
    """Resolve loosely formatted accessions through ordered matching strategies."""

    def __init__(self, source: IndexSource, *, allow_contains: bool = False) -> None:
        self._source = source
        self._strategies = strategies_for(allow_contains=allow_contains)

    @property
    def allow_contains(self) -> bool:
        return any(strategy is MatchStrategy.CONTAINS for strategy, _ in self._strategies)

    def _match(self, raw_identifier: str | None, index: AccessionIndex) -> Resolution | None:
        if not raw_identifier or not raw_identifier.strip():
            return None
        candidate = raw_identifier.strip()
        for strategy, matcher in self._strategies:
            entry = matcher(candidate, index)
            if entry is not None:
                return Resolution(entry=entry, strategy=strategy)
        return None

    def try_resolve(self, raw_identifier: str | None) -> Resolution | None:
        return self._match(raw_identifier, self._source.index())

    def resolve(self, raw_identifier: str | None) -> Resolution:
        resolution = self.try_resolve(raw_identifier)
        if resolution is None:
            raise NotFoundError(raw_identifier)
        return resolution

    def resolve_all(self, identifiers: Iterable[str | None]) -> list[Resolution | None]:
        index = self._source.index()
        results = [self._match(identifier, index) for identifier in identifiers]

        counts = Counter(result.strategy.value if result else "unresolved" for result in results)
        logger.info("Resolved %d identifiers: %s", len(results), dict(counts))
        return results
