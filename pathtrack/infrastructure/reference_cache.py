"""Single-flight in-memory cache of the reference sequence collection."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Sequence

from pydantic import ValidationError

from pathtrack.core.accession import DEFAULT_PREFIXES, AccessionIndex, normalize, normalized_keys
from pathtrack.core.errors import AuthError, CacheLoadError
from pathtrack.core.schema import SequenceRecord
from pathtrack.domain import LoadState, ReferenceEntry

logger = logging.getLogger(__name__)

ReferenceLoader = Callable[[], Awaitable[list[dict[str, Any]]]]


@dataclass(frozen=True, slots=True)
class ReferenceSnapshot:
    """Immutable view of one successful load."""

    entries: tuple[ReferenceEntry, ...]
    index: AccessionIndex
    skipped: int = 0
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def lookup(self, identifier: str) -> ReferenceEntry | None:
        return self.index.exact.get(identifier) or self.index.casefold.get(normalize(identifier))


def build_snapshot(
    records: Iterable[dict[str, Any]],
    prefixes: Sequence[str] = DEFAULT_PREFIXES,
) -> ReferenceSnapshot:
    entries: list[ReferenceEntry] = []
    seen: set[str] = set()
    skipped = 0

    for raw in records:
        try:
            record = SequenceRecord.model_validate(raw)
        except ValidationError:
            skipped += 1
            continue

        identifier = record.identifier or record.record_id
        if not identifier or record.coordinates is None:
            skipped += 1
            continue
        if identifier in seen:
            continue
        seen.add(identifier)

        entries.append(
            ReferenceEntry(
                identifier=identifier,
                normalized_keys=normalized_keys(identifier, prefixes),
                coordinates=record.coordinates,
                metadata=record.metadata(),
            )
        )

    return ReferenceSnapshot(
        entries=tuple(entries),
        index=AccessionIndex.build(entries, prefixes),
        skipped=skipped,
    )


class ReferenceCache:
    """Lazily populated reference index shared by every analysis session.

    The first caller of :meth:`ensure_loaded` starts the load; callers arriving
    while it is in flight await the same task.  A failed load leaves the cache
    in ``LoadState.FAILED`` until :meth:`refresh` is called explicitly.
    """

    def __init__(self, loader: ReferenceLoader, *, prefixes: Sequence[str] = DEFAULT_PREFIXES) -> None:
        self._loader = loader
        self._prefixes = tuple(prefixes)
        self._snapshot: ReferenceSnapshot | None = None
        self._state = LoadState.EMPTY
        self._error: BaseException | None = None
        self._inflight: asyncio.Future[ReferenceSnapshot] | None = None

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------
    @property
    def load_state(self) -> LoadState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def snapshot(self) -> ReferenceSnapshot | None:
        return self._snapshot

    def index(self) -> AccessionIndex:
        snapshot = self._snapshot
        if snapshot is None:
            raise CacheLoadError(f"reference cache is not loaded (state: {self._state.value})")
        return snapshot.index

    def lookup(self, identifier: str) -> ReferenceEntry | None:
        snapshot = self._snapshot
        if snapshot is None or not identifier:
            return None
        return snapshot.lookup(identifier)

    def stats(self) -> dict[str, object]:
        snapshot = self._snapshot
        entries = snapshot.entries if snapshot else ()
        prefixes: Counter[str] = Counter()
        for entry in entries:
            head, sep, _ = entry.identifier.partition("_")
            if sep:
                prefixes[f"{head}_"] += 1
        return {
            "state": self._state.value,
            "entries": len(entries),
            "skipped": snapshot.skipped if snapshot else 0,
            "loaded_at": snapshot.loaded_at.isoformat() if snapshot else None,
            "prefixes": dict(prefixes.most_common(10)),
            "error": str(self._error) if self._error else None,
        }

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------
    async def ensure_loaded(self) -> list[ReferenceEntry]:
        if self._state is LoadState.LOADED and self._snapshot is not None:
            return list(self._snapshot.entries)
        if self._state is LoadState.FAILED and self._inflight is None:
            raise CacheLoadError("reference dataset unavailable; refresh required") from self._error
        return await self._join_load()

    async def refresh(self) -> list[ReferenceEntry]:
        """Reload the dataset and swap it in as a whole."""

        logger.info("Forced refresh of reference cache requested")
        return await self._join_load()

    async def _join_load(self) -> list[ReferenceEntry]:
        if self._inflight is None:
            if self._snapshot is None:
                self._state = LoadState.LOADING
            self._inflight = asyncio.ensure_future(self._load())
        snapshot = await asyncio.shield(self._inflight)
        return list(snapshot.entries)

    async def _load(self) -> ReferenceSnapshot:
        previous = self._snapshot
        try:
            records = await self._loader()
            snapshot = build_snapshot(records, self._prefixes)
            if not snapshot.entries:
                raise CacheLoadError("reference dataset contained no usable records")
        except (CacheLoadError, AuthError) as exc:
            self._record_failure(exc, previous)
            raise
        except Exception as exc:
            self._record_failure(exc, previous)
            raise CacheLoadError(f"reference dataset unavailable: {exc}") from exc
        finally:
            self._inflight = None
            if self._state is LoadState.LOADING:
                # cancelled before the loader returned
                self._state = LoadState.EMPTY

        self._snapshot = snapshot
        self._state = LoadState.LOADED
        self._error = None
        logger.info(
            "Reference cache loaded with %d entries (%d records skipped)",
            len(snapshot.entries),
            snapshot.skipped,
        )
        return snapshot

    def _record_failure(self, exc: Exception, previous: ReferenceSnapshot | None) -> None:
        self._error = exc
        self._state = LoadState.LOADED if previous is not None else LoadState.FAILED
        logger.error("Reference cache load failed: %s", exc)
