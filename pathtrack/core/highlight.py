"""Mediator propagating highlight events between independent views."""
from __future__ import annotations

import logging
from typing import Callable, Iterable, Protocol

from pathtrack.core.assembler import USER_SEQUENCE_ID

logger = logging.getLogger(__name__)


class HighlightAdapter(Protocol):
    """Contract implemented by every view taking part in cross-highlighting."""

    def apply_highlight(self, sequence_id: str, on: bool) -> None: ...


class HighlightStateAdapter:
    """Adapter that only remembers which ids are currently highlighted."""

    def __init__(self) -> None:
        self._active: set[str] = set()

    def apply_highlight(self, sequence_id: str, on: bool) -> None:
        if on:
            self._active.add(sequence_id)
        else:
            self._active.discard(sequence_id)

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._active)


class HighlightSynchronizer:
    def __init__(self, *, ignored_ids: Iterable[str] = (USER_SEQUENCE_ID,)) -> None:
        self._adapters: list[HighlightAdapter] = []
        self._state: dict[str, bool] = {}
        self._ignored = frozenset(ignored_ids)

    @property
    def highlighted(self) -> frozenset[str]:
        return frozenset(sequence_id for sequence_id, on in self._state.items() if on)

    def subscribe(self, adapter: HighlightAdapter) -> Callable[[], None]:
        """Register ``adapter`` and return a callable that unsubscribes it."""

        if adapter not in self._adapters:
            self._adapters.append(adapter)
            for sequence_id in self.highlighted:
                adapter.apply_highlight(sequence_id, True)

        def unsubscribe() -> None:
            if adapter in self._adapters:
                self._adapters.remove(adapter)

        return unsubscribe

    def highlight(self, sequence_id: str | None, on: bool = True) -> bool:
        """Fan a highlight change out to every adapter.

        Returns ``True`` when the visual state changed.  Repeated requests for
        the current state are ignored, so one ``off`` always clears an id no
        matter how many ``on`` calls preceded it.
        """

        if not sequence_id or sequence_id in self._ignored:
            return False
        if self._state.get(sequence_id, False) == on:
            return False

        if on:
            self._state[sequence_id] = True
        else:
            self._state.pop(sequence_id, None)
        for adapter in list(self._adapters):
            adapter.apply_highlight(sequence_id, on)
        return True

    def reset(self) -> None:
        active = sorted(self.highlighted)
        self._state.clear()
        for sequence_id in active:
            for adapter in list(self._adapters):
                adapter.apply_highlight(sequence_id, False)
        if active:
            logger.debug("Cleared %d highlighted sequences", len(active))
