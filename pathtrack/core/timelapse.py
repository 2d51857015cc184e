"""Similarity/time filtering with an animated "as of year" cutoff."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from pathtrack.domain import ResolvedPoint, TimeWindowState

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[object]]
ChangeListener = Callable[[TimeWindowState], None]


class TimeLapsePlayer:
    """Derives the visible subset of resolved points and animates the year cutoff.

    At most one playback task exists per player.  :meth:`pause` and
    :meth:`reset` cancel it synchronously, so no tick fires afterwards.
    """

    def __init__(
        self,
        points: Iterable[ResolvedPoint] = (),
        *,
        interval: float = 1.0,
        include_unknown_years: bool = False,
        sleep: Sleeper = asyncio.sleep,
        on_change: ChangeListener | None = None,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must not be negative")
        self._interval = interval
        self._include_unknown_years = include_unknown_years
        self._sleep = sleep
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None
        self._points: tuple[ResolvedPoint, ...] = ()
        self._state = TimeWindowState()
        self.set_points(points)

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------
    @property
    def state(self) -> TimeWindowState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._task is not None

    @property
    def has_pending_timer(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def points(self) -> tuple[ResolvedPoint, ...]:
        return self._points

    def _update(self, **changes: object) -> None:
        self._state = self._state.evolve(**changes)
        if self._on_change is not None:
            self._on_change(self._state)

    def set_points(self, points: Iterable[ResolvedPoint]) -> None:
        self._cancel_task()
        self._points = tuple(points)
        years = [point.year for point in self._points if point.year is not None and not point.is_user_sequence]
        min_year = min(years) if years else None
        max_year = max(years) if years else None

        current = self._state.current_year
        if current is not None and (min_year is None or not min_year <= current <= max_year):
            current = None
        self._update(min_year=min_year, max_year=max_year, current_year=current, is_playing=False)

    # ------------------------------------------------------------------
    # filters
    # ------------------------------------------------------------------
    def set_similarity_threshold(self, threshold: float) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("similarity threshold must be within [0, 1]")
        self._update(similarity_threshold=float(threshold))

    def set_year(self, year: int | None) -> None:
        # manual control takes precedence over playback
        if self.is_playing:
            self.pause()
        self._update(current_year=year)

    def _is_visible(self, point: ResolvedPoint) -> bool:
        if point.is_user_sequence:
            return True
        state = self._state
        if point.similarity_score < state.similarity_threshold:
            return False
        if state.current_year is None:
            return True
        if point.year is None:
            return self._include_unknown_years
        return point.year <= state.current_year

    def get_visible(self) -> list[ResolvedPoint]:
        return [point for point in self._points if self._is_visible(point)]

    # ------------------------------------------------------------------
    # playback
    # ------------------------------------------------------------------
    def tick(self) -> int | None:
        """Advance the cutoff by one year, wrapping from the last year to the first."""

        state = self._state
        if state.min_year is None or state.max_year is None:
            return None
        current = state.current_year
        if current is None or current < state.min_year or current >= state.max_year:
            next_year = state.min_year
        else:
            next_year = current + 1
        self._update(current_year=next_year)
        return next_year

    def play(self) -> None:
        if self.is_playing:
            return
        state = self._state
        if state.min_year is None:
            logger.debug("Nothing to play: no dated points loaded")
            return
        if state.current_year is None or state.current_year < state.min_year:
            self._update(current_year=state.min_year)
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._update(is_playing=True)

    def pause(self) -> None:
        if self._cancel_task():
            self._update(is_playing=False)

    def reset(self) -> None:
        self._cancel_task()
        self._update(current_year=None, similarity_threshold=0.0, is_playing=False)

    def _cancel_task(self) -> bool:
        task = self._task
        if task is None:
            return False
        self._task = None
        task.cancel()
        return True

    async def _run(self) -> None:
        task = asyncio.current_task()
        try:
            while self._task is task:
                await self._sleep(self._interval)
                if self._task is not task:
                    return
                self.tick()
        except Exception:
            logger.exception("Playback stopped: state listener failed")
        finally:
            if self._task is task:
                self._task = None
                self._state = self._state.evolve(is_playing=False)
