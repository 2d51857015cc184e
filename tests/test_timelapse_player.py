from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pathtrack.core.timelapse import TimeLapsePlayer
from pathtrack.domain import MatchStrategy, ResolvedPoint


def _point(point_id: str, score: float, year: int | None, *, user: bool = False) -> ResolvedPoint:
    return ResolvedPoint(
        id=point_id,
        similarity_score=score,
        distance=None,
        raw_identifier=None if user else f"{point_id.upper()}.1",
        coordinates=(0.0, 0.0),
        match_strategy=MatchStrategy.PROJECTION if user else MatchStrategy.EXACT,
        is_user_sequence=user,
        metadata={"year": year},
    )


POINTS = [
    _point("self", 1.0, None, user=True),
    _point("a", 0.9, 2018),
    _point("b", 0.8, 2020),
    _point("c", 0.6, 2019),
    _point("d", 0.75, 2022),
    _point("e", 0.95, None),
]


async def _yield(_seconds: float) -> None:
    await asyncio.sleep(0)


def _visible_ids(player: TimeLapsePlayer) -> list[str]:
    return [point.id for point in player.get_visible()]


def test_year_range_ignores_user_sequence_and_undated_points():
    player = TimeLapsePlayer(POINTS)

    assert player.state.min_year == 2018
    assert player.state.max_year == 2022
    assert player.state.current_year is None
    assert _visible_ids(player) == ["self", "a", "b", "c", "d", "e"]


def test_threshold_and_year_cutoff_are_combined():
    player = TimeLapsePlayer(POINTS)

    player.set_similarity_threshold(0.7)
    player.set_year(2020)

    assert _visible_ids(player) == ["self", "a", "b"]


def test_undated_points_can_be_kept_under_a_year_cutoff():
    player = TimeLapsePlayer(POINTS, include_unknown_years=True)

    player.set_year(2018)

    assert _visible_ids(player) == ["self", "a", "e"]


def test_user_sequence_survives_any_threshold():
    player = TimeLapsePlayer(POINTS)

    player.set_similarity_threshold(1.0)

    assert _visible_ids(player) == ["self"]


@pytest.mark.parametrize("threshold", [-0.1, 1.5])
def test_threshold_outside_unit_interval_is_rejected(threshold):
    player = TimeLapsePlayer(POINTS)

    with pytest.raises(ValueError):
        player.set_similarity_threshold(threshold)


def test_tick_advances_and_wraps():
    player = TimeLapsePlayer(POINTS)

    assert player.tick() == 2018
    assert player.tick() == 2019
    player.set_year(2022)
    assert player.tick() == 2018


def test_tick_without_dated_points_does_nothing():
    player = TimeLapsePlayer([POINTS[0], POINTS[-1]])

    assert player.tick() is None
    assert player.state.current_year is None


def test_play_advances_until_paused():
    changes = []
    player = TimeLapsePlayer(POINTS, interval=0.5, sleep=_yield, on_change=changes.append)

    async def scenario():
        player.play()
        assert player.is_playing
        assert player.has_pending_timer
        assert player.state.current_year == 2018
        for _ in range(3):
            await asyncio.sleep(0)
        player.pause()
        paused_changes = len(changes)
        for _ in range(5):
            await asyncio.sleep(0)
        return paused_changes

    paused_changes = asyncio.run(scenario())

    years = [state.current_year for state in changes if state.is_playing]
    assert 2019 in years
    assert len(changes) == paused_changes
    assert not player.is_playing
    assert not player.has_pending_timer
    assert player.state.is_playing is False


def test_play_twice_keeps_a_single_timer():
    changes = []
    player = TimeLapsePlayer(POINTS, sleep=_yield, on_change=changes.append)

    async def scenario():
        player.play()
        before = len(changes)
        player.play()
        after = len(changes)
        player.pause()
        return before, after

    before, after = asyncio.run(scenario())

    assert before == after
    assert not player.has_pending_timer


def test_manual_year_change_pauses_playback():
    player = TimeLapsePlayer(POINTS, sleep=_yield)

    async def scenario():
        player.play()
        player.set_year(2019)

    asyncio.run(scenario())

    assert not player.is_playing
    assert not player.has_pending_timer
    assert player.state.current_year == 2019


def test_play_without_dated_points_is_a_no_op():
    player = TimeLapsePlayer([POINTS[0]], sleep=_yield)

    async def scenario():
        player.play()

    asyncio.run(scenario())

    assert not player.is_playing


def test_reset_restores_defaults():
    player = TimeLapsePlayer(POINTS, sleep=_yield)

    async def scenario():
        player.set_similarity_threshold(0.8)
        player.play()
        player.reset()

    asyncio.run(scenario())

    state = player.state
    assert state.current_year is None
    assert state.similarity_threshold == 0.0
    assert state.is_playing is False
    assert not player.has_pending_timer
    assert _visible_ids(player) == ["self", "a", "b", "c", "d", "e"]


def test_new_points_drop_an_out_of_range_year():
    player = TimeLapsePlayer(POINTS)
    player.set_year(2022)

    player.set_points([_point("x", 0.5, 2001), _point("y", 0.5, 2003)])

    assert player.state.min_year == 2001
    assert player.state.max_year == 2003
    assert player.state.current_year is None


def test_tick_from_a_year_before_the_data_jumps_to_the_first_year():
    player = TimeLapsePlayer(POINTS)
    player.set_year(1900)

    assert player.tick() == 2018
    assert player.tick() == 2019


def test_failing_listener_stops_playback_cleanly():
    calls = {"fail": True}

    def listener(state):
        if calls["fail"] and state.is_playing and state.current_year == 2019:
            raise RuntimeError("renderer crashed")

    player = TimeLapsePlayer(POINTS, sleep=_yield, on_change=listener)

    async def scenario():
        player.play()
        for _ in range(5):
            await asyncio.sleep(0)
        stopped = (player.is_playing, player.has_pending_timer, player.state.is_playing)

        calls["fail"] = False
        player.play()
        restarted = player.is_playing
        player.pause()
        return stopped, restarted

    stopped, restarted = asyncio.run(scenario())

    assert stopped == (False, False, False)
    assert restarted is True
