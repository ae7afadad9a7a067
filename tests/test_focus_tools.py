"""Tests for the default focus-coach tool handlers."""

from datetime import datetime, timedelta

import pytest

from focusflow.errors import ToolExecutionError
from focusflow.tools import focus
from focusflow.tools.state import InMemoryAppState, SessionRecord


class Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 10, 9, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def state(clock):
    return InMemoryAppState(clock=clock)


def _record(state, day_offset, minutes=25, completed=True):
    ended = state.now() - timedelta(days=day_offset)
    state.add_history(
        SessionRecord(
            id=f"r{day_offset}-{minutes}",
            started_at=ended - timedelta(minutes=minutes),
            ended_at=ended,
            minutes=minutes,
            completed=completed,
        )
    )


class TestSessions:
    async def test_start_and_end(self, state, clock):
        started = await focus.start_session({"duration": 25}, state)
        assert started.success
        assert started.data["duration_minutes"] == 25

        clock.advance(minutes=25)
        ended = await focus.end_session({"completed": True}, state)
        assert ended.success
        assert ended.message == "Completed 25 minute focus session. Great work!"
        assert state.history[0].completed

    async def test_end_early(self, state, clock):
        await focus.start_session({"duration": 50}, state)
        clock.advance(minutes=12)
        ended = await focus.end_session({"completed": False}, state)
        assert "after 12 minutes" in ended.message
        assert not state.history[0].completed

    async def test_duration_bounds(self, state):
        for minutes in (0, 241):
            result = await focus.start_session({"duration": minutes}, state)
            assert not result.success

    async def test_second_start_fails(self, state):
        await focus.start_session({"duration": 25}, state)
        result = await focus.start_session({"duration": 25}, state)
        assert not result.success
        assert "already active" in result.error

    async def test_state_guards_double_start(self, state):
        await state.start_session(25)
        with pytest.raises(ToolExecutionError):
            await state.start_session(25)

    async def test_end_without_session(self, state):
        result = await focus.end_session({"completed": True}, state)
        assert not result.success

    async def test_active_session(self, state, clock):
        idle = await focus.get_active_session({}, state)
        assert idle.data == {"has_active_session": False}

        await focus.start_session({"duration": 25}, state)
        clock.advance(minutes=10)
        active = await focus.get_active_session({}, state)
        assert active.data["elapsed_minutes"] == 10
        assert active.data["remaining_minutes"] == 15


class TestStats:
    async def test_today_and_week(self, state):
        _record(state, 0, minutes=30)
        _record(state, 0, minutes=10, completed=False)
        _record(state, 3, minutes=60)
        _record(state, 9, minutes=90)

        today = await focus.get_session_stats({"period": "today"}, state)
        assert today.data["focus_minutes"] == 40
        assert today.data["sessions_abandoned"] == 1

        week = await focus.get_session_stats({"period": "week"}, state)
        assert week.data["focus_minutes"] == 100
        assert week.data["active_days"] == 2
        assert week.message.startswith("This week: 1 hours 40 minutes")

    async def test_streaks(self, state):
        for offset in (0, 1, 2, 10, 11, 12, 13):
            _record(state, offset)
        result = await focus.get_streak_info({}, state)
        assert result.data == {"current_streak": 3, "longest_streak": 4}

    async def test_no_streak_yet(self, state):
        result = await focus.get_streak_info({}, state)
        assert result.data == {"current_streak": 0, "longest_streak": 0}
        assert "No streak data yet" in result.message


class TestJournal:
    async def test_log_trigger_in_session(self, state):
        await focus.start_session({"duration": 25}, state)
        result = await focus.log_trigger(
            {"trigger_type": "notification", "intensity": 3}, state
        )
        assert result.success
        assert result.data["session_id"] is not None
        assert "during your focus session" in result.message

    async def test_intensity_bounds(self, state):
        result = await focus.log_trigger({"trigger_type": "boredom", "intensity": 6}, state)
        assert not result.success
        assert state.triggers == []

    async def test_patterns(self, state):
        empty = await focus.get_trigger_patterns({}, state)
        assert "No trigger data" in empty.message

        for kind in ("boredom", "anxiety", "boredom"):
            await focus.log_trigger({"trigger_type": kind}, state)
        result = await focus.get_trigger_patterns({}, state)
        assert result.data[0] == {"trigger_type": "boredom", "frequency": 2}


class TestBlockingAndGoals:
    async def test_block_list(self, state):
        await focus.add_blocked_item({"type": "website", "value": " reddit.com "}, state)
        await focus.add_blocked_item({"type": "app", "value": "slack"}, state)
        await focus.add_blocked_item({"type": "app", "value": "slack"}, state)

        stats = await focus.get_blocking_stats({}, state)
        assert stats.data == {"enabled": False, "apps": ["slack"], "websites": ["reddit.com"]}

        started = await focus.start_session({"duration": 25}, state)
        assert started.data["blocked_apps_count"] == 1
        assert (await focus.get_blocking_stats({}, state)).data["enabled"]

    async def test_empty_block_value(self, state):
        result = await focus.add_blocked_item({"type": "app", "value": "  "}, state)
        assert not result.success

    async def test_focus_goal(self, state):
        result = await focus.set_focus_goal({"type": "daily", "minutes": 120}, state)
        assert result.message == "Set daily focus goal to 2 hours 0 minutes."
        assert state.goals == {"daily": 120}

        too_small = await focus.set_focus_goal({"type": "weekly", "minutes": 2}, state)
        assert not too_small.success
