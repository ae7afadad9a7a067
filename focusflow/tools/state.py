"""Application state the focus tools act on.

Storage, blocking enforcement and timers belong to the host application;
handlers only see the :class:`AppState` protocol. :class:`InMemoryAppState`
is a self-contained implementation used by the CLI and the tests.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Protocol

from focusflow.errors import ToolExecutionError


@dataclass
class FocusSession:
    id: str
    started_at: datetime
    planned_minutes: int
    blocked_apps: list[str] = field(default_factory=list)
    blocked_websites: list[str] = field(default_factory=list)

    def elapsed_minutes(self, now: datetime) -> int:
        return int((now - self.started_at).total_seconds() // 60)


@dataclass
class SessionRecord:
    id: str
    started_at: datetime
    ended_at: datetime
    minutes: int
    completed: bool


@dataclass
class SessionStats:
    period: str
    focus_minutes: int
    sessions_completed: int
    sessions_abandoned: int
    active_days: int


@dataclass
class TriggerEntry:
    id: str
    trigger_type: str
    created_at: datetime
    session_id: str | None = None
    notes: str | None = None
    intensity: int | None = None
    emotion: str | None = None


@dataclass
class BlockedItem:
    kind: str  # "app" or "website"
    value: str


@dataclass
class StreakInfo:
    current: int
    longest: int


class AppState(Protocol):
    """Operations the default tools need. Implementations synchronize internally."""

    def now(self) -> datetime: ...

    async def active_session(self) -> FocusSession | None: ...

    async def start_session(self, minutes: int) -> FocusSession: ...

    async def end_session(self, completed: bool) -> SessionRecord | None: ...

    async def session_stats(self, period: str) -> SessionStats: ...

    async def log_trigger(
        self,
        trigger_type: str,
        *,
        notes: str | None = None,
        intensity: int | None = None,
        emotion: str | None = None,
    ) -> TriggerEntry: ...

    async def trigger_patterns(self, days: int = 30, limit: int = 5) -> list[tuple[str, int]]: ...

    async def blocked_items(self) -> list[BlockedItem]: ...

    async def blocking_enabled(self) -> bool: ...

    async def add_blocked_item(self, kind: str, value: str) -> BlockedItem: ...

    async def set_focus_goal(self, goal_type: str, minutes: int) -> None: ...

    async def streak(self) -> StreakInfo: ...


class InMemoryAppState:
    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = asyncio.Lock()
        self._active: FocusSession | None = None
        self._history: list[SessionRecord] = []
        self._triggers: list[TriggerEntry] = []
        self._blocked: list[BlockedItem] = []
        self.goals: dict[str, int] = {}

    def now(self) -> datetime:
        return self._clock()

    @property
    def history(self) -> list[SessionRecord]:
        return list(self._history)

    @property
    def triggers(self) -> list[TriggerEntry]:
        return list(self._triggers)

    async def active_session(self) -> FocusSession | None:
        return self._active

    async def start_session(self, minutes: int) -> FocusSession:
        async with self._lock:
            if self._active is not None:
                raise ToolExecutionError(
                    "A focus session is already active. End the current session first."
                )
            self._active = FocusSession(
                id=uuid.uuid4().hex,
                started_at=self._clock(),
                planned_minutes=minutes,
                blocked_apps=[b.value for b in self._blocked if b.kind == "app"],
                blocked_websites=[b.value for b in self._blocked if b.kind == "website"],
            )
            return self._active

    async def end_session(self, completed: bool) -> SessionRecord | None:
        async with self._lock:
            session, self._active = self._active, None
            if session is None:
                return None
            now = self._clock()
            record = SessionRecord(
                id=session.id,
                started_at=session.started_at,
                ended_at=now,
                minutes=session.elapsed_minutes(now),
                completed=completed,
            )
            self._history.append(record)
            return record

    def add_history(self, record: SessionRecord) -> None:
        self._history.append(record)

    async def session_stats(self, period: str) -> SessionStats:
        today = self._clock().date()
        start = today if period == "today" else today - timedelta(days=6)
        records = [r for r in self._history if start <= r.ended_at.date() <= today]
        return SessionStats(
            period=period,
            focus_minutes=sum(r.minutes for r in records),
            sessions_completed=sum(1 for r in records if r.completed),
            sessions_abandoned=sum(1 for r in records if not r.completed),
            active_days=len({r.ended_at.date() for r in records}),
        )

    async def log_trigger(
        self,
        trigger_type: str,
        *,
        notes: str | None = None,
        intensity: int | None = None,
        emotion: str | None = None,
    ) -> TriggerEntry:
        async with self._lock:
            entry = TriggerEntry(
                id=uuid.uuid4().hex,
                trigger_type=trigger_type,
                created_at=self._clock(),
                session_id=self._active.id if self._active else None,
                notes=notes,
                intensity=intensity,
                emotion=emotion,
            )
            self._triggers.append(entry)
            return entry

    async def trigger_patterns(self, days: int = 30, limit: int = 5) -> list[tuple[str, int]]:
        cutoff = self._clock() - timedelta(days=days)
        counts = Counter(t.trigger_type for t in self._triggers if t.created_at >= cutoff)
        return counts.most_common(limit)

    async def blocked_items(self) -> list[BlockedItem]:
        return list(self._blocked)

    async def blocking_enabled(self) -> bool:
        return self._active is not None

    async def add_blocked_item(self, kind: str, value: str) -> BlockedItem:
        async with self._lock:
            for item in self._blocked:
                if item.kind == kind and item.value == value:
                    return item
            item = BlockedItem(kind, value)
            self._blocked.append(item)
            return item

    async def set_focus_goal(self, goal_type: str, minutes: int) -> None:
        self.goals[goal_type] = minutes

    async def streak(self) -> StreakInfo:
        days = sorted({r.ended_at.date() for r in self._history if r.completed})
        if not days:
            return StreakInfo(0, 0)

        longest = run = 1
        for prev, cur in zip(days, days[1:]):
            run = run + 1 if cur - prev == timedelta(days=1) else 1
            longest = max(longest, run)

        current = 0
        expected: date = self._clock().date()
        day_set = set(days)
        while expected in day_set:
            current += 1
            expected -= timedelta(days=1)
        return StreakInfo(current, longest)
