"""Default focus-coach tools, bound to an :class:`AppState`."""

from __future__ import annotations

from typing import Any

from focusflow.tools.base import (
    ParameterType,
    Tool,
    ToolCategory,
    ToolExample,
    ToolParameter,
    ToolResult,
)
from focusflow.tools.registry import ToolRegistry
from focusflow.tools.state import AppState

MIN_GOAL_MINUTES = 5
MAX_GOAL_MINUTES = 480
MAX_SESSION_MINUTES = 240


def _format_minutes(minutes: int) -> str:
    hours, rest = divmod(minutes, 60)
    if not hours:
        return f"{minutes} minutes"
    return f"{hours} hour{'s' if hours > 1 else ''} {rest} minutes"


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

async def start_session(args: dict[str, Any], state: AppState) -> ToolResult:
    minutes = int(args["duration"])
    if not 1 <= minutes <= MAX_SESSION_MINUTES:
        return ToolResult.fail(
            "Cannot start session",
            f"Duration must be between 1 and {MAX_SESSION_MINUTES} minutes.",
        )
    if await state.active_session() is not None:
        return ToolResult.fail(
            "Cannot start session",
            "A focus session is already active. End the current session first.",
        )

    session = await state.start_session(minutes)
    apps, sites = len(session.blocked_apps), len(session.blocked_websites)
    return ToolResult.ok(
        f"Started a {minutes}-minute focus session. Stay focused! "
        f"Blocking {apps} apps and {sites} websites.",
        {
            "session_id": session.id,
            "duration_minutes": minutes,
            "blocked_apps_count": apps,
            "blocked_websites_count": sites,
        },
    )


async def end_session(args: dict[str, Any], state: AppState) -> ToolResult:
    completed = args.get("completed", True)
    record = await state.end_session(completed)
    if record is None:
        return ToolResult.fail("No active session", "There is no active focus session to end.")

    if completed:
        message = f"Completed {record.minutes} minute focus session. Great work!"
    else:
        message = f"Ended session after {record.minutes} minutes. Every bit of focus counts!"
    return ToolResult.ok(
        message,
        {"session_id": record.id, "duration_minutes": record.minutes, "completed": completed},
    )


async def get_active_session(args: dict[str, Any], state: AppState) -> ToolResult:
    session = await state.active_session()
    if session is None:
        return ToolResult.ok(
            "No active focus session. Would you like to start one?",
            {"has_active_session": False},
        )
    elapsed = session.elapsed_minutes(state.now())
    remaining = max(session.planned_minutes - elapsed, 0)
    return ToolResult.ok(
        f"Active session: {elapsed} minutes elapsed, {remaining} minutes remaining.",
        {
            "has_active_session": True,
            "session_id": session.id,
            "elapsed_minutes": elapsed,
            "remaining_minutes": remaining,
            "planned_duration_minutes": session.planned_minutes,
        },
    )


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

async def get_session_stats(args: dict[str, Any], state: AppState) -> ToolResult:
    period = args.get("period", "today")
    stats = await state.session_stats(period)
    total = stats.sessions_completed + stats.sessions_abandoned
    if period == "today":
        message = (
            f"Today: {stats.focus_minutes} minutes of focus across {total} sessions "
            f"({stats.sessions_completed} completed, {stats.sessions_abandoned} ended early)."
        )
    else:
        hours, minutes = divmod(stats.focus_minutes, 60)
        message = (
            f"This week: {hours} hours {minutes} minutes of focus across {total} sessions "
            f"over {stats.active_days} days."
        )
    return ToolResult.ok(
        message,
        {
            "period": period,
            "focus_minutes": stats.focus_minutes,
            "sessions_completed": stats.sessions_completed,
            "sessions_abandoned": stats.sessions_abandoned,
            "active_days": stats.active_days,
        },
    )


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------

async def log_trigger(args: dict[str, Any], state: AppState) -> ToolResult:
    intensity = args.get("intensity")
    if intensity is not None:
        intensity = int(intensity)
        if not 1 <= intensity <= 5:
            return ToolResult.fail("Invalid intensity", "Intensity must be between 1 and 5.")

    entry = await state.log_trigger(
        args["trigger_type"],
        notes=args.get("notes"),
        intensity=intensity,
        emotion=args.get("emotion"),
    )
    where = "during your focus session" if entry.session_id else "outside of a session"
    return ToolResult.ok(
        f"Logged '{entry.trigger_type}' trigger {where}. "
        "Tracking these patterns helps build awareness.",
        {
            "id": entry.id,
            "trigger_type": entry.trigger_type,
            "session_id": entry.session_id,
            "emotion": entry.emotion,
            "intensity": entry.intensity,
        },
    )


async def get_trigger_patterns(args: dict[str, Any], state: AppState) -> ToolResult:
    patterns = await state.trigger_patterns(days=30, limit=5)
    if not patterns:
        return ToolResult.ok(
            "No trigger data in the last 30 days. Start logging triggers to identify patterns."
        )
    lines = ["Trigger patterns (last 30 days):"]
    lines += [f"- {kind}: {count} times" for kind, count in patterns]
    return ToolResult.ok(
        "\n".join(lines),
        [{"trigger_type": kind, "frequency": count} for kind, count in patterns],
    )


# ---------------------------------------------------------------------------
# Blocking
# ---------------------------------------------------------------------------

async def get_blocking_stats(args: dict[str, Any], state: AppState) -> ToolResult:
    items = await state.blocked_items()
    apps = [i.value for i in items if i.kind == "app"]
    sites = [i.value for i in items if i.kind == "website"]
    enabled = await state.blocking_enabled()
    status = "active (session in progress)" if enabled else "inactive"
    return ToolResult.ok(
        f"Blocking {status}: {len(apps)} apps and {len(sites)} websites configured.\n"
        f"Apps: {', '.join(apps) or 'none'}\n"
        f"Websites: {', '.join(sites) or 'none'}",
        {"enabled": enabled, "apps": apps, "websites": sites},
    )


async def add_blocked_item(args: dict[str, Any], state: AppState) -> ToolResult:
    kind = args["type"]
    value = args["value"].strip()
    if not value:
        return ToolResult.fail("Invalid value", "Value must not be empty.")
    await state.add_blocked_item(kind, value)
    return ToolResult.ok(
        f"Added '{value}' to blocked {kind} list. It will be blocked during focus sessions.",
        {"type": kind, "value": value},
    )


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

async def get_streak_info(args: dict[str, Any], state: AppState) -> ToolResult:
    streak = await state.streak()
    if streak.current > 0:
        message = (
            f"Current streak: {streak.current} days. "
            f"Longest recorded: {streak.longest} days. Keep it up!"
        )
    elif streak.longest > 0:
        message = (
            f"No active streak. Your longest was {streak.longest} days. "
            "Start a session to begin a new streak!"
        )
    else:
        message = (
            "No streak data yet. Complete at least one focus session to start building "
            "your streak!"
        )
    return ToolResult.ok(
        message, {"current_streak": streak.current, "longest_streak": streak.longest}
    )


async def set_focus_goal(args: dict[str, Any], state: AppState) -> ToolResult:
    goal_type = args.get("type", "daily")
    minutes = int(args["minutes"])
    if not MIN_GOAL_MINUTES <= minutes <= MAX_GOAL_MINUTES:
        return ToolResult.fail(
            "Invalid goal",
            f"Focus goal must be between {MIN_GOAL_MINUTES} and {MAX_GOAL_MINUTES} minutes.",
        )
    await state.set_focus_goal(goal_type, minutes)
    return ToolResult.ok(
        f"Set {goal_type} focus goal to {_format_minutes(minutes)}.",
        {"goal_type": goal_type, "minutes": minutes},
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def default_tools() -> list[Tool]:
    return [
        Tool(
            name="start_session",
            description=(
                "Start a new focus session. Activates blocking for configured apps and websites."
            ),
            category=ToolCategory.SESSION,
            handler=start_session,
            parameters=[
                ToolParameter(
                    "duration",
                    ParameterType.NUMBER,
                    "Session duration in minutes",
                    required=True,
                    examples=["15", "25", "45", "60"],
                ),
            ],
            examples=[
                ToolExample("Start a 25-minute session", {"duration": 25}),
                ToolExample("Start a 45-minute session", {"duration": 45}),
            ],
        ),
        Tool(
            name="end_session",
            description="End the current focus session, as completed or ended early.",
            category=ToolCategory.SESSION,
            handler=end_session,
            parameters=[
                ToolParameter(
                    "completed",
                    ParameterType.BOOLEAN,
                    "Whether the session was completed successfully",
                    default=True,
                ),
            ],
            examples=[
                ToolExample("End session as completed", {"completed": True}),
                ToolExample("End session early", {"completed": False}),
            ],
        ),
        Tool(
            name="get_active_session",
            description="Check if there's an active focus session and get its status.",
            category=ToolCategory.SESSION,
            handler=get_active_session,
            examples=[ToolExample("Check current session")],
        ),
        Tool(
            name="get_session_stats",
            description="Get focus session statistics for today or the past week.",
            category=ToolCategory.ANALYTICS,
            handler=get_session_stats,
            parameters=[
                ToolParameter(
                    "period",
                    ParameterType.ENUM,
                    "Time period",
                    default="today",
                    choices=["today", "week"],
                ),
            ],
            examples=[
                ToolExample("Get today's stats"),
                ToolExample("Get weekly stats", {"period": "week"}),
            ],
        ),
        Tool(
            name="log_trigger",
            description=(
                "Log a distraction trigger to the journal. Helps identify patterns over time."
            ),
            category=ToolCategory.JOURNAL,
            handler=log_trigger,
            parameters=[
                ToolParameter(
                    "trigger_type",
                    ParameterType.STRING,
                    "Type of trigger: boredom, anxiety, stress, fatigue, notification, "
                    "person, environment, other",
                    required=True,
                    examples=["boredom", "anxiety", "notification"],
                ),
                ToolParameter("notes", ParameterType.STRING, "Additional notes about the trigger"),
                ToolParameter("intensity", ParameterType.NUMBER, "Intensity of the urge (1-5)"),
                ToolParameter(
                    "emotion",
                    ParameterType.STRING,
                    "How you're feeling: frustrated, anxious, tired, distracted, bored, "
                    "overwhelmed, neutral",
                ),
            ],
            examples=[
                ToolExample(
                    "Log a notification urge",
                    {"trigger_type": "notification", "notes": "Saw a phone notification"},
                ),
                ToolExample(
                    "Log boredom with intensity",
                    {"trigger_type": "boredom", "intensity": 4, "emotion": "restless"},
                ),
            ],
        ),
        Tool(
            name="get_trigger_patterns",
            description=(
                "Analyze trigger patterns from the last 30 days to identify common distractions."
            ),
            category=ToolCategory.JOURNAL,
            handler=get_trigger_patterns,
            examples=[ToolExample("View trigger patterns")],
        ),
        Tool(
            name="get_blocking_stats",
            description="Get information about currently blocked apps and websites.",
            category=ToolCategory.BLOCKING,
            handler=get_blocking_stats,
            examples=[ToolExample("Check blocked items")],
        ),
        Tool(
            name="add_blocked_item",
            description=(
                "Add an app or website to the block list. It will be blocked during focus sessions."
            ),
            category=ToolCategory.BLOCKING,
            handler=add_blocked_item,
            parameters=[
                ToolParameter(
                    "type",
                    ParameterType.ENUM,
                    "Type of item",
                    required=True,
                    choices=["app", "website"],
                ),
                ToolParameter(
                    "value",
                    ParameterType.STRING,
                    "App name or website domain to block",
                    required=True,
                    examples=["twitter.com", "instagram.com", "slack"],
                ),
            ],
            examples=[
                ToolExample("Block Twitter", {"type": "website", "value": "twitter.com"}),
                ToolExample("Block the Slack app", {"type": "app", "value": "slack"}),
            ],
        ),
        Tool(
            name="get_streak_info",
            description="Get current streak information and longest streak record.",
            category=ToolCategory.GOALS,
            handler=get_streak_info,
            examples=[ToolExample("Check streak")],
        ),
        Tool(
            name="set_focus_goal",
            description="Set a daily or weekly focus time goal in minutes.",
            category=ToolCategory.GOALS,
            handler=set_focus_goal,
            parameters=[
                ToolParameter(
                    "type",
                    ParameterType.ENUM,
                    "Goal type",
                    default="daily",
                    choices=["daily", "weekly"],
                ),
                ToolParameter("minutes", ParameterType.NUMBER, "Goal in minutes", required=True),
            ],
            examples=[
                ToolExample("Set a 2 hour daily goal", {"type": "daily", "minutes": 120}),
                ToolExample("Set a 10 hour weekly goal", {"type": "weekly", "minutes": 600}),
            ],
        ),
    ]


def register_default_tools(registry: ToolRegistry) -> ToolRegistry:
    for tool in default_tools():
        registry.register(tool)
    return registry


def default_registry() -> ToolRegistry:
    return register_default_tools(ToolRegistry())
