"""Tests for the coach service wiring and the command line."""

import pytest
from click.testing import CliRunner

from conftest import ScriptedProvider
from focusflow import main
from focusflow.config import Settings
from focusflow.core.agent import TerminationReason
from focusflow.core.coach import CoachService
from focusflow.core.llm.types import Message, MessageRole


@pytest.fixture
def settings():
    return Settings(agent={"retry_backoff": 0})


class TestCoachService:
    async def test_tool_call_acts_on_state(self, settings):
        provider = ScriptedProvider(['<tool name="start_session" duration="25"/>', "Go!"])
        coach = CoachService(settings, provider=provider)

        state = await coach.chat("Start a 25 minute session")

        assert state.termination is TerminationReason.ANSWERED
        assert state.final_text == "Go!"
        assert await coach.state.active_session() is not None
        system = provider.requests[0][0]
        assert system.role is MessageRole.SYSTEM
        assert "FocusFlow" in system.content
        assert "### start_session" in system.content

    async def test_history_is_prepended(self, settings):
        provider = ScriptedProvider(["Sure."])
        coach = CoachService(settings, provider=provider, system_prompt="Custom prompt.")
        history = [Message.user("hi"), Message.assistant("hello")]

        await coach.chat("and now?", history)

        request = provider.requests[0]
        assert request[0].content.startswith("Custom prompt.")
        assert [m.content for m in request[1:]] == ["hi", "hello", "and now?"]
        assert len(history) == 2

    async def test_per_turn_system_prompt(self, settings):
        provider = ScriptedProvider(["Nice."])
        coach = CoachService(settings, provider=provider)

        await coach.chat("How am I doing?", system_prompt="User has a 3 day streak.")

        system = provider.requests[0][0]
        assert system.content.startswith("User has a 3 day streak.")
        assert "FocusFlow" not in system.content
        assert "### start_session" in system.content

    async def test_health_and_models(self, settings):
        provider = ScriptedProvider([])
        coach = CoachService(settings, provider=provider)
        assert (await coach.health()).healthy
        await coach.health()
        assert provider.health_calls == 1
        await coach.health(force_refresh=True)
        assert provider.health_calls == 2
        assert [m.id for m in await coach.list_models()] == ["scripted-1"]


class TestCli:
    @pytest.fixture(autouse=True)
    def scripted_coach(self, monkeypatch):
        provider = ScriptedProvider(['<tool name="get_streak_info"/>', "Keep going!"])

        def build(settings):
            return CoachService(settings, provider=provider)

        monkeypatch.setattr(main, "CoachService", build)
        monkeypatch.setattr(main, "load_settings", lambda path: Settings(agent={"retry_backoff": 0}))
        monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)
        return provider

    def test_one_shot_chat(self):
        result = CliRunner().invoke(main.cli, ["chat", "-m", "How is my streak?"])
        assert result.exit_code == 0, result.output
        assert "Keep going!" in result.output
        assert "[get_streak_info: ok]" in result.output

    def test_providers(self):
        result = CliRunner().invoke(main.cli, ["providers"])
        assert result.exit_code == 0
        for name in ("openai", "anthropic", "google", "openrouter", "local"):
            assert name in result.output

    def test_health(self, scripted_coach):
        result = CliRunner().invoke(main.cli, ["health"])
        assert result.exit_code == 0
        assert "scripted/scripted-1: healthy" in result.output

        scripted_coach.healthy = False
        result = CliRunner().invoke(main.cli, ["health", "--force"])
        assert result.exit_code == 1
