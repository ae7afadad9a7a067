"""Tests for the on-device provider, its prompt templates and output cleanup."""

import asyncio

import pytest

from conftest import FakeEngine
from focusflow.core.llm import local
from focusflow.core.llm.engine import PHI_3_5_MINI, TINYLLAMA, ModelSpec
from focusflow.core.llm.local import (
    PHI3_TEMPLATE,
    ZEPHYR_TEMPLATE,
    LocalProvider,
    OutputCleaner,
    clean_output,
    has_repetition_loop,
    render_prompt,
    truncate_at_stop,
)
from focusflow.core.llm.types import CompletionOptions, FinishReason, Message
from focusflow.errors import ConfigError

STOP = list(PHI3_TEMPLATE.stop)


class TestTemplates:
    def test_phi3_prompt(self):
        prompt = render_prompt([Message.system("S"), Message.user("U")], PHI3_TEMPLATE)
        assert prompt == "<|system|>\nS<|end|>\n<|user|>\nU<|end|>\n<|assistant|>\n"

    def test_zephyr_prompt_ends_with_open_assistant_turn(self):
        prompt = render_prompt(
            [Message.user("U"), Message.assistant("A"), Message.user("V")], ZEPHYR_TEMPLATE
        )
        assert prompt == (
            "<|user|>\nU</s>\n<|assistant|>\nA</s>\n<|user|>\nV</s>\n<|assistant|>\n"
        )


class TestCleanOutput:
    def test_truncates_at_first_stop(self):
        assert truncate_at_stop("Hi there<|end|><|user|>more", STOP) == "Hi there"
        assert clean_output("  Hi there <|user|>\nnext turn", STOP) == "Hi there"

    def test_strips_role_prefixes(self):
        assert clean_output("### Response: Take a break.", STOP) == "Take a break."
        assert clean_output("Assistant: Take a break.", STOP) == "Take a break."
        assert clean_output("A: Take a break.", STOP) == "Take a break."
        assert clean_output("a: lowercase stays", STOP) == "a: lowercase stays"

    def test_unwraps_fenced_tool_call(self):
        text = 'Starting now.\n```xml\n<tool name="start_session" duration="25"/>\n```'
        assert clean_output(text, STOP) == 'Starting now.\n<tool name="start_session" duration="25"/>'

    def test_repetition_loop_is_cut(self):
        text = "Good start. " + "keep going right now " * 3
        assert has_repetition_loop(text)
        assert clean_output(text, STOP) == "Good start."

    def test_short_text_is_not_a_loop(self):
        assert not has_repetition_loop("go go go")
        assert not has_repetition_loop("one two three four five six seven eight nine ten eleven twelve")

    def test_piecewise_feed_matches_whole_text(self):
        text = "### Response:  Start now.\n```\n<tool name=\"start_session\"/>\n```\n<|end|>x"
        cleaner = OutputCleaner(STOP)
        out = [cleaner.feed(ch) for ch in text]
        out.append(cleaner.finish())

        assert "".join(out) == clean_output(text, STOP)
        assert "".join(out) == 'Start now.\n<tool name="start_session"/>'
        assert cleaner.stopped

    def test_prefix_is_held_until_settled(self):
        cleaner = OutputCleaner([])
        assert cleaner.feed("Assist") == ""
        assert cleaner.feed("ant: Hi.") == "Hi."
        assert cleaner.feed(" Bye") == ""
        assert cleaner.finish() == " Bye"


class TestLocalProvider:
    async def test_complete(self):
        engine = FakeEngine(PHI_3_5_MINI, text="Response: Let's focus.<|end|>junk")
        provider = LocalProvider(engine)

        response = await provider.complete(
            [Message.system("Coach."), Message.user("Help")],
            CompletionOptions(max_tokens=64, temperature=0.1, stop=["STOP"]),
        )

        assert response.content == "Let's focus."
        assert response.finish_reason is FinishReason.STOP
        assert response.usage.total_tokens == 10
        assert response.model == "phi-3.5-mini"
        sampling = engine.calls[0]
        assert sampling["max_tokens"] == 64
        assert sampling["temperature"] == 0.1
        assert {"<|end|>", "[SYS]", "\nUser:", "STOP"} <= set(sampling["stop"])
        assert engine.prompts[0].endswith("<|user|>\nHelp<|end|>\n<|assistant|>\n")

    async def test_truncated_generation_reports_length(self):
        provider = LocalProvider(FakeEngine(TINYLLAMA, truncated=True))
        response = await provider.complete([Message.user("Hi")])
        assert response.finish_reason is FinishReason.LENGTH

    async def test_stream(self):
        engine = FakeEngine(PHI_3_5_MINI, text="Hi there")
        stream = await LocalProvider(engine).complete_stream([Message.user("Hello")])
        chunks = [chunk async for chunk in stream]

        assert "".join(c.delta for c in chunks) == "Hi there"
        assert all(c.delta for c in chunks[:-1])
        assert chunks[-1].finish_reason is FinishReason.STOP
        assert chunks[-1].usage.completion_tokens == 2
        assert engine.closed

    @pytest.mark.parametrize(
        "pieces",
        [
            [" Assistant:", " Sure!", " Starting now."],
            ["##", "# Resp", "onse:\n", "Take a", " break.", "<|e", "nd|>", "junk"],
            ["On it.\n``", "`xml\n<tool name=\"start_session\"", " duration=\"25\"/>\n", "```  \n"],
            ["A", ":", " ", "Go. ", "go go go go " * 3],
            ["a: lowercase stays  "],
        ],
    )
    async def test_stream_joins_to_complete(self, pieces):
        provider = LocalProvider(FakeEngine(PHI_3_5_MINI, pieces=pieces))

        response = await provider.complete([Message.user("Hello")])
        stream = await provider.complete_stream([Message.user("Hello")])
        streamed = "".join([chunk.delta async for chunk in stream])

        assert streamed == response.content

    async def test_stream_stops_pulling_after_stop_sequence(self):
        engine = FakeEngine(PHI_3_5_MINI, pieces=["Done.", "<|end|>", "more ", "noise "])
        stream = await LocalProvider(engine).complete_stream([Message.user("Hello")])
        chunks = [chunk async for chunk in stream]

        assert "".join(c.delta for c in chunks) == "Done."
        assert chunks[-1].usage.completion_tokens == 2

        for _ in range(100):
            if engine.closed:
                break
            await asyncio.sleep(0.01)
        assert engine.closed

    async def test_abandoned_stream_closes_engine_iterator(self):
        engine = FakeEngine(PHI_3_5_MINI, text=" ".join(f"Step {i}." for i in range(200)))
        stream = await LocalProvider(engine).complete_stream([Message.user("Hello")])
        assert (await stream.__anext__()).delta.startswith("Step 0.")
        await stream.aclose()

        for _ in range(100):
            if engine.closed:
                break
            await asyncio.sleep(0.01)
        assert engine.closed

    async def test_close_failure_is_logged(self, monkeypatch):
        warnings = []

        class Log:
            def debug(self, event, **kw):
                pass

            def warning(self, event, **kw):
                warnings.append((event, kw))

        class WedgedPieces:
            def __init__(self, pieces):
                self._it = iter(pieces)

            def __iter__(self):
                return self

            def __next__(self):
                return next(self._it)

            def close(self):
                raise RuntimeError("engine wedged")

        class WedgedEngine(FakeEngine):
            def generate_stream(self, prompt, **sampling):
                return WedgedPieces(self.pieces)

        monkeypatch.setattr(local, "log", Log())
        stream = await LocalProvider(WedgedEngine(PHI_3_5_MINI)).complete_stream(
            [Message.user("Hello")]
        )
        assert "".join([chunk.delta async for chunk in stream]) == "Hello there."

        for _ in range(100):
            if warnings:
                break
            await asyncio.sleep(0.01)
        assert warnings == [("local_stream_close_failed", {"error": "engine wedged"})]

    async def test_models_and_health(self):
        provider = LocalProvider(FakeEngine(TINYLLAMA))
        models = await provider.list_models()
        assert models[0].id == "tinyllama"
        assert models[0].context_length == 4096
        await provider.health_check()
        assert provider.name == "local"

    def test_unknown_template(self):
        spec = ModelSpec(name="odd", filename="odd.gguf", context_size=2048, template="chatml")
        with pytest.raises(ConfigError):
            LocalProvider(FakeEngine(spec))
