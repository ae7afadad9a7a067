"""On-device provider: chat templates, engine delegation, output cleanup."""

from __future__ import annotations

import asyncio
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Iterator

from focusflow.core.llm.base import LLMProvider, require_messages
from focusflow.core.llm.engine import InferenceEngine
from focusflow.core.llm.streaming import ChunkSender, ChunkStream
from focusflow.core.llm.types import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    CompletionOptions,
    CompletionResponse,
    FinishReason,
    Message,
    MessageRole,
    ModelInfo,
    StreamChunk,
    TokenUsage,
)
from focusflow.errors import ConfigError
from focusflow.utils.logging import get_logger

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Chat templates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChatTemplate:
    system: str
    user: str
    assistant: str
    end: str
    stop: tuple[str, ...]

    def tag_for(self, role: MessageRole) -> str:
        if role is MessageRole.SYSTEM:
            return self.system
        if role is MessageRole.USER:
            return self.user
        return self.assistant


PHI3_TEMPLATE = ChatTemplate(
    system="<|system|>\n",
    user="<|user|>\n",
    assistant="<|assistant|>\n",
    end="<|end|>\n",
    stop=("<|end|>", "<|user|>", "<|system|>"),
)

ZEPHYR_TEMPLATE = ChatTemplate(
    system="<|system|>\n",
    user="<|user|>\n",
    assistant="<|assistant|>\n",
    end="</s>\n",
    stop=("</s>", "<|user|>", "<|system|>"),
)

TEMPLATES = {"phi3": PHI3_TEMPLATE, "zephyr": ZEPHYR_TEMPLATE}

# Hallucinated turn markers seen from small models regardless of template
EXTRA_STOP_SEQUENCES = ("[SYS]", "\nUser:")


def render_prompt(messages: list[Message], template: ChatTemplate) -> str:
    """Render a conversation, ending with an open assistant turn."""
    parts = [f"{template.tag_for(m.role)}{m.content}{template.end}" for m in messages]
    parts.append(template.assistant)
    return "".join(parts)


# ---------------------------------------------------------------------------
# Output hygiene
# ---------------------------------------------------------------------------

_HEADER_PREFIX_RE = re.compile(r"^#{1,3}\s*response:\s*", re.IGNORECASE)
_PLAIN_PREFIX_RE = re.compile(r"^(?:(?i:response|assistant):|A:)\s*")
_FENCED_CALL_RE = re.compile(
    r"```[\w-]*\s*(<tool\b.*?(?:/>|</tool\s*>))\s*```", re.DOTALL | re.IGNORECASE
)


def _partial(word: str) -> str:
    return "|".join(re.escape(word[:i]) for i in range(1, len(word)))


# Text that could still grow into one of the prefixes above
_HEADER_PARTIAL_RE = re.compile(rf"#{{1,3}}\s*(?:{_partial('response:')})?", re.IGNORECASE)
_PLAIN_PARTIAL_RE = re.compile(rf"(?i:{_partial('response:')}|{_partial('assistant:')})")

_PREFIXES = (
    (_HEADER_PREFIX_RE, _HEADER_PARTIAL_RE),
    (_PLAIN_PREFIX_RE, _PLAIN_PARTIAL_RE),
)

REPETITION_WINDOW = 4
REPETITION_COUNT = 3


def has_repetition_loop(text: str) -> bool:
    """True when the last 4-word window appears three times back to back."""
    words = text.split()
    span = REPETITION_WINDOW * REPETITION_COUNT
    if len(words) < span:
        return False
    recent = words[-span:]
    windows = {
        " ".join(recent[i : i + REPETITION_WINDOW]) for i in range(0, span, REPETITION_WINDOW)
    }
    return len(windows) == 1


def truncate_at_stop(text: str, stop: list[str]) -> str:
    cut = len(text)
    for seq in stop:
        idx = text.find(seq)
        if idx != -1:
            cut = min(cut, idx)
    return text[:cut]


def _strip_prefixes(text: str, final: bool) -> str | None:
    """Drop leading whitespace and role prefixes; None while still undecided."""
    text = text.lstrip()
    for prefix, partial in _PREFIXES:
        if not text:
            return "" if final else None
        match = prefix.match(text)
        if match:
            if match.end() == len(text) and not final:
                return None
            text = text[match.end():]
        elif partial.fullmatch(text) and not final:
            return None
    return text


class OutputCleaner:
    """Strips template leakage and filler small local models tend to emit.

    Works on raw model text piece by piece: :meth:`feed` returns what is safe
    to show so far and :meth:`finish` returns the remainder. The joined output
    is the same however the raw text was split.

    Stages, in order: cut at the first stop sequence, drop leading whitespace
    and a ``### Response:`` / ``Assistant:`` style prefix, unwrap fenced tool
    calls, cut a trailing repetition loop back to the last full sentence, and
    drop trailing whitespace.
    """

    def __init__(self, stop: list[str]) -> None:
        self._stop = [s for s in stop if s]
        # A stop sequence may straddle two pieces
        self._hold = max((len(s) for s in self._stop), default=1) - 1
        self._raw = ""
        self._stopped = False
        self._head: str | None = ""
        self._body = ""
        self._fenced = False
        self._seen = ""
        self._sentence = ""
        self._space = ""

    @property
    def stopped(self) -> bool:
        """True once a stop sequence was seen; later pieces are ignored."""
        return self._stopped

    def feed(self, piece: str) -> str:
        return self._push(self._cut(piece, final=False), final=False)

    def finish(self) -> str:
        return self._push(self._cut("", final=True), final=True)

    def _push(self, text: str, final: bool) -> str:
        text = self._lead(text, final)
        text = self._unfence(text, final)
        text = self._trim_loop(text, final)
        return self._trim_end(text, final)

    def _cut(self, piece: str, final: bool) -> str:
        if self._stopped:
            return ""
        self._raw += piece
        kept = truncate_at_stop(self._raw, self._stop)
        if len(kept) < len(self._raw):
            self._stopped = True
            self._raw = ""
            return kept
        if final:
            out, self._raw = self._raw, ""
            return out
        out = self._raw[: max(len(self._raw) - self._hold, 0)]
        self._raw = self._raw[len(out):]
        return out

    def _lead(self, text: str, final: bool) -> str:
        if self._head is None:
            return text
        head = self._head + text
        settled = _strip_prefixes(head, final)
        if settled is None:
            self._head = head
            return ""
        self._head = None
        return settled

    def _unfence(self, text: str, final: bool) -> str:
        self._body += text
        if final:
            out, self._body = _FENCED_CALL_RE.sub(r"\1", self._body), ""
            return out
        if self._fenced:
            return ""
        idx = self._body.find("```")
        if idx != -1:
            # Everything from the first fence on waits for the end of output
            self._fenced = True
            out, self._body = self._body[:idx], self._body[idx:]
            return out
        end = len(self._body.rstrip("`"))
        out, self._body = self._body[:end], self._body[end:]
        return out

    def _trim_loop(self, text: str, final: bool) -> str:
        self._seen += text
        self._sentence += text
        if final:
            tail, self._sentence = self._sentence, ""
            if has_repetition_loop(self._seen) and "." in self._seen:
                log.warning("local_repetition_loop")
                return ""
            return tail
        idx = self._sentence.rfind(".")
        if idx == -1:
            return ""
        out, self._sentence = self._sentence[: idx + 1], self._sentence[idx + 1:]
        return out

    def _trim_end(self, text: str, final: bool) -> str:
        text = self._space + text
        out = text.rstrip()
        self._space = "" if final else text[len(out):]
        return out


def clean_output(text: str, stop: list[str]) -> str:
    """Clean a complete model reply in one go."""
    cleaner = OutputCleaner(stop)
    return cleaner.feed(text) + cleaner.finish()


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class LocalProvider(LLMProvider):
    """Runs an :class:`InferenceEngine` in worker threads."""

    def __init__(self, engine: InferenceEngine) -> None:
        self._engine = engine
        spec = engine.spec
        template = TEMPLATES.get(spec.template)
        if template is None:
            raise ConfigError(f"Unknown chat template {spec.template!r} for {spec.name}")
        self._template = template

    @property
    def name(self) -> str:
        return "local"

    @property
    def model(self) -> str:
        return self._engine.spec.name

    async def health_check(self) -> None:
        log.debug("health_check", provider="local")
        await asyncio.to_thread(self._engine.health_check)
        log.info("health_check_passed", provider="local")

    async def list_models(self) -> list[ModelInfo]:
        spec = self._engine.spec
        return [
            ModelInfo(
                id=spec.name,
                name=spec.name,
                description=spec.description or None,
                context_length=spec.context_size,
            )
        ]

    def _stop_sequences(self, options: CompletionOptions) -> list[str]:
        stop = list(self._template.stop) + list(EXTRA_STOP_SEQUENCES)
        for seq in options.stop or []:
            if seq not in stop:
                stop.append(seq)
        return stop

    def _sampling(self, options: CompletionOptions) -> dict:
        return {
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": (
                DEFAULT_TEMPERATURE if options.temperature is None else options.temperature
            ),
            "top_p": options.top_p,
            "stop": self._stop_sequences(options),
        }

    async def complete(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> CompletionResponse:
        require_messages(messages)
        options = options or CompletionOptions()
        prompt = render_prompt(messages, self._template)
        sampling = self._sampling(options)
        log.debug("provider_complete", provider="local", prompt_chars=len(prompt))

        generation = await asyncio.to_thread(
            partial(self._engine.generate, prompt, **sampling)
        )
        content = clean_output(generation.text, sampling["stop"])
        return CompletionResponse(
            content=content,
            model=self.model,
            finish_reason=FinishReason.LENGTH if generation.truncated else FinishReason.STOP,
            usage=TokenUsage.of(generation.prompt_tokens, generation.completion_tokens),
        )

    async def complete_stream(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> ChunkStream:
        require_messages(messages)
        options = options or CompletionOptions()
        prompt = render_prompt(messages, self._template)
        sampling = self._sampling(options)
        log.debug("provider_stream", provider="local", prompt_chars=len(prompt))
        return ChunkStream(partial(self._pump, prompt, sampling), name="local")

    async def _pump(self, prompt: str, sampling: dict, sender: ChunkSender) -> None:
        loop = asyncio.get_running_loop()
        # One worker per stream: next() and close() on the engine iterator must
        # never run concurrently, and an abandoned stream still has to close it.
        worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="local-stream")
        cleaner = OutputCleaner(sampling["stop"])
        pieces: Iterator[str] | None = None
        produced = 0
        try:
            prompt_tokens = await loop.run_in_executor(
                worker, self._engine.count_tokens, prompt
            )
            pieces = await loop.run_in_executor(
                worker, partial(self._engine.generate_stream, prompt, **sampling)
            )
            while not cleaner.stopped:
                piece = await loop.run_in_executor(worker, next, pieces, None)
                if piece is None:
                    break
                produced += 1
                delta = cleaner.feed(piece)
                if delta and not await sender.send(StreamChunk(delta=delta)):
                    log.debug("stream_consumer_gone", provider="local")
                    return
        finally:
            close = getattr(pieces, "close", None)
            if close is not None:
                loop.run_in_executor(worker, close).add_done_callback(_report_close_failure)
            worker.shutdown(wait=False)

        finish = (
            FinishReason.LENGTH if produced >= sampling["max_tokens"] else FinishReason.STOP
        )
        await sender.send(
            StreamChunk(
                delta=cleaner.finish(),
                finish_reason=finish,
                usage=TokenUsage.of(prompt_tokens, produced),
            )
        )


def _report_close_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        log.warning("local_stream_close_failed", error=str(error))
