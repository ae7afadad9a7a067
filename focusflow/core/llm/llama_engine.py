"""llama.cpp inference engine (requires the ``local`` extra)."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterator

from llama_cpp import Llama

from focusflow.core.llm.engine import Generation, ModelSpec
from focusflow.errors import ConfigError, InferenceError
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_TOP_P = 0.95


class LlamaCppEngine:
    """Loads one GGUF model on first use and serializes access to it.

    A llama.cpp context is single-threaded, so every generation holds the lock
    for its full duration, including while a stream is being consumed.
    """

    def __init__(self, spec: ModelSpec, models_dir: Path, *, n_threads: int | None = None) -> None:
        self._spec = spec
        self._path = spec.path_in(models_dir)
        self._n_threads = n_threads
        self._llama: Llama | None = None
        self._lock = threading.Lock()

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    def _load(self) -> Llama:
        if self._llama is not None:
            return self._llama
        if not self._path.exists():
            raise ConfigError(
                f"Model {self._spec.name} is not downloaded (expected {self._path})"
            )
        log.info("local_model_loading", model=self._spec.name, path=str(self._path))
        try:
            self._llama = Llama(
                model_path=str(self._path),
                n_ctx=self._spec.context_size,
                n_threads=self._n_threads,
                verbose=False,
            )
        except (ValueError, RuntimeError) as e:
            raise InferenceError(f"Failed to load model {self._spec.name}: {e}") from e
        log.info("local_model_loaded", model=self._spec.name)
        return self._llama

    def _check_context(self, llama: Llama, prompt: str, max_tokens: int) -> int:
        prompt_tokens = len(llama.tokenize(prompt.encode("utf-8")))
        if prompt_tokens > self._spec.context_size:
            raise InferenceError(
                f"Prompt too long: {prompt_tokens} tokens exceeds context size "
                f"{self._spec.context_size}"
            )
        if prompt_tokens + max_tokens > self._spec.context_size:
            log.warning(
                "local_context_tight",
                prompt_tokens=prompt_tokens,
                max_tokens=max_tokens,
                context_size=self._spec.context_size,
            )
        return prompt_tokens

    def _params(
        self, max_tokens: int, temperature: float, top_p: float | None, stop: list[str]
    ) -> dict[str, Any]:
        return {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": DEFAULT_TOP_P if top_p is None else top_p,
            "stop": stop,
        }

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        top_p: float | None,
        stop: list[str],
    ) -> Generation:
        with self._lock:
            llama = self._load()
            prompt_tokens = self._check_context(llama, prompt, max_tokens)
            try:
                result = llama.create_completion(
                    prompt, **self._params(max_tokens, temperature, top_p, stop)
                )
            except (ValueError, RuntimeError) as e:
                raise InferenceError(f"Local generation failed: {e}") from e

        choice = result["choices"][0]
        usage = result.get("usage") or {}
        return Generation(
            text=choice["text"],
            prompt_tokens=usage.get("prompt_tokens", prompt_tokens),
            completion_tokens=usage.get("completion_tokens", 0),
            truncated=choice.get("finish_reason") == "length",
        )

    def generate_stream(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        top_p: float | None,
        stop: list[str],
    ) -> Iterator[str]:
        with self._lock:
            llama = self._load()
            self._check_context(llama, prompt, max_tokens)
            try:
                parts = llama.create_completion(
                    prompt, stream=True, **self._params(max_tokens, temperature, top_p, stop)
                )
                for part in parts:
                    text = part["choices"][0]["text"]
                    if text:
                        yield text
            except (ValueError, RuntimeError) as e:
                raise InferenceError(f"Local generation failed: {e}") from e

    def count_tokens(self, text: str) -> int:
        with self._lock:
            return len(self._load().tokenize(text.encode("utf-8")))

    def health_check(self) -> None:
        result = self.generate("Hello", max_tokens=5, temperature=0.7, top_p=None, stop=[])
        if not result.text.strip():
            raise InferenceError("Model returned empty response")
