"""Narrow interface to an on-device inference engine, plus the model catalog.

The local provider only ever talks to an :class:`InferenceEngine`. The
llama.cpp implementation lives in :mod:`focusflow.core.llm.llama_engine` and is
imported lazily so the rest of the package works without the binding.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol

from focusflow.errors import ConfigError


@dataclass(frozen=True)
class ModelSpec:
    """A GGUF model the local provider knows how to prompt."""

    name: str
    filename: str
    context_size: int
    template: str = "phi3"
    description: str = ""
    url: str = ""
    size_mb: int = 0

    def path_in(self, models_dir: Path) -> Path:
        return models_dir / self.filename


PHI_3_5_MINI = ModelSpec(
    name="phi-3.5-mini",
    filename="phi-3.5-mini-instruct-q4.gguf",
    context_size=16384,
    template="phi3",
    description="Phi-3.5 Mini Instruct (Q4_K_M), best quality on-device model",
    url=(
        "https://huggingface.co/bartowski/Phi-3.5-mini-instruct-GGUF/resolve/main/"
        "Phi-3.5-mini-instruct-Q4_K_M.gguf"
    ),
    size_mb=2400,
)

TINYLLAMA = ModelSpec(
    name="tinyllama",
    filename="tinyllama-1.1b-chat-q4.gguf",
    context_size=4096,
    template="zephyr",
    description="TinyLlama 1.1B Chat (Q4_K_M), small and fast",
    url=(
        "https://huggingface.co/TheBloke/TinyLlama-1.1B-Chat-v1.0-GGUF/resolve/main/"
        "tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf"
    ),
    size_mb=600,
)

MODEL_CATALOG: dict[str, ModelSpec] = {
    PHI_3_5_MINI.name: PHI_3_5_MINI,
    TINYLLAMA.name: TINYLLAMA,
}


def resolve_local_model(model_path: str, models_dir: Path) -> tuple[ModelSpec, Path]:
    """Map a catalog id or an existing GGUF path to ``(spec, directory)``."""
    spec = MODEL_CATALOG.get(model_path)
    if spec is not None:
        return spec, models_dir

    path = Path(model_path).expanduser()
    if path.is_file():
        custom = ModelSpec(
            name=path.stem,
            filename=path.name,
            context_size=PHI_3_5_MINI.context_size,
            description=f"Custom model at {path}",
        )
        return custom, path.parent

    supported = ", ".join(MODEL_CATALOG)
    raise ConfigError(f"Unknown model ID: {model_path}. Supported models: {supported}")


@dataclass
class Generation:
    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    # True when generation stopped on the token limit rather than a stop sequence
    truncated: bool = False


class InferenceEngine(Protocol):
    """Blocking engine calls; the local provider runs them off the event loop."""

    @property
    def spec(self) -> ModelSpec: ...

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        top_p: float | None,
        stop: list[str],
    ) -> Generation: ...

    def generate_stream(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        top_p: float | None,
        stop: list[str],
    ) -> Iterator[str]: ...

    def count_tokens(self, text: str) -> int: ...

    def health_check(self) -> None: ...
