"""Coach service: wires settings, provider, tools and the agent loop together."""

from __future__ import annotations

from focusflow.config import Settings
from focusflow.core.agent import AgentLoop, AgentState, DeltaCallback
from focusflow.core.llm import EngineFactory, create_provider
from focusflow.core.llm.base import LLMProvider
from focusflow.core.llm.health import HealthCache, HealthStatus
from focusflow.core.llm.types import Message, ModelInfo
from focusflow.core.tool_executor import ToolExecutor
from focusflow.tools.focus import default_registry
from focusflow.tools.registry import ToolRegistry
from focusflow.tools.state import AppState, InMemoryAppState
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are FocusFlow, a supportive focus coach. Keep answers short and practical. "
    "When the user asks you to do something the tools below can do, call exactly one "
    "tool and wait for its result before answering."
)


class CoachService:
    """Owns one provider, one registry and a health cache for the process.

    The system prompt is supplied by the caller's prompt builder; the default
    is only a fallback for the CLI.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        state: AppState | None = None,
        provider: LLMProvider | None = None,
        registry: ToolRegistry | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        engine_factory: EngineFactory | None = None,
        health: HealthCache | None = None,
    ) -> None:
        self.settings = settings
        self.state = state if state is not None else InMemoryAppState()
        self.provider = provider or create_provider(
            settings.provider,
            http=settings.http,
            models_dir=settings.get_models_dir(),
            engine_factory=engine_factory,
        )
        self.registry = registry if registry is not None else default_registry()
        self.health_cache = health or HealthCache()
        self.executor = ToolExecutor(
            self.registry, self.state, timeout=settings.agent.tool_timeout
        )
        self.loop = AgentLoop(
            self.provider,
            self.registry,
            self.executor,
            system_prompt=system_prompt,
            config=settings.agent,
        )

    async def chat(
        self,
        message: str,
        history: list[Message] | None = None,
        *,
        on_delta: DeltaCallback | None = None,
        system_prompt: str | None = None,
    ) -> AgentState:
        """Run one user turn; ``system_prompt`` overrides the default for it."""
        conversation = list(history or []) + [Message.user(message)]
        log.debug("coach_chat", history=len(conversation) - 1)
        return await self.loop.run(
            conversation, on_delta=on_delta, system_prompt=system_prompt
        )

    async def health(self, *, force_refresh: bool = False) -> HealthStatus:
        return await self.health_cache.check(self.provider, force_refresh=force_refresh)

    async def list_models(self) -> list[ModelInfo]:
        return await self.provider.list_models()

    async def close(self) -> None:
        await self.provider.close()
