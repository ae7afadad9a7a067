"""Read-through cache for provider health checks."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from focusflow.core.llm.base import LLMProvider
from focusflow.errors import FocusFlowError
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

HEALTH_TTL_SECONDS = 30.0


@dataclass
class HealthStatus:
    provider: str
    model: str
    healthy: bool
    error: str | None = None
    checked_at: float = 0.0


class HealthCache:
    """Caches the last health result per provider/model for ``ttl`` seconds.

    Owned by whoever issues health checks (the coach service, the CLI); pass
    ``force_refresh=True`` to bypass a fresh entry.
    """

    def __init__(
        self,
        ttl: float = HEALTH_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[tuple[str, str], HealthStatus] = {}

    async def check(self, provider: LLMProvider, *, force_refresh: bool = False) -> HealthStatus:
        key = (provider.name, provider.model)
        now = self._clock()
        cached = self._entries.get(key)
        if cached is not None and not force_refresh and now - cached.checked_at < self._ttl:
            log.debug("health_cache_hit", provider=provider.name, healthy=cached.healthy)
            return cached

        try:
            await provider.health_check()
            status = HealthStatus(provider.name, provider.model, healthy=True, checked_at=now)
        except FocusFlowError as e:
            log.warning("health_check_failed", provider=provider.name, error=str(e))
            status = HealthStatus(
                provider.name, provider.model, healthy=False, error=str(e), checked_at=now
            )

        self._entries[key] = status
        return status

    def invalidate(self, provider: LLMProvider | None = None) -> None:
        if provider is None:
            self._entries.clear()
        else:
            self._entries.pop((provider.name, provider.model), None)
