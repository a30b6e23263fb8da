"""
Cached reachability of the local backend.

Embeddings and generation each own one instance. The cached value lives for
the process lifetime until reset; concurrent first calls may both probe,
which is harmless.
"""
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class LocalAvailability:
    """Process-lifetime cache of whether the local backend can be used."""

    def __init__(self, probe: Callable[[], Awaitable[bool]], enabled: bool, name: str = "local"):
        self._probe = probe
        self.enabled = enabled
        self.name = name
        self._available: Optional[bool] = None

    @property
    def cached(self) -> Optional[bool]:
        return self._available

    async def is_available(self) -> bool:
        """Return True if local usage is enabled and the backend answered its probe."""
        if not self.enabled:
            return False
        if self._available is None:
            await self.probe()
        return bool(self._available)

    async def probe(self) -> bool:
        """Probe now, regardless of configuration, and cache the result."""
        self._available = bool(await self._probe())
        logger.info(f"Local backend for {self.name}: {'reachable' if self._available else 'unreachable'}")
        return self._available

    def reset(self) -> None:
        self._available = None
