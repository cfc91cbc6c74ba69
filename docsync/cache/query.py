"""
Request-dedup cache.

Maps a normalized query key to the task computing its result. Concurrent or
sequential calls with an equal key share one task, so the executor runs
once per key until the cache is cleared.

Callers await the task through asyncio.shield: a caller being cancelled
never cancels the shared request. Failed tasks are dropped so the next call
retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


def query_key(*parts: Any) -> str:
    """Normalize query parts into a stable key."""
    return json.dumps(parts, sort_keys=True, default=str, separators=(",", ":"))


class QueryCache:
    def __init__(self, name: str = "query_cache"):
        self.name = name
        self._entries: dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        *,
        disabled: bool = False,
    ) -> Any:
        """
        Return the result for ``key``, starting ``factory`` only if no entry exists.

        Args:
            key: Normalized query key
            factory: Coroutine function performing the request
            disabled: Bypass the cache entirely
        """
        if disabled:
            return await factory()

        entry = self._entries.get(key)
        if entry is None:
            entry = asyncio.ensure_future(factory())
            self._entries[key] = entry
            entry.add_done_callback(lambda task: self._drop_failed(key, task))
        else:
            logger.debug(f"[{self.name}] Cache hit: {key[:120]}")

        return await asyncio.shield(entry)

    def _drop_failed(self, key: str, task: asyncio.Future) -> None:
        if not task.cancelled() and task.exception() is None:
            return
        if self._entries.get(key) is task:
            del self._entries[key]

    def clear(self) -> None:
        if self._entries:
            logger.debug(f"[{self.name}] Cleared {len(self._entries)} entries")
        self._entries.clear()
