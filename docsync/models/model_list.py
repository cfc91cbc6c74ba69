"""
ModelList: a list of instances bound to the query that produced it.

A ModelList can reload itself in place and, once subscribed, keeps itself
in sync with its model's bus:

    - create/update events trigger a reload of the query
    - a delete event removing a member splices it out immediately, then
      triggers a reload
    - fetch events are ignored

At most one reload is in flight. Requests arriving meanwhile are queued as
a single follow-up pass, never dropped. Once a reload settles, subscribers
are notified only if the list fingerprint (most recent member and its age,
length, member versions) changed.

Usage:
    posts = await Post.get_list({"filter": {"status": "draft"}})
    unsubscribe = posts.subscribe(lambda items: print(len(items)))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from docsync.cache.events import Operation, UpdaterEvent
from docsync.cache.subject import BehaviorSubject, Subject

if TYPE_CHECKING:
    from docsync.models.model import Model

logger = logging.getLogger(__name__)

Fingerprint = tuple[Any, ...]


class ModelList(list):
    def __init__(
        self,
        model: type[Model],
        items: Iterable[Model] = (),
        *,
        query: dict[str, Any] | None = None,
        count: int | None = None,
    ):
        super().__init__(items)
        self.model = model
        self.query: dict[str, Any] = dict(query or {})
        self.count = len(self) if count is None else count

        self.loading = BehaviorSubject(False, name=f"list:{model.slug}:loading")
        self.changes: Subject[ModelList] = Subject(name=f"list:{model.slug}")
        self.errors: Subject[BaseException] = Subject(name=f"list:{model.slug}:errors")

        self._reload_task: asyncio.Task | None = None
        self._reload_pending = False
        self._notified = self.fingerprint()
        self._bus_unsubscribe: Callable[[], None] | None = None
        self._subscribers = 0

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self]

    @property
    def is_loading(self) -> bool:
        return self._reload_task is not None and not self._reload_task.done()

    def fingerprint(self) -> Fingerprint:
        versions = [(item.age() or 0, item.id) for item in self]
        last_age, last_id = max(versions, default=(0, None), key=lambda v: v[0])
        key = ",".join(sorted(f"{i}:{a}" for a, i in versions))
        return (last_id, last_age, len(self), key)

    # -------------------------------------------------------------------------
    # Reload
    # -------------------------------------------------------------------------

    def request_reload(self) -> asyncio.Task:
        """Start a reload, or queue one pass after the reload in flight."""
        if self.is_loading:
            self._reload_pending = True
            return self._reload_task

        self._reload_task = asyncio.ensure_future(self._reload())
        self._reload_task.add_done_callback(self._settled)
        return self._reload_task

    async def reload(self) -> ModelList:
        """Reload the query in place."""
        await asyncio.shield(self.request_reload())
        return self

    async def _reload(self) -> None:
        self.loading.next(True)
        try:
            while True:
                self._reload_pending = False
                fresh = await self.model.get_list(self.query)
                self[:] = fresh
                self.count = fresh.count
                if not self._reload_pending:
                    return
                logger.debug(f"[list:{self.model.slug}] Reload requested mid-flight, running again")
        finally:
            self.loading.next(False)

    def _settled(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"[list:{self.model.slug}] Reload failed: {error}")
            self.errors.next(error)
            return

        current = self.fingerprint()
        if current != self._notified:
            self._notified = current
            self.changes.next(self)

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def _on_event(self, event: UpdaterEvent) -> None:
        if event.operation == Operation.DELETE:
            ids = set(event.ids)
            kept = [item for item in self if item.id not in ids]
            removed = len(self) - len(kept)
            if not removed:
                return
            self[:] = kept
            self.count = max(0, self.count - removed)
        elif event.operation not in (Operation.CREATE, Operation.UPDATE):
            return

        self.request_reload()

    def subscribe(
        self,
        callback: Callable[[ModelList], Any],
        on_loading: Callable[[bool], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
    ) -> Callable[[], None]:
        """
        Keep the list in sync and notify ``callback`` when it changes.

        Returns:
            Callable cancelling every subscription made here
        """
        if self._bus_unsubscribe is None:
            self._bus_unsubscribe = self.model.subscribe(self._on_event)
        self._subscribers += 1

        unsubscribers = [self.changes.subscribe(callback)]
        if on_loading is not None:
            unsubscribers.append(self.loading.subscribe(on_loading))
        if on_error is not None:
            unsubscribers.append(self.errors.subscribe(on_error))

        def unsubscribe() -> None:
            if not unsubscribers:
                return
            for fn in unsubscribers:
                fn()
            unsubscribers.clear()
            self._subscribers -= 1
            if self._subscribers == 0 and self._bus_unsubscribe is not None:
                self._bus_unsubscribe()
                self._bus_unsubscribe = None

        return unsubscribe

    def __repr__(self) -> str:
        return f"ModelList({self.model.slug}, count={self.count}, ids={self.ids})"
