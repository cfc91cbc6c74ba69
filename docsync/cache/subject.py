"""
Publish/subscribe primitives.

Subject delivers each published value to the observers subscribed at that
moment, in subscription order. BehaviorSubject additionally remembers the
last value and replays it to new observers.

Unsubscribing is safe while a value is being delivered: an observer removed
during delivery does not receive the value in flight.

Usage:
    subject = Subject[int]()
    unsubscribe = subject.subscribe(print)
    subject.next(1)     # prints 1
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Observer = Callable[[T], Any]


class _Subscription(Generic[T]):
    __slots__ = ("observer", "active")

    def __init__(self, observer: Observer):
        self.observer = observer
        self.active = True


class Subject(Generic[T]):
    """Plain publish/subscribe channel."""

    def __init__(self, name: str = "subject"):
        self.name = name
        self._subscriptions: list[_Subscription[T]] = []
        self._tasks: set[asyncio.Future] = set()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register an observer.

        Coroutine observers are scheduled on the running loop; their
        failures are logged like those of plain observers.

        Returns:
            Callable removing the observer
        """
        subscription = _Subscription(observer)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def next(self, value: T) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active:
                self._deliver(subscription.observer, value)

    def _deliver(self, observer: Observer, value: T) -> None:
        try:
            result = observer(value)
        except Exception:
            logger.exception(f"[{self.name}] Observer failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._observer_done)

    def _observer_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[{self.name}] Observer failed", exc_info=error)

    @property
    def observers_count(self) -> int:
        return len(self._subscriptions)


class BehaviorSubject(Subject[T]):
    """Subject that replays its last value to new observers."""

    def __init__(self, value: T, name: str = "behavior_subject"):
        super().__init__(name)
        self._value = value

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        unsubscribe = super().subscribe(observer)
        self._deliver(observer, self._value)
        return unsubscribe

    def next(self, value: T) -> None:
        self._value = value
        super().next(value)
