"""
Cache layer.

- subject: publish/subscribe primitives
- events: CrudEvent and UpdaterEvent
- query: request-dedup cache
- adapter: per-model identity map, dedup cache and bus
- populate: merging of populated relations

Import Adapter from docsync.cache.adapter; it depends on the models layer.
"""

from .events import CrudEvent, Operation, UpdaterEvent
from .query import QueryCache, query_key
from .subject import BehaviorSubject, Subject

__all__ = [
    "CrudEvent",
    "Operation",
    "UpdaterEvent",
    "QueryCache",
    "query_key",
    "BehaviorSubject",
    "Subject",
]
