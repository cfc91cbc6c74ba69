"""
Adapter: per-model cache and fetchers.

One Adapter instance exists per bound model class. It owns:

    store    identity map, one instance per remote id
    queries  request-dedup cache keyed by normalized query
    events   CrudEvent bus (local mutations and realtime pushes)
    updates  UpdaterEvent bus (what actually changed in the store)

A Client subclasses Adapter to attach itself (see Client.adapter_class), so
two clients never share an Adapter even for the same slug.

Merge rule:
    An instance's backing document is replaced only when the incoming
    document is strictly newer (max of _createdAt/_updatedAt), or when the
    cached one has no timestamp. Arrival order never makes data regress.

Invalidation:
    Every successful mutation and every dispatched event clears the whole
    dedup cache of the adapter before the event is published.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from docsync.cache.events import CrudEvent, Operation, UpdaterEvent
from docsync.cache.populate import resolve_populate
from docsync.cache.query import QueryCache, query_key
from docsync.cache.subject import Subject
from docsync.errors import CoreError, ErrorCodes, TransportError
from docsync.models.model import document_age
from docsync.models.model_list import ModelList
from docsync.transport import operations

if TYPE_CHECKING:
    from docsync.client import Client
    from docsync.models.model import Model

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MapResult:
    instance: Model
    updated: bool


def is_newer(incoming: dict[str, Any], cached: dict[str, Any]) -> bool:
    cached_age = document_age(cached)
    if cached_age is None:
        return True
    incoming_age = document_age(incoming)
    return incoming_age is not None and incoming_age > cached_age


def pure_ids(query: dict[str, Any] | None) -> list[str] | None:
    """Ids of a query that selects by id only, else None."""
    if not query or set(query) != {"ids"} or not isinstance(query["ids"], list):
        return None
    return list(query["ids"])


class Adapter:
    client: ClassVar[Client | None] = None

    def __init__(self, model: type[Model]):
        self.model = model
        self.store: dict[str, Model] = {}
        self.queries = QueryCache(name=f"queries:{model.slug}")
        self.events: Subject[CrudEvent] = Subject(name=f"events:{model.slug}")
        self.updates: Subject[UpdaterEvent] = Subject(name=f"updates:{model.slug}")
        self.events.subscribe(self._reduce)
        self._watching = False

    @property
    def tag(self) -> str:
        return f"adapter:{self.model.slug}"

    # -------------------------------------------------------------------------
    # Client access
    # -------------------------------------------------------------------------

    def check_client(self) -> Client:
        client = type(self).client
        if client is None or client.executor is None:
            raise CoreError(
                f"No client executor bound for model {self.model.slug!r}",
                code=ErrorCodes.NO_CLIENT,
            )
        return client

    @property
    def validate_writes(self) -> bool:
        client = type(self).client
        return client is not None and client.options.validate_writes

    def _cache_disabled(self, ctx: dict[str, Any]) -> bool:
        if ctx.get("disable_cache"):
            return True
        client = type(self).client
        return client is not None and client.options.cache_disabled_for(self.model.slug)

    def _store_disabled(self) -> bool:
        client = type(self).client
        return client is not None and client.options.store_disabled_for(self.model.slug)

    async def _execute(self, operation: operations.OperationDescriptor, **kwargs: Any) -> Any:
        client = self.check_client()
        return await client.execute(operation, **kwargs)

    # -------------------------------------------------------------------------
    # Identity map
    # -------------------------------------------------------------------------

    def map_or_new(self, data: dict[str, Any]) -> MapResult:
        """
        Merge a raw document into the identity map.

        Returns the instance for the document's id and whether its data changed.
        """
        doc_id = data.get("_id")
        current = self.store.get(doc_id) if doc_id else None
        if current is not None:
            if not is_newer(data, current.data):
                return MapResult(current, False)
            current.replace_data(data)
            return MapResult(current, True)

        instance = self.model.hydrate(data)
        if doc_id and not self._store_disabled():
            self.store[doc_id] = instance
        return MapResult(instance, True)

    def _map_fetched(self, docs: list[dict[str, Any]]) -> list[Model]:
        results = [self.map_or_new(doc) for doc in docs]
        touched = tuple(r.instance.id for r in results if r.updated and r.instance.id)
        if touched:
            self.updates.next(UpdaterEvent(Operation.FETCH, touched))
        return [r.instance for r in results]

    def clear(self) -> None:
        self.store.clear()
        self.queries.clear()

    # -------------------------------------------------------------------------
    # Bus
    # -------------------------------------------------------------------------

    def dispatch(self, event: CrudEvent) -> None:
        """Invalidate the dedup cache and publish a CrudEvent."""
        if event.model != self.model.slug:
            raise CoreError(
                f"Event for model {event.model!r} dispatched to {self.model.slug!r}",
                code=ErrorCodes.INVALID_MODEL,
            )
        self.queries.clear()
        self.events.next(event)

    def _reduce(self, event: CrudEvent) -> None:
        if event.operation == Operation.DELETE:
            removed = tuple(i for i in event.ids if self.store.pop(i, None) is not None)
            if removed:
                self.updates.next(UpdaterEvent(Operation.DELETE, removed))
            return

        results = [self.map_or_new(doc) for doc in event.data]
        updated = tuple(r.instance.id for r in results if r.updated and r.instance.id)
        if updated:
            self.updates.next(UpdaterEvent(event.operation, updated))

    async def watch(self) -> None:
        """Ask the realtime bridge to watch this slug, once."""
        client = type(self).client
        if self._watching or client is None or client.bridge is None:
            return
        self._watching = True
        result = client.bridge.watch(self.model.slug)
        if inspect.isawaitable(result):
            await result
        logger.info(f"[{self.tag}] Watching realtime changes")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def count(self, query: dict[str, Any] | None, ctx: dict[str, Any]) -> int:
        slug = self.model.slug
        result = await self.queries.run(
            query_key("count", query or {}),
            lambda: self._execute(operations.MODEL_COUNT, path={"model": slug}, body=query or {}),
            disabled=self._cache_disabled(ctx),
        )
        return int(result or 0)

    async def get(self, query: str | dict[str, Any] | None, ctx: dict[str, Any]) -> Model | None:
        if self.model.resolved_schema().single:
            if self.store and not self._cache_disabled(ctx):
                return next(iter(self.store.values()))
            rows = await self.get_list({"limit": 1}, {**ctx, "force_operation": True})
            return rows[0] if rows else None

        if isinstance(query, dict):
            rows = await self.get_list({**query, "limit": 1}, ctx)
            return rows[0] if rows else None

        if not isinstance(query, str) or not query:
            raise CoreError(f"Invalid query for get: {query!r}", code=ErrorCodes.INVALID_PARAMS)

        disabled = self._cache_disabled(ctx)
        if not disabled and query in self.store:
            logger.debug(f"[{self.tag}] Identity map hit: {query}")
            return self.store[query]

        populate = ctx.get("populate")
        return await self.queries.run(
            query_key("get", query, populate),
            lambda: self._fetch_one(query, populate),
            disabled=disabled,
        )

    async def _fetch_one(self, doc_id: str, populate: Any) -> Model | None:
        try:
            data = await self._execute(
                operations.MODEL_READ,
                path={"model": self.model.slug, "id": doc_id},
                query={"populate": populate} if populate else None,
            )
        except TransportError as e:
            if e.status_code == 404 or e.code == ErrorCodes.NOT_FOUND:
                return None
            raise
        if not data:
            return None
        if populate:
            await resolve_populate(self.model, [data], populate)
        return self._map_fetched([data])[0]

    async def get_list(self, query: dict[str, Any] | None, ctx: dict[str, Any]) -> ModelList:
        query = dict(query or {})
        disabled = self._cache_disabled(ctx)

        ids = pure_ids(query)
        if ids is not None and not disabled:
            cached = {i: self.store[i] for i in ids if i in self.store}
            missing = [i for i in ids if i not in cached]
            if not missing:
                return ModelList(self.model, [cached[i] for i in ids], query=query, count=len(cached))
            fetched, count = await self.queries.run(
                query_key("query", {"ids": missing}),
                lambda: self._fetch_list({"ids": missing}),
            )
            by_id = {**cached, **{item.id: item for item in fetched}}
            items = [by_id[i] for i in ids if i in by_id]
            return ModelList(self.model, items, query=query, count=count + len(cached))

        items, count = await self.queries.run(
            query_key("query", query),
            lambda: self._fetch_list(query),
            disabled=disabled,
        )
        return ModelList(self.model, items, query=query, count=count)

    async def _fetch_list(self, query: dict[str, Any]) -> tuple[list[Model], int]:
        response = await self._execute(
            operations.MODEL_QUERY,
            path={"model": self.model.slug},
            body=query,
        )
        rows = list((response or {}).get("rows") or [])
        count = (response or {}).get("count")
        if query.get("populate"):
            await resolve_populate(self.model, rows, query["populate"])
        items = self._map_fetched(rows)
        logger.debug(f"[{self.tag}] Fetched {len(items)} rows")
        return items, len(items) if count is None else int(count)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _publish(self, operation: Operation, ids: list[str], data: list[dict[str, Any]] = ()) -> None:
        self.dispatch(CrudEvent(operation=operation, model=self.model.slug, ids=tuple(ids), data=tuple(data)))

    def _instances(self, docs: list[dict[str, Any]]) -> list[Model]:
        return [self.map_or_new(doc).instance for doc in docs]

    async def create_one(self, payload: dict[str, Any], ctx: dict[str, Any]) -> Model:
        data = await self._execute(operations.MODEL_CREATE, path={"model": self.model.slug}, body=payload)
        self._publish(Operation.CREATE, [data["_id"]], [data])
        return self._instances([data])[0]

    async def create_multiple(self, payloads: list[dict[str, Any]], ctx: dict[str, Any]) -> list[Model]:
        docs = await self._execute(operations.MODEL_CREATE, path={"model": self.model.slug}, body=payloads)
        docs = list(docs or [])
        self._publish(Operation.CREATE, [d["_id"] for d in docs], docs)
        return self._instances(docs)

    async def update_one(self, doc_id: str, update: dict[str, Any], ctx: dict[str, Any]) -> Model | None:
        data = await self._execute(
            operations.MODEL_UPDATE,
            path={"model": self.model.slug, "id": doc_id},
            body=update,
        )
        if not data:
            return None
        self._publish(Operation.UPDATE, [data["_id"]], [data])
        return self._instances([data])[0]

    async def update_multiple(
        self,
        query: dict[str, Any],
        update: dict[str, Any],
        ctx: dict[str, Any],
    ) -> list[Model]:
        docs = await self._execute(
            operations.MODEL_UPDATE_MULTIPLE,
            path={"model": self.model.slug},
            body={"query": query, "update": update},
        )
        docs = list(docs or [])
        self._publish(Operation.UPDATE, [d["_id"] for d in docs], docs)
        return self._instances(docs)

    async def delete_one(self, doc_id: str, ctx: dict[str, Any]) -> bool:
        await self._execute(operations.MODEL_DELETE, path={"model": self.model.slug, "id": doc_id})
        self._publish(Operation.DELETE, [doc_id])
        return True

    async def delete_multiple(self, query: dict[str, Any], ctx: dict[str, Any]) -> list[str]:
        ids = await self._execute(
            operations.MODEL_DELETE_MULTIPLE,
            path={"model": self.model.slug},
            body=query,
        )
        ids = [str(i) for i in ids or []]
        self._publish(Operation.DELETE, ids)
        return ids
