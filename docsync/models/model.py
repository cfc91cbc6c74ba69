"""
Model: schema-bound document class.

A Model subclass declares a slug and a schema. It is usable once bound to a
client, which derives a class carrying the client's adapter class and
registry (see ModelRegistry.get_class). Every bound class owns one Adapter
instance: identity map, dedup cache and event bus.

Declaring a model:

    class Post(Model):
        slug = "posts"
        schema = SchemaDefinition(
            fields={
                "title": FieldDefinition(type="text"),
                "author": FieldDefinition(type="relation", ref="accounts"),
            },
            validators=[ValidatorDefinition(type="required", field="title")],
        )

Using it:

    BoundPost = client.model(Post)
    post = await BoundPost.create({"title": "Hello"})
    post["title"]                       # "Hello"
    await post.update({"$set": {"title": "Hi"}})
    posts = await BoundPost.get_list({"filter": {"title": "Hi"}})

Every operation runs through the hook pipeline under its action name:
initialize, count, get, get_list, create_one, create_multiple, update_one,
update_multiple, delete_one, delete_multiple.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, ClassVar

from docsync.errors import CoreError, ErrorCodes
from docsync.models.hooks import HookFn, HookPayload, Phase, register_hook, run_pipeline
from docsync.models.model_list import ModelList
from docsync.schema.definitions import FieldDefinition, SchemaDefinition
from docsync.schema.engine import Accessor
from docsync.schema.fields import JSON, parse_date
from docsync.schema.validation import validate_documents

if TYPE_CHECKING:
    from docsync.cache.adapter import Adapter
    from docsync.cache.events import UpdaterEvent
    from docsync.models.registry import ModelRegistry

logger = logging.getLogger(__name__)

# Actions a singleton model refuses unless ctx["force_operation"] is set
SINGLE_FORBIDDEN = frozenset(
    {"get_list", "create_one", "create_multiple", "update_multiple", "delete_one", "delete_multiple"}
)


def document_age(data: dict[str, Any]) -> float | None:
    """Modification time of a raw document in epoch milliseconds."""
    ages = [parse_date(data.get(key)) for key in ("_createdAt", "_updatedAt")]
    stamps = [a.timestamp() * 1000 for a in ages if a is not None]
    return max(stamps) if stamps else None


class hybridmethod:
    """Method with one body when called on the class and another on instances."""

    def __init__(self, class_fn: Callable[..., Any], instance_fn: Callable[..., Any] | None = None):
        self.class_fn = class_fn
        self.instance_fn = instance_fn
        self.__doc__ = class_fn.__doc__

    def instancemethod(self, fn: Callable[..., Any]) -> hybridmethod:
        self.instance_fn = fn
        return self

    def __get__(self, obj: Any, owner: type) -> Callable[..., Any]:
        if obj is None or self.instance_fn is None:
            return self.class_fn.__get__(owner, type(owner))
        return self.instance_fn.__get__(obj, owner)


class Model:
    slug: ClassVar[str] = ""
    schema: ClassVar[SchemaDefinition] = SchemaDefinition()

    # Load and merge the remote schema document on initialize
    extensible: ClassVar[bool] = False
    # Fixed schema, never reloaded and its slug is reserved
    system: ClassVar[bool] = False
    realtime: ClassVar[bool] = False

    # Set on bound classes
    adapter_class: ClassVar[type[Adapter] | None] = None
    registry: ClassVar[ModelRegistry | None] = None
    base_class: ClassVar[type[Model] | None] = None

    _resolved_schema: ClassVar[SchemaDefinition | None] = None

    def __init__(self, data: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(data or {})
        self._accessor: Accessor | None = None

    # =========================================================================
    # Instance
    # =========================================================================

    @property
    def id(self) -> str | None:
        return self._data.get("_id")

    @property
    def data(self) -> dict[str, Any]:
        """Raw backing document. Treat as read-only."""
        return self._data

    @property
    def accessor(self) -> Accessor:
        if self._accessor is None:
            self._accessor = Accessor(type(self).fields(), self._data, model=type(self))
        return self._accessor

    def __getitem__(self, path: str) -> Any:
        return self.accessor.get(path)

    def age(self) -> float | None:
        return document_age(self._data)

    def to_dict(self) -> dict[str, Any]:
        return self.accessor.to_dict(JSON)

    def replace_data(self, data: dict[str, Any]) -> None:
        """Swap the backing document. Only the adapter should call this."""
        self._data = data
        self._accessor = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.slug}:{self.id}>"

    # =========================================================================
    # Schema and binding
    # =========================================================================

    @classmethod
    def resolved_schema(cls) -> SchemaDefinition:
        """Declared schema merged with the last loaded schema document."""
        return cls._resolved_schema or cls.schema

    @classmethod
    def fields(cls) -> dict[str, FieldDefinition]:
        return cls.resolved_schema().all_fields()

    @classmethod
    def get_adapter(cls) -> Adapter:
        adapter = cls.__dict__.get("_adapter")
        if adapter is None:
            if cls.adapter_class is None:
                raise CoreError(f"Model {cls.slug!r} is not bound to a client", code=ErrorCodes.NO_CLIENT)
            adapter = cls.adapter_class(cls)
            cls._adapter = adapter
        return adapter

    @classmethod
    def related(cls, slug: str) -> type[Model] | None:
        """Class bound to the same client for another slug."""
        if cls.registry is None or cls.adapter_class is None:
            return None
        return cls.registry.get_class(slug, cls.adapter_class)

    @classmethod
    def extend(cls, name: str | None = None, **attrs: Any) -> type[Model]:
        """
        Derive a subclass.

        The subclass keeps a back-reference to the first declared class in
        ``base_class`` and inherits its hooks and flags.
        """
        namespace = {
            "__module__": cls.__module__,
            "base_class": cls.base_class or cls,
            **attrs,
        }
        return type(name or cls.__name__, (cls,), namespace)

    @classmethod
    def _declares(cls, name: str) -> bool:
        """Whether a declared class (not Model, not a bound class) sets ``name``."""
        for klass in (cls.base_class or cls).__mro__:
            if klass is Model:
                return False
            if name in klass.__dict__:
                return True
        return False

    @classmethod
    def hydrate(cls, data: dict[str, Any]) -> Model:
        return cls(data)

    # =========================================================================
    # Hooks
    # =========================================================================

    @classmethod
    def hook(
        cls,
        phase: Phase,
        action: str,
        fn: HookFn,
        *,
        order: float = 0,
        handle_errors: bool = False,
    ) -> Callable[[], None]:
        """Register a hook; returns a callable removing it."""
        return register_hook(cls, phase, action, fn, order=order, handle_errors=handle_errors)

    @classmethod
    async def execute(
        cls,
        action: str,
        args: dict[str, Any],
        core: Callable[[HookPayload], Awaitable[Any]],
    ) -> Any:
        return await run_pipeline(cls, action, args, core)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @classmethod
    async def initialize(cls) -> None:
        """
        Prepare the bound class. Runs once; later calls wait for the first.

        Runs the ``initialize`` hooks around the schema document load (for
        extensible models) and asks the realtime bridge to watch the slug.
        """
        task = cls.__dict__.get("_initialize_task")
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            task = asyncio.ensure_future(cls.execute("initialize", {}, cls._initialize_core))
            cls._initialize_task = task
        await asyncio.shield(task)

    @classmethod
    async def _initialize_core(cls, payload: HookPayload) -> None:
        if cls.extensible and not cls.system:
            await cls.reload_model()
        if cls.realtime:
            await cls.get_adapter().watch()
        logger.debug(f"[model:{cls.slug}] Initialized")

    @classmethod
    async def reload_model(cls, datamodel: Model | dict[str, Any] | None = None) -> bool:
        """
        Load the schema document of this model and merge it.

        Args:
            datamodel: Schema document to apply; fetched when omitted

        Returns:
            True if the schema changed
        """
        if cls.system or not cls.extensible:
            return False
        if datamodel is None:
            from docsync.models.datamodel import DataModel

            datamodel_cls = cls.related(DataModel.slug)
            if datamodel_cls is None:
                raise CoreError(f"Model {cls.slug!r} is not bound to a client", code=ErrorCodes.NO_CLIENT)
            datamodel = await datamodel_cls.get({"filter": {"slug": cls.slug}})
            if datamodel is None:
                logger.debug(f"[model:{cls.slug}] No schema document found")
                return False
        return cls.apply_document(datamodel)

    @classmethod
    def apply_document(cls, document: Model | dict[str, Any]) -> bool:
        """Merge a schema document if it differs from the last one applied."""
        if cls.system:
            return False
        raw = document.data if isinstance(document, Model) else document
        loaded = SchemaDefinition.model_validate(raw)
        snapshot = loaded.snapshot()
        if cls.__dict__.get("_document_snapshot") == snapshot:
            return False

        cls._document_snapshot = snapshot
        cls._resolved_schema = cls.schema.merge(loaded)
        if "realtime" in loaded.model_fields_set and not cls._declares("realtime"):
            cls.realtime = loaded.realtime

        adapter = cls.__dict__.get("_adapter")
        if adapter is not None:
            for instance in adapter.store.values():
                instance._accessor = None

        logger.info(f"[model:{cls.slug}] Schema reloaded ({len(cls._resolved_schema.fields)} fields)")
        return True

    @classmethod
    def clear_cache(cls) -> None:
        cls.get_adapter().clear()

    @classmethod
    def validate(cls, documents: list[dict[str, Any]]) -> None:
        """Raise a ValidationError listing every problem in ``documents``."""
        reserved = cls.registry.reserved_slugs() if cls.registry is not None else frozenset()
        validate_documents(cls.resolved_schema(), documents, model=cls.slug, reserved_slugs=reserved)

    # =========================================================================
    # Operations
    # =========================================================================

    @classmethod
    async def _prepare(cls, action: str, ctx: dict[str, Any]) -> Adapter:
        adapter = cls.get_adapter()
        await cls.initialize()
        if cls.resolved_schema().single and action in SINGLE_FORBIDDEN and not ctx.get("force_operation"):
            raise CoreError(
                f"Operation {action} is not allowed on single model {cls.slug!r}",
                code=ErrorCodes.INVALID_OPERATION,
            )
        return adapter

    @classmethod
    async def count(cls, query: dict[str, Any] | None = None, ctx: dict[str, Any] | None = None) -> int:
        ctx = dict(ctx or {})
        adapter = await cls._prepare("count", ctx)
        return await cls.execute(
            "count",
            {"query": query, "ctx": ctx},
            lambda p: adapter.count(p.args["query"], p.args["ctx"]),
        )

    @classmethod
    async def get(
        cls,
        query: str | dict[str, Any] | None = None,
        ctx: dict[str, Any] | None = None,
    ) -> Model | None:
        """Fetch one instance by id or by query. None when not found."""
        ctx = dict(ctx or {})
        adapter = await cls._prepare("get", ctx)
        return await cls.execute(
            "get",
            {"query": query, "ctx": ctx},
            lambda p: adapter.get(p.args["query"], p.args["ctx"]),
        )

    @classmethod
    async def get_list(
        cls,
        query: dict[str, Any] | None = None,
        ctx: dict[str, Any] | None = None,
    ) -> ModelList:
        ctx = dict(ctx or {})
        adapter = await cls._prepare("get_list", ctx)
        return await cls.execute(
            "get_list",
            {"query": query, "ctx": ctx},
            lambda p: adapter.get_list(p.args["query"], p.args["ctx"]),
        )

    @classmethod
    async def create(cls, payload: dict[str, Any] | Model, ctx: dict[str, Any] | None = None) -> Model:
        ctx = dict(ctx or {})
        adapter = await cls._prepare("create_one", ctx)
        data = payload.data if isinstance(payload, Model) else payload

        async def core(p: HookPayload) -> Model:
            if adapter.validate_writes:
                cls.validate([p.args["payload"]])
            return await adapter.create_one(p.args["payload"], p.args["ctx"])

        return await cls.execute("create_one", {"payload": data, "ctx": ctx}, core)

    @classmethod
    async def create_multiple(
        cls,
        payloads: list[dict[str, Any] | Model],
        ctx: dict[str, Any] | None = None,
    ) -> list[Model]:
        ctx = dict(ctx or {})
        adapter = await cls._prepare("create_multiple", ctx)
        data = [p.data if isinstance(p, Model) else p for p in payloads]

        async def core(p: HookPayload) -> list[Model]:
            if adapter.validate_writes:
                cls.validate(p.args["payloads"])
            return await adapter.create_multiple(p.args["payloads"], p.args["ctx"])

        return await cls.execute("create_multiple", {"payloads": data, "ctx": ctx}, core)

    @hybridmethod
    async def update(
        cls,
        target: str | Model,
        update: dict[str, Any],
        ctx: dict[str, Any] | None = None,
    ) -> Model | None:
        """Update one document by id (on the class) or this instance (on an instance)."""
        ctx = dict(ctx or {})
        adapter = await cls._prepare("update_one", ctx)
        target_id = target.id if isinstance(target, Model) else target
        if not isinstance(target_id, str):
            raise CoreError("update expects an id or an instance", code=ErrorCodes.INVALID_PARAMS)
        return await cls.execute(
            "update_one",
            {"id": target_id, "update": update, "ctx": ctx},
            lambda p: adapter.update_one(p.args["id"], p.args["update"], p.args["ctx"]),
        )

    @update.instancemethod
    async def update(self, update: dict[str, Any], ctx: dict[str, Any] | None = None) -> Model:
        result = await type(self).update(self, update, ctx)
        if result is not None and result is not self:
            self.replace_data(result.data)
        return self

    @classmethod
    async def update_multiple(
        cls,
        query: dict[str, Any],
        update: dict[str, Any],
        ctx: dict[str, Any] | None = None,
    ) -> list[Model]:
        ctx = dict(ctx or {})
        adapter = await cls._prepare("update_multiple", ctx)
        return await cls.execute(
            "update_multiple",
            {"query": query, "update": update, "ctx": ctx},
            lambda p: adapter.update_multiple(p.args["query"], p.args["update"], p.args["ctx"]),
        )

    @hybridmethod
    async def delete(cls, target: str | Model, ctx: dict[str, Any] | None = None) -> bool:
        """Delete one document by id (on the class) or this instance (on an instance)."""
        ctx = dict(ctx or {})
        adapter = await cls._prepare("delete_one", ctx)
        target_id = target.id if isinstance(target, Model) else target
        if not isinstance(target_id, str):
            raise CoreError("delete expects an id or an instance", code=ErrorCodes.INVALID_PARAMS)
        return await cls.execute(
            "delete_one",
            {"id": target_id, "ctx": ctx},
            lambda p: adapter.delete_one(p.args["id"], p.args["ctx"]),
        )

    @delete.instancemethod
    async def delete(self, ctx: dict[str, Any] | None = None) -> bool:
        return await type(self).delete(self, ctx)

    @classmethod
    async def delete_multiple(cls, query: dict[str, Any], ctx: dict[str, Any] | None = None) -> list[str]:
        ctx = dict(ctx or {})
        adapter = await cls._prepare("delete_multiple", ctx)
        return await cls.execute(
            "delete_multiple",
            {"query": query, "ctx": ctx},
            lambda p: adapter.delete_multiple(p.args["query"], p.args["ctx"]),
        )

    async def refresh(self) -> Model:
        """Fetch this instance again, bypassing the caches."""
        fresh = await type(self).get(self.id, {"disable_cache": True})
        if fresh is not None and fresh is not self:
            self.replace_data(fresh.data)
        return self

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @hybridmethod
    def subscribe(cls, callback: Callable[[UpdaterEvent], Any]) -> Callable[[], None]:
        """Receive every cache event of the model, or of this instance only."""
        return cls.get_adapter().updates.subscribe(callback)

    @subscribe.instancemethod
    def subscribe(self, callback: Callable[[UpdaterEvent], Any]) -> Callable[[], None]:
        def _own_events(event: UpdaterEvent) -> Any:
            if self.id in event.ids:
                return callback(event)
            return None

        return type(self).subscribe(_own_events)
