"""
Client: binds models to one executor.

A Client owns an adapter class of its own, so every model bound through it
gets caches that no other client shares. The registry may be shared between
clients; bindings are keyed by (slug, adapter class).

Usage:
    client = Client(HttpExecutor.from_options(options), options=options)
    Post = client.model(PostDeclaration)
    post = await Post.get("65f...")

Credential refresh:
    When an executor call fails with TOKEN_EXPIRED and a
    ``refresh_credentials`` coroutine was given, the client awaits it and
    runs the call once more. Every other error surfaces unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from docsync.cache.adapter import Adapter
from docsync.cache.events import CrudEvent
from docsync.config import ClientOptions
from docsync.errors import CoreError, ErrorCodes, TransportError
from docsync.models.model import Model
from docsync.models.registry import Identifier, ModelRegistry
from docsync.transport.executor import OperationExecutor, RealtimeBridge
from docsync.transport.operations import OperationDescriptor

logger = logging.getLogger(__name__)

RefreshCredentials = Callable[["Client"], Awaitable[None]]


class Client:
    def __init__(
        self,
        executor: OperationExecutor | None = None,
        *,
        options: ClientOptions | None = None,
        registry: ModelRegistry | None = None,
        bridge: RealtimeBridge | None = None,
        refresh_credentials: RefreshCredentials | None = None,
        name: str = "client",
    ):
        self.executor = executor
        self.options = options or ClientOptions()
        self.registry = registry or ModelRegistry()
        self.bridge = bridge
        self.refresh_credentials = refresh_credentials
        self.name = name
        self.adapter_class: type[Adapter] = type(f"{name.title()}Adapter", (Adapter,), {"client": self})

    def model(self, identifier: Identifier, **kwargs: Any) -> type[Model]:
        """Model class bound to this client (slug, declared class or schema document)."""
        return self.registry.get_class(identifier, self.adapter_class, **kwargs)

    def declare(self, *models: type[Model]) -> None:
        for model in models:
            self.registry.declare(model)

    async def execute(
        self,
        operation: OperationDescriptor,
        *,
        path: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        if self.executor is None:
            raise CoreError(f"Client {self.name!r} has no executor", code=ErrorCodes.NO_CLIENT)

        try:
            return await self.executor.execute(operation, path=path, query=query, body=body)
        except TransportError as e:
            if e.code != ErrorCodes.TOKEN_EXPIRED or self.refresh_credentials is None:
                raise
            logger.info(f"[{self.name}] Access token expired, refreshing credentials")

        await self.refresh_credentials(self)
        return await self.executor.execute(operation, path=path, query=query, body=body)

    def dispatch(self, event: CrudEvent | dict[str, Any]) -> bool:
        """
        Publish a change event to the bound model it concerns.

        Called by the realtime bridge. Events for models never bound
        through this client are ignored.

        Returns:
            True if a bound model received the event
        """
        if isinstance(event, dict):
            event = CrudEvent.from_dict(event)

        model = self.registry.find(event.model, self.adapter_class)
        if model is None:
            logger.debug(f"[{self.name}] Ignoring event for unbound model {event.model}")
            return False
        model.get_adapter().dispatch(event)
        return True

    def clear_cache(self) -> None:
        for model in self.registry.bound_models(self.adapter_class):
            model.clear_cache()

    def __repr__(self) -> str:
        return f"Client({self.name!r}, executor={type(self.executor).__name__})"
