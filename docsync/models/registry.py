"""
Model registry.

The registry is the arena of schema-bound classes. It holds:

    - declared classes, one per slug (the templates)
    - bound classes, one per (slug, adapter class)

A Client owns an adapter class; binding a model to it derives a subclass of
the declared class for that slug. Two clients therefore never share caches,
even when they share a registry.

Usage:
    registry = ModelRegistry()
    registry.declare(Post)

    BoundPost = registry.get_class("posts", client.adapter_class)
    BoundPost is registry.get_class(Post, client.adapter_class)    # True

    # Unknown slugs produce dynamic, extensible classes
    Orders = registry.get_class("orders", client.adapter_class)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Union

from docsync.errors import CoreError, ErrorCodes
from docsync.models.datamodel import DataModel
from docsync.models.model import Model

if TYPE_CHECKING:
    from docsync.cache.adapter import Adapter

logger = logging.getLogger(__name__)

Identifier = Union[str, type[Model], Model]


class ModelRegistry:
    """Arena of declared and bound model classes."""

    def __init__(self) -> None:
        self._declared: dict[str, type[Model]] = {}
        self._bound: dict[tuple[str, type[Adapter]], type[Model]] = {}
        self.declare(DataModel)

    # -------------------------------------------------------------------------
    # Declared classes
    # -------------------------------------------------------------------------

    def declare(self, model: type[Model], *, force: bool = False) -> type[Model]:
        """
        Make ``model`` the declared class for its slug.

        Raises:
            CoreError: ALREADY_REGISTERED if another class holds the slug
        """
        if not model.slug:
            raise CoreError(f"Model {model.__name__} has no slug", code=ErrorCodes.INVALID_MODEL)
        if model.adapter_class is not None:
            raise CoreError(
                f"Model {model.__name__} is bound to a client and cannot be declared",
                code=ErrorCodes.INVALID_MODEL,
            )

        existing = self._declared.get(model.slug)
        if existing is not None and existing is not model and not force:
            raise CoreError(
                f"Model '{model.slug}' already registered by {existing.__name__}. "
                f"Use force=True to replace it.",
                code=ErrorCodes.ALREADY_REGISTERED,
            )

        self._declared[model.slug] = model
        logger.debug(f"[model_registry] Declared model: {model.slug}")
        return model

    def declared(self, slug: str) -> type[Model] | None:
        return self._declared.get(slug)

    def reserved_slugs(self) -> frozenset[str]:
        """Slugs of system models, which schema documents may not reuse."""
        return frozenset(slug for slug, model in self._declared.items() if model.system)

    # -------------------------------------------------------------------------
    # Bound classes
    # -------------------------------------------------------------------------

    def get_class(
        self,
        identifier: Identifier,
        adapter_class: type[Adapter] | None = None,
        *,
        register: bool = True,
        force: bool = False,
    ) -> type[Model]:
        """
        Return the class for a slug, a model class or a schema document.

        Args:
            identifier: Slug, declared or bound class, or DataModel instance
            adapter_class: Adapter class to bind to; the declared class is
                returned when omitted
            register: Store the derived class in the shared slot
            force: Replace an existing binding

        Returns:
            The schema-bound class

        Raises:
            CoreError: ALREADY_REGISTERED when a different declared class is
                already bound for the same (slug, adapter class)
        """
        document = identifier if isinstance(identifier, Model) else None
        template = self._template(identifier, force=force)

        if adapter_class is None:
            return template

        key = (template.slug, adapter_class)
        existing = self._bound.get(key)
        if existing is not None and register and not force:
            if existing.base_class is not template and existing is not identifier:
                raise CoreError(
                    f"Model '{template.slug}' already registered for this client "
                    f"by {existing.__name__}",
                    code=ErrorCodes.ALREADY_REGISTERED,
                )
            if document is not None:
                existing.apply_document(document)
            return existing

        bound = template.extend(
            template.__name__,
            adapter_class=adapter_class,
            registry=self,
        )
        if document is not None:
            bound.apply_document(document)
        if register:
            self._bound[key] = bound
            logger.debug(f"[model_registry] Bound model: {template.slug} -> {adapter_class.__name__}")
        return bound

    def find(self, slug: str, adapter_class: type[Adapter]) -> type[Model] | None:
        """Bound class for a slug, if one was created."""
        return self._bound.get((slug, adapter_class))

    def bound_models(self, adapter_class: type[Adapter]) -> list[type[Model]]:
        return [model for (_, bound_to), model in self._bound.items() if bound_to is adapter_class]

    def unregister(self, slug: str, adapter_class: type[Adapter]) -> bool:
        return self._bound.pop((slug, adapter_class), None) is not None

    def _template(self, identifier: Identifier, *, force: bool = False) -> type[Model]:
        if isinstance(identifier, Model):
            slug = identifier.data.get("slug")
            if not isinstance(slug, str) or not slug:
                raise CoreError("Schema document has no slug", code=ErrorCodes.INVALID_MODEL)
            return self._template(slug)

        if isinstance(identifier, str):
            template = self._declared.get(identifier)
            if template is None:
                template = self.declare(
                    type(identifier, (Model,), {"slug": identifier, "extensible": True})
                )
            return template

        if isinstance(identifier, type) and issubclass(identifier, Model):
            declared = identifier.base_class or identifier
            if identifier.adapter_class is None and self._declared.get(declared.slug) is not declared:
                return self.declare(declared, force=force)
            return self._declared.get(declared.slug, declared)

        raise CoreError(f"Invalid model identifier: {identifier!r}", code=ErrorCodes.INVALID_PARAMS)

    def __len__(self) -> int:
        return len(self._bound)

    def __contains__(self, slug: str) -> bool:
        return slug in self._declared
