"""
Populate resolver.

When a query asks to populate relation fields, the executor returns the
referenced documents inline in place of their ids. Before the parent rows
are merged, the resolver:

    1. finds every relation value at each populated path (through nested
       objects and arrays),
    2. resolves the nested populate spec of that path on the referenced
       documents first,
    3. merges the referenced documents into the referenced model's identity
       map and publishes a fetch event for the ids that changed,
    4. rewrites the value back to the plain id (or list of ids).

Callers therefore always see ids in raw documents, and the referenced
instances are already warm in the cache.

Populate specs:
    ["author", "tags"]
    [{"path": "author", "populate": ["company"]}]
    {"author": ["company"], "tags": None}
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from docsync.cache.events import Operation, UpdaterEvent
from docsync.errors import CoreError, ErrorCodes
from docsync.schema.definitions import FieldDefinition
from docsync.schema.engine import MAP, parse_path
from docsync.schema.enums import FieldTypes
from docsync.schema.fields import relation_id

if TYPE_CHECKING:
    from docsync.models.model import Model

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PopulateSpec:
    path: str
    populate: list[PopulateSpec] = field(default_factory=list)


def normalize_populate(spec: Any) -> list[PopulateSpec]:
    if isinstance(spec, PopulateSpec):
        return [spec]
    if not spec:
        return []
    if isinstance(spec, str):
        return [PopulateSpec(spec)]
    if isinstance(spec, dict) and "path" not in spec:
        return [PopulateSpec(path, normalize_populate(nested)) for path, nested in spec.items()]
    if isinstance(spec, dict):
        return [PopulateSpec(spec["path"], normalize_populate(spec.get("populate")))]
    if isinstance(spec, (list, tuple)):
        return [s for item in spec for s in normalize_populate(item)]
    raise CoreError(f"Invalid populate spec: {spec!r}", code=ErrorCodes.INVALID_PARAMS)


# Slot = (container, key, relation definition); container[key] holds the relation value
Slot = tuple[Any, Any, FieldDefinition]


def _slots(definition: FieldDefinition, value: Any, segments: list[Any]) -> Iterator[Slot]:
    head, rest = segments[0], segments[1:]

    if head is MAP or isinstance(head, int):
        if definition.type != FieldTypes.ARRAY or definition.items is None or not isinstance(value, list):
            return
        indexes = range(len(value)) if head is MAP else [head] if head < len(value) else []
        for i in indexes:
            yield from _descend(definition.items, value, i, rest)
        return

    if definition.type != FieldTypes.OBJECT or not isinstance(value, dict) or head not in value:
        return
    child = (definition.fields or {}).get(head) or definition.default_field
    if child is not None:
        yield from _descend(child, value, head, rest)


def _descend(definition: FieldDefinition, container: Any, key: Any, rest: list[Any]) -> Iterator[Slot]:
    if rest:
        yield from _slots(definition, container[key], rest)
    elif definition.type == FieldTypes.RELATION:
        yield container, key, definition
    elif definition.type == FieldTypes.ARRAY and definition.items is not None and definition.items.type == FieldTypes.RELATION:
        yield container, key, definition.items


async def resolve_populate(model: type[Model], docs: list[dict[str, Any]], populate: Any) -> None:
    """
    Resolve populated relations of ``docs`` in place.

    Args:
        model: Model the documents belong to
        docs: Raw documents as returned by the executor
        populate: Populate spec
    """
    specs = normalize_populate(populate)
    if not specs or not docs:
        return

    root = FieldDefinition(type=FieldTypes.OBJECT, fields=model.fields())

    for spec in specs:
        segments = parse_path(spec.path)
        slots = [slot for doc in docs for slot in _slots(root, doc, segments)]
        if not slots:
            continue

        ref = slots[0][2].ref
        target = model.related(ref) if ref else None
        if target is None:
            logger.warning(f"[populate] {model.slug}.{spec.path} has no resolvable ref, skipped")
            continue
        await target.initialize()

        expanded: list[dict[str, Any]] = []
        for container, key, _ in slots:
            value = container[key]
            values = value if isinstance(value, list) else [value]
            expanded.extend(v for v in values if isinstance(v, dict) and v.get("_id"))

        if spec.populate:
            await resolve_populate(target, expanded, spec.populate)

        adapter = target.get_adapter()
        results = [adapter.map_or_new(doc) for doc in expanded]
        touched = tuple(dict.fromkeys(r.instance.id for r in results if r.updated))
        if touched:
            adapter.updates.next(UpdaterEvent(Operation.FETCH, touched))

        for container, key, _ in slots:
            value = container[key]
            if isinstance(value, list):
                container[key] = [i for i in (relation_id(v) for v in value) if i is not None]
            else:
                container[key] = relation_id(value)

        logger.debug(f"[populate] {model.slug}.{spec.path}: {len(expanded)} documents merged into {ref}")
