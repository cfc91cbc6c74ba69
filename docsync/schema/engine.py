"""
Lazy document accessor.

An Accessor wraps one raw document and its field tree and serializes values
only when they are read. Reading ``a.b.c`` walks ``a`` and ``b`` raw and runs
the serializer of ``c`` alone, so siblings are never serialized.

Paths:
    title               top-level key
    options.email       nested key
    items.[].name       every element of an array
    items.[0].name      one element of an array

Usage:
    accessor = Accessor(schema.all_fields(), doc, model=Post)
    accessor.get("title")                    # "Hello"
    accessor.get("_createdAt")               # datetime(...)
    accessor.get("_createdAt", "json")       # "2024-01-01T00:00:00.000Z"
    accessor.get("options")                  # NestedView, serialized per key
    accessor.collect("items.[].name")        # flat list, inactive keys skipped
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any, Union

from docsync.schema.definitions import FieldDefinition
from docsync.schema.enums import FieldTypes
from docsync.schema.fields import JSON, OBJECT, VALIDATION, Format, get_field

if TYPE_CHECKING:
    from docsync.models.model import Model
    from docsync.models.references import Reference, ReferenceList

Trail = tuple[Union[str, int], ...]


class _Map:
    """Path segment mapping over every array element."""

    def __repr__(self) -> str:
        return "[]"


MAP = _Map()
_MISSING = object()

_SEGMENT = re.compile(r"([^.\[\]]+)|\[(\d*)\]")


def parse_path(path: str) -> list[str | int | _Map]:
    segments: list[str | int | _Map] = []
    for name, index in _SEGMENT.findall(path):
        if name:
            segments.append(name)
        elif index:
            segments.append(int(index))
        else:
            segments.append(MAP)
    return segments


def format_path(trail: Trail) -> str:
    return ".".join(f"[{s}]" if isinstance(s, int) else s for s in trail)


class Accessor:
    """Reads values from one document through its field definitions."""

    def __init__(
        self,
        fields: dict[str, FieldDefinition],
        data: dict[str, Any],
        *,
        model: type[Model] | None = None,
        defaults: bool = True,
    ):
        self.root = FieldDefinition(
            type=FieldTypes.OBJECT,
            fields=fields,
            additional_properties=False,
        )
        self.data = data
        self.model = model
        self.defaults = defaults

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, path: str, fmt: Format = OBJECT) -> Any:
        """Read one path. Inaccessible or missing values read as None."""
        if not path:
            return self.serialize(self.root, self.data, (), fmt)
        return self._resolve(self.root, self.data, parse_path(path), (), fmt)

    def collect(self, path: str, fmt: Format = VALIDATION) -> list[Any]:
        """
        Read every value matching a path, flattening ``[]`` segments.

        Keys disabled by conditional fields are skipped instead of being
        reported as None.
        """
        return list(self._iter(self.root, self.data, parse_path(path), (), fmt))

    def to_dict(self, fmt: Format = JSON) -> dict[str, Any]:
        return self.serialize_object(self.root, self.data, (), fmt)

    def _resolve(self, definition, value, segments, trail: Trail, fmt: Format) -> Any:
        if not segments:
            return self.serialize(definition, value, trail, fmt)
        head, rest = segments[0], segments[1:]

        if head is MAP or isinstance(head, int):
            if not isinstance(value, list):
                return None
            item = definition.items if definition is not None else None
            if head is MAP:
                return [self._resolve(item, v, rest, (*trail, i), fmt) for i, v in enumerate(value)]
            if head >= len(value):
                return None
            return self._resolve(item, value[head], rest, (*trail, head), fmt)

        if not isinstance(value, dict):
            return None
        accessible, child = self.child_definition(definition, head, trail)
        if not accessible:
            return None
        return self._resolve(child, self.child_value(child, value, head), rest, (*trail, head), fmt)

    def _iter(self, definition, value, segments, trail: Trail, fmt: Format) -> Iterator[Any]:
        if not segments:
            yield self.serialize(definition, value, trail, fmt)
            return
        head, rest = segments[0], segments[1:]

        if head is MAP or isinstance(head, int):
            if not isinstance(value, list):
                return
            item = definition.items if definition is not None else None
            indexes = range(len(value)) if head is MAP else [head] if head < len(value) else []
            for i in indexes:
                yield from self._iter(item, value[i], rest, (*trail, i), fmt)
            return

        accessible, child = self.child_definition(definition, head, trail)
        if not accessible:
            return
        raw = self.child_value(child, value, head) if isinstance(value, dict) else None
        yield from self._iter(child, raw, rest, (*trail, head), fmt)

    # -------------------------------------------------------------------------
    # Object rules
    # -------------------------------------------------------------------------

    def active_keys(self, definition: FieldDefinition | None, trail: Trail) -> list[str] | None:
        """Sub-fields enabled by the conditional rule of an object, or None when unrestricted."""
        if definition is None or definition.conditional_fields is None:
            return None
        rule = definition.conditional_fields
        depends_on = rule.depends_on
        if "$" in depends_on:
            depends_on = depends_on.replace("$", format_path(trail[:-1])).lstrip(".")

        selector = self.get(depends_on, JSON)
        keys = rule.mappings.get(selector) if isinstance(selector, str) else None
        if keys is None and rule.default_mapping is not None:
            keys = rule.mappings.get(rule.default_mapping)
        return list(keys or [])

    def child_definition(
        self,
        definition: FieldDefinition | None,
        key: str,
        trail: Trail,
    ) -> tuple[bool, FieldDefinition | None]:
        """
        Resolve the definition of ``key`` inside an object.

        Returns (accessible, definition). An accessible key without a
        definition is an untyped extra read as-is.
        """
        if definition is None:
            return True, None
        if definition.type != FieldTypes.OBJECT:
            return False, None

        active = self.active_keys(definition, trail)
        if active is not None and key not in active:
            return False, None

        fields = definition.fields or {}
        if key in fields:
            return True, fields[key]
        if definition.strict:
            return False, None
        if definition.default_field is not None:
            return True, definition.default_field
        return definition.additional_properties, None

    def child_value(self, definition: FieldDefinition | None, value: dict[str, Any], key: str) -> Any:
        raw = value.get(key, _MISSING)
        if raw is _MISSING:
            if self.defaults and definition is not None and definition.has_default:
                return copy.deepcopy(definition.default)
            return None
        return raw

    def object_keys(self, definition: FieldDefinition, value: dict[str, Any], trail: Trail) -> list[str]:
        """Keys of an object readable under its rules, declared keys first."""
        active = self.active_keys(definition, trail)
        fields = definition.fields or {}
        keys = [
            k for k, d in fields.items()
            if (active is None or k in active) and (k in value or (self.defaults and d.has_default))
        ]
        if not definition.strict and (definition.default_field is not None or definition.additional_properties):
            keys.extend(k for k in value if k not in fields and (active is None or k in active))
        return keys

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def serialize(self, definition: FieldDefinition | None, value: Any, trail: Trail, fmt: Format) -> Any:
        if definition is None or value is None:
            return value
        return get_field(definition.type).serialize(self, definition, value, trail, fmt)

    def serialize_object(
        self,
        definition: FieldDefinition,
        value: dict[str, Any],
        trail: Trail,
        fmt: Format,
    ) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in self.object_keys(definition, value, trail):
            _, child = self.child_definition(definition, key, trail)
            out[key] = self.serialize(child, self.child_value(child, value, key), (*trail, key), fmt)
        return out

    def view(self, definition: FieldDefinition, value: dict[str, Any], trail: Trail) -> NestedView:
        return NestedView(self, definition, value, trail)

    def reference(self, ref: str | None, ref_id: str) -> Reference | str:
        if self.model is None or ref is None:
            return ref_id
        from docsync.models.references import Reference

        target = self.model.related(ref)
        return Reference(target, ref_id) if target is not None else ref_id

    def reference_list(self, ref: str | None, ids: list[str]) -> ReferenceList | list[str]:
        if self.model is None or ref is None:
            return ids
        from docsync.models.references import ReferenceList

        target = self.model.related(ref)
        return ReferenceList(target, ids) if target is not None else ids


class NestedView(Mapping):
    """
    Read-only view over a nested object.

    Keys are serialized one at a time when accessed.
    """

    def __init__(self, accessor: Accessor, definition: FieldDefinition, value: dict[str, Any], trail: Trail):
        self._accessor = accessor
        self._definition = definition
        self._value = value
        self._trail = trail

    @property
    def raw(self) -> dict[str, Any]:
        return self._value

    def __getitem__(self, key: str) -> Any:
        accessible, child = self._accessor.child_definition(self._definition, key, self._trail)
        if not accessible:
            raise KeyError(key)
        raw = self._accessor.child_value(child, self._value, key)
        if raw is None and key not in self._value and not (child is not None and child.has_default):
            raise KeyError(key)
        return self._accessor.serialize(child, raw, (*self._trail, key), OBJECT)

    def __iter__(self) -> Iterator[str]:
        return iter(self._accessor.object_keys(self._definition, self._value, self._trail))

    def __len__(self) -> int:
        return len(self._accessor.object_keys(self._definition, self._value, self._trail))

    def to_dict(self) -> dict[str, Any]:
        return self._accessor.serialize_object(self._definition, self._value, self._trail, JSON)

    def __repr__(self) -> str:
        return f"NestedView({format_path(self._trail)!r}, keys={list(self)})"
