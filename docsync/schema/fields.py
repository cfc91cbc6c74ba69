"""
Field types.

Each Field knows two things about the values of one FieldDefinition type:

    serialize()  turn a raw stored value into the requested format
    check()      tell whether a raw value has the right shape

Formats:
    object      rich Python values (datetime, Reference, NestedView, ...)
    json        JSON-ready values
    validation  raw values with defaults applied

Object and array fields delegate to the Accessor for their children so that
conditional and default-field rules stay in one place.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from docsync.schema.enums import FieldTypes

if TYPE_CHECKING:
    from docsync.schema.definitions import FieldDefinition
    from docsync.schema.engine import Accessor, Trail

Format = Literal["object", "json", "validation"]

OBJECT: Format = "object"
JSON: Format = "json"
VALIDATION: Format = "validation"


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO string, epoch milliseconds or datetime. None when invalid."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def format_date(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def fingerprint(value: Any) -> str:
    """Structural identity of a JSON-ready value."""
    return json.dumps(value, sort_keys=True, default=str)


# =============================================================================
# Base
# =============================================================================


class Field:
    """Serializer and shape check for one field type."""

    type: FieldTypes

    def serialize(
        self,
        accessor: Accessor,
        definition: FieldDefinition,
        value: Any,
        trail: Trail,
        fmt: Format,
    ) -> Any:
        return value

    def check(self, definition: FieldDefinition, value: Any) -> bool:
        return True


# =============================================================================
# Scalars
# =============================================================================


class TextField(Field):
    type = FieldTypes.TEXT

    def serialize(self, accessor, definition, value, trail, fmt):
        if fmt == VALIDATION or isinstance(value, str):
            return value
        if isinstance(value, list):
            return self.serialize(accessor, definition, value[0], trail, fmt) if value else None
        if isinstance(value, dict):
            return None
        return str(value)

    def check(self, definition, value):
        return isinstance(value, str)


class NumberField(Field):
    type = FieldTypes.NUMBER

    def serialize(self, accessor, definition, value, trail, fmt):
        if fmt == VALIDATION:
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return None
        return None

    def check(self, definition, value):
        return isinstance(value, (int, float)) and not isinstance(value, bool)


class BooleanField(Field):
    type = FieldTypes.BOOLEAN

    def serialize(self, accessor, definition, value, trail, fmt):
        if fmt == VALIDATION:
            return value
        return bool(value)

    def check(self, definition, value):
        return isinstance(value, bool)


class DateField(Field):
    type = FieldTypes.DATE

    def serialize(self, accessor, definition, value, trail, fmt):
        if fmt == VALIDATION:
            return value
        parsed = parse_date(value)
        if parsed is None:
            return None
        return parsed if fmt == OBJECT else format_date(parsed)

    def check(self, definition, value):
        return parse_date(value) is not None


class IdField(Field):
    type = FieldTypes.ID

    def serialize(self, accessor, definition, value, trail, fmt):
        if fmt == VALIDATION:
            return value
        return str(value)

    def check(self, definition, value):
        return isinstance(value, str) and bool(value)


class IdentityField(IdField):
    type = FieldTypes.IDENTITY


class EnumField(Field):
    type = FieldTypes.ENUM

    def check(self, definition, value):
        if not definition.values:
            return True
        return value in definition.values


# =============================================================================
# Relations
# =============================================================================


def relation_id(value: Any) -> str | None:
    """Identifier of a relation value, either a plain id or a document."""
    if isinstance(value, dict):
        value = value.get("_id")
    if isinstance(value, str) and value:
        return value
    return None


class RelationField(Field):
    type = FieldTypes.RELATION

    def serialize(self, accessor, definition, value, trail, fmt):
        if fmt == VALIDATION:
            return value
        ref_id = relation_id(value)
        if ref_id is None:
            return None
        if fmt == JSON:
            return ref_id
        return accessor.reference(definition.ref, ref_id)

    def check(self, definition, value):
        return relation_id(value) is not None


# =============================================================================
# Containers
# =============================================================================


class ObjectField(Field):
    type = FieldTypes.OBJECT

    def serialize(self, accessor, definition, value, trail, fmt):
        if not isinstance(value, dict):
            return value if fmt == VALIDATION else None
        if fmt == OBJECT:
            return accessor.view(definition, value, trail)
        return accessor.serialize_object(definition, value, trail, fmt)

    def check(self, definition, value):
        return isinstance(value, dict)


class ArrayField(Field):
    type = FieldTypes.ARRAY

    def serialize(self, accessor, definition, value, trail, fmt):
        if not isinstance(value, list):
            return value if fmt == VALIDATION else None
        items = definition.items
        if fmt == OBJECT and items is not None and items.type == FieldTypes.RELATION:
            ids = [i for i in (relation_id(v) for v in value) if i is not None]
            return accessor.reference_list(items.ref, ids)
        return [accessor.serialize(items, v, (*trail, i), fmt) for i, v in enumerate(value)]

    def check(self, definition, value):
        return isinstance(value, list)


FIELDS: dict[FieldTypes, Field] = {
    field.type: field
    for field in (
        TextField(),
        NumberField(),
        BooleanField(),
        DateField(),
        IdField(),
        IdentityField(),
        EnumField(),
        RelationField(),
        ObjectField(),
        ArrayField(),
    )
}


def get_field(field_type: FieldTypes) -> Field:
    return FIELDS[field_type]
