"""
Validation pass.

Validates a batch of raw documents against a schema in two sweeps:

1. Field sweep: every readable value is checked against its field type,
   including array items, default-field extras and active conditional
   fields. Arrays marked ``distinct`` reject structural duplicates.
2. Validator sweep: every validator (top-level, nested in fields, and the
   implicit key-field validator) receives all values found at its path
   across the batch.

Failures from both sweeps are aggregated into a single ValidationError.
Nothing short-circuits.
"""

from __future__ import annotations

import logging
from typing import Any

from docsync.errors import ValidationError, ValidationFieldError, ValidationValidatorError
from docsync.schema.definitions import FieldDefinition, SchemaDefinition, ValidatorDefinition
from docsync.schema.engine import Accessor, Trail, format_path
from docsync.schema.enums import FieldTypes, ValidatorTypes
from docsync.schema.fields import JSON, fingerprint, get_field
from docsync.schema.validators import ValidationContext, get_validator

logger = logging.getLogger(__name__)


def collect_validators(
    fields: dict[str, FieldDefinition],
    validators: list[ValidatorDefinition],
    prefix: str = "",
) -> list[tuple[str | None, ValidatorDefinition]]:
    """Flatten the validators of a field tree into (full path, definition) pairs."""

    def _join(*parts: str | None) -> str | None:
        joined = ".".join(p for p in parts if p)
        return joined or None

    found = [(_join(prefix, v.field), v) for v in validators]

    for name, definition in fields.items():
        path = _join(prefix, name) or name
        found.extend((_join(path, v.field), v) for v in definition.validators)
        if definition.type == FieldTypes.OBJECT and definition.fields:
            found.extend(collect_validators(definition.fields, [], path))
        elif definition.type == FieldTypes.ARRAY and definition.items is not None:
            items = definition.items
            item_path = f"{path}.[]"
            found.extend((_join(item_path, v.field), v) for v in items.validators)
            if items.type == FieldTypes.OBJECT and items.fields:
                found.extend(collect_validators(items.fields, [], item_path))
    return found


class _FieldSweep:
    def __init__(self, accessor: Accessor):
        self.accessor = accessor
        self.errors: list[ValidationFieldError] = []

    def fail(self, definition: FieldDefinition, trail: Trail, value: Any, message: str) -> None:
        self.errors.append(
            ValidationFieldError(
                path=format_path(trail),
                field_type=definition.type.value,
                value=value,
                message=message,
            )
        )

    def walk(self, definition: FieldDefinition | None, value: Any, trail: Trail) -> None:
        if definition is None or value is None:
            return
        if not get_field(definition.type).check(definition, value):
            self.fail(definition, trail, value, f"invalid {definition.type.value} value")
            return

        if definition.type == FieldTypes.OBJECT:
            self.walk_object(definition, value, trail)
        elif definition.type == FieldTypes.ARRAY:
            for i, item in enumerate(value):
                self.walk(definition.items, item, (*trail, i))
            if definition.distinct:
                self.check_distinct(definition, value, trail)

    def walk_object(self, definition: FieldDefinition, value: dict[str, Any], trail: Trail) -> None:
        accessor = self.accessor
        fields = definition.fields or {}
        if definition.strict and trail:
            extras = [k for k in value if k not in fields and value[k] is not None]
            if extras:
                self.fail(definition, trail, value, f"unknown keys {', '.join(extras)}")
        for key in accessor.object_keys(definition, value, trail):
            _, child = accessor.child_definition(definition, key, trail)
            self.walk(child, accessor.child_value(child, value, key), (*trail, key))

    def check_distinct(self, definition: FieldDefinition, value: list[Any], trail: Trail) -> None:
        seen: set[str] = set()
        for i, item in enumerate(value):
            key = fingerprint(self.accessor.serialize(definition.items, item, (*trail, i), JSON))
            if key in seen:
                self.fail(definition, trail, value, "duplicate values in distinct array")
                return
            seen.add(key)


def validate_documents(
    schema: SchemaDefinition,
    documents: list[dict[str, Any]],
    *,
    model: str | None = None,
    reserved_slugs: frozenset[str] = frozenset(),
) -> None:
    """
    Validate a batch of documents.

    Args:
        schema: Schema the documents must follow
        documents: Raw documents
        model: Slug reported in the error
        reserved_slugs: Slugs the datamodel-slug validator rejects

    Raises:
        ValidationError: With every field and validator failure found
    """
    fields = schema.all_fields()
    accessors = [Accessor(fields, doc) for doc in documents]

    field_errors: list[ValidationFieldError] = []
    for accessor in accessors:
        sweep = _FieldSweep(accessor)
        sweep.walk_object(accessor.root, accessor.data, ())
        field_errors.extend(sweep.errors)

    declared = list(schema.validators)
    if schema.key_field:
        declared.append(ValidatorDefinition(type=ValidatorTypes.KEY_FIELD, field=schema.key_field))

    context = ValidationContext(model=model, reserved_slugs=reserved_slugs)
    validator_errors: list[ValidationValidatorError] = []
    for path, definition in collect_validators(schema.fields, declared):
        values: list[Any] = []
        for accessor in accessors:
            values.extend(accessor.collect(path) if path else [accessor.data])
        validator_errors.extend(get_validator(definition.type).validate(values, definition, path, context))

    if field_errors or validator_errors:
        logger.debug(
            f"[validation] {model or 'documents'}: {len(field_errors)} field error(s), "
            f"{len(validator_errors)} validator error(s)"
        )
        raise ValidationError(fields=field_errors, validators=validator_errors, model=model)
