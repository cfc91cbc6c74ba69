"""
Declarative schema definitions.

A model schema is a tree of FieldDefinition objects plus a list of
ValidatorDefinition objects. Definitions are pure data: they are built from
Python code or from a remote schema document (camelCase keys), and never
carry behaviour.

Example document:
    {
        "fields": {
            "channel": {"type": "enum", "values": ["email", "slack"]},
            "options": {
                "type": "object",
                "fields": {
                    "email": {"type": "text"},
                    "slackWebhookUrl": {"type": "text"}
                },
                "conditionalFields": {
                    "dependsOn": "$.channel",
                    "mappings": {"email": ["email"], "slack": ["slackWebhookUrl"]},
                    "defaultMapping": "email"
                }
            }
        },
        "validators": [{"type": "required", "field": "channel"}]
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docsync.schema.enums import FieldTypes, ValidatorTypes


class _Definition(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ValidatorDefinition(_Definition):
    """A validator attached to a field path (relative to where it is declared)."""

    type: ValidatorTypes
    field: str | None = None
    pattern: str | None = None
    flags: str | None = None
    min: float | None = None
    max: float | None = None


class ConditionalFields(_Definition):
    """
    Activation rule for the sub-fields of an object field.

    ``depends_on`` is resolved from the document root, unless it contains a
    ``$`` which is replaced by the path of the object's parent.
    """

    depends_on: str
    mappings: dict[str, list[str]] = Field(default_factory=dict)
    default_mapping: str | None = None


class FieldDefinition(_Definition):
    type: FieldTypes
    default: Any = None

    # relation
    ref: str | None = None

    # object
    fields: dict[str, FieldDefinition] | None = None
    default_field: FieldDefinition | None = None
    additional_properties: bool = True
    strict: bool = False
    conditional_fields: ConditionalFields | None = None

    # array
    items: FieldDefinition | None = None
    distinct: bool = False

    # enum
    values: list[Any] | None = None

    validators: list[ValidatorDefinition] = Field(default_factory=list)

    @property
    def has_default(self) -> bool:
        """True when a default was given, even an explicit None."""
        return "default" in self.model_fields_set


FieldDefinition.model_rebuild()


SYSTEM_FIELDS: dict[str, FieldDefinition] = {
    "_id": FieldDefinition(type=FieldTypes.ID),
    "_createdAt": FieldDefinition(type=FieldTypes.DATE),
    "_createdBy": FieldDefinition(type=FieldTypes.IDENTITY),
    "_updatedAt": FieldDefinition(type=FieldTypes.DATE),
    "_updatedBy": FieldDefinition(type=FieldTypes.IDENTITY),
}


class SchemaDefinition(_Definition):
    """Complete schema of one model."""

    fields: dict[str, FieldDefinition] = Field(default_factory=dict)
    validators: list[ValidatorDefinition] = Field(default_factory=list)
    key_field: str | None = None
    single: bool = False
    realtime: bool = False

    def all_fields(self) -> dict[str, FieldDefinition]:
        """Declared fields plus the system fields every document carries."""
        return {**SYSTEM_FIELDS, **self.fields}

    def merge(self, other: SchemaDefinition) -> SchemaDefinition:
        """
        Merge a loaded schema document under this one.

        Fields and flags declared here win over the ones in ``other``;
        validators are concatenated.
        """
        fields = {**other.fields, **self.fields}
        data: dict[str, Any] = {
            "fields": fields,
            "validators": [*other.validators, *self.validators],
        }
        for name in ("key_field", "single", "realtime"):
            declared = name in self.model_fields_set or name not in other.model_fields_set
            data[name] = getattr(self if declared else other, name)
        return SchemaDefinition(**data)

    def snapshot(self) -> str:
        """Stable serialized form used to detect schema changes."""
        return self.model_dump_json(by_alias=True)
