"""Enumerations shared by schema definitions."""

from __future__ import annotations

from enum import Enum


class FieldTypes(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ID = "id"
    IDENTITY = "identity"
    RELATION = "relation"
    OBJECT = "object"
    ARRAY = "array"
    ENUM = "enum"


class ValidatorTypes(str, Enum):
    REQUIRED = "required"
    UNIQUE = "unique"
    REGEX = "regex"
    LENGTH = "length"
    BOUNDARIES = "boundaries"
    KEY_FIELD = "keyField"
    DATAMODEL_SLUG = "datamodelSlug"


class Patterns(str, Enum):
    EMAIL = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    SLUG = r"^[a-zA-Z0-9]([a-zA-Z0-9_\-:@]+?)?$"
