"""
Schema layer.

- definitions: pydantic models describing fields and validators
- engine: lazy Accessor reading documents through their definitions
- fields: per-type serializers and shape checks
- validators / validation: the aggregated validation pass
"""

from .definitions import (
    SYSTEM_FIELDS,
    ConditionalFields,
    FieldDefinition,
    SchemaDefinition,
    ValidatorDefinition,
)
from .engine import Accessor, NestedView
from .enums import FieldTypes, Patterns, ValidatorTypes
from .fields import JSON, OBJECT, VALIDATION, Format
from .validation import validate_documents

__all__ = [
    "SYSTEM_FIELDS",
    "ConditionalFields",
    "FieldDefinition",
    "SchemaDefinition",
    "ValidatorDefinition",
    "Accessor",
    "NestedView",
    "FieldTypes",
    "Patterns",
    "ValidatorTypes",
    "Format",
    "OBJECT",
    "JSON",
    "VALIDATION",
    "validate_documents",
]
