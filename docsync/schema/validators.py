"""
Validators.

A validator receives every value found at its path across the validated
batch and returns the errors it found. Validators never raise: the
validation pass aggregates their results into one ValidationError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from docsync.errors import ValidationValidatorError
from docsync.schema.definitions import ValidatorDefinition
from docsync.schema.enums import Patterns, ValidatorTypes
from docsync.schema.fields import fingerprint

_EMPTY = (None, "")

_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


@dataclass
class ValidationContext:
    """What a validator may know besides the values themselves."""

    model: str | None = None
    reserved_slugs: frozenset[str] = field(default_factory=frozenset)


class Validator:
    type: ValidatorTypes

    def validate(
        self,
        values: list[Any],
        definition: ValidatorDefinition,
        path: str | None,
        context: ValidationContext,
    ) -> list[ValidationValidatorError]:
        raise NotImplementedError

    def error(self, path: str | None, message: str, value: Any = None) -> ValidationValidatorError:
        return ValidationValidatorError(
            validator=self.type.value,
            path=path,
            value=value,
            message=message,
        )


class RequiredValidator(Validator):
    type = ValidatorTypes.REQUIRED

    def validate(self, values, definition, path, context):
        if any(v in _EMPTY or v == [] for v in values):
            return [self.error(path, "value is required")]
        return []


class UniqueValidator(Validator):
    type = ValidatorTypes.UNIQUE

    def validate(self, values, definition, path, context):
        seen: set[str] = set()
        for value in values:
            if value in _EMPTY:
                continue
            key = fingerprint(value)
            if key in seen:
                return [self.error(path, "value is not unique", value)]
            seen.add(key)
        return []


class RegexValidator(Validator):
    type = ValidatorTypes.REGEX

    def validate(self, values, definition, path, context):
        pattern = definition.pattern or ""
        flags = 0
        for flag in definition.flags or "":
            flags |= _FLAGS.get(flag, 0)
        regex = re.compile(pattern, flags)

        return [
            self.error(path, f"value does not match pattern {pattern}", v)
            for v in values
            if v is not None and not regex.search(str(v))
        ]


class LengthValidator(Validator):
    type = ValidatorTypes.LENGTH

    def validate(self, values, definition, path, context):
        errors = []
        for value in values:
            if value is None:
                continue
            length = len(str(value)) if isinstance(value, (int, float)) else len(value)
            if definition.min is not None and length < definition.min:
                errors.append(self.error(path, f"length is less than min {definition.min:g}", value))
            elif definition.max is not None and length > definition.max:
                errors.append(self.error(path, f"length is greater than max {definition.max:g}", value))
        return errors


class BoundariesValidator(Validator):
    type = ValidatorTypes.BOUNDARIES

    def validate(self, values, definition, path, context):
        errors = []
        for value in values:
            if value is None:
                continue
            try:
                number = len(value) if isinstance(value, list) else float(value)
            except (TypeError, ValueError):
                errors.append(self.error(path, f"value {value!r} is not a number", value))
                continue
            if definition.min is not None and number < definition.min:
                errors.append(self.error(path, f"value {value} is lower than min {definition.min:g}", value))
            elif definition.max is not None and number > definition.max:
                errors.append(self.error(path, f"value {value} is higher than max {definition.max:g}", value))
        return errors


class KeyFieldValidator(Validator):
    """A key field must be a slug, present and unique."""

    type = ValidatorTypes.KEY_FIELD

    def validate(self, values, definition, path, context):
        slug = definition.model_copy(update={"pattern": Patterns.SLUG.value})
        errors = []
        for validator in (RequiredValidator(), UniqueValidator(), RegexValidator()):
            errors.extend(validator.validate(values, slug, path, context))
        return errors


class DatamodelSlugValidator(Validator):
    type = ValidatorTypes.DATAMODEL_SLUG

    def validate(self, values, definition, path, context):
        errors = []
        for value in values:
            if value in _EMPTY:
                continue
            if not re.search(Patterns.SLUG.value, str(value)):
                errors.append(self.error(path, f"model slug {value!r} is invalid", value))
            elif value in context.reserved_slugs:
                errors.append(self.error(path, f"model slug {value!r} is reserved", value))
        return errors


VALIDATORS: dict[ValidatorTypes, Validator] = {
    v.type: v
    for v in (
        RequiredValidator(),
        UniqueValidator(),
        RegexValidator(),
        LengthValidator(),
        BoundariesValidator(),
        KeyFieldValidator(),
        DatamodelSlugValidator(),
    )
}


def get_validator(validator_type: ValidatorTypes) -> Validator:
    return VALIDATORS[validator_type]
