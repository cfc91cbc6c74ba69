"""
DataModel: the system model holding schema documents.

A schema document describes the fields and validators of another model:

    {
        "slug": "orders",
        "name": "Orders",
        "fields": {"reference": {"type": "text"}},
        "validators": [{"type": "required", "field": "reference"}],
        "keyField": "reference",
        "realtime": true
    }

Extensible models load their document from here on initialize.
"""

from __future__ import annotations

from docsync.models.model import Model
from docsync.schema.definitions import FieldDefinition, SchemaDefinition, ValidatorDefinition
from docsync.schema.enums import FieldTypes, ValidatorTypes


class DataModel(Model):
    slug = "datamodels"
    system = True
    realtime = True
    schema = SchemaDefinition(
        key_field="slug",
        fields={
            "name": FieldDefinition(type=FieldTypes.TEXT),
            "slug": FieldDefinition(type=FieldTypes.TEXT),
            "fields": FieldDefinition(
                type=FieldTypes.OBJECT,
                default_field=FieldDefinition(
                    type=FieldTypes.OBJECT,
                    fields={
                        "type": FieldDefinition(
                            type=FieldTypes.ENUM,
                            values=[t.value for t in FieldTypes],
                        ),
                    },
                ),
            ),
            "validators": FieldDefinition(
                type=FieldTypes.ARRAY,
                items=FieldDefinition(
                    type=FieldTypes.OBJECT,
                    fields={
                        "type": FieldDefinition(
                            type=FieldTypes.ENUM,
                            values=[t.value for t in ValidatorTypes],
                        ),
                        "field": FieldDefinition(type=FieldTypes.TEXT),
                    },
                    validators=[ValidatorDefinition(type=ValidatorTypes.REQUIRED, field="type")],
                ),
            ),
            "keyField": FieldDefinition(type=FieldTypes.TEXT),
            "single": FieldDefinition(type=FieldTypes.BOOLEAN, default=False),
            "realtime": FieldDefinition(type=FieldTypes.BOOLEAN),
        },
        validators=[ValidatorDefinition(type=ValidatorTypes.DATAMODEL_SLUG, field="slug")],
    )
