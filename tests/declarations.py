"""
Model declarations shared by the test modules.
"""

from docsync import Model
from docsync.schema import ConditionalFields, FieldDefinition, SchemaDefinition, ValidatorDefinition


class Account(Model):
    slug = "accounts"
    schema = SchemaDefinition(
        fields={
            "name": FieldDefinition(type="text"),
            "email": FieldDefinition(type="text"),
            "company": FieldDefinition(type="relation", ref="companies"),
        },
        validators=[ValidatorDefinition(type="required", field="name")],
    )


class Company(Model):
    slug = "companies"
    schema = SchemaDefinition(fields={"name": FieldDefinition(type="text")})


class Post(Model):
    slug = "posts"
    schema = SchemaDefinition(
        fields={
            "title": FieldDefinition(type="text"),
            "status": FieldDefinition(type="enum", values=["draft", "published"], default="draft"),
            "author": FieldDefinition(type="relation", ref="accounts"),
            "reviewers": FieldDefinition(
                type="array",
                items=FieldDefinition(type="relation", ref="accounts"),
            ),
            "tags": FieldDefinition(type="array", items=FieldDefinition(type="text"), distinct=True),
        },
        validators=[ValidatorDefinition(type="required", field="title")],
    )


class Settings(Model):
    slug = "settings"
    schema = SchemaDefinition(
        single=True,
        fields={"theme": FieldDefinition(type="text")},
    )


NOTIFICATION_FIELDS = {
    "channel": FieldDefinition(type="text"),
    "options": FieldDefinition(
        type="object",
        fields={
            "email": FieldDefinition(type="text"),
            "slackWebhookUrl": FieldDefinition(type="text"),
        },
        conditional_fields=ConditionalFields(
            depends_on="channel",
            mappings={"email": ["email"], "slack": ["slackWebhookUrl"]},
            default_mapping="email",
        ),
    ),
}
