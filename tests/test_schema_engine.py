"""
Tests for the lazy document accessor.

Tests conditional fields, read isolation, defaults, extra keys and formats.
"""
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from docsync.schema import fields as field_types
from docsync.schema.definitions import ConditionalFields, FieldDefinition
from docsync.schema.engine import MAP, Accessor, NestedView, format_path, parse_path
from docsync.schema.enums import FieldTypes
from docsync.schema.fields import TextField

from declarations import NOTIFICATION_FIELDS, Post


def _notification(channel, **options):
    return Accessor(NOTIFICATION_FIELDS, {"channel": channel, "options": options})


class CountingTextField(TextField):
    def __init__(self):
        self.seen = []

    def serialize(self, accessor, definition, value, trail, fmt):
        self.seen.append(format_path(trail))
        return super().serialize(accessor, definition, value, trail, fmt)


class TestPaths:
    def test_parse_path(self):
        assert parse_path("title") == ["title"]
        assert parse_path("options.email") == ["options", "email"]
        assert parse_path("items.[].name") == ["items", MAP, "name"]
        assert parse_path("items.[2].name") == ["items", 2, "name"]

    def test_format_path(self):
        assert format_path(("items", 0, "name")) == "items.[0].name"
        assert format_path(()) == ""


class TestConditionalFields:
    """Only the sub-fields selected by the dependency value are readable."""

    def test_mapping_selects_keys(self):
        accessor = _notification("slack", email="ada@example.com", slackWebhookUrl="https://hooks/1")

        assert accessor.get("options.slackWebhookUrl") == "https://hooks/1"
        assert accessor.get("options.email") is None
        assert dict(accessor.get("options")) == {"slackWebhookUrl": "https://hooks/1"}

    def test_unknown_value_uses_default_mapping(self):
        accessor = _notification("unknown", email="ada@example.com", slackWebhookUrl="https://hooks/1")

        assert dict(accessor.get("options")) == {"email": "ada@example.com"}

    def test_no_default_mapping_exposes_nothing(self):
        options = NOTIFICATION_FIELDS["options"]
        rule = options.conditional_fields.model_copy(update={"default_mapping": None})
        fields = {**NOTIFICATION_FIELDS, "options": options.model_copy(update={"conditional_fields": rule})}
        accessor = Accessor(fields, {"channel": "unknown", "options": {"email": "a@b.c", "slackWebhookUrl": "x"}})

        assert accessor.get("options").to_dict() == {}
        assert accessor.get("options.email") is None

    def test_inactive_keys_raise_key_error_on_view(self):
        view = _notification("email", email="a@b.c", slackWebhookUrl="x").get("options")

        assert isinstance(view, NestedView)
        assert view["email"] == "a@b.c"
        with pytest.raises(KeyError):
            view["slackWebhookUrl"]

    def test_collect_skips_inactive_keys(self):
        accessor = _notification("slack", email="a@b.c", slackWebhookUrl="x")

        assert accessor.collect("options.email") == []
        assert accessor.collect("options.slackWebhookUrl") == ["x"]

    def test_relative_dependency_is_evaluated_per_array_item(self):
        target = FieldDefinition(
            type="object",
            fields={
                "channel": FieldDefinition(type="text"),
                "options": FieldDefinition(
                    type="object",
                    fields={"email": FieldDefinition(type="text"), "url": FieldDefinition(type="text")},
                    conditional_fields=ConditionalFields(
                        depends_on="$.channel",
                        mappings={"email": ["email"], "slack": ["url"]},
                    ),
                ),
            },
        )
        fields = {"targets": FieldDefinition(type="array", items=target)}
        accessor = Accessor(
            fields,
            {
                "targets": [
                    {"channel": "email", "options": {"email": "a@b.c", "url": "u1"}},
                    {"channel": "slack", "options": {"email": "d@e.f", "url": "u2"}},
                ]
            },
        )

        assert accessor.get("targets.[].options.email") == ["a@b.c", None]
        assert accessor.get("targets.[1].options.url") == "u2"
        assert accessor.collect("targets.[].options.email") == ["a@b.c"]
        assert accessor.collect("targets.[].options.url") == ["u2"]


class TestReadIsolation:
    def test_leaf_read_serializes_only_that_leaf(self):
        counter = CountingTextField()
        fields = {
            "profile": FieldDefinition(
                type="object",
                fields={"first": FieldDefinition(type="text"), "last": FieldDefinition(type="text")},
            )
        }
        accessor = Accessor(fields, {"profile": {"first": "Ada", "last": "Lovelace"}})

        with patch.dict(field_types.FIELDS, {FieldTypes.TEXT: counter}):
            assert accessor.get("profile.first") == "Ada"

        assert counter.seen == ["profile.first"]

    def test_nested_view_is_lazy(self):
        counter = CountingTextField()
        fields = {
            "profile": FieldDefinition(
                type="object",
                fields={"first": FieldDefinition(type="text"), "last": FieldDefinition(type="text")},
            )
        }
        accessor = Accessor(fields, {"profile": {"first": "Ada", "last": "Lovelace"}})

        with patch.dict(field_types.FIELDS, {FieldTypes.TEXT: counter}):
            view = accessor.get("profile")
            assert counter.seen == []
            assert view["last"] == "Lovelace"

        assert counter.seen == ["profile.last"]


class TestDefaults:
    def test_default_applies_to_missing_key(self):
        accessor = Accessor(Post.schema.all_fields(), {"title": "Hello"})

        assert accessor.get("status") == "draft"
        assert accessor.to_dict()["status"] == "draft"

    def test_defaults_can_be_disabled(self):
        accessor = Accessor(Post.schema.all_fields(), {"title": "Hello"}, defaults=False)

        assert accessor.get("status") is None
        assert "status" not in accessor.to_dict()

    def test_default_is_copied(self):
        fields = {"tags": FieldDefinition(type="array", items=FieldDefinition(type="text"), default=[])}
        accessor = Accessor(fields, {})

        accessor.get("tags").append("x")

        assert accessor.get("tags") == []


class TestExtraKeys:
    def test_default_field_types_undeclared_keys(self):
        fields = {
            "scores": FieldDefinition(
                type="object",
                fields={"total": FieldDefinition(type="text")},
                default_field=FieldDefinition(type="number"),
            )
        }
        accessor = Accessor(fields, {"scores": {"total": 7, "math": "12.5", "art": 3}})

        assert accessor.get("scores.math") == 12.5
        assert accessor.get("scores.total") == "7"
        assert set(accessor.get("scores")) == {"total", "math", "art"}

    def test_strict_object_hides_extras(self):
        fields = {
            "meta": FieldDefinition(type="object", fields={"a": FieldDefinition(type="text")}, strict=True)
        }
        accessor = Accessor(fields, {"meta": {"a": "x", "b": "y"}})

        assert accessor.get("meta.b") is None
        assert accessor.get("meta").to_dict() == {"a": "x"}

    def test_additional_properties_are_read_raw(self):
        fields = {"meta": FieldDefinition(type="object", fields={})}
        accessor = Accessor(fields, {"meta": {"free": {"deep": 1}}})

        assert accessor.get("meta.free.deep") == 1

    def test_root_hides_undeclared_keys(self):
        accessor = Accessor({"title": FieldDefinition(type="text")}, {"title": "x", "junk": 1})

        assert accessor.get("junk") is None
        assert accessor.to_dict() == {"title": "x"}


class TestFormats:
    def test_dates(self):
        fields = {"_createdAt": FieldDefinition(type="date")}
        accessor = Accessor(fields, {"_createdAt": "2024-01-02T03:04:05.000Z"})

        assert accessor.get("_createdAt") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert accessor.get("_createdAt", "json") == "2024-01-02T03:04:05.000Z"
        assert accessor.get("_createdAt", "validation") == "2024-01-02T03:04:05.000Z"

    def test_epoch_millis_dates(self):
        accessor = Accessor({"at": FieldDefinition(type="date")}, {"at": 1704067200000})

        assert accessor.get("at", "json") == "2024-01-01T00:00:00.000Z"

    def test_relation_without_model_reads_id(self):
        fields = {"author": FieldDefinition(type="relation", ref="accounts")}
        accessor = Accessor(fields, {"author": {"_id": "a1", "name": "Ada"}})

        assert accessor.get("author") == "a1"
        assert accessor.get("author", "json") == "a1"

    def test_array_of_objects_json(self):
        item = FieldDefinition(type="object", fields={"n": FieldDefinition(type="number")})
        accessor = Accessor({"rows": FieldDefinition(type="array", items=item)}, {"rows": [{"n": "1"}, {"n": 2}]})

        assert accessor.get("rows", "json") == [{"n": 1.0}, {"n": 2}]
        assert accessor.get("rows.[0].n") == 1.0
        assert accessor.get("rows.[5].n") is None
