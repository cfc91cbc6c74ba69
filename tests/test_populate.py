"""
Tests for populated relations.

Populated documents are merged into the referenced model's cache and the
parent rows keep plain ids.
"""
import pytest

from docsync import Operation
from docsync.cache.populate import PopulateSpec, normalize_populate
from docsync.errors import CoreError
from docsync.models.references import Reference, ReferenceList

from declarations import Company


class TestNormalize:
    def test_shapes(self):
        assert normalize_populate("author") == [PopulateSpec("author")]
        assert normalize_populate(["author", "reviewers"]) == [PopulateSpec("author"), PopulateSpec("reviewers")]
        assert normalize_populate({"author": ["company"]}) == [
            PopulateSpec("author", [PopulateSpec("company")])
        ]
        assert normalize_populate([{"path": "author", "populate": "company"}]) == [
            PopulateSpec("author", [PopulateSpec("company")])
        ]
        assert normalize_populate(None) == []

    def test_normalized_specs_pass_through(self):
        spec = PopulateSpec("author", [PopulateSpec("company")])

        assert normalize_populate(spec) == [spec]
        assert normalize_populate([spec, "reviewers"]) == [spec, PopulateSpec("reviewers")]

    def test_invalid_spec(self):
        with pytest.raises(CoreError):
            normalize_populate(42)


class TestPopulate:
    @pytest.mark.asyncio
    async def test_populated_relation_warms_target_cache(self, posts, accounts, seeded):
        rows = await posts.get_list({"filter": {"status": "draft"}, "populate": ["author"]})
        seeded.reset_calls()

        author = await accounts.get("a1")

        assert author is not None
        assert author["name"] == "Ada"
        assert seeded.calls == []
        assert rows[0].data["author"] == "a1"

    @pytest.mark.asyncio
    async def test_reference_resolves_from_cache(self, posts, accounts, seeded):
        post = await posts.get("p1", {"populate": ["author"]})
        seeded.reset_calls()

        reference = post["author"]

        assert isinstance(reference, Reference)
        assert reference == "a1"
        assert reference.cached is accounts.get_adapter().store["a1"]
        assert await reference is reference.cached
        assert seeded.calls == []

    @pytest.mark.asyncio
    async def test_array_relation_populate(self, posts, accounts, seeded):
        post = await posts.get("p3", {"populate": "reviewers"})
        seeded.reset_calls()

        reviewers = post["reviewers"]
        resolved = await reviewers

        assert isinstance(reviewers, ReferenceList)
        assert reviewers.ids == ["a1", "a2"]
        assert [r["name"] for r in resolved] == ["Ada", "Grace"]
        assert seeded.calls == []

    @pytest.mark.asyncio
    async def test_nested_populate(self, posts, accounts, client, seeded):
        client.model(Company)
        await posts.get_list({"populate": [{"path": "author", "populate": ["company"]}]})
        seeded.reset_calls()

        author = accounts.get_adapter().store["a1"]
        company = await author["company"]

        assert author.data["company"] == "c1"
        assert company["name"] == "Acme"
        assert seeded.calls == []

    @pytest.mark.asyncio
    async def test_nested_populate_on_get_by_id(self, posts, accounts, client, seeded):
        client.model(Company)

        post = await posts.get("p1", {"populate": [{"path": "author", "populate": ["company"]}]})
        seeded.reset_calls()

        author = await post["author"]
        company = await author["company"]

        assert post.data["author"] == "a1"
        assert company["name"] == "Acme"
        assert seeded.calls == []

    @pytest.mark.asyncio
    async def test_unpopulated_reference_fetches(self, posts, accounts, seeded):
        post = await posts.get("p2")

        author = await post["author"]

        assert author["name"] == "Grace"
        assert len(seeded.calls_for("read", "accounts")) == 1

    @pytest.mark.asyncio
    async def test_populate_emits_fetch_event_on_target(self, posts, accounts, seeded):
        events = []
        accounts.subscribe(events.append)

        await posts.get_list({"populate": ["author"]})

        assert [(e.operation, set(e.ids)) for e in events] == [(Operation.FETCH, {"a1", "a2"})]

    @pytest.mark.asyncio
    async def test_populate_never_regresses_cached_target(self, posts, accounts, seeded):
        accounts.get_adapter().map_or_new(
            {"_id": "a1", "name": "Ada (renamed)", "_updatedAt": "2999-01-01T00:00:00.000Z"}
        )

        await posts.get_list({"populate": ["author"]})

        assert accounts.get_adapter().store["a1"]["name"] == "Ada (renamed)"
