"""
Tests for the Client: credential refresh, event dispatch and options.
"""
import pytest

from docsync import Client, ClientOptions, CrudEvent, Operation, get_options
from docsync.errors import ErrorCodes, TransportError
from docsync.testing import MemoryExecutor

from declarations import Post


class ExpiringExecutor(MemoryExecutor):
    """MemoryExecutor that rejects calls while its token is stale."""

    def __init__(self, expirations=1):
        super().__init__()
        self.expirations = expirations

    async def execute(self, operation, **kwargs):
        if self.expirations:
            self.expirations -= 1
            raise TransportError("expired", code=ErrorCodes.TOKEN_EXPIRED, status_code=401)
        return await super().execute(operation, **kwargs)


class TestCredentialRefresh:
    @pytest.mark.asyncio
    async def test_refresh_then_retry_once(self):
        refreshed = []

        async def refresh(client):
            refreshed.append(client)

        executor = ExpiringExecutor()
        client = Client(executor, refresh_credentials=refresh)
        executor.seed("posts", [{"_id": "p1", "title": "First"}])

        assert await client.model(Post).count() == 1
        assert refreshed == [client]

    @pytest.mark.asyncio
    async def test_without_refresh_the_error_surfaces(self):
        posts = Client(ExpiringExecutor()).model(Post)

        with pytest.raises(TransportError) as exc_info:
            await posts.count()

        assert exc_info.value.code == ErrorCodes.TOKEN_EXPIRED

    @pytest.mark.asyncio
    async def test_second_expiry_surfaces(self):
        refreshed = []

        async def refresh(client):
            refreshed.append(client)

        posts = Client(ExpiringExecutor(expirations=2), refresh_credentials=refresh).model(Post)

        with pytest.raises(TransportError) as exc_info:
            await posts.count()

        assert exc_info.value.code == ErrorCodes.TOKEN_EXPIRED
        assert len(refreshed) == 1

    @pytest.mark.asyncio
    async def test_other_errors_do_not_refresh(self, client, executor):
        refreshed = []

        async def refresh(client):
            refreshed.append(client)

        client.refresh_credentials = refresh

        with pytest.raises(TransportError) as exc_info:
            await client.model(Post).count({"filter": {"title": {"$bogus": 1}}})

        assert exc_info.value.code == ErrorCodes.INVALID_PARAMS
        assert refreshed == []


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatch_to_bound_model(self, client, posts, seeded):
        post = await posts.get("p1")
        events = []
        posts.subscribe(events.append)

        delivered = client.dispatch(
            {
                "operation": "update",
                "model": "posts",
                "ids": ["p1"],
                "data": [{**seeded.collection("posts")["p1"], "title": "Live", "_updatedAt": "2999-01-01T00:00:00.000Z"}],
            }
        )

        assert delivered is True
        assert post["title"] == "Live"
        assert [e.operation for e in events] == [Operation.UPDATE]

    def test_dispatch_to_unbound_model(self, client):
        event = CrudEvent(operation=Operation.DELETE, model="ghosts", ids=("g1",))

        assert client.dispatch(event) is False

    @pytest.mark.asyncio
    async def test_clear_cache(self, client, posts, accounts, seeded):
        await posts.get_list()
        await accounts.get("a1")

        client.clear_cache()

        assert posts.get_adapter().store == {}
        assert accounts.get_adapter().store == {}
        assert len(posts.get_adapter().queries) == 0


class TestOptions:
    def test_cache_disabled_for(self):
        assert ClientOptions(disable_cache=True).cache_disabled_for("posts")
        assert not ClientOptions().cache_disabled_for("posts")
        listed = ClientOptions(disable_cache=["posts"])
        assert listed.cache_disabled_for("posts")
        assert not listed.cache_disabled_for("accounts")

    def test_credentials_are_access_token_only(self):
        options = ClientOptions(access_token="tok")

        assert options.access_token.get_secret_value() == "tok"
        assert "refresh_token" not in ClientOptions.model_fields

    def test_store_disabled_keeps_nothing(self):
        options = ClientOptions(disable_store=["posts"])

        assert options.store_disabled_for("posts")
        assert not options.store_disabled_for("accounts")

    def test_options_are_frozen(self):
        options = ClientOptions(project="a")

        with pytest.raises(Exception):
            options.project = "b"

    def test_get_options_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DOCSYNC_PROJECT", "from-env")
        monkeypatch.setenv("DOCSYNC_DISABLE_CACHE", "posts, accounts")
        monkeypatch.setenv("DOCSYNC_ACCESS_TOKEN", "secret")
        monkeypatch.setenv("DOCSYNC_MAX_RETRIES", "5")
        get_options.cache_clear()

        try:
            options = get_options()
        finally:
            get_options.cache_clear()

        assert options.project == "from-env"
        assert options.disable_cache == ["posts", "accounts"]
        assert options.access_token.get_secret_value() == "secret"
        assert "secret" not in repr(options)
        assert options.max_retries == 5

    def test_get_options_defaults(self, monkeypatch):
        for name in ("DOCSYNC_PROJECT", "DOCSYNC_DISABLE_CACHE", "DOCSYNC_ACCESS_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        get_options.cache_clear()

        try:
            options = get_options()
        finally:
            get_options.cache_clear()

        assert options.project is None
        assert options.disable_cache is False
        assert options.environment == "master"
