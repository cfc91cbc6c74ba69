"""
Tests for the HTTP operation executor.

Requests are served by httpx.MockTransport, so nothing leaves the process.
"""
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from docsync import Client, ClientOptions
from docsync.errors import CoreError, ErrorCodes, TransportError
from docsync.transport.http import HttpExecutor, HttpExecutorConfig, encode_params
from docsync.transport.operations import (
    MODEL_COUNT,
    MODEL_DELETE,
    MODEL_READ,
    OperationDescriptor,
    Scope,
)

from declarations import Post


def _executor(handler, **config):
    config.setdefault("base_url", "https://store.test")
    config.setdefault("project", "p1")
    return HttpExecutor(HttpExecutorConfig(**config), transport=httpx.MockTransport(handler))


def _sequence(*responses):
    """Handler answering with the given responses in order, recording requests."""
    requests = []
    pending = list(responses)

    def handler(request):
        requests.append(request)
        response = pending.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    handler.requests = requests
    return handler


@pytest.fixture
def no_sleep():
    with patch("docsync.transport.http.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


# =============================================================================
# Request Building
# =============================================================================


class TestRequests:
    """Tests for URLs and headers."""

    @pytest.mark.asyncio
    async def test_project_prefix_and_headers(self):
        handler = _sequence(httpx.Response(200, json={"data": {"_id": "x1"}}))
        executor = _executor(handler, access_token="secret", environment="staging")

        result = await executor.execute(MODEL_READ, path={"model": "posts", "id": "x1"})

        request = handler.requests[0]
        assert result == {"_id": "x1"}
        assert request.method == "GET"
        assert request.url.path == "/projects/p1/posts/x1"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Environment"] == "staging"

    @pytest.mark.asyncio
    async def test_body_is_sent_as_json(self):
        handler = _sequence(httpx.Response(200, json={"data": 4}))
        executor = _executor(handler)

        assert await executor.execute(MODEL_COUNT, path={"model": "posts"}, body={"filter": {"a": 1}}) == 4
        assert json.loads(handler.requests[0].content) == {"filter": {"a": 1}}

    @pytest.mark.asyncio
    async def test_global_unsecured_operation(self):
        status = OperationDescriptor("status", "/status", scope=Scope.GLOBAL, secured=False)
        handler = _sequence(httpx.Response(200, json={"ok": True}))
        executor = _executor(handler, project=None, access_token="secret")

        assert await executor.execute(status) == {"ok": True}
        assert handler.requests[0].url.path == "/status"
        assert "Authorization" not in handler.requests[0].headers

    @pytest.mark.asyncio
    async def test_project_operation_without_project(self):
        executor = _executor(_sequence(), project=None)

        with pytest.raises(CoreError) as exc_info:
            await executor.execute(MODEL_COUNT, path={"model": "posts"})

        assert exc_info.value.code == ErrorCodes.INVALID_PARAMS

    def test_missing_path_parameter(self):
        with pytest.raises(CoreError) as exc_info:
            MODEL_READ.format_path({"model": "posts"})

        assert exc_info.value.code == ErrorCodes.INVALID_PARAMS
        assert "'id'" in exc_info.value.message

    def test_structured_params_are_json_encoded(self):
        encoded = encode_params({"populate": [{"path": "author"}], "limit": 3, "skip": None})

        assert encoded == {"populate": '[{"path": "author"}]', "limit": 3}
        assert encode_params(None) is None

    @pytest.mark.asyncio
    async def test_empty_response(self):
        executor = _executor(_sequence(httpx.Response(204)))

        assert await executor.execute(MODEL_DELETE, path={"model": "posts", "id": "x1"}) is None

    def test_from_options(self):
        options = ClientOptions(project="acme", environment="dev", access_token="tok", max_retries=1)

        executor = HttpExecutor.from_options(options)

        assert executor.config.project == "acme"
        assert executor.config.environment == "dev"
        assert executor.config.access_token == "tok"
        assert executor.config.max_retries == 1


# =============================================================================
# Errors and Retries
# =============================================================================


class TestErrors:
    """Tests for error decoding and the retry loop."""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, no_sleep):
        handler = _sequence(
            httpx.Response(503, text="unavailable"),
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json={"data": 7}),
        )
        executor = _executor(handler)

        assert await executor.execute(MODEL_COUNT, path={"model": "posts"}) == 7
        assert len(handler.requests) == 3
        assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, no_sleep):
        handler = _sequence(*[httpx.Response(500, text="boom") for _ in range(3)])
        executor = _executor(handler, max_retries=2)

        with pytest.raises(TransportError) as exc_info:
            await executor.execute(MODEL_COUNT, path={"model": "posts"})

        assert exc_info.value.status_code == 500
        assert exc_info.value.retryable
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_retry_after_header(self, no_sleep):
        handler = _sequence(
            httpx.Response(429, headers={"Retry-After": "2"}, json={"error": {"message": "slow down"}}),
            httpx.Response(200, json={"data": 1}),
        )
        executor = _executor(handler)

        await executor.execute(MODEL_COUNT, path={"model": "posts"})

        no_sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, no_sleep):
        handler = _sequence(httpx.ConnectError("refused"), httpx.Response(200, json={"data": 0}))
        executor = _executor(handler)

        assert await executor.execute(MODEL_COUNT, path={"model": "posts"}) == 0
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_validation_error_payload(self, no_sleep):
        payload = {
            "error": {
                "type": "ValidationError",
                "code": "VALIDATION_FAILED",
                "message": "Validation failed",
                "validators": [{"validator": "required", "path": "title"}],
            }
        }
        handler = _sequence(httpx.Response(400, json=payload))
        executor = _executor(handler)

        with pytest.raises(TransportError) as exc_info:
            await executor.execute(MODEL_COUNT, path={"model": "posts"})

        error = exc_info.value
        assert error.code == ErrorCodes.VALIDATION_FAILED
        assert error.validation_error.paths == ["title"]
        assert len(handler.requests) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found(self):
        executor = _executor(_sequence(httpx.Response(404, json={"error": {"message": "missing"}})))

        with pytest.raises(TransportError) as exc_info:
            await executor.execute(MODEL_READ, path={"model": "posts", "id": "nope"})

        assert exc_info.value.code == ErrorCodes.NOT_FOUND
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_expired_token_is_not_retried(self, no_sleep):
        payload = {"error": {"code": "TOKEN_EXPIRED", "message": "expired"}}
        handler = _sequence(httpx.Response(401, json=payload))
        executor = _executor(handler)

        with pytest.raises(TransportError) as exc_info:
            await executor.execute(MODEL_COUNT, path={"model": "posts"})

        assert exc_info.value.code == ErrorCodes.TOKEN_EXPIRED
        assert len(handler.requests) == 1


# =============================================================================
# Through a Client
# =============================================================================


class TestWithClient:
    """Tests running model operations over HTTP."""

    @pytest.mark.asyncio
    async def test_model_operations(self):
        def handler(request):
            if request.url.path == "/projects/p1/posts/query":
                return httpx.Response(200, json={"data": {"rows": [{"_id": "x1", "title": "Hello"}], "count": 1}})
            if request.url.path == "/projects/p1/posts/x2" and request.method == "GET":
                return httpx.Response(404, json={"error": {"message": "missing"}})
            return httpx.Response(500)

        executor = _executor(handler)
        posts = Client(executor).model(Post)

        rows = await posts.get_list({"filter": {"title": "Hello"}})

        assert rows.ids == ["x1"]
        assert rows.count == 1
        assert await posts.get("x2") is None
        await executor.close()

    @pytest.mark.asyncio
    async def test_token_refresh_updates_executor(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            if request.headers.get("Authorization") == "Bearer old":
                return httpx.Response(401, json={"error": {"code": "TOKEN_EXPIRED", "message": "expired"}})
            return httpx.Response(200, json={"data": 2})

        executor = _executor(handler, access_token="old")

        async def refresh(client):
            client.executor.set_access_token("new")

        posts = Client(executor, refresh_credentials=refresh).model(Post)

        assert await posts.count() == 2
        assert seen == ["Bearer old", "Bearer new"]
