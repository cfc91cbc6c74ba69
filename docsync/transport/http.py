"""
HTTP operation executor.

Runs catalogue operations against the remote store over httpx.

Request building:
    - project-scoped operations are prefixed with /projects/{project}
    - secured operations carry "Authorization: Bearer <access token>"
    - every request carries the environment in "X-Environment"
    - structured query values are sent JSON-encoded

Responses:
    - a {"data": ...} envelope is unwrapped
    - non-ok responses are decoded into TransportError; an embedded
      ValidationError payload is decoded too

Retry Strategy:
    - Retryable errors: timeouts, network errors, 429, 5xx
    - Non-retryable: other 4xx, including expired credentials (the Client
      refreshes and retries those once itself)
    - Backoff: exponential with jitter, Retry-After honoured

Usage:
    executor = HttpExecutor.from_options(get_options())
    client = Client(executor, options=get_options())
    ...
    await executor.close()
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from docsync.config import ClientOptions
from docsync.errors import CoreError, ErrorCodes, TransportError, decode_error
from docsync.transport.operations import OperationDescriptor, Scope

logger = logging.getLogger(__name__)


def encode_params(query: dict[str, Any] | None) -> dict[str, Any] | None:
    """Query string values: scalars as-is, anything structured as JSON."""
    if not query:
        return None
    return {
        key: value if isinstance(value, (str, int, float, bool)) else json.dumps(value)
        for key, value in query.items()
        if value is not None
    }


@dataclass(frozen=True, slots=True)
class HttpExecutorConfig:
    """Configuration for an HttpExecutor."""

    base_url: str
    project: str | None = None
    environment: str = "master"
    access_token: str | None = None

    # Connection
    timeout: float = 30.0

    # Retries
    max_retries: int = 3
    retry_delay: float = 0.5

    # Observability
    log_requests: bool = False
    log_responses: bool = False


class HttpExecutor:
    """OperationExecutor over httpx."""

    name = "http_executor"

    def __init__(self, config: HttpExecutorConfig, *, transport: httpx.AsyncBaseTransport | None = None):
        """
        Initialize the executor.

        Args:
            config: Executor configuration
            transport: Optional httpx transport (httpx.MockTransport in tests)
        """
        self.config = config
        self._access_token = config.access_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_options(cls, options: ClientOptions, **kwargs: Any) -> HttpExecutor:
        token = options.access_token.get_secret_value() if options.access_token else None
        return cls(
            HttpExecutorConfig(
                base_url=options.base_url,
                project=options.project,
                environment=options.environment,
                access_token=token,
                timeout=options.timeout,
                max_retries=options.max_retries,
            ),
            **kwargs,
        )

    def set_access_token(self, token: str | None) -> None:
        """Replace the bearer token used by secured operations."""
        self._access_token = token

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "X-Environment": self.config.environment,
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpExecutor:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def build_url(self, operation: OperationDescriptor, path: dict[str, Any] | None) -> str:
        url = operation.format_path(path)
        if operation.scope == Scope.PROJECT:
            if not self.config.project:
                raise CoreError(
                    f"Operation {operation.action} needs a project",
                    code=ErrorCodes.INVALID_PARAMS,
                )
            url = f"/projects/{self.config.project}{url}"
        return url

    def _headers(self, operation: OperationDescriptor) -> dict[str, str]:
        if operation.secured and self._access_token:
            return {"Authorization": f"Bearer {self._access_token}"}
        return {}

    async def execute(
        self,
        operation: OperationDescriptor,
        *,
        path: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        url = self.build_url(operation, path)
        response = await self._request(operation, url, params=encode_params(query), json=body)

        if response.status_code == 204 or not response.content:
            return None
        payload = response.json()
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    async def _request(
        self,
        operation: OperationDescriptor,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Make an HTTP request with retry and exponential backoff.

        Raises:
            TransportError: On any non-retryable error or after max retries
        """
        for attempt in range(self.config.max_retries + 1):
            try:
                return await self._do_request(operation, url, params=params, json=json)
            except TransportError as e:
                if not e.retryable:
                    raise

                if attempt >= self.config.max_retries:
                    logger.warning(
                        f"[{self.name}] Max retries ({self.config.max_retries}) "
                        f"reached for {operation.method} {url}"
                    )
                    raise

                backoff = self._calculate_backoff(attempt, e)
                logger.info(
                    f"[{self.name}] Retry {attempt + 1}/{self.config.max_retries} "
                    f"for {operation.method} {url} after {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)

        raise TransportError("Unknown error")

    def _calculate_backoff(self, attempt: int, error: TransportError) -> float:
        if error.retry_after:
            return error.retry_after

        base_delay = self.config.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return min(base_delay + jitter, 60.0)

    async def _do_request(
        self,
        operation: OperationDescriptor,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        client = await self._get_client()

        if self.config.log_requests:
            logger.debug(f"[{self.name}] {operation.method} {url} params={params} body={json}")

        try:
            response = await client.request(
                method=operation.method,
                url=url,
                params=params,
                json=json,
                headers=self._headers(operation),
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}", retryable=True) from e
        except httpx.NetworkError as e:
            raise TransportError(f"Network error: {e}", retryable=True) from e

        if self.config.log_responses:
            logger.debug(
                f"[{self.name}] Response: status={response.status_code} "
                f"body={response.text[:500] if response.text else 'empty'}"
            )

        self._check_response(response)
        return response

    def _check_response(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        body = response.text
        try:
            payload = response.json()
        except ValueError:
            payload = None

        error = decode_error(payload, status_code=response.status_code, response_body=body)
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                error.retry_after = float(retry_after) if retry_after else None
            except ValueError:
                error.retry_after = None
        raise error
