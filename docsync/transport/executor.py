"""
Transport protocols.

The core never builds requests itself. It talks to:

    OperationExecutor
        Runs one OperationDescriptor and returns decoded JSON, or raises a
        TransportError (see docsync.errors.decode_error).

    RealtimeBridge
        Receives change notifications from a push transport and forwards
        them with Client.dispatch. The core asks it once per bound model
        to start watching a slug.

Implementations:
    - HttpExecutor: httpx-based executor (docsync.transport.http)
    - MemoryExecutor: in-memory store for tests (docsync.testing)
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any, Protocol, runtime_checkable

from docsync.transport.operations import OperationDescriptor


@runtime_checkable
class OperationExecutor(Protocol):
    async def execute(
        self,
        operation: OperationDescriptor,
        *,
        path: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """
        Run one operation.

        Args:
            operation: Descriptor from the operation catalogue
            path: Values for the path template
            query: Query-string parameters
            body: JSON body

        Returns:
            Decoded response payload

        Raises:
            TransportError: When the remote store reports a failure
        """
        ...


@runtime_checkable
class RealtimeBridge(Protocol):
    def watch(self, slug: str) -> Awaitable[None] | None:
        """Start forwarding change events of ``slug``."""
        ...
