"""
Operation catalogue.

An OperationDescriptor names a remote operation without saying how it is
carried: an action identity, a path template, a scope and whether it needs
credentials. Executors decide the transport details.

Response shapes (after the executor unwraps its envelope):

    count            int
    read             document
    query            {"rows": [documents], "count": int}
    create           document, or list of documents for a list body
    update           document
    update_multiple  list of documents
    delete           anything (ignored)
    delete_multiple  list of deleted ids
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from docsync.errors import CoreError, ErrorCodes


class Scope(str, Enum):
    GLOBAL = "global"
    PROJECT = "project"


@dataclass(frozen=True, slots=True)
class OperationDescriptor:
    action: str
    path: str
    method: str = "GET"
    scope: Scope = Scope.PROJECT
    secured: bool = True

    def format_path(self, params: dict[str, Any] | None = None) -> str:
        try:
            return self.path.format(**(params or {}))
        except KeyError as e:
            raise CoreError(
                f"Missing path parameter {e.args[0]!r} for operation {self.action}",
                code=ErrorCodes.INVALID_PARAMS,
            ) from e


MODEL_COUNT = OperationDescriptor("count", "/{model}/count", method="POST")
MODEL_READ = OperationDescriptor("read", "/{model}/{id}", method="GET")
MODEL_QUERY = OperationDescriptor("query", "/{model}/query", method="POST")
MODEL_CREATE = OperationDescriptor("create", "/{model}", method="POST")
MODEL_UPDATE = OperationDescriptor("update", "/{model}/{id}", method="PATCH")
MODEL_UPDATE_MULTIPLE = OperationDescriptor("update_multiple", "/{model}", method="PATCH")
MODEL_DELETE = OperationDescriptor("delete", "/{model}/{id}", method="DELETE")
MODEL_DELETE_MULTIPLE = OperationDescriptor("delete_multiple", "/{model}", method="DELETE")

CATALOGUE: dict[str, OperationDescriptor] = {
    op.action: op
    for op in (
        MODEL_COUNT,
        MODEL_READ,
        MODEL_QUERY,
        MODEL_CREATE,
        MODEL_UPDATE,
        MODEL_UPDATE_MULTIPLE,
        MODEL_DELETE,
        MODEL_DELETE_MULTIPLE,
    )
}
