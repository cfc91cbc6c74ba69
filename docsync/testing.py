"""
In-memory operation executor.

MemoryExecutor implements the operation catalogue over plain dicts so
models can be exercised without a remote store. It is used by the test
suite and the examples.

Supported queries:
    {"ids": [...]}                         select by id, in the given order
    {"filter": {"field": value}}           equality (dotted paths allowed)
    {"filter": {"field": {"$in": [...]}}}  also $nin, $ne, $gt, $gte, $lt, $lte
    {"sort": {"field": 1 | -1}}
    {"limit": n, "skip": n}
    {"populate": ["field"]}                relations, using the
                                           ``relations`` map given at init

Supported updates: {"$set": {...}, "$unset": {...}} or a plain dict ($set).

Every write stamps _createdAt/_updatedAt from a strictly increasing clock.
Every call is recorded in ``calls``.

Usage:
    executor = MemoryExecutor(relations={"posts": {"author": "accounts"}})
    executor.seed("accounts", [{"_id": "a1", "name": "Ada"}])
    client = Client(executor)
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from docsync.errors import ErrorCodes, TransportError
from docsync.schema.fields import format_date
from docsync.transport.operations import OperationDescriptor

logger = logging.getLogger(__name__)

_COMPARATORS = {
    "$ne": lambda a, b: a != b,
    "$in": lambda a, b: a in b,
    "$nin": lambda a, b: a not in b,
    "$gt": lambda a, b: a is not None and a > b,
    "$gte": lambda a, b: a is not None and a >= b,
    "$lt": lambda a, b: a is not None and a < b,
    "$lte": lambda a, b: a is not None and a <= b,
}


@dataclass(frozen=True, slots=True)
class RecordedCall:
    action: str
    model: str | None
    path: dict[str, Any]
    query: dict[str, Any] | None
    body: Any


def _lookup(doc: dict[str, Any], path: str) -> Any:
    value: Any = doc
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _operators(expected: Any) -> dict[str, Any] | None:
    if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
        return expected
    return None


def check_filter(flt: dict[str, Any] | None) -> None:
    """Reject unknown operators whether or not any document is scanned."""
    for expected in (flt or {}).values():
        for op in _operators(expected) or ():
            if op not in _COMPARATORS:
                raise TransportError(f"Unsupported operator {op}", code=ErrorCodes.INVALID_PARAMS, status_code=400)


def matches(doc: dict[str, Any], flt: dict[str, Any] | None) -> bool:
    for key, expected in (flt or {}).items():
        actual = _lookup(doc, key)
        operators = _operators(expected)
        if operators is not None:
            for op, operand in operators.items():
                if not _COMPARATORS[op](actual, operand):
                    return False
        elif actual != expected:
            return False
    return True


class MemoryExecutor:
    """OperationExecutor storing collections in memory."""

    def __init__(
        self,
        relations: dict[str, dict[str, str]] | None = None,
        *,
        latency: float = 0.0,
    ):
        """
        Args:
            relations: slug -> {field: referenced slug}, used by populate
            latency: Seconds to sleep in every call
        """
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.relations = relations or {}
        self.latency = latency
        self.calls: list[RecordedCall] = []
        self._ids = itertools.count(1)
        self._clock = 0

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _now(self) -> str:
        self._clock = max(self._clock + 1, int(time.time() * 1000))
        return format_date(datetime.fromtimestamp(self._clock / 1000, UTC))

    def collection(self, slug: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(slug, {})

    def seed(self, slug: str, docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert documents directly, stamping the ones without timestamps."""
        return [self._insert(slug, doc) for doc in docs]

    def calls_for(self, action: str, model: str | None = None) -> list[RecordedCall]:
        return [c for c in self.calls if c.action == action and (model is None or c.model == model)]

    def reset_calls(self) -> None:
        self.calls.clear()

    def _insert(self, slug: str, payload: dict[str, Any]) -> dict[str, Any]:
        doc = copy.deepcopy(payload)
        doc.setdefault("_id", f"{slug[:3]}{next(self._ids):06d}")
        doc.setdefault("_createdAt", self._now())
        self.collection(slug)[doc["_id"]] = doc
        return copy.deepcopy(doc)

    def _apply(self, doc: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
        operators = any(k.startswith("$") for k in update)
        for key, value in (update.get("$set", {}) if operators else update).items():
            doc[key] = copy.deepcopy(value)
        for key in update.get("$unset", {}) if operators else ():
            doc.pop(key, None)
        doc["_updatedAt"] = self._now()
        return copy.deepcopy(doc)

    def _select(self, slug: str, query: dict[str, Any] | None) -> list[dict[str, Any]]:
        query = query or {}
        check_filter(query.get("filter"))
        docs = self.collection(slug)
        if "ids" in query:
            rows = [docs[i] for i in query["ids"] if i in docs]
        else:
            rows = list(docs.values())
        rows = [d for d in rows if matches(d, query.get("filter"))]
        for key, direction in reversed(list((query.get("sort") or {}).items())):
            rows.sort(key=lambda d: (_lookup(d, key) is None, _lookup(d, key)), reverse=direction < 0)
        return rows

    def _page(self, rows: list[dict[str, Any]], query: dict[str, Any] | None) -> list[dict[str, Any]]:
        query = query or {}
        skip = int(query.get("skip") or 0)
        limit = query.get("limit")
        return rows[skip : skip + int(limit)] if limit is not None else rows[skip:]

    def _populate(self, slug: str, doc: dict[str, Any], populate: Any) -> dict[str, Any]:
        doc = copy.deepcopy(doc)
        paths = [populate] if isinstance(populate, str) else populate or []
        for entry in paths:
            path = entry["path"] if isinstance(entry, dict) else entry
            nested = entry.get("populate") if isinstance(entry, dict) else None
            ref = self.relations.get(slug, {}).get(path)
            if ref is None or path not in doc:
                continue
            target = self.collection(ref)
            value = doc[path]
            if isinstance(value, list):
                doc[path] = [self._populate(ref, target[i], nested) for i in value if i in target]
            elif value in target:
                doc[path] = self._populate(ref, target[value], nested)
        return doc

    def _not_found(self, slug: str, doc_id: str) -> TransportError:
        return TransportError(
            f"Document {doc_id} not found in {slug}",
            code=ErrorCodes.NOT_FOUND,
            status_code=404,
        )

    # -------------------------------------------------------------------------
    # OperationExecutor
    # -------------------------------------------------------------------------

    async def execute(
        self,
        operation: OperationDescriptor,
        *,
        path: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        path = dict(path or {})
        slug = path.get("model")
        self.calls.append(RecordedCall(operation.action, slug, path, query, copy.deepcopy(body)))
        logger.debug(f"[memory_executor] {operation.action} {slug} path={path}")

        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)

        handler = getattr(self, f"_op_{operation.action}", None)
        if handler is None:
            raise TransportError(
                f"Unsupported operation {operation.action}",
                code=ErrorCodes.INVALID_OPERATION,
                status_code=400,
            )
        return handler(slug, path, query, body)

    def _op_count(self, slug, path, query, body):
        return len(self._select(slug, body))

    def _op_read(self, slug, path, query, body):
        doc = self.collection(slug).get(path["id"])
        if doc is None:
            raise self._not_found(slug, path["id"])
        return self._populate(slug, doc, (query or {}).get("populate"))

    def _op_query(self, slug, path, query, body):
        rows = self._select(slug, body)
        page = self._page(rows, body)
        populate = (body or {}).get("populate")
        return {
            "rows": [self._populate(slug, d, populate) for d in page],
            "count": len(rows),
        }

    def _op_create(self, slug, path, query, body):
        if isinstance(body, list):
            return [self._insert(slug, doc) for doc in body]
        return self._insert(slug, body or {})

    def _op_update(self, slug, path, query, body):
        doc = self.collection(slug).get(path["id"])
        if doc is None:
            raise self._not_found(slug, path["id"])
        return self._apply(doc, body or {})

    def _op_update_multiple(self, slug, path, query, body):
        rows = self._select(slug, body.get("query"))
        return [self._apply(doc, body.get("update") or {}) for doc in rows]

    def _op_delete(self, slug, path, query, body):
        if self.collection(slug).pop(path["id"], None) is None:
            raise self._not_found(slug, path["id"])
        return True

    def _op_delete_multiple(self, slug, path, query, body):
        ids = [d["_id"] for d in self._select(slug, body)]
        for doc_id in ids:
            self.collection(slug).pop(doc_id, None)
        return ids
