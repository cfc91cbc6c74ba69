"""
Bus events.

CrudEvent
    What happened remotely: published after a local mutation succeeds and
    by the realtime bridge for pushed changes. Carries raw documents for
    create/update.

UpdaterEvent
    What changed in the local cache: derived from CrudEvents by the adapter
    (only ids actually merged or removed), and emitted with ``fetch`` when
    reads bring newer versions into the identity map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FETCH = "fetch"


@dataclass(frozen=True, slots=True)
class CrudEvent:
    operation: Operation
    model: str
    ids: tuple[str, ...] = ()
    data: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CrudEvent":
        """Build an event from a decoded push notification."""
        data = payload.get("data") or []
        ids = payload.get("ids") or [d.get("_id") for d in data if d.get("_id")]
        return cls(
            operation=Operation(payload["operation"]),
            model=payload["model"],
            ids=tuple(ids),
            data=tuple(data),
        )


@dataclass(frozen=True, slots=True)
class UpdaterEvent:
    operation: Operation
    ids: tuple[str, ...]
