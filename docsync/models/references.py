"""
Lazy relation values.

Relation fields read in ``object`` format return a Reference (single) or a
ReferenceList (array). Both are awaitable and resolve through the target
model, which answers from its identity map when it can.

Usage:
    author = await post["author"]        # Model instance or None
    post["author"].id                    # "a1", no I/O
    post["author"].cached                # instance if already in cache
    tags = await post["tags"]            # ModelList
"""

from __future__ import annotations

from collections.abc import Generator
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from docsync.models.model import Model
    from docsync.models.model_list import ModelList


class Reference:
    __slots__ = ("model", "id")

    def __init__(self, model: type[Model], ref_id: str):
        self.model = model
        self.id = ref_id

    @property
    def cached(self) -> Model | None:
        return self.model.get_adapter().store.get(self.id)

    async def resolve(self) -> Model | None:
        return await self.model.get(self.id)

    def __await__(self) -> Generator[Any, None, Model | None]:
        return self.resolve().__await__()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Reference):
            return self.model is other.model and self.id == other.id
        if isinstance(other, str):
            return self.id == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.model.slug, self.id))

    def __repr__(self) -> str:
        return f"Reference({self.model.slug}:{self.id})"


class ReferenceList:
    __slots__ = ("model", "ids")

    def __init__(self, model: type[Model], ids: list[str]):
        self.model = model
        self.ids = list(ids)

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self):
        return (Reference(self.model, i) for i in self.ids)

    def __getitem__(self, index: int) -> Reference:
        return Reference(self.model, self.ids[index])

    async def resolve(self) -> ModelList:
        return await self.model.get_list({"ids": self.ids})

    def __await__(self) -> Generator[Any, None, ModelList]:
        return self.resolve().__await__()

    def __repr__(self) -> str:
        return f"ReferenceList({self.model.slug}:{self.ids})"
