"""An id-keyed arena whose deleted entries leave tombstones behind."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")

_ARENA_IDS = itertools.count()


@dataclass(frozen=True, order=True)
class Id:
    """Identifies one item in one arena."""

    arena: int
    index: int


class Arena(Generic[T]):
    """Items addressed by `Id`.

    Deleting an item keeps its slot so that ids stay stable; the item is no
    longer reachable and its `on_delete` hook, if any, is called.
    """

    def __init__(self) -> None:
        self._arena_id = next(_ARENA_IDS)
        self._items: list[T] = []
        self._deleted: set[int] = set()

    def next_id(self) -> Id:
        """The id the next allocated item will receive."""
        return Id(self._arena_id, len(self._items))

    def alloc(self, item: T) -> Id:
        """Store `item` and return its id."""
        item_id = self.next_id()
        self._items.append(item)
        return item_id

    def alloc_with_id(self, make: Callable[[Id], T]) -> Id:
        """Build an item from its own id with `make`, store it and return the id."""
        item_id = self.next_id()
        item = make(item_id)
        if self.next_id() != item_id:
            raise RuntimeError("arena was modified while building an item")
        return self.alloc(item)

    def _check(self, id: Id) -> None:
        if (
            not isinstance(id, Id)
            or id.arena != self._arena_id
            or not 0 <= id.index < len(self._items)
            or id.index in self._deleted
        ):
            raise KeyError(id)

    def get(self, id: Id) -> T:
        """The live item with this id; KeyError if unknown or deleted."""
        self._check(id)
        return self._items[id.index]

    def delete(self, id: Id) -> None:
        """Delete the item with this id; KeyError if unknown or already deleted."""
        self._check(id)
        self._deleted.add(id.index)
        hook = getattr(self._items[id.index], "on_delete", None)
        if callable(hook):
            hook()

    def items(self) -> Iterator[tuple[Id, T]]:
        """Live items with their ids, in allocation order."""
        for index, item in enumerate(self._items):
            if index not in self._deleted:
                yield Id(self._arena_id, index), item

    def __contains__(self, id: object) -> bool:
        try:
            self._check(id)  # type: ignore[arg-type]
        except KeyError:
            return False
        return True

    def __len__(self) -> int:
        return len(self._items) - len(self._deleted)