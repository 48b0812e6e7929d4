"""Selection tracking for list views that support bulk actions.

A ``BulkSelection`` keeps a set of selected ids over a *live* collection of
rows. The collection can be swapped at any time (after a filter change, a
refetch, ...) and every derived value is recomputed from the current one.

The selected set is never pruned when the collection changes: ids that are no
longer present still count towards ``selected_count`` but are dropped from
``get_selected_data()``. Callers that need the two to agree must reconcile
explicitly, ``stale_ids()`` lists the ids to deal with.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, List, Mapping, Sequence, Set, TypeVar

T = TypeVar("T")


def item_id(item: Any) -> str:
    """Return the string id of a row, whether it is a model or a mapping."""
    if isinstance(item, Mapping):
        return str(item["id"])
    return str(item.id)


class BulkSelection(Generic[T]):
    def __init__(self, items: Sequence[T] = ()):
        self._items: List[T] = list(items)
        self._selected: Set[str] = set()

    @property
    def items(self) -> List[T]:
        return self._items

    @items.setter
    def items(self, items: Iterable[T]) -> None:
        self._items = list(items)

    @property
    def selected_items(self) -> Set[str]:
        return set(self._selected)

    @property
    def selected_count(self) -> int:
        return len(self._selected)

    @property
    def is_all_selected(self) -> bool:
        return len(self._items) > 0 and len(self._selected) == len(self._items)

    @property
    def is_indeterminate(self) -> bool:
        return 0 < len(self._selected) < len(self._items)

    def select_all(self) -> None:
        if self.is_all_selected:
            self._selected = set()
        else:
            self._selected = {item_id(item) for item in self._items}

    def select_item(self, id: Any) -> None:
        key = str(id)
        if key in self._selected:
            self._selected.discard(key)
        else:
            self._selected.add(key)

    def clear(self) -> None:
        self._selected = set()

    def is_selected(self, id: Any) -> bool:
        return str(id) in self._selected

    def get_selected_data(self) -> List[T]:
        return [item for item in self._items if item_id(item) in self._selected]

    def stale_ids(self) -> List[str]:
        live = {item_id(item) for item in self._items}
        return sorted(self._selected - live)

    @classmethod
    def from_ids(cls, items: Sequence[T], ids: Iterable[Any]) -> "BulkSelection[T]":
        """Build a selection over ``items`` with each distinct id selected once."""
        selection = cls(items)
        for id in dict.fromkeys(str(i) for i in ids):
            selection.select_item(id)
        return selection
