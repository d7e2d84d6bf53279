from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class MinHeap(Generic[T]):
    """Array-backed binary min-heap with caller-supplied ordering.

    Ordering comes from either ``key`` (an extractor whose results are compared with ``<``) or
    ``less`` (a strict-weak-order predicate). Priorities are never cached: every comparison calls
    back into the ordering, so callers whose ordering reads live state (the replanner's cost maps)
    must ``remove``/``insert`` or ``update`` an element after changing what it compares on, and
    ``heapify`` after a change that shifts every element at once.
    """

    def __init__(
        self,
        items: Iterable[T] = (),
        *,
        key: Callable[[T], Any] | None = None,
        less: Callable[[T, T], bool] | None = None,
    ) -> None:
        if key is not None and less is not None:
            raise ValueError("pass either key or less, not both")
        if less is None:
            if key is None:
                less = operator.lt
            else:
                key_fn = key

                def less(a: T, b: T) -> bool:
                    return key_fn(a) < key_fn(b)

        self._less = less
        self._items: list[T] = list(items)
        self.heapify()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[T]:
        # Array order, not priority order.
        return iter(tuple(self._items))

    def __contains__(self, item: object) -> bool:
        return self._index_of(item) >= 0

    def is_empty(self) -> bool:
        return not self._items

    def insert(self, item: T) -> None:
        self._items.append(item)
        self._sift_up(len(self._items) - 1)

    def peek(self) -> T | None:
        return self._items[0] if self._items else None

    def extract_min(self) -> T | None:
        if not self._items:
            return None
        top = self._items[0]
        last = self._items.pop()
        if self._items:
            self._items[0] = last
            self._sift_down(0)
        return top

    def remove(self, item: T) -> bool:
        """Remove one occurrence of ``item``; the identical object wins over an equal one."""
        idx = self._index_of(item)
        if idx < 0:
            return False
        last = self._items.pop()
        if idx < len(self._items):
            self._items[idx] = last
            self._restore(idx)
        return True

    def update(self, item: T) -> bool:
        """Re-seat ``item`` after its priority changed, inserting it if absent.

        Returns True when the item was already queued.
        """
        idx = self._index_of(item)
        if idx < 0:
            self.insert(item)
            return False
        self._restore(idx)
        return True

    def heapify(self) -> None:
        for idx in reversed(range(len(self._items) // 2)):
            self._sift_down(idx)

    def clear(self) -> None:
        self._items.clear()

    def _index_of(self, item: object) -> int:
        for idx, candidate in enumerate(self._items):
            if candidate is item:
                return idx
        for idx, candidate in enumerate(self._items):
            if candidate == item:
                return idx
        return -1

    def _restore(self, idx: int) -> None:
        parent = (idx - 1) // 2
        if idx > 0 and self._less(self._items[idx], self._items[parent]):
            self._sift_up(idx)
        else:
            self._sift_down(idx)

    def _sift_up(self, idx: int) -> None:
        items = self._items
        element = items[idx]
        while idx > 0:
            parent = (idx - 1) // 2
            if not self._less(element, items[parent]):
                break
            items[idx] = items[parent]
            idx = parent
        items[idx] = element

    def _sift_down(self, idx: int) -> None:
        items = self._items
        length = len(items)
        element = items[idx]
        while True:
            left = 2 * idx + 1
            if left >= length:
                break
            child = left
            right = left + 1
            if right < length and self._less(items[right], items[left]):
                child = right
            if not self._less(items[child], element):
                break
            items[idx] = items[child]
            idx = child
        items[idx] = element
