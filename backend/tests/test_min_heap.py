from __future__ import annotations

import pytest

from pathbench.min_heap import MinHeap


def test_extract_min_returns_items_in_order() -> None:
    heap: MinHeap[int] = MinHeap([7, 3, 9, 1, 4])
    heap.insert(2)

    out = []
    while not heap.is_empty():
        out.append(heap.extract_min())

    assert out == [1, 2, 3, 4, 7, 9]
    assert heap.extract_min() is None
    assert heap.peek() is None


def test_key_extractor_orders_pairs() -> None:
    heap: MinHeap[tuple[str, float]] = MinHeap(key=lambda item: item[1])
    for item in (("a", 3.0), ("b", 1.5), ("c", 2.0)):
        heap.insert(item)

    assert heap.peek() == ("b", 1.5)
    assert [heap.extract_min()[0] for _ in range(3)] == ["b", "c", "a"]


def test_less_comparator_reads_live_state() -> None:
    priority = {"x": 5.0, "y": 1.0, "z": 3.0}
    heap: MinHeap[str] = MinHeap(["x", "y", "z"], less=lambda a, b: priority[a] < priority[b])
    assert heap.peek() == "y"

    priority["x"] = 0.5
    assert heap.update("x") is True
    assert heap.extract_min() == "x"

    priority["z"] = 10.0
    priority["y"] = 11.0
    heap.heapify()
    assert heap.extract_min() == "z"


def test_remove_prefers_identical_object_among_duplicates() -> None:
    first = [1, "first"]
    second = [1, "first"]
    heap: MinHeap[list] = MinHeap(key=lambda item: item[0])
    heap.insert(first)
    heap.insert(second)
    heap.insert([0, "head"])

    assert heap.remove(second) is True
    assert len(heap) == 2
    remaining = list(heap)
    assert any(item is first for item in remaining)
    assert not any(item is second for item in remaining)
    assert heap.extract_min() == [0, "head"]


def test_remove_missing_item_and_reheapify() -> None:
    heap: MinHeap[int] = MinHeap([5, 1, 8, 3, 9, 2])
    assert heap.remove(42) is False
    assert heap.remove(1) is True
    assert 1 not in heap
    assert [heap.extract_min() for _ in range(len(heap))] == [2, 3, 5, 8, 9]


def test_update_inserts_absent_item() -> None:
    heap: MinHeap[int] = MinHeap()
    assert heap.update(4) is False
    assert heap.peek() == 4
    assert bool(heap)


def test_key_and_less_are_mutually_exclusive() -> None:
    with pytest.raises(ValueError):
        MinHeap(key=lambda item: item, less=lambda a, b: a < b)
