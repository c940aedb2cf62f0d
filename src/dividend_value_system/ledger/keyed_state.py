"""Per-key mutable state with independent locking."""

from __future__ import annotations

from contextlib import contextmanager
import threading
from typing import Callable, Generic, Iterator, TypeVar

V = TypeVar("V")


class _Slot(Generic[V]):
    __slots__ = ("lock", "value")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.value: V | None = None


class KeyedStateStore(Generic[V]):
    """
    Map of key -> state where each key is guarded by its own lock.

    The registry lock is held only while a slot is created, so work on
    different keys never serializes.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._slots: dict[str, _Slot[V]] = {}

    def _slot(self, key: str) -> _Slot[V]:
        slot = self._slots.get(key)
        if slot is not None:
            return slot
        with self._registry_lock:
            return self._slots.setdefault(key, _Slot())

    @contextmanager
    def entry(self, key: str, factory: Callable[[], V] | None = None) -> Iterator[_Slot[V]]:
        """Hold the key's lock; create the value with `factory` when absent."""
        slot = self._slot(key)
        with slot.lock:
            if slot.value is None and factory is not None:
                slot.value = factory()
            yield slot

    def get(self, key: str) -> V | None:
        slot = self._slots.get(key)
        if slot is None:
            return None
        with slot.lock:
            return slot.value

    def pop(self, key: str) -> V | None:
        slot = self._slots.get(key)
        if slot is None:
            return None
        with slot.lock:
            value, slot.value = slot.value, None
            return value

    def keys(self) -> list[str]:
        with self._registry_lock:
            slots = list(self._slots.items())
        return [key for key, slot in slots if slot.value is not None]
