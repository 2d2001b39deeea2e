import copy
import threading
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")

_DELETED = object()


class Transaction(Generic[K, V]):
    """
    Staged view over the store. Reads see committed state plus this
    transaction's own writes; nothing is visible to others until commit.
    """

    def __init__(self, store: MutableMapping[K, V]) -> None:
        self._store = store
        self._writes: dict[K, object] = {}

    def get(self, key: K) -> V | None:
        if key in self._writes:
            staged = self._writes[key]
            return None if staged is _DELETED else staged  # type: ignore[return-value]
        value = self._store.get(key)
        # callers may mutate what they read; keep committed objects untouched
        return copy.deepcopy(value)

    def put(self, key: K, value: V) -> None:
        self._writes[key] = value

    def delete(self, key: K) -> None:
        self._writes[key] = _DELETED

    def _commit(self) -> None:
        for key, value in self._writes.items():
            if value is _DELETED:
                self._store.pop(key, None)
            else:
                self._store[key] = value  # type: ignore[assignment]


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database with all-or-nothing transactions.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}
        self._lock = threading.RLock()

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._store[key] = value

    def get(self, key: K) -> V | None:
        with self._lock:
            return self._store.get(key)

    def delete(self, key: K) -> None:
        with self._lock:
            self._store.pop(key, None)

    def all(self) -> list[V]:
        with self._lock:
            return list(self._store.values())

    def scan(self, prefix: str) -> list[V]:
        with self._lock:
            return [
                v
                for k, v in self._store.items()
                if isinstance(k, str) and k.startswith(prefix)
            ]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __iter__(self) -> Iterator[V]:
        return iter(self.all())

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    @contextmanager
    def transaction(self) -> Iterator[Transaction[K, V]]:
        """
        Run a read-check-write sequence atomically.

        Transactions are serialized against each other and against plain
        writes. Staged writes are applied only if the block exits cleanly;
        any exception discards them and propagates. Do not await inside
        the block.
        """
        with self._lock:
            txn: Transaction[K, V] = Transaction(self._store)
            yield txn
            txn._commit()
