"""
Storage backends for the digest-collision tracker.

The tracker maps each digest to the distinct raw inputs seen for it. The
default store grows without bound; callers that need a cap either clear it
periodically or swap in :class:`BoundedCollisionStore`.
"""

import threading
from collections import OrderedDict
from typing import Protocol, runtime_checkable


@runtime_checkable
class CollisionStore(Protocol):
    """Mapping of digest -> distinct inputs observed for that digest."""

    def get(self, digest: str) -> list[str]: ...

    def add(self, digest: str, data: str) -> None: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


class InMemoryCollisionStore:
    """Unbounded dict-backed store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._inputs: dict[str, list[str]] = {}

    def get(self, digest: str) -> list[str]:
        with self._lock:
            return list(self._inputs.get(digest, ()))

    def add(self, digest: str, data: str) -> None:
        with self._lock:
            seen = self._inputs.setdefault(digest, [])
            if data not in seen:
                seen.append(data)

    def clear(self) -> None:
        with self._lock:
            self._inputs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._inputs)


class BoundedCollisionStore:
    """
    LRU store holding at most ``max_digests`` digests.

    Evicted digests are forgotten, so a collision against an evicted digest
    goes unreported.
    """

    def __init__(self, max_digests: int = 10_000) -> None:
        if max_digests <= 0:
            raise ValueError("max_digests must be > 0")
        self.max_digests = max_digests
        self._lock = threading.Lock()
        self._inputs: OrderedDict[str, list[str]] = OrderedDict()

    def get(self, digest: str) -> list[str]:
        with self._lock:
            seen = self._inputs.get(digest)
            if seen is None:
                return []
            self._inputs.move_to_end(digest)
            return list(seen)

    def add(self, digest: str, data: str) -> None:
        with self._lock:
            seen = self._inputs.get(digest)
            if seen is None:
                seen = self._inputs[digest] = []
            self._inputs.move_to_end(digest)
            if data not in seen:
                seen.append(data)
            while len(self._inputs) > self.max_digests:
                self._inputs.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._inputs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._inputs)


__all__ = ["CollisionStore", "InMemoryCollisionStore", "BoundedCollisionStore"]
