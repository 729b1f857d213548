"""
Keyed accumulation.

Every leaderboard and per-entity roll-up in the engine folds rows into a
map keyed by some id. KeyedAggregator makes the merge rule explicit and
keeps first-insertion order, which is what tie-breaking relies on.
"""

from typing import Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedAggregator(Generic[K, V]):
    """
    Map of key -> accumulated value with a defined merge function.

    `merge(existing, incoming)` returns the new accumulated value; the first
    value seen for a key is stored as-is.
    """

    def __init__(self, merge: Callable[[V, V], V]):
        self._merge = merge
        self._values: Dict[K, V] = {}

    def add(self, key: K, value: V) -> None:
        if key in self._values:
            self._values[key] = self._merge(self._values[key], value)
        else:
            self._values[key] = value

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        return self._values.get(key, default)

    def items(self) -> List[Tuple[K, V]]:
        """Entries in first-insertion order."""
        return list(self._values.items())

    def keys(self) -> List[K]:
        return list(self._values.keys())

    def top(self, n: int, key: Optional[Callable[[V], object]] = None) -> List[Tuple[K, V]]:
        """
        The n largest entries, descending. The sort is stable, so equal
        values keep first-insertion order.
        """
        sort_key = key or (lambda value: value)
        ranked = sorted(self._values.items(), key=lambda kv: sort_key(kv[1]), reverse=True)
        return ranked[:n]

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values


def counter() -> "KeyedAggregator[str, float]":
    """Aggregator that sums numeric values per key."""
    return KeyedAggregator(merge=lambda a, b: a + b)
