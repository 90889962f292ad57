"""
Version keys for read-side aggregates.

Each mutation bumps the versions of the aggregates it affects; readers
memoize derived views on the tuple of versions they depend on. The edges
below are the complete invalidation map.
"""
import threading
from typing import Any, Callable, Dict, Iterable, Tuple

from fastapi import Request

INVENTORY = "inventory"
BORROWED = "borrowed"
USED_GIVEN = "used_given"
ACTIVITY = "activity"
USERS = "users"
STATS = "stats"

AGGREGATES = (INVENTORY, BORROWED, USED_GIVEN, ACTIVITY, USERS, STATS)

# mutation kind -> aggregates whose cached views become stale
INVALIDATES = {
    "inventory": (INVENTORY, STATS),
    # borrow and usage rows lose their item link
    "inventory_delete": (INVENTORY, BORROWED, USED_GIVEN, STATS),
    "borrow": (BORROWED, INVENTORY, STATS),
    "usage": (USED_GIVEN, INVENTORY, STATS),
    "defect": (INVENTORY, BORROWED, USED_GIVEN, STATS),
    "activity": (ACTIVITY,),
    "users": (USERS,),
}


class CacheVersions:
    def __init__(self):
        self._lock = threading.Lock()
        self._versions: Dict[str, int] = {name: 0 for name in AGGREGATES}
        self._memo: Dict[str, Tuple[Tuple[int, ...], Any]] = {}

    def version(self, aggregate: str) -> int:
        return self._versions[aggregate]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._versions)

    def invalidate(self, mutation: str) -> None:
        """Bump every aggregate reachable from a mutation kind."""
        with self._lock:
            for aggregate in INVALIDATES[mutation]:
                self._versions[aggregate] += 1

    def memoize(self, name: str, depends_on: Iterable[str], compute: Callable[[], Any]) -> Any:
        """Return the cached view unless one of its aggregates moved."""
        depends_on = tuple(depends_on)
        with self._lock:
            key = tuple(self._versions[a] for a in depends_on)
            cached = self._memo.get(name)
        if cached is not None and cached[0] == key:
            return cached[1]
        value = compute()
        with self._lock:
            self._memo[name] = (key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._memo.clear()
            for name in self._versions:
                self._versions[name] = 0


def get_cache(request: Request) -> CacheVersions:
    """Dependency returning the application's cache versions"""
    return request.app.state.cache
