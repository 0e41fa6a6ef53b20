"""In-memory response cache for build server lookups.

The cache lives for the lifetime of the process and is shared by every
client and resolver it is handed to. Each category is insert-only: the
first value stored under a key wins and is never overwritten or evicted,
so concurrent resolvers can at worst re-fetch an entry, never corrupt one.
"""

import threading
from collections.abc import Hashable
from typing import Any, Generic, NamedTuple, TypeVar

from ..models import Build, BuildDetails, BuildTypeDetails, ChangeDetail, ChangeList, PackageDetails

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class PackageDependencyKey(NamedTuple):
    """Composite key for a build's package dependencies."""

    build_type_id: str
    build_id: str


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    try:
        return len(value) == 0
    except TypeError:
        return False


class CacheCategory(Generic[K, V]):
    """A single insert-only, thread-safe cache category."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[K, V] = {}
        self._lock = threading.Lock()

    def lookup(self, key: K) -> tuple[V | None, bool]:
        """Return ``(value, True)`` if cached, else ``(None, False)``."""
        try:
            return self._entries[key], True
        except KeyError:
            return None, False

    def insert(self, key: K, value: V) -> None:
        """Store ``value`` unless the key is present or the value is empty."""
        if _is_empty(value):
            return
        with self._lock:
            if key not in self._entries:
                self._entries[key] = value

    def values(self) -> list[V]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ResponseCache:
    """Process-lifetime memoization of build server responses.

    Categories:
        responses: raw response bodies keyed by request URL
        build_types: BuildTypeDetails keyed by build type id
        builds: BuildDetails keyed by build id
        change_lists: ChangeList keyed by build id
        changes: ChangeDetail keyed by change id
        package_dependencies: package lists keyed by PackageDependencyKey

    Construct one per process (or per test) and pass it to the clients
    that should share it.
    """

    def __init__(self) -> None:
        self.responses: CacheCategory[str, Any] = CacheCategory("responses")
        self.build_types: CacheCategory[str, BuildTypeDetails] = CacheCategory("build_types")
        self.builds: CacheCategory[str, BuildDetails] = CacheCategory("builds")
        self.change_lists: CacheCategory[str, ChangeList] = CacheCategory("change_lists")
        self.changes: CacheCategory[str, ChangeDetail] = CacheCategory("changes")
        self.package_dependencies: CacheCategory[PackageDependencyKey, list[PackageDetails]] = (
            CacheCategory("package_dependencies")
        )

    def builds_for_build_type(self, build_type_id: str) -> tuple[list[Build], bool]:
        """Return cached builds of a build type, and whether any were found."""
        builds = [b for b in self.builds.values() if b.build_type_id == build_type_id]
        return builds, bool(builds)

    def stats(self) -> dict[str, int]:
        """Entry counts per category."""
        return {
            category.name: len(category)
            for category in (
                self.responses,
                self.build_types,
                self.builds,
                self.change_lists,
                self.changes,
                self.package_dependencies,
            )
        }
