"""Core business logic for buildchanges.

This package contains the manifest computation:
- package_comparator: NuGet package deltas between two builds
- delta_resolver: change manifest resolution and dependency recursion
"""

from .delta_resolver import DeltaResolver, DependencyGroup, DependencyManifest
from .package_comparator import PackageChangeComparator

__all__ = [
    "DeltaResolver",
    "DependencyGroup",
    "DependencyManifest",
    "PackageChangeComparator",
]
