"""NuGet package dependency comparison."""

from collections.abc import Iterable

from ..models import NuGetPackageChange, NuGetPackageChangeType, PackageDetails


class PackageChangeComparator:
    """Computes package deltas between two dependency snapshots.

    Packages are matched by id, case-insensitively. The result is sorted by
    package id, so it does not depend on the order packages were fetched in.
    """

    def __init__(self, include_unchanged: bool = False) -> None:
        self.include_unchanged = include_unchanged

    def compute_changes(
        self, old: Iterable[PackageDetails], new: Iterable[PackageDetails]
    ) -> list[NuGetPackageChange]:
        old_by_id = _index(old)
        new_by_id = _index(new)

        changes: list[NuGetPackageChange] = []
        for key in sorted(old_by_id.keys() | new_by_id.keys()):
            before = old_by_id.get(key)
            after = new_by_id.get(key)
            if before is None and after is not None:
                changes.append(
                    NuGetPackageChange(
                        package_id=after.id,
                        new_version=after.version,
                        type=NuGetPackageChangeType.ADDED,
                    )
                )
            elif after is None and before is not None:
                changes.append(
                    NuGetPackageChange(
                        package_id=before.id,
                        old_version=before.version,
                        type=NuGetPackageChangeType.REMOVED,
                    )
                )
            elif before is not None and after is not None:
                if before.version != after.version:
                    change_type = NuGetPackageChangeType.MODIFIED
                elif self.include_unchanged:
                    change_type = NuGetPackageChangeType.UNCHANGED
                else:
                    continue
                changes.append(
                    NuGetPackageChange(
                        package_id=after.id,
                        old_version=before.version,
                        new_version=after.version,
                        type=change_type,
                    )
                )
        return changes


def _index(packages: Iterable[PackageDetails]) -> dict[str, PackageDetails]:
    """Index packages by lowercased id; for duplicates the highest version string wins."""
    indexed: dict[str, PackageDetails] = {}
    for package in packages:
        key = package.id.lower()
        current = indexed.get(key)
        if current is None or (package.version, package.id) > (current.version, current.id):
            indexed[key] = package
    return indexed
