"""Change manifest resolution between two builds.

The DeltaResolver gathers the commits, issues and NuGet package deltas
between two builds of a build type. With recursion enabled it also maps
every modified package to the build configuration that produced it and
resolves that configuration's own manifest for the same version range.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import ResolutionError
from ..models import (
    BuildTypeDetails,
    ChangeManifest,
    NuGetPackageChange,
    NuGetPackageChangeType,
    PackageBuildMapping,
    Status,
)
from ..services.issues import IssueDetailResolver
from ..services.package_mapping import PackageBuildMappingCache
from ..services.teamcity import BuildSystemClient, ClientFactory
from .package_comparator import PackageChangeComparator

logger = logging.getLogger(__name__)

# (server url, build type id, from, to) of a resolution on the current path
VisitKey = tuple[str, str, str, str]


@dataclass
class DependencyGroup:
    """Package changes that resolve to the same build and version range.

    ``mapping.package_id`` holds the version range key ("<old> - <new>").
    """

    mapping: PackageBuildMapping
    old_version: str
    new_version: str
    changes: list[NuGetPackageChange] = field(default_factory=list)


@dataclass
class DependencyManifest:
    """Manifest resolved for a dependency build configuration."""

    mapping: PackageBuildMapping
    from_version: str
    to_version: str
    manifest: ChangeManifest


@dataclass
class _Resolution:
    """State of one top level manifest call."""

    dependency_manifests: list[DependencyManifest] = field(default_factory=list)
    # clients created for other servers, keyed by normalized server url
    clients: dict[str, BuildSystemClient] = field(default_factory=dict)

    def close(self) -> None:
        for client in self.clients.values():
            client.close()
        self.clients.clear()


def _normalize_url(server_url: str) -> str:
    return server_url.rstrip("/").casefold()


def _visit_key(server_url: str, build_type: str, from_version: str, to_version: str) -> VisitKey:
    return (_normalize_url(server_url), build_type, from_version, to_version)


class DeltaResolver:
    """Creates ChangeManifests from build server data.

    The resolver owns ``client`` and the issue resolvers: ``close()`` (or
    leaving a ``with`` block) closes them. Clients made by ``client_factory``
    live for a single ``create_manifest_*`` call and are closed when it returns.

    Args:
        client: Build server client for the server being queried.
        issue_resolver: Derives issues from commits and enriches issue references.
        package_comparator: Computes package deltas between two builds.
        mapping_cache: Package to build configuration table, required for recursion.
        client_factory: Creates clients for other servers met while recursing.
            Defaults to ``client.for_server`` when the client provides it.
    """

    def __init__(
        self,
        client: BuildSystemClient,
        issue_resolver: IssueDetailResolver,
        package_comparator: PackageChangeComparator,
        mapping_cache: PackageBuildMappingCache | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._client = client
        self._issue_resolver = issue_resolver
        self._package_comparator = package_comparator
        self._mapping_cache = mapping_cache
        self._client_factory = client_factory or self._default_client_factory
        self._dependency_manifests: list[DependencyManifest] = []

    @property
    def dependency_manifests(self) -> list[DependencyManifest]:
        """Dependency manifests of the most recent call. They are not merged into its manifest."""
        return list(self._dependency_manifests)

    def close(self) -> None:
        self._client.close()
        self._issue_resolver.close()

    def __enter__(self) -> "DeltaResolver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _default_client_factory(self, server_url: str) -> BuildSystemClient:
        for_server = getattr(self._client, "for_server", None)
        if for_server is None:
            raise ResolutionError(f"No client available for server {server_url}")
        return for_server(server_url)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_manifest_by_name(
        self,
        project_name: str,
        build_name: str,
        reference_build: str | None = None,
        from_version: str | None = None,
        to_version: str | None = None,
        use_build_system_issues: bool = True,
        recurse: bool = False,
    ) -> ChangeManifest:
        """Create a manifest for the build type called ``build_name`` in ``project_name``.

        Args:
            project_name: Project that owns the build type.
            build_name: Build type name.
            reference_build: Build type that carries the commit data, if not the same.
            from_version: Build number the range starts after; defaults to the
                latest successful build.
            to_version: Build number the range ends with; defaults to the
                running build.
            use_build_system_issues: Take issues from the build server rather
                than deriving them from commit comments.
            recurse: Resolve manifests for builds that produced modified packages.

        Raises:
            ResolutionError: If the build type or the build range cannot be resolved.
        """
        return self._run(
            build_type=None,
            project_name=project_name,
            build_name=build_name,
            reference_build=reference_build,
            from_version=from_version,
            to_version=to_version,
            use_build_system_issues=use_build_system_issues,
            recurse=recurse,
        )

    def create_manifest_by_build_type(
        self,
        build_type_id: str,
        reference_build: str | None = None,
        from_version: str | None = None,
        to_version: str | None = None,
        use_build_system_issues: bool = True,
        recurse: bool = False,
    ) -> ChangeManifest:
        """Create a manifest for a build type id. See create_manifest_by_name."""
        return self._run(
            build_type=build_type_id,
            project_name=None,
            build_name=None,
            reference_build=reference_build,
            from_version=from_version,
            to_version=to_version,
            use_build_system_issues=use_build_system_issues,
            recurse=recurse,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _run(self, **options: Any) -> ChangeManifest:
        self._dependency_manifests = []
        resolution = _Resolution()
        try:
            manifest = self._create_manifest(
                client=self._client, resolution=resolution, path=frozenset(), **options
            )
        finally:
            resolution.close()
        self._dependency_manifests = resolution.dependency_manifests
        return manifest

    def _create_manifest(
        self,
        client: BuildSystemClient,
        resolution: _Resolution,
        build_type: str | None,
        project_name: str | None,
        build_name: str | None,
        reference_build: str | None,
        from_version: str | None,
        to_version: str | None,
        use_build_system_issues: bool,
        recurse: bool,
        path: frozenset[VisitKey],
    ) -> ChangeManifest:
        manifest = ChangeManifest()

        if recurse and self._mapping_cache is None:
            self._log(
                manifest,
                Status.WARNING,
                "Recurse option provided with no PackageBuildMappingCache, "
                "we will not be honoring the Recurse option.",
            )
            recurse = False

        build_type = build_type or self._resolve_build_type_id(client, project_name, build_name)

        if not from_version:
            self._log(
                manifest,
                Status.WARNING,
                "Resolving FROM version based on the provided BuildType (FROM was not provided).",
            )
            from_version = self._resolve_from_version(client, build_type)

        if not to_version:
            self._log(
                manifest,
                Status.WARNING,
                "Resolving TO version based on the provided BuildType (TO was not provided).",
            )
            to_version = self._resolve_to_version(client, build_type)

        commit_build_type = reference_build or build_type
        build_type_details = client.get_build_type_details(build_type)
        reference_details = (
            client.get_build_type_details(reference_build) if reference_build else None
        )

        manifest.from_version = from_version
        manifest.to_version = to_version
        manifest.build_configuration = build_type_details
        manifest.reference_build_configuration = reference_details or BuildTypeDetails()

        self._log(manifest, Status.OK, "Getting builds based on BuildType")
        builds = client.get_builds_by_build_type(commit_build_type)
        if not builds:
            self._log(manifest, Status.WARNING, f"No builds returned for BuildType {build_type}.")
            return manifest

        self._log(manifest, Status.OK, f"Got {len(builds)} builds for BuildType {build_type}.")
        change_details = client.get_change_details(
            commit_build_type, from_version, to_version, builds
        )
        if use_build_system_issues:
            issues = client.get_issues_by_range(
                commit_build_type, from_version, to_version, builds
            )
        else:
            issues = self._issue_resolver.derive_issues_from_changes(change_details)
        self._log(manifest, Status.OK, f"Got {len(issues)} issues for BuildType {build_type}.")

        self._log(manifest, Status.OK, "Checking package dependencies.")
        build_from = next((b for b in builds if b.number == from_version), None)
        build_to = next((b for b in builds if b.number == to_version), None)
        initial_packages = (
            client.get_nuget_dependencies(build_type, build_from.id) if build_from else []
        )
        final_packages = client.get_nuget_dependencies(build_type, build_to.id) if build_to else []

        manifest.nuget_package_changes = self._package_comparator.compute_changes(
            initial_packages, final_packages
        )
        manifest.change_details.extend(change_details)
        manifest.issue_details.extend(self._issue_resolver.enrich_issues(issues))
        manifest.generated = datetime.now()

        modified = [
            c for c in manifest.nuget_package_changes if c.type is NuGetPackageChangeType.MODIFIED
        ]
        if recurse and modified:
            groups = self._group_by_build(manifest, build_type_details, modified)
            visit = _visit_key(client.server_url, build_type, from_version, to_version)
            self._resolve_dependencies(
                manifest, client, resolution, build_type, groups, path | {visit}
            )

        return manifest

    def _resolve_build_type_id(
        self, client: BuildSystemClient, project_name: str | None, build_name: str | None
    ) -> str:
        if not project_name or not build_name:
            raise ResolutionError(
                f"Could not resolve Project: {project_name} and BuildName: {build_name} "
                "to a build type"
            )
        matches = client.resolve_build_type_by_project_and_name(project_name, build_name)
        if not matches:
            raise ResolutionError(
                f"No build type named {build_name} found in project {project_name}"
            )
        return matches[0].id

    def _resolve_from_version(self, client: BuildSystemClient, build_type: str) -> str:
        latest = client.get_latest_successful_build(build_type)
        if latest is None:
            raise ResolutionError(f"Could not find latest build for build type {build_type}")
        return latest.number

    def _resolve_to_version(self, client: BuildSystemClient, build_type: str) -> str:
        running = client.get_running_builds(build_type)
        if not running:
            raise ResolutionError(
                f"Could not resolve a build number for the running build of {build_type}"
            )
        return running[0].number

    # ------------------------------------------------------------------
    # Recursion
    # ------------------------------------------------------------------

    def _select_mapping(
        self,
        manifest: ChangeManifest,
        change: NuGetPackageChange,
        candidates: list[PackageBuildMapping],
        build_type_details: BuildTypeDetails,
    ) -> PackageBuildMapping | None:
        """Pick the build mapping for a package change.

        A single candidate is used as is. With several, only one in the
        current build type's project is accepted.
        """
        if not candidates:
            self._log(
                manifest,
                Status.WARNING,
                f"Did not find a mapping for package: {change.package_id}.",
            )
            return None

        if len(candidates) == 1:
            mapping = candidates[0]
            self._log(
                manifest,
                Status.OK,
                f"Found singular package to build mapping {mapping.build_configuration_name}.",
            )
            return mapping

        project = build_type_details.project.name.casefold()
        mapping = next((m for m in candidates if m.project.casefold() == project), None)
        if mapping is None:
            self._log(
                manifest,
                Status.WARNING,
                f"Found {len(candidates)} mappings for package {change.package_id} and none in "
                f"project {build_type_details.project.name}; not following it.",
            )
            return None

        self._log(
            manifest,
            Status.WARNING,
            f"Found duplicate mappings, using package to build mapping "
            f"{mapping.build_configuration_name}.",
        )
        return mapping

    def _group_by_build(
        self,
        manifest: ChangeManifest,
        build_type_details: BuildTypeDetails,
        changes: list[NuGetPackageChange],
    ) -> list[DependencyGroup]:
        """Group modified package changes by resolved build mapping and version pair."""
        assert self._mapping_cache is not None

        by_version: dict[tuple[str, str], list[NuGetPackageChange]] = {}
        for change in changes:
            by_version.setdefault(change.version_pair, []).append(change)

        groups: dict[tuple[str, str, str, str], DependencyGroup] = {}
        for (old_version, new_version), version_changes in by_version.items():
            for change in version_changes:
                candidates = self._mapping_cache.find(change.package_id)
                mapping = self._select_mapping(manifest, change, candidates, build_type_details)
                if mapping is None:
                    continue

                key = (mapping.build_configuration_id, old_version, new_version, mapping.server_url)
                group = groups.get(key)
                if group is None:
                    groups[key] = DependencyGroup(
                        mapping=mapping.model_copy(
                            update={"package_id": f"{old_version} - {new_version}"}
                        ),
                        old_version=old_version,
                        new_version=new_version,
                        changes=[change],
                    )
                elif change not in group.changes:
                    group.changes.append(change)
        return list(groups.values())

    def _client_for(
        self, client: BuildSystemClient, resolution: _Resolution, server_url: str
    ) -> BuildSystemClient:
        """Client for ``server_url``: the current one, or one made once per call."""
        key = _normalize_url(server_url)
        if _normalize_url(client.server_url) == key:
            return client
        if _normalize_url(self._client.server_url) == key:
            return self._client
        if key not in resolution.clients:
            resolution.clients[key] = self._client_factory(server_url)
        return resolution.clients[key]

    def _resolve_dependencies(
        self,
        manifest: ChangeManifest,
        client: BuildSystemClient,
        resolution: _Resolution,
        build_type: str,
        groups: list[DependencyGroup],
        path: frozenset[VisitKey],
    ) -> None:
        for group in groups:
            mapping = group.mapping
            if mapping.build_configuration_id == build_type:
                continue

            visit = _visit_key(
                mapping.server_url,
                mapping.build_configuration_id,
                group.old_version,
                group.new_version,
            )
            if visit in path:
                self._log(
                    manifest,
                    Status.WARNING,
                    f"Skipping {mapping.build_configuration_id} {group.old_version} -> "
                    f"{group.new_version}: already being resolved (circular package mapping).",
                )
                continue

            try:
                dependency = self._create_manifest(
                    client=self._client_for(client, resolution, mapping.server_url),
                    resolution=resolution,
                    build_type=mapping.build_configuration_id,
                    project_name=None,
                    build_name=None,
                    reference_build=None,
                    from_version=group.old_version,
                    to_version=group.new_version,
                    use_build_system_issues=True,
                    recurse=True,
                    path=path,
                )
            except ResolutionError as e:
                self._log(
                    manifest,
                    Status.WARNING,
                    f"Could not resolve dependency build {mapping.build_configuration_id}: {e}",
                )
                continue

            resolution.dependency_manifests.append(
                DependencyManifest(
                    mapping=mapping,
                    from_version=group.old_version,
                    to_version=group.new_version,
                    manifest=dependency,
                )
            )
            self._log(
                manifest,
                Status.OK,
                f"Resolved dependency build {mapping.build_configuration_id} "
                f"{group.old_version} -> {group.new_version}: "
                f"{len(dependency.change_details)} changes, "
                f"{len(dependency.issue_details)} issues.",
            )

    def _log(self, manifest: ChangeManifest, status: Status, message: str) -> None:
        manifest.log(status, message)
        if status is Status.OK:
            logger.debug(message)
        else:
            logger.warning(message)
