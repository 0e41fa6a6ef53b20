"""Shared test fixtures for buildchanges tests."""

from collections.abc import Callable, Sequence

import pytest
from typer.testing import CliRunner

from buildchanges.models import (
    Build,
    BuildTypeDetails,
    ChangeDetail,
    Issue,
    PackageBuildMapping,
    PackageDetails,
    ProjectRef,
)
from buildchanges.services import ResponseCache

SERVER_URL = "https://teamcity.example.com"


class FakeBuildSystemClient:
    """In-memory build server that records every call made to it."""

    def __init__(self, server_url: str = SERVER_URL) -> None:
        self.server_url = server_url
        self.build_types: dict[str, BuildTypeDetails] = {}
        self.builds: dict[str, list[Build]] = {}
        self.changes: dict[str, list[ChangeDetail]] = {}
        self.issues: dict[str, list[Issue]] = {}
        self.nuget: dict[tuple[str, str], list[PackageDetails]] = {}
        self.running: dict[str, list[Build]] = {}
        self.latest: dict[str, Build] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.closed = False

    def add_build_type(self, build_type_id: str, name: str = "", project: str = "Main") -> None:
        self.build_types[build_type_id] = BuildTypeDetails(
            id=build_type_id,
            name=name or build_type_id,
            project=ProjectRef(id=project.lower(), name=project),
        )

    def add_builds(self, build_type_id: str, *numbers: str) -> list[Build]:
        builds = self.builds.setdefault(build_type_id, [])
        for number in numbers:
            builds.append(
                Build(id=f"{build_type_id}-{number}", number=number, build_type_id=build_type_id)
            )
        return builds

    def set_packages(self, build_type_id: str, number: str, **versions: str) -> None:
        """Set a build's dependencies; keyword names use '_' for '.' in package ids."""
        self.nuget[(build_type_id, f"{build_type_id}-{number}")] = [
            PackageDetails(id=name.replace("_", "."), version=version)
            for name, version in versions.items()
        ]

    def called(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def close(self) -> None:
        self.closed = True

    def resolve_build_type_by_project_and_name(
        self, project: str, name: str
    ) -> list[BuildTypeDetails]:
        self.calls.append(("resolve_build_type_by_project_and_name", (project, name)))
        return [
            bt
            for bt in self.build_types.values()
            if bt.project.name == project and bt.name == name
        ]

    def get_build_type_details(self, build_type_id: str) -> BuildTypeDetails:
        self.calls.append(("get_build_type_details", (build_type_id,)))
        return self.build_types.get(build_type_id, BuildTypeDetails(id=build_type_id))

    def get_builds_by_build_type(self, build_type_id: str) -> list[Build]:
        self.calls.append(("get_builds_by_build_type", (build_type_id,)))
        return list(self.builds.get(build_type_id, []))

    def get_change_details(
        self, build_type_id: str, from_version: str, to_version: str, builds: Sequence[Build]
    ) -> list[ChangeDetail]:
        self.calls.append(("get_change_details", (build_type_id, from_version, to_version)))
        return list(self.changes.get(build_type_id, []))

    def get_issues_by_range(
        self, build_type_id: str, from_version: str, to_version: str, builds: Sequence[Build]
    ) -> list[Issue]:
        self.calls.append(("get_issues_by_range", (build_type_id, from_version, to_version)))
        return list(self.issues.get(build_type_id, []))

    def get_nuget_dependencies(self, build_type_id: str, build_id: str) -> list[PackageDetails]:
        self.calls.append(("get_nuget_dependencies", (build_type_id, build_id)))
        return list(self.nuget.get((build_type_id, build_id), []))

    def get_running_builds(self, build_type_id: str) -> list[Build]:
        self.calls.append(("get_running_builds", (build_type_id,)))
        return list(self.running.get(build_type_id, []))

    def get_latest_successful_build(self, build_type_id: str) -> Build | None:
        self.calls.append(("get_latest_successful_build", (build_type_id,)))
        return self.latest.get(build_type_id)


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def cache() -> ResponseCache:
    """Fresh response cache per test."""
    return ResponseCache()


@pytest.fixture
def make_client() -> Callable[..., FakeBuildSystemClient]:
    """Factory for fake build server clients."""
    return FakeBuildSystemClient


@pytest.fixture
def fake_client() -> FakeBuildSystemClient:
    """Fake server with build type B1 (project Main) and builds 10..15."""
    client = FakeBuildSystemClient()
    client.add_build_type("B1", name="Service", project="Main")
    client.add_builds("B1", "10", "11", "12", "13", "14", "15")
    return client


@pytest.fixture
def make_mapping() -> Callable[..., PackageBuildMapping]:
    """Factory for package build mappings on the default server."""

    def factory(
        package_id: str,
        build_configuration_id: str,
        project: str = "Main",
        server_url: str = SERVER_URL,
    ) -> PackageBuildMapping:
        return PackageBuildMapping(
            package_id=package_id,
            build_configuration_id=build_configuration_id,
            build_configuration_name=f"{build_configuration_id} build",
            project=project,
            server_url=server_url,
        )

    return factory
