"""TeamCity REST API client.

Wraps the subset of the TeamCity REST API needed to compute change
manifests. Every GET goes through the shared ResponseCache first, and
parsed entities are memoized in their own cache categories.
"""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import httpx

from ..constants import MAX_BUILDS_PER_BUILD_TYPE, NUGET_DEPENDENCIES_ARTIFACT, TEAMCITY_TIMEOUT
from ..errors import TeamCityError
from ..models import (
    Build,
    BuildDetails,
    BuildTypeDetails,
    ChangeDetail,
    ChangeList,
    Issue,
    PackageDetails,
)
from .cache import PackageDependencyKey, ResponseCache

logger = logging.getLogger(__name__)


class BuildSystemClient(Protocol):
    """Build server operations the delta resolver depends on."""

    @property
    def server_url(self) -> str: ...

    def resolve_build_type_by_project_and_name(
        self, project: str, name: str
    ) -> list[BuildTypeDetails]: ...

    def get_build_type_details(self, build_type_id: str) -> BuildTypeDetails: ...

    def get_builds_by_build_type(self, build_type_id: str) -> list[Build]: ...

    def get_change_details(
        self, build_type_id: str, from_version: str, to_version: str, builds: Sequence[Build]
    ) -> list[ChangeDetail]: ...

    def get_issues_by_range(
        self, build_type_id: str, from_version: str, to_version: str, builds: Sequence[Build]
    ) -> list[Issue]: ...

    def get_nuget_dependencies(self, build_type_id: str, build_id: str) -> list[PackageDetails]: ...

    def get_running_builds(self, build_type_id: str) -> list[Build]: ...

    def get_latest_successful_build(self, build_type_id: str) -> Build | None: ...

    def close(self) -> None: ...


ClientFactory = Callable[[str], BuildSystemClient]


def builds_in_range(builds: Sequence[Build], from_version: str, to_version: str) -> list[Build]:
    """Select the builds after ``from_version`` up to and including ``to_version``.

    ``builds`` must be ordered oldest first. Builds are matched by number.
    If ``to_version`` is not in the list the range is empty; if
    ``from_version`` is not found before it, the range starts at the oldest build.
    """
    numbers = [b.number for b in builds]
    if to_version not in numbers:
        return []
    to_idx = numbers.index(to_version)
    from_idx = -1
    if from_version in numbers[:to_idx + 1]:
        from_idx = numbers.index(from_version)
    return list(builds[from_idx + 1 : to_idx + 1])


def parse_nuget_dependencies(xml_text: str) -> list[PackageDetails]:
    """Parse the NuGet plugin's dependency artifact.

    Expected shape::

        <nuget-dependencies>
          <packages>
            <package id="Some.Package" version="1.2.3" />
          </packages>
        </nuget-dependencies>
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise TeamCityError(f"Malformed NuGet dependency artifact: {e}") from e

    packages = []
    for node in root.iter("package"):
        package_id = node.get("id")
        version = node.get("version")
        if package_id and version:
            packages.append(PackageDetails(id=package_id, version=version))
    return packages


def _parse_build_type(data: dict[str, Any]) -> BuildTypeDetails:
    """Build list payloads carry flat projectId/projectName attributes."""
    if "project" not in data:
        project = {"id": data.get("projectId", ""), "name": data.get("projectName", "")}
        data = {**data, "project": project}
    return BuildTypeDetails.model_validate(data)


class TeamCityClient:
    """Client for a single TeamCity server.

    Usage:
        with TeamCityClient("https://teamcity.example.com", cache=cache) as client:
            details = client.get_build_type_details("Project_Build")

    Without credentials the guest account is used; with them, HTTP basic auth.
    """

    def __init__(
        self,
        server_url: str,
        cache: ResponseCache | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float = TEAMCITY_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._server_url = server_url.rstrip("/")
        self._cache = cache if cache is not None else ResponseCache()
        self._username = username
        self._password = password
        self._timeout = timeout
        self._transport = transport
        auth = (username, password or "") if username else None
        self._prefix = "httpAuth" if username else "guestAuth"
        self._http = httpx.Client(
            auth=auth,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "TeamCityClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def for_server(self, server_url: str) -> "TeamCityClient":
        """Create a client for another server sharing this client's cache and settings."""
        return TeamCityClient(
            server_url,
            cache=self._cache,
            username=self._username,
            password=self._password,
            timeout=self._timeout,
            transport=self._transport,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _rest_url(self, path: str) -> str:
        return f"{self._server_url}/{self._prefix}/app/rest{path}"

    def _get(
        self, url: str, params: dict[str, str] | None, as_json: bool, allow_missing: bool
    ) -> Any:
        request = self._http.build_request("GET", url, params=params)
        key = str(request.url)

        cached, found = self._cache.responses.lookup(key)
        if found:
            logger.debug(f"Cache hit: {key}")
            return cached

        logger.debug(f"GET {key}")
        try:
            response = self._http.send(request)
        except httpx.HTTPError as e:
            raise TeamCityError(f"Request to {key} failed: {e}") from e

        if response.status_code == 404 and allow_missing:
            logger.debug(f"Not found: {key}")
            return None
        if not response.is_success:
            raise TeamCityError(f"GET {key} returned HTTP {response.status_code}")

        try:
            body = response.json() if as_json else response.text
        except ValueError as e:
            raise TeamCityError(f"GET {key} returned invalid JSON") from e

        self._cache.responses.insert(key, body)
        return body

    def _get_json(
        self, path: str, params: dict[str, str] | None = None, allow_missing: bool = False
    ) -> dict[str, Any] | None:
        return self._get(self._rest_url(path), params, as_json=True, allow_missing=allow_missing)

    def _get_builds(self, locator: str) -> list[BuildDetails]:
        data = self._get_json("/builds", params={"locator": locator}) or {}
        return [BuildDetails.model_validate(b) for b in data.get("build", [])]

    # ------------------------------------------------------------------
    # Build types
    # ------------------------------------------------------------------

    def resolve_build_type_by_project_and_name(
        self, project: str, name: str
    ) -> list[BuildTypeDetails]:
        """Find build types called ``name`` in the project called ``project``."""
        data = self._get_json(
            "/buildTypes", params={"locator": f"project:(name:{project}),name:{name}"}
        ) or {}
        return [_parse_build_type(bt) for bt in data.get("buildType", [])]

    def get_build_type_details(self, build_type_id: str) -> BuildTypeDetails:
        cached, found = self._cache.build_types.lookup(build_type_id)
        if found:
            return cached

        data = self._get_json(f"/buildTypes/id:{build_type_id}")
        details = _parse_build_type(data or {})
        self._cache.build_types.insert(build_type_id, details)
        return details

    def list_build_types(self) -> list[BuildTypeDetails]:
        """List every build type visible on the server."""
        data = self._get_json("/buildTypes") or {}
        return [_parse_build_type(bt) for bt in data.get("buildType", [])]

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def get_builds_by_build_type(self, build_type_id: str) -> list[Build]:
        """All builds of a build type, oldest first."""
        builds = self._get_builds(
            f"buildType:(id:{build_type_id}),running:any,canceled:any,"
            f"branch:default:any,count:{MAX_BUILDS_PER_BUILD_TYPE}"
        )
        for build in builds:
            self._cache.builds.insert(build.id, build)
        return sorted(builds, key=_build_sort_key)

    def get_running_builds(self, build_type_id: str) -> list[Build]:
        return list(self._get_builds(f"buildType:(id:{build_type_id}),running:true"))

    def get_latest_successful_build(self, build_type_id: str) -> Build | None:
        builds = self._get_builds(f"buildType:(id:{build_type_id}),status:SUCCESS,count:1")
        return builds[0] if builds else None

    def get_artifact_names(self, build_id: str) -> list[str]:
        """Names of the top level artifacts published by a build."""
        data = self._get_json(f"/builds/id:{build_id}/artifacts/children/", allow_missing=True)
        if not data:
            return []
        return [f["name"] for f in data.get("file", []) if f.get("name")]

    # ------------------------------------------------------------------
    # Changes and issues
    # ------------------------------------------------------------------

    def get_change_details(
        self, build_type_id: str, from_version: str, to_version: str, builds: Sequence[Build]
    ) -> list[ChangeDetail]:
        """Change details of every build after ``from_version`` up to ``to_version``."""
        details: list[ChangeDetail] = []
        seen: set[str] = set()
        for build in builds_in_range(builds, from_version, to_version):
            for change_id in self._get_change_list(build.id).change_ids:
                if change_id in seen:
                    continue
                seen.add(change_id)
                details.append(self._get_change_detail(change_id))
        logger.debug(
            f"{build_type_id}: {len(details)} changes between {from_version} and {to_version}"
        )
        return details

    def get_issues_by_range(
        self, build_type_id: str, from_version: str, to_version: str, builds: Sequence[Build]
    ) -> list[Issue]:
        """Issues TeamCity associated with the builds in the range."""
        issues: list[Issue] = []
        seen: set[str] = set()
        for build in builds_in_range(builds, from_version, to_version):
            data = self._get_json(f"/builds/id:{build.id}/relatedIssues", allow_missing=True)
            for usage in (data or {}).get("issueUsage", []):
                issue = Issue.model_validate(usage.get("issue", {}))
                if issue.id not in seen:
                    seen.add(issue.id)
                    issues.append(issue)
        logger.debug(
            f"{build_type_id}: {len(issues)} issues between {from_version} and {to_version}"
        )
        return issues

    def _get_change_list(self, build_id: str) -> ChangeList:
        cached, found = self._cache.change_lists.lookup(build_id)
        if found:
            return cached

        data = self._get_json("/changes", params={"locator": f"build:(id:{build_id})"}) or {}
        change_list = ChangeList(
            build_id=build_id, change_ids=[str(c["id"]) for c in data.get("change", [])]
        )
        self._cache.change_lists.insert(build_id, change_list)
        return change_list

    def _get_change_detail(self, change_id: str) -> ChangeDetail:
        cached, found = self._cache.changes.lookup(change_id)
        if found:
            return cached

        data = dict(self._get_json(f"/changes/id:{change_id}") or {"id": change_id})
        files = data.get("files")
        if isinstance(files, dict):
            data["files"] = files.get("file", [])
        detail = ChangeDetail.model_validate(data)
        self._cache.changes.insert(change_id, detail)
        return detail

    # ------------------------------------------------------------------
    # Package dependencies
    # ------------------------------------------------------------------

    def get_nuget_dependencies(self, build_type_id: str, build_id: str) -> list[PackageDetails]:
        """Packages a build consumed, or an empty list if it recorded none."""
        key = PackageDependencyKey(build_type_id, build_id)
        cached, found = self._cache.package_dependencies.lookup(key)
        if found:
            return list(cached)

        url = (
            f"{self._server_url}/{self._prefix}/repository/download/"
            f"{build_type_id}/{build_id}:id/{NUGET_DEPENDENCIES_ARTIFACT}"
        )
        text = self._get(url, None, as_json=False, allow_missing=True)
        if not text:
            return []

        packages = parse_nuget_dependencies(text)
        self._cache.package_dependencies.insert(key, packages)
        return packages


def _build_sort_key(build: Build) -> tuple[int, str]:
    try:
        return (int(build.id), build.id)
    except ValueError:
        return (0, build.id)


def make_client_factory(
    cache: ResponseCache,
    username: str | None = None,
    password: str | None = None,
    timeout: float = TEAMCITY_TIMEOUT,
) -> ClientFactory:
    """Factory producing TeamCity clients that share one cache."""

    def factory(server_url: str) -> BuildSystemClient:
        return TeamCityClient(
            server_url, cache=cache, username=username, password=password, timeout=timeout
        )

    return factory
