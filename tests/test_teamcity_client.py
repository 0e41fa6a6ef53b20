"""Tests for the TeamCity REST client."""

from typing import Any

import httpx
import pytest

from buildchanges.errors import TeamCityError
from buildchanges.models import Build, PackageDetails
from buildchanges.services import (
    PackageDependencyKey,
    ResponseCache,
    TeamCityClient,
    builds_in_range,
    make_client_factory,
    parse_nuget_dependencies,
)

SERVER = "https://tc.example.com"
REST = "/guestAuth/app/rest"

NUGET_XML = """<?xml version="1.0" encoding="utf-8"?>
<nuget-dependencies>
  <packages>
    <package id="Newtonsoft.Json" version="13.0.1" />
    <package id="Serilog" version="2.12.0" />
  </packages>
  <sources />
</nuget-dependencies>
"""


class Server:
    """Routes requests to canned responses and records them."""

    def __init__(self, routes: dict[Any, Any]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        locator = request.url.params.get("locator")
        key = (request.url.path, locator) if locator else request.url.path
        if key not in self.routes:
            return httpx.Response(404)
        body = self.routes[key]
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, str):
            return httpx.Response(200, text=body)
        return httpx.Response(200, json=body)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def make_client(
    routes: dict[Any, Any], cache: ResponseCache | None = None, **kwargs: Any
) -> tuple[TeamCityClient, Server]:
    server = Server(routes)
    client = TeamCityClient(SERVER, cache=cache, transport=httpx.MockTransport(server), **kwargs)
    return client, server


def builds_payload(*ids: int) -> dict[str, Any]:
    return {"build": [{"id": i, "number": str(i), "buildTypeId": "BT1"} for i in ids]}


class TestBuildsInRange:
    """Tests for build range selection."""

    builds = [Build(id=str(i), number=str(i)) for i in range(1, 6)]

    def test_excludes_from_includes_to(self) -> None:
        assert [b.number for b in builds_in_range(self.builds, "2", "4")] == ["3", "4"]

    def test_missing_to_is_empty(self) -> None:
        assert builds_in_range(self.builds, "2", "9") == []

    def test_missing_from_starts_at_oldest(self) -> None:
        assert [b.number for b in builds_in_range(self.builds, "0", "2")] == ["1", "2"]

    def test_same_from_and_to_is_empty(self) -> None:
        assert builds_in_range(self.builds, "3", "3") == []


class TestParseNugetDependencies:
    """Tests for the dependency artifact parser."""

    def test_parses_packages(self) -> None:
        assert parse_nuget_dependencies(NUGET_XML) == [
            PackageDetails(id="Newtonsoft.Json", version="13.0.1"),
            PackageDetails(id="Serilog", version="2.12.0"),
        ]

    def test_skips_incomplete_entries(self) -> None:
        xml = '<nuget-dependencies><packages><package id="A" /></packages></nuget-dependencies>'
        assert parse_nuget_dependencies(xml) == []

    def test_malformed_xml_raises(self) -> None:
        with pytest.raises(TeamCityError, match="Malformed"):
            parse_nuget_dependencies("<nuget-dependencies>")


class TestBuildTypes:
    """Tests for build type lookups."""

    def test_details_are_parsed_and_cached(self) -> None:
        client, server = make_client(
            {
                f"{REST}/buildTypes/id:BT1": {
                    "id": "BT1",
                    "name": "Service",
                    "webUrl": f"{SERVER}/viewType.html?buildTypeId=BT1",
                    "project": {"id": "Main", "name": "Main Project"},
                }
            }
        )

        details = client.get_build_type_details("BT1")
        again = client.get_build_type_details("BT1")

        assert details.name == "Service"
        assert details.project.name == "Main Project"
        assert details.web_url.endswith("buildTypeId=BT1")
        assert again is details
        assert len(server.requests) == 1

    def test_resolve_by_project_and_name(self) -> None:
        client, server = make_client(
            {
                (f"{REST}/buildTypes", "project:(name:Main),name:Service"): {
                    "buildType": [
                        {"id": "BT1", "name": "Service", "projectId": "M", "projectName": "Main"}
                    ]
                }
            }
        )

        [build_type] = client.resolve_build_type_by_project_and_name("Main", "Service")

        assert build_type.id == "BT1"
        assert build_type.project.name == "Main"

    def test_list_build_types(self) -> None:
        client, _ = make_client(
            {f"{REST}/buildTypes": {"buildType": [{"id": "A"}, {"id": "B"}]}}
        )
        assert [bt.id for bt in client.list_build_types()] == ["A", "B"]


class TestBuilds:
    """Tests for build listings."""

    def test_builds_sorted_by_id_and_cached(self) -> None:
        cache = ResponseCache()
        locator = "buildType:(id:BT1),running:any,canceled:any,branch:default:any,count:10000"
        client, _ = make_client({(f"{REST}/builds", locator): builds_payload(12, 3, 7)}, cache)

        builds = client.get_builds_by_build_type("BT1")

        assert [b.id for b in builds] == ["3", "7", "12"]
        assert cache.builds_for_build_type("BT1")[1]

    def test_latest_successful_build(self) -> None:
        locator = "buildType:(id:BT1),status:SUCCESS,count:1"
        client, _ = make_client({(f"{REST}/builds", locator): builds_payload(9)})
        latest = client.get_latest_successful_build("BT1")
        assert latest is not None
        assert latest.number == "9"

    def test_no_latest_successful_build(self) -> None:
        locator = "buildType:(id:BT1),status:SUCCESS,count:1"
        client, _ = make_client({(f"{REST}/builds", locator): {"count": 0}})
        assert client.get_latest_successful_build("BT1") is None

    def test_running_builds(self) -> None:
        locator = "buildType:(id:BT1),running:true"
        client, _ = make_client({(f"{REST}/builds", locator): builds_payload(20)})
        assert [b.number for b in client.get_running_builds("BT1")] == ["20"]

    def test_artifact_names(self) -> None:
        client, _ = make_client(
            {
                f"{REST}/builds/id:5/artifacts/children/": {
                    "file": [{"name": "Pkg.1.0.0.nupkg"}, {"name": "logs.zip"}]
                }
            }
        )
        assert client.get_artifact_names("5") == ["Pkg.1.0.0.nupkg", "logs.zip"]
        assert client.get_artifact_names("6") == []


class TestChangesAndIssues:
    """Tests for change and issue collection over a build range."""

    builds = [Build(id=str(i), number=str(i), build_type_id="BT1") for i in (1, 2, 3)]

    def test_change_details_for_range(self) -> None:
        client, server = make_client(
            {
                (f"{REST}/changes", "build:(id:2)"): {"change": [{"id": 101}]},
                (f"{REST}/changes", "build:(id:3)"): {"change": [{"id": 102}, {"id": 101}]},
                f"{REST}/changes/id:101": {
                    "id": 101,
                    "version": "abc123",
                    "username": "dev",
                    "comment": "Fix ABC-1",
                    "files": {
                        "file": [
                            {"file": "src/a.cs", "relative-file": "a.cs", "changeType": "edited"}
                        ]
                    },
                },
                f"{REST}/changes/id:102": {"id": 102, "comment": "Second"},
            }
        )

        details = client.get_change_details("BT1", "1", "3", self.builds)

        assert [d.id for d in details] == ["101", "102"]
        assert details[0].files[0].relative_file == "a.cs"
        assert details[0].files[0].change_type == "edited"
        assert f"{REST}/changes/id:101" in server.paths()
        assert (f"{REST}/changes", "build:(id:1)") not in [
            (r.url.path, r.url.params.get("locator")) for r in server.requests
        ]

    def test_issues_for_range(self) -> None:
        client, _ = make_client(
            {
                f"{REST}/builds/id:2/relatedIssues": {
                    "issueUsage": [{"issue": {"id": "ABC-1", "url": "https://jira/ABC-1"}}]
                },
                f"{REST}/builds/id:3/relatedIssues": {
                    "issueUsage": [
                        {"issue": {"id": "ABC-1", "url": "https://jira/ABC-1"}},
                        {"issue": {"id": "ABC-2"}},
                    ]
                },
            }
        )

        issues = client.get_issues_by_range("BT1", "1", "3", self.builds)

        assert [i.id for i in issues] == ["ABC-1", "ABC-2"]
        assert issues[0].url == "https://jira/ABC-1"


class TestNugetDependencies:
    """Tests for the dependency artifact download."""

    path = "/guestAuth/repository/download/BT1/5:id/.teamcity/nuget/nuget.xml"

    def test_downloads_and_caches_per_build_type(self) -> None:
        cache = ResponseCache()
        client, server = make_client({self.path: NUGET_XML}, cache)

        packages = client.get_nuget_dependencies("BT1", "5")
        client.get_nuget_dependencies("BT1", "5")

        assert [p.id for p in packages] == ["Newtonsoft.Json", "Serilog"]
        assert PackageDependencyKey("BT1", "5") in cache.package_dependencies
        assert server.paths() == [self.path]

    def test_missing_artifact_is_empty(self) -> None:
        client, _ = make_client({})
        assert client.get_nuget_dependencies("BT1", "5") == []


class TestTransport:
    """Tests for auth, errors and cache sharing."""

    def test_server_error_raises(self) -> None:
        client, _ = make_client({f"{REST}/buildTypes/id:BT1": httpx.Response(500)})
        with pytest.raises(TeamCityError, match="HTTP 500"):
            client.get_build_type_details("BT1")

    def test_missing_entity_raises(self) -> None:
        client, _ = make_client({})
        with pytest.raises(TeamCityError, match="HTTP 404"):
            client.get_build_type_details("BT1")

    def test_invalid_json_raises(self) -> None:
        client, _ = make_client({f"{REST}/buildTypes": "not json"})
        with pytest.raises(TeamCityError, match="invalid JSON"):
            client.list_build_types()

    def test_credentials_use_http_auth(self) -> None:
        client, server = make_client(
            {"/httpAuth/app/rest/buildTypes": {"buildType": []}},
            username="user",
            password="secret",
        )

        client.list_build_types()

        assert server.requests[0].headers["Authorization"].startswith("Basic ")

    def test_guest_access_sends_no_credentials(self) -> None:
        client, server = make_client({f"{REST}/buildTypes": {"buildType": []}})
        client.list_build_types()
        assert "Authorization" not in server.requests[0].headers

    def test_for_server_shares_cache(self) -> None:
        cache = ResponseCache()
        client, _ = make_client({}, cache)

        other = client.for_server("https://other.example.com/")

        assert other.server_url == "https://other.example.com"
        assert other.cache is cache

    def test_client_factory_shares_cache(self) -> None:
        cache = ResponseCache()
        factory = make_client_factory(cache, username="ci", password="secret")

        first = factory("https://a.example.com")
        second = factory("https://b.example.com")

        assert first.server_url == "https://a.example.com"
        assert first.cache is cache
        assert second.cache is cache

    def test_responses_are_cached(self) -> None:
        client, server = make_client({f"{REST}/buildTypes": {"buildType": [{"id": "A"}]}})
        client.list_build_types()
        client.list_build_types()
        assert len(server.requests) == 1
