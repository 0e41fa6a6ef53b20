"""External service integrations for buildchanges.

This package provides interfaces to external systems:
- cache: process-lifetime response cache shared by clients
- teamcity: TeamCity REST API client
- issues: issue tracker resolvers (Jira)
- package_mapping: package to build configuration table
"""

from .cache import CacheCategory, PackageDependencyKey, ResponseCache
from .issues import ExternalIssueResolver, IssueDetailResolver, JiraIssueResolver
from .package_mapping import PackageBuildMappingCache, package_id_from_artifact
from .teamcity import (
    BuildSystemClient,
    ClientFactory,
    TeamCityClient,
    builds_in_range,
    make_client_factory,
    parse_nuget_dependencies,
)

__all__ = [
    "BuildSystemClient",
    "CacheCategory",
    "ClientFactory",
    "ExternalIssueResolver",
    "IssueDetailResolver",
    "JiraIssueResolver",
    "PackageBuildMappingCache",
    "PackageDependencyKey",
    "ResponseCache",
    "TeamCityClient",
    "builds_in_range",
    "make_client_factory",
    "package_id_from_artifact",
    "parse_nuget_dependencies",
]
