"""Pydantic data models for buildchanges.

This package defines the data structures used throughout buildchanges for:
- Build server entities (Build, BuildTypeDetails, ChangeDetail, Issue)
- NuGet package dependencies and deltas (PackageDetails, NuGetPackageChange)
- Package to build configuration mappings (PackageBuildMapping)
- Issue tracker enrichment (ExternalIssueDetails)
- The resolution result (ChangeManifest and its generation log)

Example:
    >>> from buildchanges.models import ChangeManifest, Status
    >>> manifest = ChangeManifest()
    >>> manifest.log(Status.WARNING, "No builds returned")
    >>> manifest.model_dump_json()
"""

from .build import (
    Build,
    BuildDetails,
    BuildTypeDetails,
    ChangeDetail,
    ChangeFile,
    ChangeList,
    Issue,
    ProjectRef,
)
from .issues import ExternalIssueDetails
from .manifest import ChangeManifest, LogEntry, Status
from .packages import (
    NuGetPackageChange,
    NuGetPackageChangeType,
    PackageBuildMapping,
    PackageDetails,
)

__all__ = [
    "Build",
    "BuildDetails",
    "BuildTypeDetails",
    "ChangeDetail",
    "ChangeFile",
    "ChangeList",
    "ChangeManifest",
    "ExternalIssueDetails",
    "Issue",
    "LogEntry",
    "NuGetPackageChange",
    "NuGetPackageChangeType",
    "PackageBuildMapping",
    "PackageDetails",
    "ProjectRef",
    "Status",
]
