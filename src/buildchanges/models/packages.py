"""NuGet package dependency models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PackageDetails(BaseModel):
    """One versioned package dependency of a build."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str


class NuGetPackageChangeType(str, Enum):
    """How a package dependency differs between two builds."""

    ADDED = "Added"
    REMOVED = "Removed"
    MODIFIED = "Modified"
    UNCHANGED = "Unchanged"


class NuGetPackageChange(BaseModel):
    """Delta of a single package between two builds.

    Hashable so that changes can be grouped and used as mapping keys.
    """

    model_config = ConfigDict(frozen=True)

    package_id: str
    old_version: str = ""
    new_version: str = ""
    type: NuGetPackageChangeType

    @property
    def version_pair(self) -> tuple[str, str]:
        return (self.old_version, self.new_version)


class PackageBuildMapping(BaseModel):
    """Records which build configuration emits a package.

    After grouping, ``package_id`` holds the version range key
    ("<old> - <new>") of the changes resolved against this mapping.
    """

    model_config = ConfigDict(frozen=True)

    package_id: str = Field(description="Package identifier or version range key")
    build_configuration_id: str
    build_configuration_name: str = ""
    project: str = Field(default="", description="Owning project name")
    server_url: str = Field(default="", description="Build server that hosts the configuration")
