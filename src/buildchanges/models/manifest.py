"""Change manifest model.

A ChangeManifest is the result of one delta resolution: the commits,
issues and package changes between two builds of a build type, plus a
generation log of what happened while it was computed.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .build import BuildTypeDetails, ChangeDetail
from .issues import ExternalIssueDetails
from .packages import NuGetPackageChange


class Status(str, Enum):
    """Severity tag of a generation log entry."""

    OK = "Ok"
    WARNING = "Warning"
    ERROR = "Error"


class LogEntry(BaseModel):
    """One timestamped generation log entry."""

    timestamp: datetime = Field(default_factory=datetime.now)
    status: Status = Status.OK
    message: str


class ChangeManifest(BaseModel):
    """Aggregated changes between two builds of a build type.

    Attributes:
        change_details: Source control changes in the build range, in build order.
        issue_details: Enriched issues associated with the range.
        nuget_package_changes: Package dependency deltas between the two builds.
        from_version: Build number the range starts after.
        to_version: Build number the range ends with.
        build_configuration: Snapshot of the resolved build type.
        reference_build_configuration: Snapshot of the reference build type, or
            an empty BuildTypeDetails when none was given.
        generated: When the manifest data was populated.
        generation_log: Append-only log, ordered by emission time.
        generation_status: Worst status recorded in the log.
    """

    change_details: list[ChangeDetail] = Field(default_factory=list)
    issue_details: list[ExternalIssueDetails] = Field(default_factory=list)
    nuget_package_changes: list[NuGetPackageChange] = Field(default_factory=list)
    from_version: str = ""
    to_version: str = ""
    build_configuration: BuildTypeDetails = Field(default_factory=BuildTypeDetails)
    reference_build_configuration: BuildTypeDetails = Field(default_factory=BuildTypeDetails)
    generated: datetime | None = None
    generation_log: list[LogEntry] = Field(default_factory=list)
    generation_status: Status = Status.OK

    def log(self, status: Status, message: str) -> LogEntry:
        """Append a log entry and escalate the generation status."""
        entry = LogEntry(status=status, message=message)
        self.generation_log.append(entry)
        if _SEVERITY[status] > _SEVERITY[self.generation_status]:
            self.generation_status = status
        return entry

    @property
    def warnings(self) -> list[LogEntry]:
        return [e for e in self.generation_log if e.status is not Status.OK]


_SEVERITY = {Status.OK: 0, Status.WARNING: 1, Status.ERROR: 2}
