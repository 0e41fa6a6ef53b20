"""Build server entity models.

These mirror the TeamCity REST resources the resolver consumes. Field
aliases match the JSON attribute names so payloads validate directly.
"""

from pydantic import BaseModel, ConfigDict, Field

_ENTITY_CONFIG = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)


class ProjectRef(BaseModel):
    """Project that owns a build configuration."""

    model_config = _ENTITY_CONFIG

    id: str = ""
    name: str = ""


class BuildTypeDetails(BaseModel):
    """A build configuration (build type) on the build server.

    An instance with every field blank is used where no build type applies,
    e.g. the reference snapshot of a manifest created without one.
    """

    model_config = _ENTITY_CONFIG

    id: str = Field(default="", description="Build type identifier")
    name: str = Field(default="", description="Build type display name")
    description: str = Field(default="", description="Build type description")
    project: ProjectRef = Field(default_factory=ProjectRef, description="Owning project")
    web_url: str = Field(default="", alias="webUrl", description="Link to the build type page")


class Build(BaseModel):
    """One execution of a build type."""

    model_config = _ENTITY_CONFIG

    id: str = Field(description="Unique build identifier")
    number: str = Field(default="", description="Display build number")
    build_type_id: str = Field(default="", alias="buildTypeId", description="Owning build type")
    status: str = Field(default="", description="SUCCESS, FAILURE or UNKNOWN")
    state: str = Field(default="", description="queued, running or finished")
    href: str = ""


class BuildDetails(Build):
    """A build with its timing and status text."""

    status_text: str = Field(default="", alias="statusText")
    start_date: str = Field(default="", alias="startDate")
    finish_date: str = Field(default="", alias="finishDate")


class ChangeFile(BaseModel):
    """A file touched by a change."""

    model_config = _ENTITY_CONFIG

    file: str = ""
    relative_file: str = Field(default="", alias="relative-file")
    change_type: str = Field(default="", alias="changeType")


class ChangeDetail(BaseModel):
    """A single source control change (commit)."""

    model_config = _ENTITY_CONFIG

    id: str
    version: str = Field(default="", description="VCS revision")
    username: str = Field(default="", description="Change author")
    comment: str = Field(default="", description="Commit message")
    date: str = ""
    web_url: str = Field(default="", alias="webUrl")
    files: list[ChangeFile] = Field(default_factory=list)


class ChangeList(BaseModel):
    """Ordered change identifiers associated with a build."""

    model_config = _ENTITY_CONFIG

    build_id: str
    change_ids: list[str] = Field(default_factory=list)


class Issue(BaseModel):
    """A raw issue reference, before enrichment."""

    model_config = _ENTITY_CONFIG

    id: str
    url: str = ""
