"""Package to build configuration mapping table.

The table is loaded once (from a JSON file written by ``buildchanges
mapping build``) and is read-only while manifests are resolved.
"""

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from ..errors import MappingCacheError, TeamCityError
from ..models import Build, BuildTypeDetails, PackageBuildMapping

logger = logging.getLogger(__name__)

NUPKG_PATTERN = re.compile(
    r"^(?P<id>.+?)\.(?P<version>\d+(?:\.\d+)*(?:-[0-9A-Za-z.-]+)?)\.nupkg$", re.IGNORECASE
)

_MAPPINGS_ADAPTER = TypeAdapter(list[PackageBuildMapping])


class MappingSource(Protocol):
    """Build server operations needed to scan for published packages."""

    @property
    def server_url(self) -> str: ...

    def list_build_types(self) -> list[BuildTypeDetails]: ...

    def get_latest_successful_build(self, build_type_id: str) -> Build | None: ...

    def get_artifact_names(self, build_id: str) -> list[str]: ...


def package_id_from_artifact(name: str) -> str | None:
    """Package id of a ``.nupkg`` artifact name, or None if it is not a package."""
    if name.lower().endswith(".symbols.nupkg"):
        return None
    match = NUPKG_PATTERN.match(name)
    return match.group("id") if match else None


class PackageBuildMappingCache:
    """Maps package ids to the build configurations known to produce them."""

    def __init__(self, mappings: Iterable[PackageBuildMapping] = ()) -> None:
        self._mappings = tuple(mappings)

    @property
    def package_build_mappings(self) -> tuple[PackageBuildMapping, ...]:
        return self._mappings

    def find(self, package_id: str) -> list[PackageBuildMapping]:
        """Mappings whose package id matches, ignoring case."""
        wanted = package_id.casefold()
        return [m for m in self._mappings if m.package_id.casefold() == wanted]

    def __len__(self) -> int:
        return len(self._mappings)

    @classmethod
    def load(cls, path: Path) -> "PackageBuildMappingCache":
        """Load mappings from a JSON file.

        Raises:
            MappingCacheError: If the file is missing or not a valid mapping list
        """
        try:
            content = path.read_bytes()
        except OSError as e:
            raise MappingCacheError(f"Cannot read mapping cache {path}: {e}") from e
        try:
            mappings = _MAPPINGS_ADAPTER.validate_json(content)
        except ValidationError as e:
            raise MappingCacheError(f"Invalid mapping cache {path}: {e}") from e
        logger.debug(f"Loaded {len(mappings)} package build mappings from {path}")
        return cls(mappings)

    def save(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_MAPPINGS_ADAPTER.dump_json(list(self._mappings), indent=2))
        return path

    @classmethod
    def build_from_servers(cls, sources: Iterable[MappingSource]) -> "PackageBuildMappingCache":
        """Scan servers for build types that publish NuGet packages.

        Each build type's latest successful build is inspected; every
        ``.nupkg`` artifact it published becomes a mapping. Build types that
        cannot be inspected are skipped with a warning.
        """
        mappings: list[PackageBuildMapping] = []
        seen: set[tuple[str, str, str]] = set()
        for source in sources:
            build_types = source.list_build_types()
            logger.info(f"Scanning {len(build_types)} build types on {source.server_url}")
            for build_type in build_types:
                try:
                    build = source.get_latest_successful_build(build_type.id)
                    names = source.get_artifact_names(build.id) if build else []
                except TeamCityError as e:
                    logger.warning(f"Skipping {build_type.id}: {e}")
                    continue

                for name in names:
                    package_id = package_id_from_artifact(name)
                    if package_id is None:
                        continue
                    key = (package_id.casefold(), build_type.id, source.server_url)
                    if key in seen:
                        continue
                    seen.add(key)
                    mappings.append(
                        PackageBuildMapping(
                            package_id=package_id,
                            build_configuration_id=build_type.id,
                            build_configuration_name=build_type.name,
                            project=build_type.project.name,
                            server_url=source.server_url,
                        )
                    )
        return cls(mappings)
