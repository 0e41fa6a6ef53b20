"""Manifest command implementation."""

import logging
from pathlib import Path

import typer

from ..config import BuildChangesConfig, ConfigError, get_config_path, load_config
from ..core import DeltaResolver, PackageChangeComparator
from ..errors import MappingCacheError, ResolutionError, TeamCityError
from ..output import get_output_context
from ..services import (
    IssueDetailResolver,
    JiraIssueResolver,
    PackageBuildMappingCache,
    ResponseCache,
    make_client_factory,
)

logger = logging.getLogger(__name__)


def load_settings(config: Path | None, server: str | None = None) -> BuildChangesConfig:
    """Load config and apply a --server override. Exits with code 3 on bad config."""
    ctx = get_output_context()
    try:
        settings = load_config(config or get_config_path(Path.cwd()))
    except ConfigError as e:
        ctx.error(str(e))
        raise typer.Exit(3) from None

    if server:
        settings.teamcity.server_url = server
    if not settings.teamcity.server_url:
        ctx.error("TeamCity server not set (teamcity.server_url or --server)")
        raise typer.Exit(3)
    return settings


def load_mapping_cache(
    settings: BuildChangesConfig, mapping_cache_path: Path | None, recurse: bool
) -> PackageBuildMappingCache | None:
    """Mapping table for the manifest command.

    An explicit path must load. The configured path is only read when
    recursing, and a missing file there means no table.
    """
    if mapping_cache_path is not None:
        return PackageBuildMappingCache.load(mapping_cache_path)
    cache_path = settings.mapping.cache_path
    if not recurse or cache_path is None:
        return None
    if not cache_path.exists():
        logger.warning(
            f"Mapping cache {cache_path} not found (create it with 'buildchanges mapping build')"
        )
        return None
    return PackageBuildMappingCache.load(cache_path)


def build_resolver(
    settings: BuildChangesConfig,
    mapping_cache_path: Path | None = None,
    recurse: bool = False,
) -> DeltaResolver:
    """Wire a DeltaResolver from configuration. The caller closes it."""
    mapping_cache = load_mapping_cache(settings, mapping_cache_path, recurse)

    cache = ResponseCache()
    client_factory = make_client_factory(
        cache,
        username=settings.teamcity.username,
        password=settings.teamcity.password,
        timeout=settings.teamcity.timeout,
    )

    resolvers = []
    if settings.jira.enabled:
        resolvers.append(
            JiraIssueResolver(
                settings.jira.base_url,
                username=settings.jira.username,
                token=settings.jira.token,
                project_keys=settings.jira.project_keys,
                timeout=settings.jira.timeout,
            )
        )

    return DeltaResolver(
        client_factory(settings.teamcity.server_url),
        IssueDetailResolver(resolvers),
        PackageChangeComparator(),
        mapping_cache=mapping_cache,
        client_factory=client_factory,
    )


def manifest(
    build_type: str | None = typer.Option(None, "--build-type", "-b", help="Build type id"),
    project: str | None = typer.Option(None, "--project", "-p", help="Project name"),
    build_name: str | None = typer.Option(None, "--build-name", "-n", help="Build type name"),
    reference: str | None = typer.Option(
        None, "--reference", help="Build type id that carries the commit data"
    ),
    from_version: str | None = typer.Option(
        None, "--from", help="Build number to start after (default: latest successful)"
    ),
    to_version: str | None = typer.Option(
        None, "--to", help="Build number to end with (default: running build)"
    ),
    no_build_system_issues: bool = typer.Option(
        False,
        "--no-build-system-issues",
        help="Derive issues from commit comments instead of asking TeamCity",
    ),
    recurse: bool = typer.Option(
        False, "--recurse", help="Follow modified packages into the builds that produced them"
    ),
    mapping_cache: Path | None = typer.Option(
        None, "--mapping-cache", help="Package build mapping file (overrides config)"
    ),
    server: str | None = typer.Option(None, "--server", "-s", help="TeamCity server URL"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show what changed between two builds of a build type."""
    ctx = get_output_context()

    if not build_type and not (project and build_name):
        ctx.error("Provide --build-type, or both --project and --build-name")
        raise typer.Exit(1)

    settings = load_settings(config, server)
    try:
        resolver = build_resolver(settings, mapping_cache, recurse=recurse)
    except MappingCacheError as e:
        ctx.error(str(e))
        raise typer.Exit(3) from None

    with resolver:
        try:
            if build_type:
                result = resolver.create_manifest_by_build_type(
                    build_type,
                    reference_build=reference,
                    from_version=from_version,
                    to_version=to_version,
                    use_build_system_issues=not no_build_system_issues,
                    recurse=recurse,
                )
            else:
                assert project is not None and build_name is not None
                result = resolver.create_manifest_by_name(
                    project,
                    build_name,
                    reference_build=reference,
                    from_version=from_version,
                    to_version=to_version,
                    use_build_system_issues=not no_build_system_issues,
                    recurse=recurse,
                )
        except ResolutionError as e:
            ctx.error(str(e))
            raise typer.Exit(1) from None
        except TeamCityError as e:
            ctx.error(f"TeamCity error: {e}")
            raise typer.Exit(2) from None
        dependencies = resolver.dependency_manifests

    ctx.manifest(result)
    for dependency in dependencies:
        logger.info(
            f"Dependency {dependency.mapping.build_configuration_id} "
            f"{dependency.from_version} -> {dependency.to_version}: "
            f"{len(dependency.manifest.change_details)} changes"
        )
