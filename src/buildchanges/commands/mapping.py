"""Mapping commands: build the package to build configuration table."""

from pathlib import Path

import typer

from ..errors import TeamCityError
from ..output import get_output_context
from ..services import PackageBuildMappingCache, ResponseCache, TeamCityClient
from .manifest import load_settings

mapping_app = typer.Typer(help="Package to build mapping commands")


@mapping_app.command("build")
def mapping_build(
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Where to write the mapping file (default: config cache_path)"
    ),
    servers: list[str] = typer.Option(
        [], "--server", "-s", help="Server to scan (repeatable; default: configured servers)"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Scan build servers for build types that publish NuGet packages."""
    ctx = get_output_context()
    settings = load_settings(config, servers[0] if servers else None)

    target = output or settings.mapping.cache_path
    if target is None:
        ctx.error("No output file (use --output or set mapping.cache_path)")
        raise typer.Exit(1)

    urls = list(servers) or [settings.teamcity.server_url, *settings.mapping.servers]
    cache = ResponseCache()
    clients = [
        TeamCityClient(
            url,
            cache=cache,
            username=settings.teamcity.username,
            password=settings.teamcity.password,
            timeout=settings.teamcity.timeout,
        )
        for url in dict.fromkeys(urls)
    ]

    try:
        mapping_cache = PackageBuildMappingCache.build_from_servers(clients)
    except TeamCityError as e:
        ctx.error(f"TeamCity error: {e}")
        raise typer.Exit(2) from None
    finally:
        for client in clients:
            client.close()

    mapping_cache.save(target)
    ctx.success(
        f"Wrote {len(mapping_cache)} package mappings to {target}",
        {"path": str(target), "count": len(mapping_cache)},
    )
