"""Init command implementation."""

from pathlib import Path

import typer

from ..config import get_config_path, write_config_template
from ..output import get_output_context


def init(
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Config file to create (default: .buildchanges/config.toml)"
    ),
) -> None:
    """Write a config template for buildchanges."""
    ctx = get_output_context()
    config_path = config or get_config_path(Path.cwd())

    if config_path.exists():
        ctx.print(f"[yellow]Config already exists:[/yellow] {config_path}")
        return

    write_config_template(config_path)
    ctx.success(f"Created config template: {config_path}", {"path": str(config_path)})
    ctx.print("Set teamcity.server_url, then run: buildchanges manifest --build-type <id>")
