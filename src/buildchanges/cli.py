"""buildchanges CLI: change manifests between TeamCity builds."""

import typer
from rich.console import Console

from buildchanges import __version__

from .commands import init, manifest, mapping_app
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"buildchanges {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="buildchanges",
    help="Commits, issues and NuGet package changes between two TeamCity builds",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Show debug output (-v)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only show warnings and errors",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Debug logging, including HTTP requests",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
) -> None:
    """buildchanges - what changed between two builds."""
    configure_logging(verbosity=verbose, quiet=quiet, no_color=no_color, debug=debug)
    console = Console(no_color=no_color, highlight=False)
    set_output_context(OutputContext(console=console, json_mode=json_output))


app.command()(init)
app.command()(manifest)
app.add_typer(mapping_app, name="mapping")


if __name__ == "__main__":
    app()
