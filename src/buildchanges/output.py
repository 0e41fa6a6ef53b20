"""Output formatting for the buildchanges CLI."""

import json
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.table import Table

from .models import ChangeManifest, Status

_STATUS_STYLE = {Status.OK: "green", Status.WARNING: "yellow", Status.ERROR: "red"}


@dataclass
class OutputContext:
    """Context for output formatting."""

    console: Console
    json_mode: bool = False

    def print(self, message: str, style: str | None = None) -> None:
        """Print message respecting output mode."""
        if not self.json_mode:
            self.console.print(message, style=style)

    def print_json(self, data: dict[str, Any]) -> None:
        """Print JSON data."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print error in appropriate format."""
        if self.json_mode:
            self.print_json({"error": message, **(data or {})})
        else:
            self.console.print(f"[red]Error: {message}[/red]")

    def success(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print success message in appropriate format."""
        if self.json_mode:
            self.print_json({"success": message, **(data or {})})
        else:
            self.console.print(f"[green]{message}[/green]")

    def manifest(self, manifest: ChangeManifest) -> None:
        """Print a change manifest in the current output mode."""
        if self.json_mode:
            self.print_json(manifest.model_dump(mode="json"))
        else:
            render_manifest(self.console, manifest)


def _first_line(text: str) -> str:
    return text.strip().splitlines()[0] if text.strip() else ""


def render_manifest(console: Console, manifest: ChangeManifest) -> None:
    """Render a manifest as rich text tables."""
    config = manifest.build_configuration
    title = config.name or config.id or "Build"
    if config.project.name:
        title = f"{config.project.name} / {title}"
    console.print(f"[bold]{title}[/bold]: {manifest.from_version} -> {manifest.to_version}")
    if manifest.reference_build_configuration.id:
        console.print(f"Reference build: {manifest.reference_build_configuration.id}")
    if manifest.generated:
        console.print(f"Generated: {manifest.generated.strftime('%Y-%m-%d %H:%M:%S')}")

    if manifest.change_details:
        table = Table(title=f"Changes ({len(manifest.change_details)})")
        table.add_column("Version")
        table.add_column("Author")
        table.add_column("Comment")
        table.add_column("Files", justify="right")
        for change in manifest.change_details:
            table.add_row(
                change.version[:10],
                change.username,
                _first_line(change.comment),
                str(len(change.files)),
            )
        console.print(table)

    if manifest.issue_details:
        table = Table(title=f"Issues ({len(manifest.issue_details)})")
        table.add_column("Id")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Title")
        for issue in manifest.issue_details:
            table.add_row(issue.id, issue.issue_type, issue.status, issue.title)
        console.print(table)

    if manifest.nuget_package_changes:
        table = Table(title=f"Package changes ({len(manifest.nuget_package_changes)})")
        table.add_column("Package")
        table.add_column("Change")
        table.add_column("Old")
        table.add_column("New")
        for package in manifest.nuget_package_changes:
            table.add_row(
                package.package_id, package.type.value, package.old_version, package.new_version
            )
        console.print(table)

    if manifest.warnings:
        console.print("[bold]Generation log:[/bold]")
        for entry in manifest.warnings:
            style = _STATUS_STYLE[entry.status]
            console.print(f"  [{style}]{entry.status.value}[/{style}] {entry.message}")


# Global output context (set by cli.py main callback)
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context.

    Returns a default OutputContext if not yet initialized by CLI.
    """
    if _ctx is None:
        return OutputContext(Console())
    return _ctx


def set_output_context(ctx: OutputContext) -> None:
    """Set the global output context. Called by CLI main callback."""
    global _ctx
    _ctx = ctx
