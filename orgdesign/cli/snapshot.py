import click
from typing import Optional
from rich.console import Console

from orgdesign.cli.utils import db_path_from, handle_async_command, open_designer, require_organization

console = Console()


@click.group(name='snapshot')
def snapshot_cli():
    """Export and import organization snapshots."""
    pass


@snapshot_cli.command(name="export")
@click.option('--dir', 'directory', type=click.Path(file_okay=False), default='.', show_default=True, help='Target directory.')
@click.option('--filename', help='File name (default: <organization>-<version>.json).')
@click.pass_context
@handle_async_command
async def export_snapshot(ctx, directory: str, filename: Optional[str]) -> None:
    """Exports the organization to a JSON snapshot file."""
    console.print("[bold blue]Exporting Organization[/bold blue]")
    with open_designer(db_path_from(ctx)) as designer:
        require_organization(designer)
        path = await designer.export_to_file(directory, filename)
        version = designer.organization_version
    console.print(f"[green]✅ Exported version {version} to {path}[/green]")


@snapshot_cli.command(name="import")
@click.argument('path', type=click.Path(dir_okay=False))
@click.pass_context
@handle_async_command
async def import_snapshot(ctx, path: str) -> None:
    """Imports an organization from a JSON snapshot file, replacing the current one."""
    console.print(f"[bold blue]Importing Organization from {path}[/bold blue]")
    with open_designer(db_path_from(ctx)) as designer:
        result = await designer.import_from_file(path)
    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if not result.ok:
        console.print(f"[red]❌ {result.error.message}[/red]")
        for issue in result.error.issues:
            console.print(f"[red]  {issue.path}: {issue.message}[/red]")
        raise SystemExit(1)
    organization = result.snapshot.organization
    console.print(
        f"[green]✅ Imported '{organization.name}' ({len(organization.nodes)} nodes, "
        f"{len(result.snapshot.policies)} policies) at version {result.snapshot.metadata.structural_version}[/green]"
    )
