import click
from rich.console import Console

from orgdesign.cli.utils import db_path_from, open_designer, report, resolve_node
from orgdesign.organization.models import NodeKind

console = Console()


@click.group(name='node')
def node_cli():
    """Organizational unit and account commands."""
    pass


@node_cli.command()
@click.argument('name')
@click.option('--parent', 'parent_ref', default='root', show_default=True, help='Parent node id or name.')
@click.option('--kind', type=click.Choice(['unit', 'account']), default='unit', show_default=True)
@click.pass_context
def add(ctx, name: str, parent_ref: str, kind: str) -> None:
    """Adds a unit or account under a parent node."""
    with open_designer(db_path_from(ctx)) as designer:
        parent = resolve_node(designer, parent_ref)
        result = designer.tree.add_node(parent.id, NodeKind(kind), name)
        report(result, f"Added {kind} '{name}' ({result.subject_id}) under '{parent.name}'")


@node_cli.command()
@click.argument('node_ref')
@click.argument('parent_ref')
@click.pass_context
def move(ctx, node_ref: str, parent_ref: str) -> None:
    """Moves a node under a new parent."""
    with open_designer(db_path_from(ctx)) as designer:
        node = resolve_node(designer, node_ref)
        parent = resolve_node(designer, parent_ref)
        report(designer.tree.move_node(node.id, parent.id), f"Moved '{node.name}' under '{parent.name}'")


@node_cli.command()
@click.argument('node_ref')
@click.argument('new_name')
@click.pass_context
def rename(ctx, node_ref: str, new_name: str) -> None:
    """Renames a node."""
    with open_designer(db_path_from(ctx)) as designer:
        node = resolve_node(designer, node_ref)
        report(designer.tree.rename_node(node.id, new_name), f"Renamed '{node.name}' to '{new_name.strip()}'")


@node_cli.command()
@click.argument('node_ref')
@click.pass_context
def delete(ctx, node_ref: str) -> None:
    """Deletes a node and everything below it."""
    with open_designer(db_path_from(ctx)) as designer:
        node = resolve_node(designer, node_ref)
        removed = len(designer.tree.get_descendant_ids(node.id))
        report(designer.tree.delete_node(node.id), f"Deleted '{node.name}' and {removed} descendant(s)")
