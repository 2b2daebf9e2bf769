import click
import json
from rich.console import Console
from rich.json import JSON
from rich.tree import Tree

from orgdesign.cli.utils import db_path_from, open_designer, report, require_organization
from orgdesign.organization.models import NodeKind
from orgdesign.validation.engine import summarize_errors

console = Console()

_KIND_STYLE = {
    NodeKind.ROOT: "bold magenta",
    NodeKind.UNIT: "cyan",
    NodeKind.ACCOUNT: "green",
}


@click.group(name='org')
def org_cli():
    """Organization lifecycle commands."""
    pass


@org_cli.command()
@click.argument('name')
@click.option('--force', is_flag=True, help='Replace an existing organization.')
@click.pass_context
def create(ctx, name: str, force: bool) -> None:
    """Creates a new organization with its root and default policies."""
    console.print(f"[bold blue]Creating Organization: {name}[/bold blue]")
    with open_designer(db_path_from(ctx)) as designer:
        if designer.state.organization is not None and not force:
            console.print(
                f"[red]Organization '{designer.state.organization.name}' already exists. "
                f"Use --force to replace it.[/red]"
            )
            raise SystemExit(1)
        result = designer.tree.create_organization(name)
        report(result, f"Organization '{name}' created ({designer.state.organization.root_id})")


@org_cli.command()
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.option('--policies/--no-policies', default=True, help='Show directly attached policies.')
@click.pass_context
def show(ctx, json_output: bool, policies: bool) -> None:
    """Shows the organization tree."""
    with open_designer(db_path_from(ctx)) as designer:
        require_organization(designer)
        organization = designer.state.organization
        if json_output:
            console.print(JSON(organization.model_dump_json()))
            return

        def label(node_id: str) -> str:
            node = organization.nodes[node_id]
            text = f"[{_KIND_STYLE[node.kind]}]{node.name}[/] [dim]{node.kind.value} {node.id}[/dim]"
            if policies:
                names = [p.name for p in designer.policies.get_direct_policies(node_id)]
                if names:
                    text += f" [yellow]({', '.join(names)})[/yellow]"
            return text

        tree = Tree(label(organization.root_id))
        stack = [(organization.root_id, tree)]
        while stack:
            node_id, branch = stack.pop()
            for child in designer.tree.get_children(node_id):
                stack.append((child.id, branch.add(label(child.id))))
        console.print(tree)
        console.print(
            f"[cyan]Accounts[/cyan]: {designer.tree.get_account_count()}  "
            f"[cyan]Units[/cyan]: {designer.tree.get_unit_count()}  "
            f"[cyan]Version[/cyan]: {designer.organization_version}"
        )


@org_cli.command()
@click.option('--yes', is_flag=True, help='Do not ask for confirmation.')
@click.pass_context
def clear(ctx, yes: bool) -> None:
    """Clears the organization and the local cache."""
    if not yes:
        click.confirm("This removes the organization and all policies. Continue?", abort=True)
    with open_designer(db_path_from(ctx)) as designer:
        designer.clear_organization()
    console.print("[green]✅ Organization cleared.[/green]")


@org_cli.command()
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_context
def validate(ctx, json_output: bool) -> None:
    """Audits limits, tree integrity and default policies."""
    with open_designer(db_path_from(ctx)) as designer:
        require_organization(designer)
        result = designer.validate()
    if json_output:
        payload = {
            "is_valid": result.is_valid,
            "summary": summarize_errors(result.errors),
            "errors": [error.model_dump(mode="json") for error in result.errors],
            "warnings": result.warnings,
        }
        console.print(JSON(json.dumps(payload)))
        raise SystemExit(0 if result.is_valid else 1)
    console.print("[bold blue]Validating Organization[/bold blue]")
    report(result, "Organization is valid")
