import click
import json
from typing import Optional
from rich.console import Console
from rich.json import JSON
from rich.table import Table

from orgdesign.cli.utils import (
    db_path_from, fail, open_designer, report, require_organization, resolve_node, resolve_policy
)
from orgdesign.policy.defaults import get_policy_config, is_default_policy
from orgdesign.policy.models import PolicyKind
from orgdesign.validation import engine
from orgdesign.validation.models import OperationResult, ValidationResult

console = Console()

_KIND_CHOICE = click.Choice([kind.value for kind in PolicyKind])


@click.group(name='policy')
def policy_cli():
    """Service and resource control policy commands."""
    pass


@policy_cli.command()
@click.argument('name')
@click.option('--kind', type=_KIND_CHOICE, required=True, help='Policy kind.')
@click.option('--content', help='Policy JSON document.')
@click.option('--file', 'content_file', type=click.Path(exists=True, dir_okay=False), help='Read the policy JSON from a file.')
@click.option('--description', help='Optional description.')
@click.pass_context
def create(ctx, name: str, kind: str, content: Optional[str], content_file: Optional[str], description: Optional[str]) -> None:
    """Creates a policy after validating its name and JSON content."""
    if content and content_file:
        fail("Use either --content or --file, not both.")
    policy_kind = PolicyKind(kind)
    if content_file:
        with open(content_file, encoding="utf-8") as f:
            content = f.read()
    if content is None:
        content = get_policy_config(policy_kind).default_content

    with open_designer(db_path_from(ctx)) as designer:
        require_organization(designer)
        state = designer.state
        checks = [
            engine.validate_policy_name(state, name, policy_kind),
            engine.validate_policy_content(state, content),
        ]
        errors = [error for check in checks for error in check.errors]
        if errors:
            report(ValidationResult.from_errors(errors), "")
        policy_id = designer.policies.create_policy(name.strip(), policy_kind, content, description)
        report(OperationResult.accepted(subject_id=policy_id), f"Created {policy_kind.value.upper()} '{name.strip()}' ({policy_id})")


@policy_cli.command(name="list")
@click.option('--kind', type=_KIND_CHOICE, help='Only list one kind.')
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_context
def list_policies(ctx, kind: Optional[str], json_output: bool) -> None:
    """Lists policies and how many nodes each is attached to."""
    with open_designer(db_path_from(ctx)) as designer:
        policies = (
            designer.policies.get_policies_by_kind(PolicyKind(kind))
            if kind else list(designer.state.policies.values())
        )
        counts = {p.id: sum(1 for a in designer.state.attachments if a.policy_id == p.id) for p in policies}

    if json_output:
        data = [
            {"id": p.id, "name": p.name, "kind": p.kind.value, "attachments": counts[p.id], "default": is_default_policy(p.id)}
            for p in policies
        ]
        console.print(JSON(json.dumps(data)))
        return

    table = Table(title="Policies")
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("ID", style="dim")
    table.add_column("Attached", justify="right")
    for p in sorted(policies, key=lambda p: (p.kind.value, p.name.lower())):
        name = f"{p.name} [yellow](default)[/yellow]" if is_default_policy(p.id) else p.name
        table.add_row(p.kind.value.upper(), name, p.id, str(counts[p.id]))
    console.print(table)


@policy_cli.command()
@click.argument('policy_ref')
@click.pass_context
def show(ctx, policy_ref: str) -> None:
    """Shows a policy document."""
    with open_designer(db_path_from(ctx)) as designer:
        policy = resolve_policy(designer, policy_ref)
    console.print(f"[bold blue]{policy.name}[/bold blue] [dim]{policy.kind.value} {policy.id}[/dim]")
    if policy.description:
        console.print(policy.description)
    try:
        console.print(JSON(policy.content))
    except ValueError:
        console.print(policy.content)


@policy_cli.command()
@click.argument('policy_ref')
@click.argument('node_ref')
@click.pass_context
def attach(ctx, policy_ref: str, node_ref: str) -> None:
    """Attaches a policy to a node."""
    with open_designer(db_path_from(ctx)) as designer:
        policy = resolve_policy(designer, policy_ref)
        node = resolve_node(designer, node_ref)
        report(designer.policies.attach_policy(node.id, policy.id), f"Attached '{policy.name}' to '{node.name}'")


@policy_cli.command()
@click.argument('policy_ref')
@click.argument('node_ref')
@click.pass_context
def detach(ctx, policy_ref: str, node_ref: str) -> None:
    """Detaches a policy from a node."""
    with open_designer(db_path_from(ctx)) as designer:
        policy = resolve_policy(designer, policy_ref)
        node = resolve_node(designer, node_ref)
        report(designer.policies.detach_policy(node.id, policy.id), f"Detached '{policy.name}' from '{node.name}'")


@policy_cli.command()
@click.argument('node_ref')
@click.option('--kind', type=_KIND_CHOICE, help='Only show one kind.')
@click.pass_context
def inherited(ctx, node_ref: str, kind: Optional[str]) -> None:
    """Shows direct, inherited and effective policies of a node."""
    with open_designer(db_path_from(ctx)) as designer:
        node = resolve_node(designer, node_ref)
        view = designer.policies.get_inherited_view(node.id)
        names = {n.id: n.name for n in designer.state.organization.nodes.values()}

    kinds = [PolicyKind(kind)] if kind else list(PolicyKind)
    console.print(f"[bold blue]Policies for '{node.name}'[/bold blue]")
    for policy_kind in kinds:
        console.print(f"[bold]{get_policy_config(policy_kind).plural}[/bold]")
        for policy in view.direct_of(policy_kind):
            console.print(f"  [green]direct[/green]    {policy.name}")
        for item in view.inherited_of(policy_kind):
            if any(p.id == item.policy.id for p in view.direct_of(policy_kind)):
                continue
            console.print(f"  [cyan]inherited[/cyan] {item.policy.name} [dim]from {names.get(item.inherited_from, item.inherited_from)}[/dim]")
        console.print(f"  effective: {len(view.effective_of(policy_kind))}")


@policy_cli.command()
@click.argument('policy_ref')
@click.pass_context
def delete(ctx, policy_ref: str) -> None:
    """Deletes a policy and all of its attachments."""
    with open_designer(db_path_from(ctx)) as designer:
        policy = resolve_policy(designer, policy_ref)
        report(designer.policies.delete_policy(policy.id), f"Deleted policy '{policy.name}'")
