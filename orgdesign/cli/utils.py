import asyncio
import functools
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import click
from rich.console import Console

from orgdesign.config import settings
from orgdesign.core.designer import OrganizationDesigner
from orgdesign.organization.models import OrganizationNode
from orgdesign.policy.models import Policy
from orgdesign.validation.models import ValidationResult

console = Console()


def handle_async_command(async_func):
    """Decorator to handle async CLI commands."""
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
    return wrapper


@contextmanager
def open_designer(db_path: Optional[str] = None) -> Iterator[OrganizationDesigner]:
    """
    Designer restored from the local cache; the model is saved back on exit.
    """
    config = settings.model_copy(update={"CACHE_DB_PATH": db_path}) if db_path else settings
    designer = OrganizationDesigner.from_settings(config)
    designer.initialize_from_cache()
    try:
        yield designer
    finally:
        designer.save_now()
        designer.close()


def db_path_from(ctx: click.Context) -> Optional[str]:
    obj = ctx.find_root().obj or {}
    return obj.get("DB_PATH")


def fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def require_organization(designer: OrganizationDesigner) -> None:
    if designer.state.organization is None:
        fail("No organization exists. Run 'orgdesign org create NAME' first.")


def report(result: ValidationResult, success: str) -> None:
    """Print a success line or every error of a rejected result and exit 1."""
    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if result.is_valid:
        console.print(f"[green]✅ {success}[/green]")
        return
    for error in result.errors:
        console.print(f"[red]❌ {error.kind.value}: {error.message}[/red]")
    sys.exit(1)


def resolve_node(designer: OrganizationDesigner, ref: str) -> OrganizationNode:
    """Find a node by id, by case-insensitive name, or 'root'."""
    require_organization(designer)
    organization = designer.state.organization
    if ref == "root":
        return organization.root
    node = designer.tree.get_node(ref)
    if node is not None:
        return node
    matches = designer.tree.find_nodes_by_name(ref)
    if not matches:
        fail(f"Node '{ref}' not found.")
    if len(matches) > 1:
        fail(f"Node name '{ref}' is ambiguous; use one of: {', '.join(n.id for n in matches)}")
    return matches[0]


def resolve_policy(designer: OrganizationDesigner, ref: str) -> Policy:
    """Find a policy by id or case-insensitive name."""
    policy = designer.policies.get_policy(ref)
    if policy is not None:
        return policy
    wanted = ref.strip().lower()
    matches = [p for p in designer.state.policies.values() if p.name.strip().lower() == wanted]
    if not matches:
        fail(f"Policy '{ref}' not found.")
    if len(matches) > 1:
        fail(f"Policy name '{ref}' is ambiguous; use one of: {', '.join(p.id for p in matches)}")
    return matches[0]
