import click
from orgdesign.utils.logging import setup_logging

from .org import org_cli
from .node import node_cli
from .policy import policy_cli
from .snapshot import snapshot_cli


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.option('--db', 'db_path', type=click.Path(dir_okay=False), help='Local cache database (default: ORGDESIGN_CACHE_DB_PATH).')
@click.pass_context
def app(ctx, verbose, quiet, db_path):
    """
    orgdesign organization and policy designer CLI.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet
    ctx.obj['DB_PATH'] = db_path

    if verbose:
        setup_logging(level="DEBUG")
    elif quiet:
        setup_logging(level="ERROR")
    else:
        setup_logging()

# Add subcommands
app.add_command(org_cli, name='org')
app.add_command(node_cli, name='node')
app.add_command(policy_cli, name='policy')
app.add_command(snapshot_cli, name='snapshot')

if __name__ == '__main__':
    app()
