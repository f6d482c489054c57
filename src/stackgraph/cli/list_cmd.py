"""stackgraph.cli.list_cmd — stackgraph list command."""

import click

from stackgraph.topology.registry import list_topologies


@click.command("list")
def list_cmd():
    """List registered topologies."""
    available = list_topologies()
    if not available:
        click.echo("No topologies found.")
        return

    click.echo(f"{'NAME':<16} {'VERSION':<10} {'STACK':<20} {'DESCRIPTION'}")
    click.echo("─" * 90)
    for name, cls in sorted(available.items()):
        click.echo(f"{name:<16} {cls.version:<10} {cls.stack_name:<20} {cls.description}")
