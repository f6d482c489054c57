"""stackgraph.cli.inspect_cmd — stackgraph inspect command."""

import sys

import click
import yaml

from stackgraph.topology.registry import get_topology, list_topologies


@click.command("inspect")
@click.argument("topology_name")
def inspect_cmd(topology_name):
    """Show topology details."""
    topology = get_topology(topology_name)
    if topology is None:
        click.echo(f"Error: Topology '{topology_name}' not found.", err=True)
        available = sorted(list_topologies())
        if available:
            click.echo(f"Available: {', '.join(available)}", err=True)
        sys.exit(1)

    info = topology.info()

    click.echo(f"Name:        {info['name']}")
    click.echo(f"Version:     {info['version']}")
    click.echo(f"Stack:       {info['stack_name']}")
    if info["description"]:
        click.echo(f"Description: {info['description']}")

    if info["defaults"]:
        click.echo("\nDefault Values:")
        click.echo(yaml.dump(info["defaults"], default_flow_style=False, sort_keys=False))
