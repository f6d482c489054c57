"""stackgraph.cli.graph_cmd — stackgraph graph command."""

import click

from stackgraph.cli.synth import build_template


@click.command("graph")
@click.argument("topology_name", required=False, default=None)
@click.option("-f", "--values", "value_files", multiple=True,
              help="Values or stack file (multiple allowed)")
@click.option("--set", "set_args", multiple=True,
              help="Value override (key=value)")
def graph_cmd(topology_name, value_files, set_args):
    """Show resources in resolution order with their dependencies."""
    graph = build_template(topology_name, value_files, set_args).graph

    click.echo(f"Stack: {graph.name} ({len(graph)} resources)")
    width = max((len(lid) for lid in graph.order), default=0)
    for logical_id in graph.order:
        node = graph[logical_id]
        deps = ", ".join(node.dependencies) or "-"
        click.echo(f"  {logical_id:<{width}}  {node.kind.value:<28} ← {deps}")

    if graph.outputs:
        click.echo("\nOutputs:")
        for name in graph.outputs:
            click.echo(f"  {name}")
