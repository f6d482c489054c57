"""
stackgraph.cli — CLI entry point.

Commands:
  stackgraph synth [topology] [flags]   — Template render (JSON or YAML)
  stackgraph graph [topology] [flags]   — Resolution order and dependencies
  stackgraph list                       — List registered topologies
  stackgraph inspect <topology>         — Topology details
"""

import logging

import click

from stackgraph.cli.graph_cmd import graph_cmd
from stackgraph.cli.inspect_cmd import inspect_cmd
from stackgraph.cli.list_cmd import list_cmd
from stackgraph.cli.synth import synth_cmd


@click.group()
@click.version_option(package_name="stackgraph")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr")
def main(verbose):
    """stackgraph — Declarative AWS stack graphs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


main.add_command(synth_cmd, "synth")
main.add_command(graph_cmd, "graph")
main.add_command(list_cmd, "list")
main.add_command(inspect_cmd, "inspect")
