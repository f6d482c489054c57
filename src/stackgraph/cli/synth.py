"""
stackgraph.cli.synth — stackgraph synth command.

Two modes:
  stackgraph synth <topology> [-f values.yaml]   — Topology render
  stackgraph synth -f stack.yaml [-f overlay]    — Stack document render
"""

import sys

import click

from stackgraph.core.errors import AssemblyError
from stackgraph.core.template import Template
from stackgraph.topology.registry import get_topology


@click.command("synth")
@click.argument("topology_name", required=False, default=None)
@click.option("-f", "--values", "value_files", multiple=True,
              help="Values or stack file (multiple allowed)")
@click.option("--set", "set_args", multiple=True,
              help="Value override (key=value)")
@click.option("--name", "stack_name", default=None,
              help="Stack name override")
@click.option("--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml",
              show_default=True, help="Template format")
@click.option("-o", "--output", default=None,
              help="Output file (default: stdout)")
def synth_cmd(topology_name, value_files, set_args, stack_name, fmt, output):
    """Render a topology or a stack file as a CloudFormation template."""
    template = build_template(topology_name, value_files, set_args, stack_name)
    text = template.to_json() if fmt == "json" else template.to_yaml()
    _write(text, output)


def build_template(topology_name, value_files, set_args, stack_name=None) -> Template:
    """Topology mode when a name is given, stack-file mode otherwise.

    Errors are reported on stderr and exit with status 1.
    """
    if topology_name is not None:
        return _synth_topology(topology_name, value_files, set_args, stack_name)
    if value_files:
        return _synth_stack(value_files, set_args, stack_name)
    click.echo("Error: give a topology name or a stack file (-f stack.yaml).", err=True)
    sys.exit(1)


def _synth_topology(topology_name, value_files, set_args, stack_name) -> Template:
    topology = get_topology(topology_name)
    if topology is None:
        click.echo(f"Error: Topology '{topology_name}' not found.", err=True)
        click.echo("Run 'stackgraph list' to see available topologies.", err=True)
        sys.exit(1)

    try:
        return topology.synth(
            value_files=list(value_files),
            set_args=list(set_args),
            stack_name=stack_name,
        )
    except AssemblyError as e:
        click.echo(f"Error ({e.kind}): {e}", err=True)
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error rendering topology '{topology_name}': {e}", err=True)
        sys.exit(1)


def _synth_stack(value_files, set_args, stack_name) -> Template:
    from stackgraph.stack.engine import StackError, render_stack

    try:
        return render_stack(
            file_paths=list(value_files),
            set_args=list(set_args),
            stack_name=stack_name,
        )
    except (FileNotFoundError, StackError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _write(text, output):
    if output:
        with open(output, "w") as f:
            f.write(text)
        click.echo(f"Written to {output}", err=True)
    else:
        click.echo(text)
