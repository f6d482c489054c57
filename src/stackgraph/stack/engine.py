"""
stackgraph.stack.engine — Stack document engine.

Merges the stack file with its overlays, applies --set, parses the
result and assembles it into a Template.

    stackgraph synth -f stack.yaml -f prod.yaml --set context.enablePeering=true
"""

from __future__ import annotations

import logging
from pathlib import Path

from stackgraph.core.errors import AssemblyError
from stackgraph.core.template import Template
from stackgraph.stack.merger import apply_set_to_stack, merge_stack_files
from stackgraph.stack.parser import StackParseError, StackSpec, parse_stack_dict

LOG = logging.getLogger(__name__)


class StackError(Exception):
    """Stack render error."""
    pass


def load_stack(
    file_paths: list[str | Path],
    set_args: list[str] | None = None,
) -> StackSpec:
    """Merge and parse stack files without assembling them."""
    try:
        merged_data = merge_stack_files(file_paths)
        merged_data = apply_set_to_stack(merged_data, set_args or [])
    except ValueError as e:
        raise StackError(str(e)) from e

    try:
        return parse_stack_dict(merged_data)
    except StackParseError as e:
        raise StackError(f"Stack parse error: {e}") from e


def render_stack(
    file_paths: list[str | Path],
    set_args: list[str] | None = None,
    stack_name: str | None = None,
) -> Template:
    """Render stack files.

    Args:
        file_paths: stack.yaml + overlay files
        set_args: --set context.X=Y / tags.X=Y list
        stack_name: stack name override

    Returns:
        Template of the assembled graph
    """
    try:
        spec = load_stack(file_paths, set_args)
    except ValueError as e:
        raise StackError(str(e)) from e

    stack = spec.definition()
    if stack_name:
        stack.name = stack_name

    LOG.debug("Assembling stack %s from %s", stack.name, [str(p) for p in file_paths])
    try:
        graph = stack.assemble(spec.context)
    except AssemblyError as e:
        raise StackError(f"{e.kind}: {e}") from e

    return Template(graph, description=stack.description)
