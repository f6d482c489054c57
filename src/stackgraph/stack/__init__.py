"""stackgraph.stack — YAML stack documents."""

from stackgraph.stack.engine import StackError, load_stack, render_stack
from stackgraph.stack.merger import apply_set_to_stack, merge_stack_files
from stackgraph.stack.parser import StackParseError, StackSpec, parse_stack_dict, parse_stack_file

__all__ = [
    "parse_stack_file",
    "parse_stack_dict",
    "StackSpec",
    "StackParseError",
    "merge_stack_files",
    "apply_set_to_stack",
    "load_stack",
    "render_stack",
    "StackError",
]
