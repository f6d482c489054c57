"""stackgraph.topology — Parameterized stacks."""

from stackgraph.topology.base import Topology
from stackgraph.topology.registry import (
    get_topology,
    list_topologies,
    register_topology,
)
from stackgraph.topology.values import deep_merge, merge_all_values

__all__ = [
    "Topology",
    "register_topology",
    "get_topology",
    "list_topologies",
    "deep_merge",
    "merge_all_values",
]
