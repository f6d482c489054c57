"""
stackgraph.topology.registry — Topology discovery.

Discovery from two sources:

1. entry_points in the ``stackgraph.topologies`` group (the built-in
   topologies are declared there by this package; third-party
   packages can add their own)
2. Runtime register (for testing/dev)

The built-in topologies are registered even when the package is
not installed (running from a source checkout).
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stackgraph.topology.base import Topology

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "stackgraph.topologies"

# Runtime registry
_registry: dict[str, type[Topology]] = {}
_discovered = False


def _discover_topologies() -> None:
    """Discover topologies from entry_points.

    A broken plugin is logged and skipped, it never hides the
    other topologies.
    """
    global _discovered
    if _discovered:
        return
    _discovered = True

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name in _registry:
            continue
        try:
            _registry[ep.name] = ep.load()
        except (ImportError, AttributeError) as e:
            LOG.warning("Cannot load topology '%s' (%s): %s", ep.name, ep.value, e)

    # built-ins stay available without an installed distribution
    from stackgraph.topologies import BUILTIN

    for cls in BUILTIN:
        _registry.setdefault(cls.name, cls)


def register_topology(topology_cls: type[Topology]) -> None:
    """Manually register a topology class (for testing/dev)."""
    _registry[topology_cls.name] = topology_cls


def get_topology(name: str) -> Topology | None:
    """Create an instance from a topology name."""
    _discover_topologies()
    cls = _registry.get(name)
    if cls is None:
        return None
    return cls()


def get_topology_class(name: str) -> type[Topology] | None:
    """Get topology class by name."""
    _discover_topologies()
    return _registry.get(name)


def list_topologies() -> dict[str, type[Topology]]:
    """Return all registered topologies."""
    _discover_topologies()
    return dict(_registry)


def reset_registry() -> None:
    """Reset the registry. For testing."""
    global _discovered
    _registry.clear()
    _discovered = False
