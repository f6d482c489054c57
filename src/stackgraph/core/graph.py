"""
stackgraph.core.graph — Resolved resource graph.

Produced once by the builder and never mutated afterwards:
mappings are read-only proxies and lists are tuples all the way
down.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from stackgraph.core.kinds import ResourceKind
from stackgraph.core.refs import Intrinsic, Join


def freeze(value: Any) -> Any:
    """Deep read-only copy of a property value."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, Join):
        return Join(tuple(freeze(p) for p in value.parts))
    if isinstance(value, Intrinsic):
        return Intrinsic(value.function, freeze(value.args))
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen value."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    if isinstance(value, Join):
        return Join(tuple(thaw(p) for p in value.parts))
    if isinstance(value, Intrinsic):
        return Intrinsic(value.function, thaw(value.args))
    return value


@dataclass(frozen=True, eq=False)
class ResourceNode:
    logical_id: str
    kind: ResourceKind
    properties: Mapping[str, Any]
    dependencies: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()
    deletion_policy: str | None = None

    @property
    def cfn_type(self) -> str:
        return self.kind.schema.cfn_type

    def _key(self) -> tuple:
        return (self.logical_id, self.kind, thaw(self.properties),
                self.dependencies, self.depends_on, self.deletion_policy)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ResourceNode):
            return NotImplemented
        return self._key() == other._key()


@dataclass(frozen=True, eq=False)
class Output:
    name: str
    value: Any
    description: str | None = None
    export_name: str | None = None

    def _key(self) -> tuple:
        return (self.name, thaw(self.value), self.description, self.export_name)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Output):
            return NotImplemented
        return self._key() == other._key()


@dataclass(frozen=True, eq=False)
class ResolvedGraph:
    """Assembled stack: nodes in declaration order plus a topological order."""

    name: str
    nodes: Mapping[str, ResourceNode]
    order: tuple[str, ...]
    outputs: Mapping[str, Output]
    context: Mapping[str, Any]
    transforms: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self.nodes.values())

    def __contains__(self, logical_id: object) -> bool:
        return logical_id in self.nodes

    def __getitem__(self, logical_id: str) -> ResourceNode:
        return self.nodes[logical_id]

    def edges(self) -> list[tuple[str, str]]:
        """(consumer, producer) pairs, consumers in declaration order."""
        return [(n.logical_id, dep) for n in self for dep in n.dependencies]

    def dependents(self, logical_id: str) -> list[str]:
        """Nodes that reference ``logical_id``."""
        return [n.logical_id for n in self if logical_id in n.dependencies]

    def _key(self) -> tuple:
        return (self.name, list(self.nodes.items()), self.order,
                list(self.outputs.items()), dict(self.context), self.transforms)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ResolvedGraph):
            return NotImplemented
        return self._key() == other._key()
