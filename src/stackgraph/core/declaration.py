"""
stackgraph.core.declaration — Resource declarations.

Declarations are the builder's input. Python code collects them
on an explicit StackDefinition; nothing is registered globally::

    stack = StackDefinition("Demo")
    net = stack.add("Net", ResourceKind.NETWORK, {"CidrBlock": "10.0.0.0/16"})
    stack.add("Srv", ResourceKind.COMPUTE, {"SubnetId": net.ref()})

    with stack.gated("enablePeering") as peering:
        peering.add("Peering", ResourceKind.PEERING_CONNECTION, {...})

    graph = stack.assemble({"enablePeering": True})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from stackgraph.core.kinds import ResourceKind
from stackgraph.core.refs import PRIMARY, Ref

DELETION_POLICIES = ("Delete", "Retain", "RetainExceptOnCreate", "Snapshot")


@dataclass(frozen=True)
class Declaration:
    """One provisionable unit, before resolution."""

    logical_id: str
    kind: ResourceKind
    properties: dict[str, Any] = field(default_factory=dict)
    condition: str | None = None
    depends_on: tuple[str, ...] = ()
    deletion_policy: str | None = None

    def ref(self, attribute: str = PRIMARY) -> Ref:
        return Ref(self.logical_id, attribute)


@dataclass(frozen=True)
class OutputDeclaration:
    """A named value exposed after the graph is realized."""

    name: str
    value: Any
    description: str | None = None
    export_name: str | None = None
    condition: str | None = None


class Subgraph:
    """Declarations included only when a context flag is true.

    Inclusion is decided once, when the stack is assembled.
    """

    def __init__(self, gate: str):
        self.gate = gate
        self.declarations: list[Declaration] = []
        self.outputs: list[OutputDeclaration] = []

    def add(self, logical_id: str, kind: ResourceKind | str,
            properties: dict[str, Any] | None = None, **kwargs: Any) -> Declaration:
        decl = _declaration(logical_id, kind, properties, condition=self.gate, **kwargs)
        self.declarations.append(decl)
        return decl

    def output(self, name: str, value: Any, **kwargs: Any) -> OutputDeclaration:
        out = OutputDeclaration(name, value, condition=self.gate, **kwargs)
        self.outputs.append(out)
        return out

    def __iter__(self) -> Iterator[Declaration | OutputDeclaration]:
        yield from self.declarations
        yield from self.outputs

    def __repr__(self) -> str:
        return f"Subgraph(gate={self.gate!r}, declarations={len(self.declarations)})"


class StackDefinition:
    """Ordered collection of declarations, subgraphs and outputs."""

    def __init__(self, name: str, description: str | None = None):
        self.name = name
        self.description = description
        self.items: list[Declaration | OutputDeclaration | Subgraph] = []
        self.transforms: list[str] = []
        self.tags: dict[str, str] = {}

    def add(self, logical_id: str, kind: ResourceKind | str,
            properties: dict[str, Any] | None = None, **kwargs: Any) -> Declaration:
        decl = _declaration(logical_id, kind, properties, **kwargs)
        self.items.append(decl)
        return decl

    def output(self, name: str, value: Any, **kwargs: Any) -> OutputDeclaration:
        out = OutputDeclaration(name, value, **kwargs)
        self.items.append(out)
        return out

    def gated(self, gate: str) -> _GatedBlock:
        """Open a conditional subgraph controlled by context flag ``gate``."""
        sub = Subgraph(gate)
        self.items.append(sub)
        return _GatedBlock(sub)

    def transform(self, name: str) -> None:
        if name not in self.transforms:
            self.transforms.append(name)

    def assemble(self, context: dict[str, Any] | None = None):
        from stackgraph.core.builder import assemble

        return assemble(
            self.items,
            context=context,
            name=self.name,
            tags=self.tags,
            transforms=self.transforms,
        )


class _GatedBlock:
    """``with stack.gated(flag) as sub:`` — yields the Subgraph."""

    def __init__(self, sub: Subgraph):
        self._sub = sub

    def __enter__(self) -> Subgraph:
        return self._sub

    def __exit__(self, *exc: Any) -> bool:
        return False


def _declaration(logical_id: str, kind: ResourceKind | str,
                 properties: dict[str, Any] | None, *,
                 condition: str | None = None,
                 depends_on: list[str] | tuple[str, ...] | None = None,
                 deletion_policy: str | None = None) -> Declaration:
    return Declaration(
        logical_id=logical_id,
        kind=ResourceKind.parse(kind),
        properties=dict(properties or {}),
        condition=condition,
        depends_on=tuple(depends_on or ()),
        deletion_policy=deletion_policy,
    )
