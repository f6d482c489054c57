"""stackgraph.core — Declarations, graph assembly and serialization."""

from stackgraph.core.builder import assemble, flag_enabled
from stackgraph.core.declaration import (
    Declaration,
    OutputDeclaration,
    StackDefinition,
    Subgraph,
)
from stackgraph.core.errors import (
    AssemblyError,
    CyclicReferenceError,
    DuplicateIdError,
    GatedReferenceError,
    InvalidPropertyError,
    UnknownReferenceError,
)
from stackgraph.core.graph import Output, ResolvedGraph, ResourceNode
from stackgraph.core.kinds import ResourceKind
from stackgraph.core.refs import ContextRef, Intrinsic, Join, Ref
from stackgraph.core.template import Template

__all__ = [
    "assemble",
    "flag_enabled",
    "Declaration",
    "OutputDeclaration",
    "StackDefinition",
    "Subgraph",
    "AssemblyError",
    "CyclicReferenceError",
    "DuplicateIdError",
    "GatedReferenceError",
    "InvalidPropertyError",
    "UnknownReferenceError",
    "Output",
    "ResolvedGraph",
    "ResourceNode",
    "ResourceKind",
    "ContextRef",
    "Intrinsic",
    "Join",
    "Ref",
    "Template",
]
