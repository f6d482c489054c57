"""
stackgraph — Declarative AWS stack graphs.

Declare resources on a StackDefinition, assemble them into a
resolved, immutable graph and serialize it as a CloudFormation
template.
"""

from stackgraph.core.builder import assemble
from stackgraph.core.declaration import Declaration, OutputDeclaration, StackDefinition, Subgraph
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
from stackgraph.topology.base import Topology

__version__ = "0.1.0"

__all__ = [
    # declarations
    "StackDefinition",
    "Declaration",
    "OutputDeclaration",
    "Subgraph",
    "ResourceKind",
    # references
    "Ref",
    "ContextRef",
    "Join",
    "Intrinsic",
    # assembly
    "assemble",
    "ResolvedGraph",
    "ResourceNode",
    "Output",
    "Template",
    "Topology",
    # errors
    "AssemblyError",
    "DuplicateIdError",
    "UnknownReferenceError",
    "GatedReferenceError",
    "CyclicReferenceError",
    "InvalidPropertyError",
]
