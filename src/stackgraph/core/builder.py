"""
stackgraph.core.builder — Stack graph assembly.

One synchronous pass from declarations to a ResolvedGraph:

  1. flatten declarations / subgraphs / outputs, reject duplicate ids
  2. evaluate every subgraph gate once against the context
  3. reject references that cross into a subgraph from outside it
  4. prune disabled subgraphs
  5. depth-first resolution (visited + in-progress sets → cycles)
  6. validate properties, merge stack tags
  7. resolve outputs

Nothing is written, fetched or randomized here; assembling the same
input twice yields equal graphs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Iterable

from stackgraph.core.declaration import (
    DELETION_POLICIES,
    Declaration,
    OutputDeclaration,
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
from stackgraph.core.graph import Output, ResolvedGraph, ResourceNode, freeze
from stackgraph.core.kinds import TAGS_MAP, TAGS_PROPAGATING, ResourceKind
from stackgraph.core.refs import (
    PRIMARY,
    ContextRef,
    Intrinsic,
    Join,
    Ref,
    interpolate,
    iter_refs,
    parse_marker,
)
from stackgraph.core.validate import PropertyViolation, check_properties, is_literal

LOG = logging.getLogger(__name__)

_LOGICAL_ID = re.compile(r"^[A-Za-z0-9]+$")
_TRUTHY = frozenset({"true", "1", "yes", "on"})


def assemble(
    items: Iterable[Declaration | OutputDeclaration | Subgraph],
    context: dict[str, Any] | None = None,
    name: str = "Stack",
    tags: dict[str, Any] | None = None,
    transforms: Iterable[str] = (),
) -> ResolvedGraph:
    """Assemble declarations into a resolved, immutable graph.

    Args:
        items: Declarations, OutputDeclarations and Subgraphs, in order
        context: Assembly-time flags (read only)
        name: Stack name
        tags: Tags merged into every taggable resource
        transforms: Template transforms (e.g. AWS::SecretsManager-2020-07-23)

    Raises:
        DuplicateIdError, UnknownReferenceError, GatedReferenceError,
        CyclicReferenceError, InvalidPropertyError
    """
    ctx = dict(context or {})
    declarations, outputs = _flatten(items)
    _check_ids(declarations, outputs)

    prepared = {d.logical_id: _prepare(d.properties) for d in declarations}
    prepared_outputs = {o.name: _prepare(o.value) for o in outputs}

    gates = _evaluate_gates(declarations, outputs, ctx)
    _check_gating(declarations, outputs, prepared, prepared_outputs)

    selected = [d for d in declarations if _enabled(d.condition, gates)]
    pruned = len(declarations) - len(selected)
    if pruned:
        LOG.debug("Stack %s: %d declaration(s) pruned by disabled gates", name, pruned)

    resolver = _Resolver(
        {d.logical_id: d for d in selected},
        prepared,
        ctx,
        {str(k): str(v) for k, v in (tags or {}).items()},
    )
    for decl in selected:
        resolver.visit(decl.logical_id)

    resolved_outputs: dict[str, Output] = {}
    for out in outputs:
        if not _enabled(out.condition, gates):
            continue
        value = resolver.resolve_value(prepared_outputs[out.name], owner=out.name)
        resolved_outputs[out.name] = Output(
            name=out.name,
            value=freeze(value),
            description=out.description,
            export_name=out.export_name,
        )

    nodes = {d.logical_id: resolver.nodes[d.logical_id] for d in selected}
    LOG.debug("Stack %s assembled: %d node(s), %d output(s)",
              name, len(nodes), len(resolved_outputs))

    return ResolvedGraph(
        name=name,
        nodes=MappingProxyType(nodes),
        order=tuple(resolver.order),
        outputs=MappingProxyType(resolved_outputs),
        context=MappingProxyType(ctx),
        transforms=tuple(transforms),
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PRE-RESOLUTION CHECKS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _flatten(
    items: Iterable[Declaration | OutputDeclaration | Subgraph],
) -> tuple[list[Declaration], list[OutputDeclaration]]:
    declarations: list[Declaration] = []
    outputs: list[OutputDeclaration] = []

    def take(item: Any) -> None:
        if isinstance(item, Declaration):
            if not isinstance(item.kind, ResourceKind):
                try:
                    item = replace(item, kind=ResourceKind.parse(item.kind))
                except InvalidPropertyError as e:
                    raise InvalidPropertyError(str(e), item.logical_id, prop="type") from e
            declarations.append(item)
        elif isinstance(item, OutputDeclaration):
            outputs.append(item)
        elif isinstance(item, Subgraph):
            for member in item:
                take(member)
        else:
            raise TypeError(f"Cannot assemble {type(item).__name__}: {item!r}")

    for item in items:
        take(item)
    return declarations, outputs


def _check_ids(declarations: list[Declaration], outputs: list[OutputDeclaration]) -> None:
    seen: set[str] = set()
    for decl in declarations:
        lid = decl.logical_id
        if not isinstance(lid, str) or not _LOGICAL_ID.match(lid):
            raise InvalidPropertyError(
                f"Invalid logical id {lid!r}: only letters and digits are allowed",
                logical_id=str(lid), prop="logicalId",
            )
        if lid in seen:
            raise DuplicateIdError(f"Duplicate logical id: '{lid}'", logical_id=lid)
        seen.add(lid)
        if decl.deletion_policy is not None and decl.deletion_policy not in DELETION_POLICIES:
            raise InvalidPropertyError(
                f"'{lid}': DeletionPolicy {decl.deletion_policy!r} is not one of: "
                f"{', '.join(DELETION_POLICIES)}",
                logical_id=lid, prop="DeletionPolicy",
            )

    seen_outputs: set[str] = set()
    for out in outputs:
        if not isinstance(out.name, str) or not _LOGICAL_ID.match(out.name):
            raise InvalidPropertyError(
                f"Invalid output name {out.name!r}: only letters and digits are allowed",
                logical_id=str(out.name), prop="name",
            )
        if out.name in seen_outputs:
            raise DuplicateIdError(f"Duplicate output name: '{out.name}'", logical_id=out.name)
        seen_outputs.add(out.name)


def _evaluate_gates(declarations: list[Declaration], outputs: list[OutputDeclaration],
                    ctx: dict[str, Any]) -> dict[str, bool]:
    """Decide every gate once. Unknown flags are an error, not 'false'."""
    gates: dict[str, bool] = {}
    owners = [(d.condition, d.logical_id) for d in declarations]
    owners += [(o.condition, o.name) for o in outputs]
    for gate, owner in owners:
        if gate is None or gate in gates:
            continue
        if gate not in ctx:
            raise UnknownReferenceError(
                f"'{owner}' is gated by unknown context flag '{gate}'. "
                f"Available flags: {sorted(ctx)}",
                logical_id=owner,
            )
        gates[gate] = flag_enabled(ctx[gate])
        LOG.debug("Gate %s = %s", gate, gates[gate])
    return gates


def flag_enabled(value: Any) -> bool:
    """Truth value of a context flag.

    >>> flag_enabled("true"), flag_enabled("False"), flag_enabled(1)
    (True, False, True)
    """
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _enabled(gate: str | None, gates: dict[str, bool]) -> bool:
    return gate is None or gates[gate]


def _check_gating(declarations: list[Declaration], outputs: list[OutputDeclaration],
                  prepared: dict[str, Any], prepared_outputs: dict[str, Any]) -> None:
    """A node may only reference ungated nodes or nodes behind its own gate.

    Checked on the full declaration set, independent of flag values, so
    the graph shape never depends on which way a gate happens to fall.
    """
    gate_of = {d.logical_id: d.condition for d in declarations}

    def check(owner: str, gate: str | None, targets: Iterable[str]) -> None:
        for target in targets:
            target_gate = gate_of.get(target)
            if target_gate is not None and target_gate != gate:
                where = f"gate '{gate}'" if gate else "outside any gate"
                raise GatedReferenceError(
                    f"'{owner}' ({where}) references '{target}', "
                    f"which only exists when '{target_gate}' is enabled",
                    logical_id=owner,
                )

    for decl in declarations:
        targets = [r.logical_id for r in iter_refs(prepared[decl.logical_id])
                   if isinstance(r, Ref)]
        check(decl.logical_id, decl.condition, [*targets, *decl.depends_on])
    for out in outputs:
        targets = [r.logical_id for r in iter_refs(prepared_outputs[out.name])
                   if isinstance(r, Ref)]
        check(out.name, out.condition, targets)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# VALUE PREPARATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _prepare(value: Any) -> Any:
    """Turn document markers and ``${...}`` strings into Ref/ContextRef/Join."""
    value = parse_marker(value)
    if isinstance(value, dict):
        return {k: _prepare(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_prepare(v) for v in value]
    if isinstance(value, str):
        return interpolate(value)
    if isinstance(value, Join):
        return _join(_prepare(p) for p in value.parts)
    if isinstance(value, Intrinsic):
        return Intrinsic(value.function, _prepare(value.args))
    return value


def _join(parts: Iterable[Any]) -> Any:
    """Build a flat Join, merging nested joins and adjacent literals."""
    flat: list[Any] = []
    for part in parts:
        pieces = part.parts if isinstance(part, Join) else (part,)
        for piece in pieces:
            if isinstance(piece, (int, float)) and not isinstance(piece, bool):
                piece = str(piece)
            if isinstance(piece, str) and flat and isinstance(flat[-1], str):
                flat[-1] += piece
            else:
                flat.append(piece)
    if len(flat) == 1 and isinstance(flat[0], str):
        return flat[0]
    return Join(tuple(flat))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RESOLUTION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
class _Resolver:
    """Depth-first resolution over the active declarations."""

    def __init__(self, active: dict[str, Declaration], prepared: dict[str, Any],
                 ctx: dict[str, Any], tags: dict[str, str]):
        self.active = active
        self.prepared = prepared
        self.ctx = ctx
        self.tags = tags
        self.nodes: dict[str, ResourceNode] = {}
        self.order: list[str] = []
        self._in_progress: set[str] = set()

    def visit(self, root: str) -> None:
        """Resolve ``root`` after everything it depends on.

        Iterative post-order walk; ``path`` holds the ids still waiting
        on a dependency, so a repeat hit on it is a cycle.
        """
        if root in self.nodes:
            return
        path: list[str] = []
        stack: list[tuple[str, list[str], int]] = []
        self._enter(root, path, stack)
        while stack:
            logical_id, dependencies, index = stack[-1]
            if index < len(dependencies):
                stack[-1] = (logical_id, dependencies, index + 1)
                target = dependencies[index]
                if target not in self.nodes:
                    self._enter(target, path, stack)
                continue
            stack.pop()
            path.pop()
            self._in_progress.discard(logical_id)
            self._build(logical_id, dependencies)

    def _enter(self, logical_id: str, path: list[str], stack: list) -> None:
        if logical_id in self._in_progress:
            start = path.index(logical_id)
            raise CyclicReferenceError(path[start:] + [logical_id])
        self._in_progress.add(logical_id)
        path.append(logical_id)
        stack.append((logical_id, self._dependencies(self.active[logical_id]), 0))

    def _build(self, logical_id: str, dependencies: list[str]) -> None:
        decl = self.active[logical_id]
        properties = self.resolve_value(self.prepared[logical_id], owner=logical_id)
        self._validate(decl, properties)
        properties = self._tag(decl.kind, properties)

        self.nodes[logical_id] = ResourceNode(
            logical_id=logical_id,
            kind=decl.kind,
            properties=freeze(properties),
            dependencies=tuple(dependencies),
            depends_on=tuple(decl.depends_on),
            deletion_policy=decl.deletion_policy,
        )
        self.order.append(logical_id)
        LOG.debug("Resolved %s (%s) deps=%s", logical_id, decl.kind.value, dependencies)

    def _dependencies(self, decl: Declaration) -> list[str]:
        """Producer ids in first-reference order, explicit dependsOn last."""
        found: list[str] = []
        for ref in iter_refs(self.prepared[decl.logical_id]):
            if isinstance(ref, Ref):
                self._check_target(ref, owner=decl.logical_id)
                if not ref.is_pseudo and ref.logical_id not in found:
                    found.append(ref.logical_id)
        for target in decl.depends_on:
            if target not in self.active:
                raise UnknownReferenceError(
                    f"'{decl.logical_id}' depends on unknown resource '{target}'",
                    logical_id=decl.logical_id,
                )
            if target not in found:
                found.append(target)
        return found

    def _check_target(self, ref: Ref, owner: str) -> None:
        if ref.is_pseudo:
            if ref.attribute != PRIMARY:
                raise UnknownReferenceError(
                    f"'{owner}': pseudo parameter '{ref.logical_id}' has no "
                    f"attribute '{ref.attribute}'",
                    logical_id=owner,
                )
            return
        target = self.active.get(ref.logical_id)
        if target is None:
            raise UnknownReferenceError(
                f"'{owner}' references unknown resource '{ref.logical_id}'. "
                f"Available: {list(self.active)}",
                logical_id=owner,
            )
        if not target.kind.schema.emits(ref.attribute):
            emitted = sorted(target.kind.schema.attributes | {PRIMARY})
            raise UnknownReferenceError(
                f"'{owner}' references attribute '{ref.attribute}' of "
                f"'{ref.logical_id}' ({target.kind.value}), which emits: {emitted}",
                logical_id=owner,
            )

    def resolve_value(self, value: Any, owner: str) -> Any:
        """Replace context refs with their values; check resource refs.

        Resource refs stay pointers: they are bound to real values
        only when the template is applied.
        """
        if isinstance(value, Ref):
            self._check_target(value, owner)
            return value
        if isinstance(value, ContextRef):
            if value.flag not in self.ctx:
                raise UnknownReferenceError(
                    f"'{owner}' references unknown context flag '{value.flag}'. "
                    f"Available flags: {sorted(self.ctx)}",
                    logical_id=owner,
                )
            return self.ctx[value.flag]
        if isinstance(value, dict):
            return {k: self.resolve_value(v, owner) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.resolve_value(v, owner) for v in value]
        if isinstance(value, Join):
            return _join(self.resolve_value(p, owner) for p in value.parts)
        if isinstance(value, Intrinsic):
            return Intrinsic(value.function, self.resolve_value(value.args, owner))
        return value

    def _validate(self, decl: Declaration, properties: dict[str, Any]) -> None:
        schema = decl.kind.schema
        try:
            check_properties(properties, schema.properties, schema.checks)
        except PropertyViolation as e:
            raise InvalidPropertyError(
                f"'{decl.logical_id}' ({decl.kind.value}): {e}",
                logical_id=decl.logical_id,
                prop=e.prop,
            ) from e

    def _tag(self, kind: ResourceKind, properties: dict[str, Any]) -> dict[str, Any]:
        schema = kind.schema
        if not self.tags or schema.tags is None:
            return properties
        key = schema.tag_property
        existing = properties.get(key)
        if existing is not None and not is_literal(existing):
            return properties

        result = dict(properties)
        if schema.tags == TAGS_MAP:
            result[key] = {**self.tags, **(existing or {})}
            return result

        declared = list(existing or [])
        declared_keys = {t.get("Key") for t in declared if isinstance(t, dict)}
        merged = list(declared)
        for k, v in self.tags.items():
            if k in declared_keys:
                continue
            tag: dict[str, Any] = {"Key": k, "Value": v}
            if schema.tags == TAGS_PROPAGATING:
                tag["PropagateAtLaunch"] = True
            merged.append(tag)
        result[key] = merged
        return result


__all__ = ["assemble", "flag_enabled", "AssemblyError"]
