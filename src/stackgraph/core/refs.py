"""
stackgraph.core.refs — Reference markers.

Property values may embed references to other declarations'
attributes or to assembly-time context flags:

  Ref("Vpc")                 → the VPC's primary id      (Ref)
  Ref("Alb", "DNSName")      → an emitted attribute      (Fn::GetAtt)
  Ref("AWS::Region")         → a pseudo parameter
  ContextRef("enablePeering") → literal context value, resolved at assembly

Document form (YAML/JSON):

  {ref: Vpc, attribute: id}
  {refContext: enablePeering}

String form, interpolated like Fn::Sub:

  "https://${Alb.DNSName}/"     "${!Literal}" escapes a dollar-brace
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator

PRIMARY = "id"

PSEUDO_PARAMETERS = frozenset({
    "AWS::AccountId",
    "AWS::NoValue",
    "AWS::Partition",
    "AWS::Region",
    "AWS::StackId",
    "AWS::StackName",
    "AWS::URLSuffix",
})

# ${Id}, ${Id.Attr.Path}, ${AWS::Region}, ${!Escaped}
_REF_PATTERN = re.compile(r"\$\{(!?)([A-Za-z0-9:]+)(?:\.([A-Za-z0-9_.]+))?\}")


@dataclass(frozen=True)
class Ref:
    """Pointer to a node's emitted attribute."""

    logical_id: str
    attribute: str = PRIMARY

    @property
    def is_pseudo(self) -> bool:
        return self.logical_id in PSEUDO_PARAMETERS

    def __str__(self) -> str:
        if self.attribute == PRIMARY:
            return f"${{{self.logical_id}}}"
        return f"${{{self.logical_id}.{self.attribute}}}"


@dataclass(frozen=True)
class ContextRef:
    """Pointer to an assembly-time context flag."""

    flag: str


@dataclass(frozen=True)
class Join:
    """Concatenation of literal strings and references."""

    parts: tuple

    def __post_init__(self):
        object.__setattr__(self, "parts", tuple(self.parts))


@dataclass(frozen=True)
class Intrinsic:
    """Pass-through intrinsic function (Fn::Base64, Fn::Select, ...)."""

    function: str
    args: Any


def pseudo(name: str) -> Ref:
    """Ref to a pseudo parameter: ``pseudo("Region")`` → ``AWS::Region``."""
    full = name if name.startswith("AWS::") else f"AWS::{name}"
    if full not in PSEUDO_PARAMETERS:
        raise ValueError(f"Unknown pseudo parameter: '{full}'")
    return Ref(full)


def join(*parts: Any) -> Join:
    return Join(tuple(parts))


def base64(value: Any) -> Intrinsic:
    return Intrinsic("Fn::Base64", value)


def select_az(index: int) -> Intrinsic:
    """Availability zone ``index`` of the stack's region."""
    return Intrinsic("Fn::Select", [index, Intrinsic("Fn::GetAZs", "")])


def parse_marker(value: Any) -> Any:
    """Convert a document marker dict into a Ref/ContextRef.

    >>> parse_marker({"ref": "Vpc"})
    Ref(logical_id='Vpc', attribute='id')
    >>> parse_marker({"refContext": "enablePeering"})
    ContextRef(flag='enablePeering')

    Anything else is returned unchanged.
    """
    if not isinstance(value, dict):
        return value
    keys = set(value)
    if "ref" in keys and keys <= {"ref", "attribute"}:
        return Ref(str(value["ref"]), str(value.get("attribute", PRIMARY)))
    if keys == {"refContext"}:
        return ContextRef(str(value["refContext"]))
    return value


def interpolate(text: str) -> Any:
    """Split ``${...}`` placeholders out of a string.

    Returns the string unchanged when it has no placeholders, a bare
    Ref when the string is a single placeholder, a Join otherwise.
    """
    if "${" not in text:
        return text

    parts: list[Any] = []
    pos = 0
    for match in _REF_PATTERN.finditer(text):
        if match.start() > pos:
            parts.append(text[pos:match.start()])
        escaped, target, attribute = match.groups()
        if escaped:
            suffix = f".{attribute}" if attribute else ""
            parts.append(f"${{{target}{suffix}}}")
        else:
            parts.append(Ref(target, attribute or PRIMARY))
        pos = match.end()
    if pos < len(text):
        parts.append(text[pos:])

    merged: list[Any] = []
    for part in parts:
        if isinstance(part, str) and merged and isinstance(merged[-1], str):
            merged[-1] += part
        else:
            merged.append(part)

    if len(merged) == 1:
        return merged[0]
    return Join(tuple(merged))


def transform(value: Any, fn: Callable[[Any], Any]) -> Any:
    """Rebuild a nested value, passing every marker and leaf through ``fn``.

    Containers (dict, list, tuple) are rebuilt; Join and Intrinsic are
    rebuilt around their transformed contents; everything else goes
    through ``fn``.
    """
    if isinstance(value, dict):
        return {k: transform(v, fn) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [transform(v, fn) for v in value]
    if isinstance(value, Join):
        return Join(tuple(transform(p, fn) for p in value.parts))
    if isinstance(value, Intrinsic):
        return Intrinsic(value.function, transform(value.args, fn))
    return fn(value)


def iter_refs(value: Any) -> Iterator[Ref | ContextRef]:
    """Yield every Ref/ContextRef nested in a value, in document order."""
    if isinstance(value, (Ref, ContextRef)):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from iter_refs(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from iter_refs(v)
    elif isinstance(value, Join):
        for p in value.parts:
            yield from iter_refs(p)
    elif isinstance(value, Intrinsic):
        yield from iter_refs(value.args)
