"""
stackgraph.stack.parser — Stack YAML parser.

stack.yaml format:

    apiVersion: stackgraph.io/v1
    kind: Stack
    metadata:
      name: Demo
      description: Network and one server
    context:
      enablePeering: false
    tags:
      team: platform
    resources:
      - logicalId: Net
        type: Network
        properties:
          CidrBlock: 10.0.0.0/16
      - logicalId: Srv
        type: Compute
        properties:
          SubnetId: {ref: Net}
        condition: enablePeering
    outputs:
      - name: ServerId
        value: ${Srv}

Parser reads the stack file, validates its structure and converts
it to a StackSpec. Resource kinds, references and properties are
checked later, when the stack is assembled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from stackgraph.core.declaration import Declaration, OutputDeclaration, StackDefinition

API_VERSION = "stackgraph.io/v1"


@dataclass
class StackSpec:
    """Parsed stack document."""
    name: str
    description: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    transforms: list[str] = field(default_factory=list)
    resources: list[Declaration] = field(default_factory=list)
    outputs: list[OutputDeclaration] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    def definition(self) -> StackDefinition:
        """StackDefinition holding this document's declarations."""
        stack = StackDefinition(self.name, self.description)
        stack.items.extend(self.resources)
        stack.items.extend(self.outputs)
        stack.tags = dict(self.tags)
        for name in self.transforms:
            stack.transform(name)
        return stack


class StackParseError(Exception):
    """Stack parse error."""
    pass


def parse_stack_file(path: str | Path) -> StackSpec:
    """Parse a stack.yaml file.

    Raises:
        StackParseError: Format error
        FileNotFoundError: File not found
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Stack file not found: {p}")

    with open(p) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise StackParseError(f"{p}: invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise StackParseError(f"Stack file must be a YAML mapping, got {type(data).__name__}")

    return parse_stack_dict(data)


def parse_stack_dict(data: dict[str, Any]) -> StackSpec:
    """Create a StackSpec from a dict (stack.yaml content)."""
    api_version = data.get("apiVersion", "")
    if api_version and api_version != API_VERSION:
        raise StackParseError(
            f"Unsupported apiVersion: '{api_version}'. Expected '{API_VERSION}'"
        )

    kind = data.get("kind", "")
    if kind and kind != "Stack":
        raise StackParseError(f"Unsupported kind: '{kind}'. Expected 'Stack'")

    metadata = data.get("metadata", {})
    if not isinstance(metadata, dict):
        raise StackParseError("metadata must be a mapping")

    name = metadata.get("name", "")
    if not name:
        raise StackParseError("metadata.name is required")

    context = _mapping(data, "context")
    tags = {str(k): str(v) for k, v in _mapping(data, "tags").items()}

    transforms = data.get("transforms") or []
    if isinstance(transforms, str):
        transforms = [transforms]
    if not isinstance(transforms, list) or not all(isinstance(t, str) for t in transforms):
        raise StackParseError("transforms must be a string or a list of strings")

    return StackSpec(
        name=str(name),
        description=metadata.get("description"),
        context=context,
        tags=tags,
        transforms=transforms,
        resources=[_parse_resource(i, r) for i, r in enumerate(_list(data, "resources"))],
        outputs=[_parse_output(i, o) for i, o in enumerate(_list(data, "outputs"))],
        raw=data,
    )


def _mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise StackParseError(f"{key} must be a mapping")
    return dict(value)


def _list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise StackParseError(f"{key} must be a list")
    return value


def _parse_resource(i: int, raw: Any) -> Declaration:
    where = f"resources[{i}]"
    if not isinstance(raw, dict):
        raise StackParseError(f"{where} must be a mapping")

    logical_id = raw.get("logicalId")
    if not logical_id:
        raise StackParseError(f"{where}.logicalId is required")
    kind = raw.get("type")
    if not kind:
        raise StackParseError(f"{where}.type is required ({logical_id})")

    properties = raw.get("properties") or {}
    if not isinstance(properties, dict):
        raise StackParseError(f"{where}.properties must be a mapping ({logical_id})")

    depends_on = raw.get("dependsOn") or []
    if isinstance(depends_on, str):
        depends_on = [depends_on]
    if not isinstance(depends_on, list):
        raise StackParseError(f"{where}.dependsOn must be a string or a list ({logical_id})")

    condition = raw.get("condition")
    if condition is not None and not isinstance(condition, str):
        raise StackParseError(f"{where}.condition must be a context flag name ({logical_id})")

    # kind stays a string; the builder parses it and reports unknown kinds
    return Declaration(
        logical_id=str(logical_id),
        kind=kind,
        properties=dict(properties),
        condition=condition,
        depends_on=tuple(str(d) for d in depends_on),
        deletion_policy=raw.get("deletionPolicy"),
    )


def _parse_output(i: int, raw: Any) -> OutputDeclaration:
    where = f"outputs[{i}]"
    if not isinstance(raw, dict):
        raise StackParseError(f"{where} must be a mapping")
    name = raw.get("name")
    if not name:
        raise StackParseError(f"{where}.name is required")
    if "value" not in raw:
        raise StackParseError(f"{where}.value is required ({name})")
    return OutputDeclaration(
        name=str(name),
        value=raw["value"],
        description=raw.get("description"),
        export_name=raw.get("exportName"),
        condition=raw.get("condition"),
    )
