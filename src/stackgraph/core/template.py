"""
stackgraph.core.template — CloudFormation serializer.

Works like a manifest: wraps a ResolvedGraph and renders it as a
template document (dict, JSON or YAML) for the provisioning engine.

    graph = stack.assemble(context)
    print(Template(graph).to_yaml())
"""

from __future__ import annotations

import json
from typing import Any, Mapping

import yaml

from stackgraph.core.graph import ResolvedGraph, ResourceNode
from stackgraph.core.refs import PRIMARY, Intrinsic, Join, Ref

FORMAT_VERSION = "2010-09-09"


def render_value(value: Any) -> Any:
    """Render a resolved property value in CloudFormation syntax."""
    if isinstance(value, Ref):
        if value.attribute == PRIMARY:
            return {"Ref": value.logical_id}
        return {"Fn::GetAtt": [value.logical_id, value.attribute]}
    if isinstance(value, Join):
        return {"Fn::Join": ["", [render_value(p) for p in value.parts]]}
    if isinstance(value, Intrinsic):
        return {value.function: render_value(value.args)}
    if isinstance(value, Mapping):
        return {k: render_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [render_value(v) for v in value]
    return value


class Template:
    """Converts a resolved graph to a CloudFormation template."""

    def __init__(self, graph: ResolvedGraph, description: str | None = None):
        self._graph = graph
        self.description = description

    @property
    def graph(self) -> ResolvedGraph:
        return self._graph

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"AWSTemplateFormatVersion": FORMAT_VERSION}
        if self.description:
            doc["Description"] = self.description
        transforms = list(self._graph.transforms)
        if len(transforms) == 1:
            doc["Transform"] = transforms[0]
        elif transforms:
            doc["Transform"] = transforms

        doc["Resources"] = {
            node.logical_id: self._render_resource(node) for node in self._graph
        }

        if self._graph.outputs:
            outputs: dict[str, Any] = {}
            for name, out in self._graph.outputs.items():
                entry: dict[str, Any] = {"Value": render_value(out.value)}
                if out.description:
                    entry["Description"] = out.description
                if out.export_name:
                    entry["Export"] = {"Name": out.export_name}
                outputs[name] = entry
            doc["Outputs"] = outputs
        return doc

    def _render_resource(self, node: ResourceNode) -> dict[str, Any]:
        entry: dict[str, Any] = {"Type": node.cfn_type}
        if node.properties:
            entry["Properties"] = render_value(node.properties)
        if node.depends_on:
            entry["DependsOn"] = list(node.depends_on)
        if node.deletion_policy:
            entry["DeletionPolicy"] = node.deletion_policy
            if node.deletion_policy != "RetainExceptOnCreate":
                entry["UpdateReplacePolicy"] = node.deletion_policy
        return entry

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_yaml(self) -> str:
        return yaml.dump(
            self.to_dict(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
