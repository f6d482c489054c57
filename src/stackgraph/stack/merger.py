"""
stackgraph.stack.merger — Stack overlay merger.

Deep merges multiple -f files:
  stackgraph synth -f stack.yaml -f prod.yaml --set context.enablePeering=true

Merge strategy:
  - First file must be the base stack (apiVersion, kind, metadata, resources)
  - Later files are overlays: ``context``, ``tags`` and ``metadata`` deep
    merge, ``resources`` merge by logicalId and ``outputs`` by name
  - --set is applied last

Overlay format:
    context:
      enablePeering: true
    resources:
      Srv:                  # matches by logicalId
        properties:
          InstanceType: t3.large
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from stackgraph.topology.values import deep_merge, parse_set_values

_MAPPINGS = ("metadata", "context", "tags")
_KEYED_LISTS = {"resources": "logicalId", "outputs": "name"}


def merge_stack_files(file_paths: list[str | Path]) -> dict[str, Any]:
    """Merge a base stack file with its overlays, in precedence order."""
    if not file_paths:
        raise ValueError("At least one file is required")

    base = _load_yaml(file_paths[0])
    for fp in file_paths[1:]:
        base = merge_overlay(base, _load_yaml(fp))
    return base


def apply_set_to_stack(stack_data: dict[str, Any], set_args: list[str]) -> dict[str, Any]:
    """Apply --set arguments to the stack.

    Only ``context.<flag>=<value>`` and ``tags.<key>=<value>`` are
    accepted; resource properties are changed through overlay files.
    """
    if not set_args:
        return stack_data

    for arg in set_args:
        key = arg.split("=", 1)[0]
        if not key.startswith(("context.", "tags.")):
            raise ValueError(
                f"Unsupported --set key '{key}' for a stack file. "
                f"Use context.<flag>=<value> or tags.<key>=<value>"
            )
    return deep_merge(stack_data, parse_set_values(set_args))


def _load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {p}")
    with open(p) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{p}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Expected YAML mapping in {p}")
    return data


def merge_overlay(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Apply one overlay to the base stack.

    Resources and outputs in the overlay may be a list of entries
    (matched by id, unknown ids are appended) or an ``id → overrides``
    mapping (ids must exist in the base).
    """
    result = dict(base)

    for key in _MAPPINGS:
        if key in overlay:
            result[key] = deep_merge(result.get(key) or {}, overlay[key] or {})

    if "transforms" in overlay:
        transforms = list(result.get("transforms") or [])
        extra = overlay["transforms"]
        for name in [extra] if isinstance(extra, str) else extra or []:
            if name not in transforms:
                transforms.append(name)
        result["transforms"] = transforms

    for key, id_field in _KEYED_LISTS.items():
        if key not in overlay:
            continue
        entries = overlay[key]
        if isinstance(entries, dict):
            result[key] = _merge_by_id_dict(result.get(key) or [], entries, id_field, key)
        elif isinstance(entries, list):
            result[key] = _merge_by_id_list(result.get(key) or [], entries, id_field)
        else:
            raise ValueError(f"Overlay {key} must be a list or a mapping")

    return result


def _merge_by_id_dict(base_entries: list[dict], overrides: dict[str, dict],
                      id_field: str, key: str) -> list[dict]:
    known = {entry.get(id_field) for entry in base_entries}
    missing = [name for name in overrides if name not in known]
    if missing:
        raise ValueError(f"Overlay {key} not found in the base stack: {', '.join(missing)}")
    return [
        deep_merge(entry, overrides[entry[id_field]])
        if entry.get(id_field) in overrides else dict(entry)
        for entry in base_entries
    ]


def _merge_by_id_list(base_entries: list[dict], overlay_entries: list[dict],
                      id_field: str) -> list[dict]:
    merged = [dict(entry) for entry in base_entries]
    index = {entry.get(id_field): i for i, entry in enumerate(merged)}
    for entry in overlay_entries:
        entry_id = entry.get(id_field)
        if entry_id in index:
            merged[index[entry_id]] = deep_merge(merged[index[entry_id]], entry)
        else:
            index[entry_id] = len(merged)
            merged.append(entry)
    return merged
