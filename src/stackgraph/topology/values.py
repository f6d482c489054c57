"""
stackgraph.topology.values — Topology context layering.

A topology's assembly context is built from layers, lowest first:

  class defaults → -f values.yaml → -f values2.yaml → --set key=value

Mappings merge key by key; any other value replaces the one below it.
``--set`` values become booleans, nulls or numbers only when the
conversion is lossless: ``13.10`` stays the string "13.10" since the
float would print back as ``13.1``. Quote a value to keep it a string.
"""

from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Any

import yaml

LOG = logging.getLogger(__name__)

_BOOLEANS = {"true": True, "false": False}
_NULLS = frozenset({"null", "none", "~"})
_NUMBER = re.compile(r"-?\d+(\.\d+)?")


def deep_merge(base: dict, override: dict) -> dict:
    """Return a new dict with ``override`` layered over ``base``.

    >>> deep_merge({"hardening": {"flowLogs": False, "encryptStorage": False}},
    ...            {"hardening": {"flowLogs": True}})
    {'hardening': {'flowLogs': True, 'encryptStorage': False}}
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        below = merged.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            merged[key] = deep_merge(below, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_values_file(path: str | Path) -> dict:
    """Read one YAML values layer. An empty file is an empty layer.

    Raises:
        FileNotFoundError: File not found
        ValueError: Invalid YAML, or a document that is not a mapping
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Values file not found: {p}")
    with open(p) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{p}: invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{p}: values must be a mapping, got {type(data).__name__}")
    return data


def parse_set_values(set_args: list[str]) -> dict:
    """Turn ``--set path.to.key=value`` arguments into one nested layer.

    >>> parse_set_values(["enablePeering=true", "database.engineVersion=13.10"])
    {'enablePeering': True, 'database': {'engineVersion': '13.10'}}
    """
    layer: dict = {}
    for arg in set_args:
        key, sep, raw = arg.partition("=")
        if not sep:
            raise ValueError(f"Invalid --set format: '{arg}' (expected key=value)")
        path = key.split(".")
        if not all(path):
            raise ValueError(f"Invalid --set key: '{key}' (empty path segment)")
        _assign(layer, path, coerce_scalar(raw))
    return layer


def _assign(layer: dict, path: list[str], value: Any) -> None:
    node = layer
    for depth, part in enumerate(path[:-1]):
        child = node.setdefault(part, {})
        if not isinstance(child, dict):
            taken = ".".join(path[:depth + 1])
            raise ValueError(f"--set {'.'.join(path)} conflicts with --set {taken}")
        node = child
    node[path[-1]] = value


def coerce_scalar(text: str) -> Any:
    """Read a ``--set`` value as a bool, null, int or float when lossless.

    >>> coerce_scalar("3"), coerce_scalar("False"), coerce_scalar("1.5")
    (3, False, 1.5)
    >>> coerce_scalar("13.10"), coerce_scalar("007"), coerce_scalar("'true'")
    ('13.10', '007', 'true')
    """
    lowered = text.lower()
    if lowered in _BOOLEANS:
        return _BOOLEANS[lowered]
    if lowered in _NULLS:
        return None
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    if _NUMBER.fullmatch(text):
        number = float(text) if "." in text else int(text)
        if str(number) == text:
            return number
    return text


def section(values: dict[str, Any], key: str) -> dict[str, Any]:
    """Nested mapping of the context; a missing or null key is empty.

    Raises:
        ValueError: the key holds something other than a mapping
    """
    value = values.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(
            f"'{key}' must be a mapping, got {type(value).__name__} ({value!r})"
        )
    return value


def merge_all_values(
    defaults: dict,
    value_files: list[str | Path],
    set_args: list[str],
) -> dict:
    """Build the assembly context from every layer, lowest first."""
    context = copy.deepcopy(defaults)
    for path in value_files:
        context = deep_merge(context, load_values_file(path))
        LOG.debug("Values layer %s applied", path)
    if set_args:
        context = deep_merge(context, parse_set_values(set_args))
        LOG.debug("--set layer applied: %s", list(set_args))
    return context
