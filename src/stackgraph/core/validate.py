"""
stackgraph.core.validate — Property validators.

A validator is a callable taking one literal value and raising
ValueError with a human-readable message when the value is wrong.
Values that are (or contain) references are only known at apply
time and are skipped.
"""

from __future__ import annotations

import ipaddress
from typing import Any, Callable, Iterable

from stackgraph.core.refs import ContextRef, Intrinsic, Join, Ref, iter_refs

Validator = Callable[[Any], None]


def is_literal(value: Any) -> bool:
    """True when the value holds no reference or intrinsic."""
    if isinstance(value, (Ref, ContextRef, Join, Intrinsic)):
        return False
    if isinstance(value, dict) and any(k.startswith("Fn::") or k == "Ref" for k in value):
        return False
    return next(iter_refs(value), None) is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SCALARS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def cidr(value: Any) -> None:
    """A network range in CIDR notation (host bits must be zero)."""
    if not isinstance(value, str):
        raise ValueError(f"expected a CIDR string, got {type(value).__name__}")
    try:
        ipaddress.ip_network(value, strict=True)
    except ValueError as e:
        raise ValueError(f"'{value}' is not a valid network range ({e})") from e


def boolean(value: Any) -> None:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {value!r}")


def string(value: Any) -> None:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {type(value).__name__}")


def mapping(value: Any) -> None:
    if not isinstance(value, dict):
        raise ValueError(f"expected a mapping, got {type(value).__name__}")


def integer(minimum: int | None = None, maximum: int | None = None) -> Validator:
    """Integer within [minimum, maximum]. Digit strings are accepted."""

    def check(value: Any) -> None:
        number = _as_int(value)
        if minimum is not None and number < minimum:
            raise ValueError(f"{number} is below the minimum of {minimum}")
        if maximum is not None and number > maximum:
            raise ValueError(f"{number} is above the maximum of {maximum}")

    return check


port = integer(0, 65535)
positive = integer(1)
non_negative = integer(0)


def one_of(*choices: Any) -> Validator:
    allowed = tuple(choices)

    def check(value: Any) -> None:
        if value not in allowed:
            options = ", ".join(str(c) for c in allowed)
            raise ValueError(f"{value!r} is not one of: {options}")

    return check


def list_of(item: Validator) -> Validator:
    def check(value: Any) -> None:
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"expected a list, got {type(value).__name__}")
        for i, v in enumerate(value):
            if not is_literal(v):
                continue
            try:
                item(v)
            except ValueError as e:
                raise ValueError(f"[{i}]: {e}") from e

    return check


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    raise ValueError(f"expected an integer, got {value!r}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# COMPOSITES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def firewall_rule(value: Any) -> None:
    """Security group ingress/egress rule."""
    mapping(value)
    props = dict(value)
    _check_fields(props, {
        "CidrIp": cidr,
        "CidrIpv6": cidr,
        "IpProtocol": string,
        "Description": string,
    })
    protocol = props.get("IpProtocol")
    if protocol in ("-1", -1):
        return
    low, high = props.get("FromPort"), props.get("ToPort")
    if is_literal(low) and is_literal(high) and low is not None and high is not None:
        # icmp uses type/code in these slots, -1 means any
        low_i, high_i = _as_int(low), _as_int(high)
        if protocol in ("tcp", "udp", "6", "17"):
            port(low_i)
            port(high_i)
            if low_i > high_i:
                raise ValueError(f"FromPort {low_i} is greater than ToPort {high_i}")


def tag_list(value: Any) -> None:
    """``[{Key, Value}, ...]`` as CloudFormation lists resource tags."""
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list of {{Key, Value}} tags, got {type(value).__name__}")
    for i, tag in enumerate(value):
        if not isinstance(tag, dict):
            raise ValueError(f"[{i}]: expected a {{Key, Value}} mapping, got {type(tag).__name__}")
        missing = [k for k in ("Key", "Value") if k not in tag]
        if missing:
            raise ValueError(f"[{i}]: missing {', '.join(missing)}")
        if not isinstance(tag["Key"], str):
            raise ValueError(f"[{i}]: Key must be a string, got {tag['Key']!r}")


def tag_map(value: Any) -> None:
    """``{key: value}`` with string keys and scalar values."""
    if not isinstance(value, dict):
        raise ValueError(f"expected a mapping of tags, got {type(value).__name__}")
    for key, tag_value in value.items():
        if not isinstance(key, str):
            raise ValueError(f"tag key {key!r} must be a string")
        if isinstance(tag_value, (dict, list, tuple)):
            raise ValueError(f"tag '{key}' must be a scalar, got {type(tag_value).__name__}")


def capacity(props: dict[str, Any]) -> None:
    """Auto-scaling bounds: MinSize <= DesiredCapacity <= MaxSize."""
    sizes = {}
    for key in ("MinSize", "DesiredCapacity", "MaxSize"):
        value = props.get(key)
        if value is not None and is_literal(value):
            sizes[key] = _as_int(value)
    low, high = sizes.get("MinSize"), sizes.get("MaxSize")
    desired = sizes.get("DesiredCapacity")
    if low is not None and high is not None and low > high:
        raise ValueError(f"MinSize {low} is greater than MaxSize {high}")
    if desired is not None and low is not None and desired < low:
        raise ValueError(f"DesiredCapacity {desired} is below MinSize {low}")
    if desired is not None and high is not None and desired > high:
        raise ValueError(f"DesiredCapacity {desired} is above MaxSize {high}")


def _check_fields(props: dict[str, Any], validators: dict[str, Validator]) -> None:
    for key, check in validators.items():
        if key not in props or not is_literal(props[key]):
            continue
        try:
            check(props[key])
        except ValueError as e:
            raise ValueError(f"{key}: {e}") from e


def check_properties(
    props: dict[str, Any],
    validators: dict[str, Validator],
    checks: Iterable[Callable[[dict[str, Any]], None]] = (),
) -> None:
    """Run per-property validators, then whole-resource checks.

    Raises:
        PropertyViolation: first failing property
    """
    for key, check in validators.items():
        if key not in props or not is_literal(props[key]):
            continue
        try:
            check(props[key])
        except ValueError as e:
            raise PropertyViolation(key, str(e)) from e
    for check in checks:
        try:
            check(props)
        except ValueError as e:
            raise PropertyViolation(None, str(e)) from e


class PropertyViolation(ValueError):
    """A single property failed validation."""

    def __init__(self, prop: str | None, message: str):
        self.prop = prop
        prefix = f"{prop}: " if prop else ""
        super().__init__(f"{prefix}{message}")
