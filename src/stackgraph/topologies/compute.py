"""
stackgraph.topologies.compute — Instance and load-balancer helpers.
"""

from __future__ import annotations

from typing import Any

from stackgraph.core.declaration import Declaration, StackDefinition
from stackgraph.core.kinds import ResourceKind
from stackgraph.core.refs import Intrinsic, base64, join
from stackgraph.topologies.network import assume_role_policy

# SSM public parameters, resolved by CloudFormation at deploy time
AMAZON_LINUX_IMAGES = {
    "amazon-linux-2": "/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-x86_64-gp2",
    "amazon-linux-2023": "/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64",
    "amazon-linux-2023-arm64": "/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-arm64",
}


def amazon_linux(generation: str = "amazon-linux-2") -> str:
    """Dynamic reference to the latest Amazon Linux AMI id."""
    try:
        parameter = AMAZON_LINUX_IMAGES[generation]
    except KeyError:
        raise ValueError(
            f"Unknown image generation '{generation}'. "
            f"Supported: {', '.join(AMAZON_LINUX_IMAGES)}"
        ) from None
    return f"{{{{resolve:ssm:{parameter}}}}}"


def user_data(commands: list[str]) -> Intrinsic:
    """Base64 shell script; ``${...}`` placeholders become references."""
    lines = list(commands)
    if not lines or not lines[0].startswith("#!"):
        lines.insert(0, "#!/bin/bash")
    return base64(join("\n".join(lines)))


def add_instance_role(stack: StackDefinition, logical_id: str) -> tuple[Declaration, Declaration]:
    """EC2 role plus the instance profile that carries it."""
    role = stack.add(logical_id, ResourceKind.ROLE, {
        "AssumeRolePolicyDocument": assume_role_policy("ec2.amazonaws.com"),
    })
    profile = stack.add(f"{logical_id}InstanceProfile", ResourceKind.INSTANCE_PROFILE, {
        "Roles": [role.ref()],
    })
    return role, profile


def health_check(
    protocol: str,
    path: str | None = None,
    healthy: int = 2,
    unhealthy: int = 2,
    interval: int | None = None,
    timeout: int | None = None,
    enabled: bool = True,
) -> dict[str, Any]:
    """Target group health-check properties for a listener protocol.

    HTTP(S) targets are probed on a path (``/`` by default), TCP/TLS/UDP
    targets with a plain TCP connect; NLB targets reject a custom timeout.
    """
    props: dict[str, Any] = {
        "HealthCheckEnabled": enabled,
        "HealthyThresholdCount": healthy,
        "UnhealthyThresholdCount": unhealthy,
    }
    if protocol in ("HTTP", "HTTPS"):
        props["HealthCheckProtocol"] = protocol
        props["HealthCheckPath"] = path or "/"
        if timeout is not None:
            props["HealthCheckTimeoutSeconds"] = timeout
    elif protocol in ("TCP", "TLS", "UDP", "TCP_UDP"):
        if path:
            raise ValueError(f"A {protocol} health check cannot probe a path")
        props["HealthCheckProtocol"] = "TCP"
    else:
        raise ValueError(f"Unsupported health-check protocol: '{protocol}'")
    if interval is not None:
        props["HealthCheckIntervalSeconds"] = interval
    return props


def target_group_attributes(attributes: dict[str, Any]) -> list[dict[str, str]]:
    """``{"stickiness.enabled": True}`` → TargetGroupAttributes list."""
    return [
        {"Key": key, "Value": str(value).lower() if isinstance(value, bool) else str(value)}
        for key, value in attributes.items()
    ]
