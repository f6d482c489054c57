"""
stackgraph.topologies.network — Reusable network components.

VPC layout, security groups and rules, declared on an explicit
StackDefinition. Components can be used inside the built-in
topologies and externally via composition::

    vpc = add_vpc(stack, "Vpc", subnets=[
        SubnetConfig("Public", PUBLIC),
        SubnetConfig("Private", PRIVATE),
    ], nat_gateways=1)
    sg = add_security_group(stack, "WebSg", vpc, "Web servers")
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any

from stackgraph.core import validate
from stackgraph.core.declaration import Declaration, StackDefinition
from stackgraph.core.errors import InvalidPropertyError
from stackgraph.core.kinds import ResourceKind
from stackgraph.core.refs import Ref, select_az

PUBLIC = "public"
PRIVATE = "private"      # private with egress through a NAT gateway
ISOLATED = "isolated"

ANY_IPV4 = "0.0.0.0/0"


@dataclass(frozen=True)
class SubnetConfig:
    name: str
    subnet_type: str
    cidr_mask: int = 24


@dataclass
class Vpc:
    """Handle on a declared VPC and its subnets."""

    vpc: Declaration
    cidr: str
    subnets: dict[str, list[Declaration]] = field(default_factory=dict)
    route_tables: dict[str, list[Declaration]] = field(default_factory=dict)

    @property
    def logical_id(self) -> str:
        return self.vpc.logical_id

    def ref(self) -> Ref:
        return self.vpc.ref()

    def subnet_ids(self, subnet_type: str) -> list[Ref]:
        return [s.ref() for s in self.subnets.get(subnet_type, [])]

    def route_table_ids(self, subnet_type: str) -> list[Ref]:
        return [rt.ref() for rt in self.route_tables.get(subnet_type, [])]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# VPC
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def add_vpc(
    stack: StackDefinition,
    logical_id: str,
    cidr: str = "10.0.0.0/16",
    max_azs: int = 2,
    nat_gateways: int = 0,
    subnets: list[SubnetConfig] | None = None,
    flow_logs: bool = False,
    name: str | None = None,
) -> Vpc:
    """VPC with one subnet per (config, AZ), carved in order from ``cidr``.

    Public subnets get an internet gateway route. Private subnets route
    through NAT gateways placed in the first public subnets. Isolated
    subnets get a route table without a default route.
    """
    try:
        validate.cidr(cidr)
    except ValueError as e:
        raise InvalidPropertyError(
            f"'{logical_id}' ({ResourceKind.NETWORK.value}): CidrBlock: {e}",
            logical_id=logical_id, prop="CidrBlock",
        ) from e

    configs = subnets or [
        SubnetConfig("Public", PUBLIC),
        SubnetConfig("Private", PRIVATE),
    ]
    types = {c.subnet_type for c in configs}
    if nat_gateways and PUBLIC not in types:
        raise ValueError(f"{logical_id}: NAT gateways need a public subnet")
    if PRIVATE in types and not nat_gateways:
        raise ValueError(f"{logical_id}: private subnets need at least one NAT gateway")

    vpc = Vpc(
        vpc=stack.add(logical_id, ResourceKind.NETWORK, {
            "CidrBlock": cidr,
            "EnableDnsHostnames": True,
            "EnableDnsSupport": True,
            "InstanceTenancy": "default",
            "Tags": [{"Key": "Name", "Value": name or logical_id}],
        }),
        cidr=cidr,
    )

    attachment = None
    if PUBLIC in types:
        igw = stack.add(f"{logical_id}Igw", ResourceKind.INTERNET_GATEWAY, {
            "Tags": [{"Key": "Name", "Value": name or logical_id}],
        })
        attachment = stack.add(f"{logical_id}IgwAttachment", ResourceKind.GATEWAY_ATTACHMENT, {
            "VpcId": vpc.ref(),
            "InternetGatewayId": igw.ref(),
        })

    ranges = _carve(logical_id, cidr, [c.cidr_mask for c in configs for _ in range(max_azs)])
    nat_ids: list[Ref] = []

    # public first so NAT gateways exist before private routes reference them
    ordered = sorted(configs, key=lambda c: c.subnet_type != PUBLIC)
    for config in ordered:
        index = configs.index(config)
        for az in range(max_azs):
            block = ranges[index * max_azs + az]
            subnet, table = _add_subnet(stack, vpc, config, az, block)

            if config.subnet_type == PUBLIC:
                stack.add(f"{subnet.logical_id}DefaultRoute", ResourceKind.ROUTE, {
                    "RouteTableId": table.ref(),
                    "DestinationCidrBlock": ANY_IPV4,
                    "GatewayId": Ref(f"{logical_id}Igw"),
                }, depends_on=[attachment.logical_id])
                if len(nat_ids) < nat_gateways:
                    nat_ids.append(_add_nat(stack, subnet))
            elif config.subnet_type == PRIVATE:
                stack.add(f"{subnet.logical_id}DefaultRoute", ResourceKind.ROUTE, {
                    "RouteTableId": table.ref(),
                    "DestinationCidrBlock": ANY_IPV4,
                    "NatGatewayId": nat_ids[az % len(nat_ids)],
                })

    if flow_logs:
        add_flow_log(stack, f"{logical_id}FlowLog", vpc)
    return vpc


def _add_subnet(stack: StackDefinition, vpc: Vpc, config: SubnetConfig,
                az: int, block: str) -> tuple[Declaration, Declaration]:
    prefix = f"{vpc.logical_id}{config.name}Subnet{az + 1}"
    subnet = stack.add(prefix, ResourceKind.SUBNET, {
        "VpcId": vpc.ref(),
        "AvailabilityZone": select_az(az),
        "CidrBlock": block,
        "MapPublicIpOnLaunch": config.subnet_type == PUBLIC,
        "Tags": [
            {"Key": "Name", "Value": prefix},
            {"Key": "aws-cdk:subnet-type", "Value": _SUBNET_TYPE_TAGS[config.subnet_type]},
        ],
    })
    table = stack.add(f"{prefix}RouteTable", ResourceKind.ROUTE_TABLE, {
        "VpcId": vpc.ref(),
    })
    stack.add(f"{prefix}RouteTableAssociation", ResourceKind.SUBNET_ROUTE_TABLE_ASSOCIATION, {
        "SubnetId": subnet.ref(),
        "RouteTableId": table.ref(),
    })
    vpc.subnets.setdefault(config.subnet_type, []).append(subnet)
    vpc.route_tables.setdefault(config.subnet_type, []).append(table)
    return subnet, table


def _add_nat(stack: StackDefinition, subnet: Declaration) -> Ref:
    eip = stack.add(f"{subnet.logical_id}Eip", ResourceKind.ELASTIC_IP, {"Domain": "vpc"})
    nat = stack.add(f"{subnet.logical_id}NatGateway", ResourceKind.NAT_GATEWAY, {
        "SubnetId": subnet.ref(),
        "AllocationId": eip.ref("AllocationId"),
    })
    return nat.ref()


_SUBNET_TYPE_TAGS = {PUBLIC: "Public", PRIVATE: "Private", ISOLATED: "Isolated"}


def _carve(logical_id: str, cidr: str, masks: list[int]) -> list[str]:
    """Allocate consecutive, aligned blocks of the given sizes from ``cidr``."""
    network = ipaddress.ip_network(cidr)
    cursor = int(network.network_address)
    blocks: list[str] = []
    for mask in masks:
        size = 2 ** (network.max_prefixlen - mask)
        cursor = (cursor + size - 1) // size * size
        if cursor + size > int(network.broadcast_address) + 1:
            raise InvalidPropertyError(
                f"'{logical_id}' ({ResourceKind.NETWORK.value}): CidrBlock: "
                f"{cidr} has no room for another /{mask} subnet",
                logical_id=logical_id, prop="CidrBlock",
            )
        blocks.append(str(ipaddress.ip_network((cursor, mask))))
        cursor += size
    return blocks


def add_flow_log(stack: StackDefinition, logical_id: str, vpc: Vpc,
                 retention_days: int = 731) -> Declaration:
    """VPC flow log delivered to a dedicated CloudWatch log group."""
    group = stack.add(f"{logical_id}LogGroup", ResourceKind.LOG_GROUP, {
        "RetentionInDays": retention_days,
    }, deletion_policy="Retain")
    role = stack.add(f"{logical_id}Role", ResourceKind.ROLE, {
        "AssumeRolePolicyDocument": assume_role_policy("vpc-flow-logs.amazonaws.com"),
    })
    stack.add(f"{logical_id}Policy", ResourceKind.POLICY, {
        "PolicyName": f"{logical_id}Policy",
        "Roles": [role.ref()],
        "PolicyDocument": policy_document([
            allow(["logs:CreateLogStream", "logs:PutLogEvents",
                   "logs:DescribeLogStreams"], [group.ref("Arn")]),
            allow(["iam:PassRole"], [role.ref("Arn")]),
        ]),
    })
    return stack.add(logical_id, ResourceKind.FLOW_LOG, {
        "ResourceId": vpc.ref(),
        "ResourceType": "VPC",
        "TrafficType": "ALL",
        "LogDestinationType": "cloud-watch-logs",
        "LogGroupName": group.ref(),
        "DeliverLogsPermissionArn": role.ref("Arn"),
    })


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SECURITY GROUPS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
_ALLOW_ALL_OUTBOUND = {
    "CidrIp": ANY_IPV4,
    "Description": "Allow all outbound traffic by default",
    "IpProtocol": "-1",
}

# matches nothing: an explicit rule keeps the default allow-all egress away
_DENY_ALL_OUTBOUND = {
    "CidrIp": "255.255.255.255/32",
    "Description": "Disallow all traffic",
    "FromPort": 252,
    "IpProtocol": "icmp",
    "ToPort": 86,
}


def add_security_group(
    stack: StackDefinition,
    logical_id: str,
    vpc: Vpc | Ref,
    description: str,
    allow_all_outbound: bool = True,
    ingress: list[dict[str, Any]] | None = None,
) -> Declaration:
    props: dict[str, Any] = {
        "GroupDescription": description,
        "VpcId": vpc.ref() if isinstance(vpc, Vpc) else vpc,
        "SecurityGroupEgress": [
            dict(_ALLOW_ALL_OUTBOUND if allow_all_outbound else _DENY_ALL_OUTBOUND)
        ],
    }
    if ingress:
        props["SecurityGroupIngress"] = list(ingress)
    return stack.add(logical_id, ResourceKind.SECURITY_GROUP, props)


def tcp_from_cidr(cidr: str, port: int, description: str,
                  to_port: int | None = None) -> dict[str, Any]:
    """Inline ingress rule for a CIDR range, one port or ``port..to_port``."""
    return {
        "CidrIp": cidr,
        "Description": description,
        "FromPort": port,
        "IpProtocol": "tcp",
        "ToPort": port if to_port is None else to_port,
    }


def allow_from_group(
    stack: StackDefinition,
    logical_id: str,
    group: Declaration,
    source: Declaration,
    port: int,
    description: str,
) -> Declaration:
    """Standalone ingress rule from another security group.

    Kept out of the group's inline rules so two groups can point at
    each other without forming a reference cycle.
    """
    return stack.add(logical_id, ResourceKind.SECURITY_GROUP_INGRESS, {
        "GroupId": group.ref("GroupId"),
        "SourceSecurityGroupId": source.ref("GroupId"),
        "IpProtocol": "tcp",
        "FromPort": port,
        "ToPort": port,
        "Description": description,
    })


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# IAM
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def assume_role_policy(service: str) -> dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": service},
            "Action": "sts:AssumeRole",
        }],
    }


def allow(actions: list[str], resources: list[Any]) -> dict[str, Any]:
    return {
        "Effect": "Allow",
        "Action": actions if len(actions) > 1 else actions[0],
        "Resource": resources if len(resources) > 1 else resources[0],
    }


def policy_document(statements: list[dict[str, Any]]) -> dict[str, Any]:
    return {"Version": "2012-10-17", "Statement": statements}
