"""
stackgraph.core.kinds — Closed set of resource kinds.

Each kind is a tagged variant: an enum member plus a KindSchema
describing its CloudFormation type, the attributes it emits, how
its properties are validated and how it carries tags. Behaviour is
looked up in SCHEMAS, never overridden per kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from stackgraph.core import validate as v
from stackgraph.core.errors import InvalidPropertyError
from stackgraph.core.refs import PRIMARY


class ResourceKind(Enum):
    NETWORK = "Network"
    SUBNET = "Subnet"
    ROUTE_TABLE = "RouteTable"
    SUBNET_ROUTE_TABLE_ASSOCIATION = "SubnetRouteTableAssociation"
    ROUTE = "Route"
    INTERNET_GATEWAY = "InternetGateway"
    GATEWAY_ATTACHMENT = "GatewayAttachment"
    ELASTIC_IP = "ElasticIp"
    NAT_GATEWAY = "NatGateway"
    PEERING_CONNECTION = "PeeringConnection"
    SECURITY_GROUP = "SecurityGroup"
    SECURITY_GROUP_INGRESS = "SecurityGroupIngress"
    SECURITY_GROUP_EGRESS = "SecurityGroupEgress"
    FLOW_LOG = "FlowLog"
    LOG_GROUP = "LogGroup"
    COMPUTE = "Compute"
    INSTANCE_PROFILE = "InstanceProfile"
    LAUNCH_TEMPLATE = "LaunchTemplate"
    AUTO_SCALING_GROUP = "AutoScalingGroup"
    ROLE = "Role"
    POLICY = "Policy"
    LOAD_BALANCER = "LoadBalancer"
    TARGET_GROUP = "TargetGroup"
    LISTENER = "Listener"
    SECRET = "Secret"
    SECRET_TARGET_ATTACHMENT = "SecretTargetAttachment"
    ROTATION_SCHEDULE = "RotationSchedule"
    KMS_KEY = "KmsKey"
    DATABASE_SUBNET_GROUP = "DatabaseSubnetGroup"
    DATABASE_CLUSTER = "DatabaseCluster"
    DATABASE_INSTANCE = "DatabaseInstance"
    DATABASE_PROXY = "DatabaseProxy"
    DATABASE_PROXY_TARGET_GROUP = "DatabaseProxyTargetGroup"
    DISTRIBUTION = "Distribution"
    USER_POOL = "UserPool"
    USER_POOL_CLIENT = "UserPoolClient"
    USER_POOL_DOMAIN = "UserPoolDomain"
    MANAGED_LOGIN_BRANDING = "ManagedLoginBranding"

    @property
    def schema(self) -> KindSchema:
        return SCHEMAS[self]

    @classmethod
    def parse(cls, text: Any) -> ResourceKind:
        """Accept a member, its name, its display name or its CloudFormation type.

        >>> ResourceKind.parse("Network") is ResourceKind.NETWORK
        True
        >>> ResourceKind.parse("AWS::EC2::Instance") is ResourceKind.COMPUTE
        True
        """
        if isinstance(text, cls):
            return text
        if isinstance(text, str):
            for kind in cls:
                if text in (kind.value, kind.name, SCHEMAS[kind].cfn_type):
                    return kind
        raise InvalidPropertyError(
            f"Unknown resource type: {text!r}. "
            f"Supported: {', '.join(k.value for k in cls)}",
            prop="type",
        )


# Tag formats
TAGS_LIST = "list"              # [{Key, Value}]
TAGS_MAP = "map"                # {Key: Value}
TAGS_PROPAGATING = "propagating"  # [{Key, Value, PropagateAtLaunch}]


@dataclass(frozen=True)
class KindSchema:
    cfn_type: str
    attributes: frozenset[str] = frozenset()
    properties: dict[str, v.Validator] = field(default_factory=dict)
    checks: tuple[Callable[[dict[str, Any]], None], ...] = ()
    tags: str | None = None
    tag_property: str = "Tags"

    def emits(self, attribute: str) -> bool:
        return attribute == PRIMARY or attribute in self.attributes


def _schema(cfn_type: str, attributes: tuple[str, ...] = (), **kwargs: Any) -> KindSchema:
    tags = kwargs.get("tags")
    if tags is not None:
        tag_check = v.tag_map if tags == TAGS_MAP else v.tag_list
        key = kwargs.get("tag_property", "Tags")
        kwargs["properties"] = {key: tag_check, **kwargs.get("properties", {})}
    return KindSchema(cfn_type=cfn_type, attributes=frozenset(attributes), **kwargs)


_LOG_RETENTION_DAYS = (1, 3, 5, 7, 14, 30, 60, 90, 120, 150, 180, 365, 400, 545,
                       731, 1096, 1827, 2192, 2557, 2922, 3288, 3653)

_RULES = v.list_of(v.firewall_rule)
_THRESHOLD = v.integer(2, 10)

SCHEMAS: dict[ResourceKind, KindSchema] = {
    # ── networking ──
    ResourceKind.NETWORK: _schema(
        "AWS::EC2::VPC",
        ("CidrBlock", "DefaultSecurityGroup", "VpcId"),
        properties={
            "CidrBlock": v.cidr,
            "EnableDnsHostnames": v.boolean,
            "EnableDnsSupport": v.boolean,
            "InstanceTenancy": v.one_of("default", "dedicated", "host"),
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.SUBNET: _schema(
        "AWS::EC2::Subnet",
        ("AvailabilityZone", "SubnetId", "VpcId"),
        properties={"CidrBlock": v.cidr, "MapPublicIpOnLaunch": v.boolean},
        tags=TAGS_LIST,
    ),
    ResourceKind.ROUTE_TABLE: _schema(
        "AWS::EC2::RouteTable", ("RouteTableId",), tags=TAGS_LIST,
    ),
    ResourceKind.SUBNET_ROUTE_TABLE_ASSOCIATION: _schema(
        "AWS::EC2::SubnetRouteTableAssociation", ("Id",),
    ),
    ResourceKind.ROUTE: _schema(
        "AWS::EC2::Route",
        properties={"DestinationCidrBlock": v.cidr},
    ),
    ResourceKind.INTERNET_GATEWAY: _schema(
        "AWS::EC2::InternetGateway", ("InternetGatewayId",), tags=TAGS_LIST,
    ),
    ResourceKind.GATEWAY_ATTACHMENT: _schema("AWS::EC2::VPCGatewayAttachment"),
    ResourceKind.ELASTIC_IP: _schema(
        "AWS::EC2::EIP",
        ("AllocationId", "PublicIp"),
        properties={"Domain": v.one_of("vpc", "standard")},
        tags=TAGS_LIST,
    ),
    ResourceKind.NAT_GATEWAY: _schema(
        "AWS::EC2::NatGateway", ("NatGatewayId",), tags=TAGS_LIST,
    ),
    ResourceKind.PEERING_CONNECTION: _schema(
        "AWS::EC2::VPCPeeringConnection", ("Id",), tags=TAGS_LIST,
    ),
    ResourceKind.SECURITY_GROUP: _schema(
        "AWS::EC2::SecurityGroup",
        ("GroupId", "VpcId"),
        properties={
            "GroupDescription": v.string,
            "SecurityGroupIngress": _RULES,
            "SecurityGroupEgress": _RULES,
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.SECURITY_GROUP_INGRESS: _schema(
        "AWS::EC2::SecurityGroupIngress", ("Id",), checks=(v.firewall_rule,),
    ),
    ResourceKind.SECURITY_GROUP_EGRESS: _schema(
        "AWS::EC2::SecurityGroupEgress", ("Id",), checks=(v.firewall_rule,),
    ),
    ResourceKind.FLOW_LOG: _schema(
        "AWS::EC2::FlowLog",
        ("Id",),
        properties={
            "ResourceType": v.one_of("VPC", "Subnet", "NetworkInterface",
                                     "TransitGateway", "TransitGatewayAttachment"),
            "TrafficType": v.one_of("ACCEPT", "REJECT", "ALL"),
            "LogDestinationType": v.one_of("cloud-watch-logs", "s3", "kinesis-data-firehose"),
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.LOG_GROUP: _schema(
        "AWS::Logs::LogGroup",
        ("Arn",),
        properties={"RetentionInDays": v.one_of(*_LOG_RETENTION_DAYS)},
        tags=TAGS_LIST,
    ),
    # ── compute ──
    ResourceKind.COMPUTE: _schema(
        "AWS::EC2::Instance",
        ("AvailabilityZone", "InstanceId", "PrivateDnsName", "PrivateIp",
         "PublicDnsName", "PublicIp"),
        properties={
            "InstanceType": v.string,
            "Monitoring": v.boolean,
            "DisableApiTermination": v.boolean,
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.INSTANCE_PROFILE: _schema("AWS::IAM::InstanceProfile", ("Arn",)),
    ResourceKind.LAUNCH_TEMPLATE: _schema(
        "AWS::EC2::LaunchTemplate",
        ("DefaultVersionNumber", "LatestVersionNumber", "LaunchTemplateId"),
        properties={"LaunchTemplateData": v.mapping},
    ),
    ResourceKind.AUTO_SCALING_GROUP: _schema(
        "AWS::AutoScaling::AutoScalingGroup",
        properties={
            "MinSize": v.non_negative,
            "MaxSize": v.non_negative,
            "DesiredCapacity": v.non_negative,
        },
        checks=(v.capacity,),
        tags=TAGS_PROPAGATING,
    ),
    # ── identity ──
    ResourceKind.ROLE: _schema(
        "AWS::IAM::Role",
        ("Arn", "RoleId"),
        properties={"AssumeRolePolicyDocument": v.mapping},
        tags=TAGS_LIST,
    ),
    ResourceKind.POLICY: _schema(
        "AWS::IAM::Policy", ("Id",),
        properties={"PolicyName": v.string, "PolicyDocument": v.mapping},
    ),
    # ── load balancing ──
    ResourceKind.LOAD_BALANCER: _schema(
        "AWS::ElasticLoadBalancingV2::LoadBalancer",
        ("CanonicalHostedZoneID", "DNSName", "LoadBalancerArn",
         "LoadBalancerFullName", "LoadBalancerName", "SecurityGroups"),
        properties={
            "Type": v.one_of("application", "network", "gateway"),
            "Scheme": v.one_of("internet-facing", "internal"),
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.TARGET_GROUP: _schema(
        "AWS::ElasticLoadBalancingV2::TargetGroup",
        ("LoadBalancerArns", "TargetGroupArn", "TargetGroupFullName", "TargetGroupName"),
        properties={
            "Port": v.port,
            "Protocol": v.one_of("HTTP", "HTTPS", "TCP", "TLS", "UDP", "TCP_UDP", "GENEVE"),
            "TargetType": v.one_of("instance", "ip", "lambda", "alb"),
            "HealthCheckEnabled": v.boolean,
            "HealthCheckProtocol": v.one_of("HTTP", "HTTPS", "TCP"),
            "HealthCheckIntervalSeconds": v.integer(5, 300),
            "HealthCheckTimeoutSeconds": v.integer(2, 120),
            "HealthyThresholdCount": _THRESHOLD,
            "UnhealthyThresholdCount": _THRESHOLD,
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.LISTENER: _schema(
        "AWS::ElasticLoadBalancingV2::Listener",
        ("ListenerArn",),
        properties={
            "Port": v.integer(1, 65535),
            "Protocol": v.one_of("HTTP", "HTTPS", "TCP", "TLS", "UDP", "TCP_UDP"),
        },
    ),
    # ── secrets / keys ──
    ResourceKind.SECRET: _schema(
        "AWS::SecretsManager::Secret",
        ("Id",),
        properties={
            "Name": v.string,
            "Description": v.string,
            "GenerateSecretString": v.mapping,
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.SECRET_TARGET_ATTACHMENT: _schema(
        "AWS::SecretsManager::SecretTargetAttachment",
        properties={
            "TargetType": v.one_of("AWS::RDS::DBInstance", "AWS::RDS::DBCluster",
                                   "AWS::RDS::DBProxy", "AWS::Redshift::Cluster",
                                   "AWS::DocDB::DBInstance", "AWS::DocDB::DBCluster"),
        },
    ),
    ResourceKind.ROTATION_SCHEDULE: _schema(
        "AWS::SecretsManager::RotationSchedule",
        properties={"RotationRules": v.mapping, "HostedRotationLambda": v.mapping},
    ),
    ResourceKind.KMS_KEY: _schema(
        "AWS::KMS::Key",
        ("Arn", "KeyId"),
        properties={"EnableKeyRotation": v.boolean, "KeyPolicy": v.mapping},
        tags=TAGS_LIST,
    ),
    # ── database ──
    ResourceKind.DATABASE_SUBNET_GROUP: _schema(
        "AWS::RDS::DBSubnetGroup",
        properties={"DBSubnetGroupDescription": v.string},
        tags=TAGS_LIST,
    ),
    ResourceKind.DATABASE_CLUSTER: _schema(
        "AWS::RDS::DBCluster",
        ("DBClusterArn", "DBClusterResourceId", "Endpoint.Address", "Endpoint.Port",
         "ReadEndpoint.Address"),
        properties={
            "Engine": v.one_of("aurora-mysql", "aurora-postgresql", "mysql", "postgres"),
            "Port": v.port,
            "StorageEncrypted": v.boolean,
            "DeletionProtection": v.boolean,
            "EnableIAMDatabaseAuthentication": v.boolean,
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.DATABASE_INSTANCE: _schema(
        "AWS::RDS::DBInstance",
        ("DBInstanceArn", "Endpoint.Address", "Endpoint.Port"),
        properties={"DBInstanceClass": v.string, "PubliclyAccessible": v.boolean},
        tags=TAGS_LIST,
    ),
    ResourceKind.DATABASE_PROXY: _schema(
        "AWS::RDS::DBProxy",
        ("DBProxyArn", "Endpoint", "VpcId"),
        properties={
            "EngineFamily": v.one_of("MYSQL", "POSTGRESQL", "SQLSERVER"),
            "RequireTLS": v.boolean,
            "IdleClientTimeout": v.integer(1, 28800),
        },
        tags=TAGS_LIST,
    ),
    ResourceKind.DATABASE_PROXY_TARGET_GROUP: _schema(
        "AWS::RDS::DBProxyTargetGroup",
        ("TargetGroupArn",),
        properties={"TargetGroupName": v.one_of("default")},
    ),
    # ── edge / identity providers ──
    ResourceKind.DISTRIBUTION: _schema(
        "AWS::CloudFront::Distribution",
        ("DomainName", "Id"),
        properties={"DistributionConfig": v.mapping},
        tags=TAGS_LIST,
    ),
    ResourceKind.USER_POOL: _schema(
        "AWS::Cognito::UserPool",
        ("Arn", "ProviderName", "ProviderURL", "UserPoolId"),
        properties={
            "UserPoolName": v.string,
            "UsernameAttributes": v.list_of(v.one_of("email", "phone_number")),
        },
        tags=TAGS_MAP,
        tag_property="UserPoolTags",
    ),
    ResourceKind.USER_POOL_CLIENT: _schema(
        "AWS::Cognito::UserPoolClient",
        ("ClientId", "ClientSecret", "Name"),
        properties={
            "GenerateSecret": v.boolean,
            "AllowedOAuthFlows": v.list_of(v.one_of("code", "implicit", "client_credentials")),
            "AllowedOAuthFlowsUserPoolClient": v.boolean,
            "PreventUserExistenceErrors": v.one_of("ENABLED", "LEGACY"),
        },
    ),
    ResourceKind.USER_POOL_DOMAIN: _schema(
        "AWS::Cognito::UserPoolDomain",
        ("CloudFrontDistribution", "ManagedLoginVersion"),
        properties={"ManagedLoginVersion": v.one_of(1, 2)},
    ),
    ResourceKind.MANAGED_LOGIN_BRANDING: _schema(
        "AWS::Cognito::ManagedLoginBranding",
        ("ManagedLoginBrandingId",),
        properties={"UseCognitoProvidedValues": v.boolean},
    ),
}
