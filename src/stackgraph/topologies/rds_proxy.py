"""
stackgraph.topologies.rds_proxy — Aurora PostgreSQL behind an RDS proxy.

Two isolated VPCs: A holds a client instance, B holds the cluster and
its proxy. The ``enablePeering`` context flag gates a subgraph that
peers the VPCs, routes between them and opens the proxy to VPC A.

Hardening is plain configuration under ``hardening``. Each option is
read while the stack is defined, so disabled options leave no trace
in the graph.
"""

from __future__ import annotations

import json
from typing import Any

from stackgraph.core.declaration import StackDefinition
from stackgraph.core.kinds import ResourceKind
from stackgraph.core.refs import Intrinsic
from stackgraph.topologies.compute import amazon_linux, user_data
from stackgraph.topologies.network import (
    ISOLATED,
    SubnetConfig,
    add_security_group,
    add_vpc,
    allow,
    allow_from_group,
    assume_role_policy,
    policy_document,
)
from stackgraph.topology.base import Topology
from stackgraph.topology.values import section

POSTGRES_PORT = 5432
ROTATION_TRANSFORM = "AWS::SecretsManager-2020-07-23"

HARDENING_OPTIONS = (
    "encryptStorage",
    "deletionProtection",
    "iamAuthentication",
    "rotateCredentials",
    "flowLogs",
    "terminationProtection",
    "detailedMonitoring",
)


def _key_policy() -> dict[str, Any]:
    return policy_document([{
        "Effect": "Allow",
        "Principal": {"AWS": "arn:${AWS::Partition}:iam::${AWS::AccountId}:root"},
        "Action": "kms:*",
        "Resource": "*",
    }])


def _comma_list(values: list[Any]) -> Intrinsic:
    return Intrinsic("Fn::Join", [",", values])


class RdsProxyTopology(Topology):
    name = "rds-proxy"
    version = "1.0.0"
    description = "Aurora PostgreSQL with an RDS proxy, optionally peered to a client VPC"
    stack_name = "RdsProxyVpcStack"
    defaults = {
        "enablePeering": False,
        "clientVpcCidr": "10.0.0.0/16",
        "databaseVpcCidr": "10.1.0.0/16",
        "maxAzs": 2,
        "database": {
            "engineVersion": "15.4",
            "instanceClass": "db.t3.medium",
            "name": "testdb",
            "username": "admin",
            "readers": 1,
        },
        "proxyName": "rds-proxy",
        "client": {"instanceType": "t3.micro", "image": "amazon-linux-2", "volumeSize": 8},
        "rotationDays": 30,
        "hardening": {option: False for option in HARDENING_OPTIONS},
    }

    def define(self, values: dict[str, Any]) -> StackDefinition:
        v = values
        db = section(v, "database")
        client = section(v, "client")
        hardening = section(v, "hardening")
        unknown = sorted(set(hardening) - set(HARDENING_OPTIONS))
        if unknown:
            raise ValueError(
                f"Unknown hardening option(s): {', '.join(unknown)}. "
                f"Supported: {', '.join(HARDENING_OPTIONS)}"
            )
        harden = {option: bool(hardening.get(option)) for option in HARDENING_OPTIONS}
        cidr_a, cidr_b = v["clientVpcCidr"], v["databaseVpcCidr"]

        stack = StackDefinition(self.stack_name)

        # 1. VPCs
        vpc_a = add_vpc(
            stack, "VpcA", cidr=cidr_a, max_azs=v["maxAzs"], nat_gateways=0,
            subnets=[SubnetConfig("PrivateSubnetA", ISOLATED),
                     SubnetConfig("PrivateSubnetB", ISOLATED)],
            flow_logs=harden["flowLogs"], name="VPC-A",
        )
        vpc_b = add_vpc(
            stack, "VpcB", cidr=cidr_b, max_azs=v["maxAzs"], nat_gateways=0,
            subnets=[SubnetConfig("PrivateSubnetC", ISOLATED),
                     SubnetConfig("PrivateSubnetD", ISOLATED)],
            flow_logs=harden["flowLogs"], name="VPC-B",
        )

        # 2. Security groups
        client_sg = add_security_group(stack, "ClientSecurityGroup", vpc_a,
                                       "Security group for EC2 client")
        db_sg = add_security_group(stack, "DatabaseSecurityGroup", vpc_b,
                                   "Security group for RDS Aurora", allow_all_outbound=False)
        proxy_sg = add_security_group(stack, "ProxySecurityGroup", vpc_b,
                                      "Security group for RDS Proxy")
        allow_from_group(stack, "DatabaseSecurityGroupFromProxy", db_sg, proxy_sg,
                         POSTGRES_PORT, "Allow from RDS Proxy")

        # 3. Encryption key
        key = None
        if harden["encryptStorage"]:
            key = stack.add("DatabaseKey", ResourceKind.KMS_KEY, {
                "Description": "KMS key for database encryption",
                "EnableKeyRotation": True,
                "KeyPolicy": _key_policy(),
            }, deletion_policy="Retain")

        # 4. Credentials
        secret_props: dict[str, Any] = {
            "Description": "Aurora master credentials",
            "GenerateSecretString": {
                "SecretStringTemplate": json.dumps({"username": db.get("username", "admin")}),
                "GenerateStringKey": "password",
                "ExcludeCharacters": '"@/\\',
            },
        }
        if key is not None:
            secret_props["KmsKeyId"] = key.ref("Arn")
        secret = stack.add("DatabaseCredentials", ResourceKind.SECRET, secret_props)

        # 5. Aurora cluster
        subnet_group = stack.add("DatabaseSubnetGroup", ResourceKind.DATABASE_SUBNET_GROUP, {
            "DBSubnetGroupDescription": "Subnet group for Aurora cluster",
            "SubnetIds": vpc_b.subnet_ids(ISOLATED),
        })
        resolve = "{{resolve:secretsmanager:${DatabaseCredentials}:SecretString:%s}}"
        cluster_props: dict[str, Any] = {
            "Engine": "aurora-postgresql",
            "EngineVersion": str(db.get("engineVersion", "15.4")),
            "DatabaseName": db.get("name", "testdb"),
            "MasterUsername": resolve % "username",
            "MasterUserPassword": resolve % "password",
            "DBSubnetGroupName": subnet_group.ref(),
            "VpcSecurityGroupIds": [db_sg.ref("GroupId")],
            "Port": POSTGRES_PORT,
            "StorageEncrypted": harden["encryptStorage"],
            "DeletionProtection": harden["deletionProtection"],
            "EnableIAMDatabaseAuthentication": harden["iamAuthentication"],
        }
        if key is not None:
            cluster_props["KmsKeyId"] = key.ref("Arn")
        cluster = stack.add("AuroraCluster", ResourceKind.DATABASE_CLUSTER, cluster_props,
                            deletion_policy="Snapshot")

        instance_class = db.get("instanceClass", "db.t3.medium")
        members = ["Writer"] + [f"Reader{n + 1}" if n else "Reader"
                                for n in range(int(db.get("readers", 1)))]
        writer_id = None
        for member in members:
            instance = stack.add(f"AuroraCluster{member}", ResourceKind.DATABASE_INSTANCE, {
                "DBClusterIdentifier": cluster.ref(),
                "DBInstanceClass": instance_class,
                "Engine": "aurora-postgresql",
                "PubliclyAccessible": False,
            })
            writer_id = writer_id or instance.logical_id

        attachment = stack.add("DatabaseCredentialsAttachment",
                               ResourceKind.SECRET_TARGET_ATTACHMENT, {
            "SecretId": secret.ref(),
            "TargetId": cluster.ref(),
            "TargetType": "AWS::RDS::DBCluster",
        })

        # 6. Proxy
        proxy_role = stack.add("ProxyRole", ResourceKind.ROLE, {
            "AssumeRolePolicyDocument": assume_role_policy("rds.amazonaws.com"),
            "Policies": [{
                "PolicyName": "GetSecretValuePolicy",
                "PolicyDocument": policy_document([
                    allow(["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"],
                          [secret.ref()]),
                ]),
            }],
        })
        proxy = stack.add("RDSProxy", ResourceKind.DATABASE_PROXY, {
            "DBProxyName": v.get("proxyName", "rds-proxy"),
            "EngineFamily": "POSTGRESQL",
            "RequireTLS": True,
            "RoleArn": proxy_role.ref("Arn"),
            "Auth": [{
                "AuthScheme": "SECRETS",
                "IAMAuth": "REQUIRED" if harden["iamAuthentication"] else "DISABLED",
                "SecretArn": attachment.ref(),
            }],
            "VpcSubnetIds": vpc_b.subnet_ids(ISOLATED),
            "VpcSecurityGroupIds": [proxy_sg.ref("GroupId")],
        })
        stack.add("RDSProxyTargetGroup", ResourceKind.DATABASE_PROXY_TARGET_GROUP, {
            "DBProxyName": proxy.ref(),
            "TargetGroupName": "default",
            "DBClusterIdentifiers": [cluster.ref()],
        }, depends_on=[writer_id])

        # 7. Client instance
        block_device: dict[str, Any] = {"VolumeSize": client.get("volumeSize", 8)}
        if key is not None:
            block_device.update({"Encrypted": True, "KmsKeyId": key.ref("Arn")})
        instance_props: dict[str, Any] = {
            "InstanceType": client.get("instanceType", "t3.micro"),
            "ImageId": amazon_linux(client.get("image", "amazon-linux-2")),
            "SubnetId": vpc_a.subnet_ids(ISOLATED)[0],
            "SecurityGroupIds": [client_sg.ref("GroupId")],
            "BlockDeviceMappings": [{"DeviceName": "/dev/xvda", "Ebs": block_device}],
            "UserData": user_data(["yum update -y", "yum install -y postgresql15"]),
            "Tags": [{"Key": "Name", "Value": "ClientInstance"}],
        }
        if harden["detailedMonitoring"]:
            instance_props["Monitoring"] = True
        if harden["terminationProtection"]:
            instance_props["DisableApiTermination"] = True
        client_instance = stack.add("ClientInstance", ResourceKind.COMPUTE, instance_props)

        # 8. Rotation
        if harden["rotateCredentials"]:
            rotation_sg = add_security_group(stack, "RotationSecurityGroup", vpc_b,
                                             "Security group for credential rotation")
            allow_from_group(stack, "DatabaseSecurityGroupFromRotation", db_sg, rotation_sg,
                             POSTGRES_PORT, "Allow from credential rotation")
            hosted: dict[str, Any] = {
                "RotationType": "PostgreSQLSingleUser",
                "VpcSubnetIds": _comma_list(vpc_b.subnet_ids(ISOLATED)),
                "VpcSecurityGroupIds": rotation_sg.ref("GroupId"),
            }
            if key is not None:
                hosted["KmsKeyArn"] = key.ref("Arn")
            stack.add("DatabaseCredentialsRotation", ResourceKind.ROTATION_SCHEDULE, {
                "SecretId": attachment.ref(),
                "HostedRotationLambda": hosted,
                "RotationRules": {"AutomaticallyAfterDays": v.get("rotationDays", 30)},
            })
            stack.transform(ROTATION_TRANSFORM)

        # 9. Peering
        with stack.gated("enablePeering") as peering:
            connection = peering.add("VPCPeeringConnection", ResourceKind.PEERING_CONNECTION, {
                "VpcId": vpc_a.ref(),
                "PeerVpcId": vpc_b.ref(),
                "Tags": [{"Key": "Name", "Value": "VPC-A-to-VPC-B-Peering"}],
            })
            for side, vpc, destination in (("A", vpc_a, cidr_b), ("B", vpc_b, cidr_a)):
                for index, table in enumerate(vpc.route_table_ids(ISOLATED)):
                    peering.add(f"Route{side}{index}", ResourceKind.ROUTE, {
                        "RouteTableId": table,
                        "DestinationCidrBlock": destination,
                        "VpcPeeringConnectionId": connection.ref(),
                    })
            peering.add("ProxySecurityGroupFromVpcA", ResourceKind.SECURITY_GROUP_INGRESS, {
                "GroupId": proxy_sg.ref("GroupId"),
                "CidrIp": cidr_a,
                "IpProtocol": "tcp",
                "FromPort": POSTGRES_PORT,
                "ToPort": POSTGRES_PORT,
                "Description": "Allow PostgreSQL from VPC-A",
            })
            peering.output("PeeringConnectionId", connection.ref(),
                           description="VPC peering connection id")

        # 10. Outputs
        stack.output("VpcAId", vpc_a.ref(), description="Client VPC id")
        stack.output("VpcBId", vpc_b.ref(), description="Database VPC id")
        stack.output("ClientInstanceId", client_instance.ref())
        stack.output("ClusterEndpoint", cluster.ref("Endpoint.Address"))
        stack.output("ProxyEndpoint", proxy.ref("Endpoint"))
        stack.output("DatabaseSecretArn", secret.ref())
        return stack
