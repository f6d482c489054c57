"""
stackgraph.topologies.ftp — FTP fleet behind a network load balancer.

vsftpd instances in an auto-scaling group read their FTP user's
credentials from a generated secret at boot. An NLB forwards TCP 21
to the fleet with source-ip stickiness. With ``passiveMode`` each port
of ``passivePorts`` gets its own listener and target group, and vsftpd
advertises the NLB address for data connections.
"""

from __future__ import annotations

import json
from typing import Any

from stackgraph.core.declaration import StackDefinition
from stackgraph.core.kinds import ResourceKind
from stackgraph.topologies.compute import (
    add_instance_role,
    amazon_linux,
    health_check,
    target_group_attributes,
    user_data,
)
from stackgraph.topologies.network import (
    ANY_IPV4,
    PRIVATE,
    PUBLIC,
    SubnetConfig,
    add_security_group,
    add_vpc,
    allow,
    policy_document,
    tcp_from_cidr,
)
from stackgraph.topology.base import Topology
from stackgraph.topology.values import section

MAX_PASSIVE_PORTS = 10


def passive_port_range(cfg: dict[str, Any]) -> range:
    """Passive data ports from a ``{min, max}`` mapping.

    Raises:
        ValueError: bounds out of order or outside 1024-65535, or more
            than MAX_PASSIVE_PORTS ports
    """
    low, high = cfg.get("min"), cfg.get("max")
    if not all(isinstance(p, int) and not isinstance(p, bool) for p in (low, high)):
        raise ValueError(f"passivePorts needs integer min and max, got {low!r}..{high!r}")
    if not 1024 <= low <= high <= 65535:
        raise ValueError(f"passivePorts {low}..{high} must satisfy 1024 <= min <= max <= 65535")
    if high - low + 1 > MAX_PASSIVE_PORTS:
        raise ValueError(
            f"passivePorts {low}..{high} spans {high - low + 1} ports; "
            f"each needs its own listener, at most {MAX_PASSIVE_PORTS}"
        )
    return range(low, high + 1)


def vsftpd_commands(secret_name: str, passive_ports: range | None = None,
                    passive_address: str | None = None) -> list[str]:
    """Boot script: install vsftpd and create the user from the secret.

    With ``passive_ports`` vsftpd answers PASV with ``passive_address``
    (resolved at boot) and a port from the range.
    """
    if passive_ports is None:
        passive = ['echo "pasv_enable=NO" >> /etc/vsftpd/vsftpd.conf']
    else:
        passive = [
            f'echo "{line}" >> /etc/vsftpd/vsftpd.conf'
            for line in (
                "pasv_enable=YES",
                f"pasv_min_port={passive_ports[0]}",
                f"pasv_max_port={passive_ports[-1]}",
                f"pasv_address={passive_address}",
                "pasv_addr_resolve=YES",
            )
        ]
    return [
        "#!/bin/bash",
        "dnf update -y",
        "dnf install -y vsftpd",
        # credentials from Secrets Manager
        f"secret=$(aws secretsmanager get-secret-value --secret-id {secret_name} "
        "--region ${AWS::Region} --query SecretString --output text)",
        "username=$(echo $secret | jq -r .username)",
        "password=$(echo $secret | jq -r .password)",
        "useradd $username",
        'echo "$password" | passwd --stdin $username',
        "mkdir -p /home/$username",
        "chown $username:$username /home/$username",
        "cp /etc/vsftpd/vsftpd.conf /etc/vsftpd/vsftpd.conf.bak",
        'echo "anonymous_enable=NO" >> /etc/vsftpd/vsftpd.conf',
        'echo "chroot_local_user=YES" >> /etc/vsftpd/vsftpd.conf',
        'echo "allow_writeable_chroot=YES" >> /etc/vsftpd/vsftpd.conf',
        *passive,
        "systemctl start vsftpd",
        "systemctl enable vsftpd",
    ]


class FtpTopology(Topology):
    name = "ftp"
    version = "1.0.0"
    description = "vsftpd auto-scaling fleet behind a network load balancer"
    stack_name = "FtpStack"
    defaults = {
        "vpcCidr": "10.0.0.0/16",
        "maxAzs": 2,
        "natGateways": 1,
        "port": 21,
        "ingressCidr": ANY_IPV4,
        "instanceType": "t2.micro",
        "image": "amazon-linux-2023",
        "capacity": {"min": 2, "max": 4, "desired": 2},
        "secret": {
            "name": "ftp/user/credentials",
            "username": "ftp-user",
            "passwordLength": 16,
        },
        "loadBalancer": {"internetFacing": False, "crossZone": True},
        "healthCheck": {"healthyThreshold": 2, "unhealthyThreshold": 2, "interval": 30},
        "stickiness": True,
        "passiveMode": False,
        "passivePorts": {"min": 21000, "max": 21004},
    }

    def define(self, values: dict[str, Any]) -> StackDefinition:
        v = values
        port = v["port"]
        secret_cfg = section(v, "secret")
        capacity = section(v, "capacity")
        lb_cfg = section(v, "loadBalancer")
        hc = section(v, "healthCheck")

        stack = StackDefinition(self.stack_name)

        # 1. Instance role
        role, profile = add_instance_role(stack, "Ec2Role")

        # 2. Credentials
        secret_name = secret_cfg.get("name", "ftp/user/credentials")
        secret = stack.add("FtpUserSecret", ResourceKind.SECRET, {
            "Name": secret_name,
            "Description": "FTP user credentials",
            "GenerateSecretString": {
                "SecretStringTemplate": json.dumps({"username": secret_cfg.get("username", "ftp-user")}),
                "GenerateStringKey": "password",
                "ExcludePunctuation": True,
                "PasswordLength": secret_cfg.get("passwordLength", 16),
            },
        })
        stack.add("Ec2RoleSecretPolicy", ResourceKind.POLICY, {
            "PolicyName": "Ec2RoleSecretPolicy",
            "Roles": [role.ref()],
            "PolicyDocument": policy_document([
                allow(["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"],
                      [secret.ref()]),
            ]),
        })

        # 3. VPC
        vpc = add_vpc(
            stack, "MyVpc",
            cidr=v["vpcCidr"],
            max_azs=v["maxAzs"],
            nat_gateways=v["natGateways"],
            subnets=[SubnetConfig("Public", PUBLIC), SubnetConfig("Private", PRIVATE)],
        )

        # 4. Load balancer
        nlb = stack.add("MyNlb", ResourceKind.LOAD_BALANCER, {
            "Type": "network",
            "Scheme": "internet-facing" if lb_cfg.get("internetFacing") else "internal",
            "Subnets": vpc.subnet_ids(PUBLIC if lb_cfg.get("internetFacing") else PRIVATE),
            "LoadBalancerAttributes": [{
                "Key": "load_balancing.cross_zone.enabled",
                "Value": "true" if lb_cfg.get("crossZone", True) else "false",
            }],
        })

        # 5. Security group
        passive_ports = passive_port_range(section(v, "passivePorts")) if v.get("passiveMode") else None
        ingress = [tcp_from_cidr(v["ingressCidr"], port, "Allow FTP traffic")]
        if passive_ports is not None:
            ingress.append(tcp_from_cidr(v["ingressCidr"], passive_ports[0], "Allow FTP passive data",
                                         to_port=passive_ports[-1]))
        ftp_sg = add_security_group(stack, "FtpSecurityGroup", vpc, "Security group for FTP server",
                                    ingress=ingress)

        # 6. Fleet
        commands = vsftpd_commands(
            secret_name,
            passive_ports=passive_ports,
            passive_address=f"${{{nlb.logical_id}.DNSName}}",
        )
        template = stack.add("FtpLaunchTemplate", ResourceKind.LAUNCH_TEMPLATE, {
            "LaunchTemplateData": {
                "ImageId": amazon_linux(v["image"]),
                "InstanceType": v["instanceType"],
                "IamInstanceProfile": {"Arn": profile.ref("Arn")},
                "SecurityGroupIds": [ftp_sg.ref("GroupId")],
                "UserData": user_data(commands),
            },
        }, depends_on=[role.logical_id])

        # 7. Target groups and listeners, control port first
        attributes: dict[str, Any] = {}
        if v.get("stickiness", True):
            attributes = {"stickiness.enabled": True, "stickiness.type": "source_ip"}
        checks = health_check(
            "TCP",
            healthy=hc.get("healthyThreshold", 2),
            unhealthy=hc.get("unhealthyThreshold", 2),
            interval=hc.get("interval", 30),
        )
        forwards = [("TargetGroup", "TcpListener", port)]
        if passive_ports is not None:
            forwards += [(f"PassiveTargetGroup{p}", f"PassiveListener{p}", p) for p in passive_ports]

        target_groups = []
        for group_id, listener_id, listen_port in forwards:
            group = stack.add(group_id, ResourceKind.TARGET_GROUP, {
                "VpcId": vpc.ref(),
                "Port": listen_port,
                "Protocol": "TCP",
                "TargetType": "instance",
                **checks,
                # data ports only listen during a transfer
                **({"HealthCheckPort": str(port)} if listen_port != port else {}),
                **({"TargetGroupAttributes": target_group_attributes(attributes)} if attributes else {}),
            })
            stack.add(listener_id, ResourceKind.LISTENER, {
                "LoadBalancerArn": nlb.ref(),
                "Port": listen_port,
                "Protocol": "TCP",
                "DefaultActions": [{"Type": "forward", "TargetGroupArn": group.ref()}],
            })
            target_groups.append(group)

        stack.add("Asg", ResourceKind.AUTO_SCALING_GROUP, {
            "MinSize": str(capacity.get("min", 2)),
            "MaxSize": str(capacity.get("max", 4)),
            "DesiredCapacity": str(capacity.get("desired", 2)),
            "LaunchTemplate": {
                "LaunchTemplateId": template.ref(),
                "Version": template.ref("LatestVersionNumber"),
            },
            "VPCZoneIdentifier": vpc.subnet_ids(PRIVATE),
            "TargetGroupARNs": [group.ref() for group in target_groups],
        })

        stack.output("LoadBalancerDNS", nlb.ref("DNSName"),
                     description="DNS name of the FTP load balancer")
        return stack
