"""
stackgraph.topologies.cdn_web — CDN-fronted web server.

CloudFront → internet-facing ALB → single web server in a private
subnet. The ALB is the distribution's HTTP-only origin; viewers are
redirected to HTTPS at the edge.
"""

from __future__ import annotations

from typing import Any

from stackgraph.core.declaration import StackDefinition
from stackgraph.core.kinds import ResourceKind
from stackgraph.topologies.compute import amazon_linux, health_check
from stackgraph.topologies.network import (
    ANY_IPV4,
    PRIVATE,
    PUBLIC,
    SubnetConfig,
    add_security_group,
    add_vpc,
    allow_from_group,
    tcp_from_cidr,
)
from stackgraph.topology.base import Topology
from stackgraph.topology.values import section

# AWS managed cache policy "CachingOptimized"
CACHING_OPTIMIZED = "658327ea-f89d-4fab-a63d-7e88639e58f6"

_ALLOWED_METHODS = {
    "ALL": ["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "POST", "DELETE"],
    "GET_HEAD_OPTIONS": ["GET", "HEAD", "OPTIONS"],
    "GET_HEAD": ["GET", "HEAD"],
}


class CdnWebTopology(Topology):
    name = "cdn-web"
    version = "1.0.0"
    description = "CloudFront distribution in front of an ALB and a web server"
    stack_name = "ArchDiagramStack"
    defaults = {
        "vpcCidr": "10.0.0.0/16",
        "maxAzs": 2,
        "natGateways": 1,
        "instanceType": "t3.micro",
        "image": "amazon-linux-2",
        "port": 80,
        "healthCheck": {
            "path": "/",
            "healthyThreshold": 2,
            "unhealthyThreshold": 2,
            "timeout": 10,
        },
        "distribution": {
            "priceClass": "PriceClass_100",
            "allowedMethods": "ALL",
            "viewerProtocolPolicy": "redirect-to-https",
        },
    }

    def define(self, values: dict[str, Any]) -> StackDefinition:
        v = values
        port = v["port"]
        hc = section(v, "healthCheck")
        dist = section(v, "distribution")

        stack = StackDefinition(self.stack_name)

        # 1. VPC
        vpc = add_vpc(
            stack, "MyVpc",
            cidr=v["vpcCidr"],
            max_azs=v["maxAzs"],
            nat_gateways=v["natGateways"],
            subnets=[SubnetConfig("Public", PUBLIC), SubnetConfig("Private", PRIVATE)],
        )

        # 2. Web server
        web_sg = add_security_group(stack, "WebServerSg", vpc, "Web server instances")
        server = stack.add("WebServer", ResourceKind.COMPUTE, {
            "InstanceType": v["instanceType"],
            "ImageId": amazon_linux(v["image"]),
            "SubnetId": vpc.subnet_ids(PRIVATE)[0],
            "SecurityGroupIds": [web_sg.ref("GroupId")],
            "Tags": [{"Key": "Name", "Value": "WebServer"}],
        })

        # 3. ALB
        alb_sg = add_security_group(stack, "AlbSg", vpc, "Application load balancer", ingress=[
            tcp_from_cidr(ANY_IPV4, port, "Allow CloudFront access"),
        ])
        alb = stack.add("Alb", ResourceKind.LOAD_BALANCER, {
            "Type": "application",
            "Scheme": "internet-facing",
            "Subnets": vpc.subnet_ids(PUBLIC),
            "SecurityGroups": [alb_sg.ref("GroupId")],
        })
        allow_from_group(stack, "WebServerSgFromAlb", web_sg, alb_sg, port,
                         "Load balancer to target")

        target_group = stack.add("WebTarget", ResourceKind.TARGET_GROUP, {
            "VpcId": vpc.ref(),
            "Port": port,
            "Protocol": "HTTP",
            "TargetType": "instance",
            "Targets": [{"Id": server.ref(), "Port": port}],
            **health_check(
                "HTTP",
                path=hc.get("path", "/"),
                healthy=hc.get("healthyThreshold", 2),
                unhealthy=hc.get("unhealthyThreshold", 2),
                timeout=hc.get("timeout"),
                interval=hc.get("interval"),
            ),
        })
        stack.add("AlbListener", ResourceKind.LISTENER, {
            "LoadBalancerArn": alb.ref(),
            "Port": port,
            "Protocol": "HTTP",
            "DefaultActions": [{"Type": "forward", "TargetGroupArn": target_group.ref()}],
        })

        # 4. CloudFront
        methods = dist.get("allowedMethods", "ALL")
        if methods not in _ALLOWED_METHODS:
            raise ValueError(
                f"distribution.allowedMethods must be one of {list(_ALLOWED_METHODS)}, "
                f"got '{methods}'"
            )
        distribution = stack.add("Distribution", ResourceKind.DISTRIBUTION, {
            "DistributionConfig": {
                "Enabled": True,
                "HttpVersion": "http2",
                "IPV6Enabled": True,
                "PriceClass": dist.get("priceClass", "PriceClass_100"),
                "Origins": [{
                    "Id": "AlbOrigin",
                    "DomainName": alb.ref("DNSName"),
                    "CustomOriginConfig": {
                        "OriginProtocolPolicy": "http-only",
                        "HTTPPort": port,
                        "OriginSSLProtocols": ["TLSv1.2"],
                    },
                }],
                "DefaultCacheBehavior": {
                    "TargetOriginId": "AlbOrigin",
                    "ViewerProtocolPolicy": dist.get("viewerProtocolPolicy", "redirect-to-https"),
                    "AllowedMethods": _ALLOWED_METHODS[methods],
                    "CachedMethods": ["GET", "HEAD"],
                    "CachePolicyId": CACHING_OPTIMIZED,
                    "Compress": True,
                },
            },
        })

        stack.output("DistributionDomainName", distribution.ref("DomainName"),
                     description="CloudFront URL of the web server")
        return stack
