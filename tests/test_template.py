"""
tests/test_template.py — CloudFormation serialization.
"""

import json
import sys
import os

import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from stackgraph.core import Ref, ResourceKind, StackDefinition, Template
from stackgraph.core.refs import Intrinsic, Join, base64, select_az
from stackgraph.core.template import render_value


class TestRenderValue:
    def test_primary_ref(self):
        assert render_value(Ref("Vpc")) == {"Ref": "Vpc"}

    def test_attribute_ref(self):
        assert render_value(Ref("Alb", "DNSName")) == {"Fn::GetAtt": ["Alb", "DNSName"]}

    def test_pseudo_ref(self):
        assert render_value(Ref("AWS::Region")) == {"Ref": "AWS::Region"}

    def test_join(self):
        value = Join(("https://", Ref("Alb", "DNSName"), "/"))
        assert render_value(value) == {
            "Fn::Join": ["", ["https://", {"Fn::GetAtt": ["Alb", "DNSName"]}, "/"]],
        }

    def test_intrinsics_nest(self):
        assert render_value(select_az(0)) == {"Fn::Select": [0, {"Fn::GetAZs": ""}]}
        assert render_value(base64(Ref("X"))) == {"Fn::Base64": {"Ref": "X"}}

    def test_containers(self):
        assert render_value({"a": (Ref("X"), 1)}) == {"a": [{"Ref": "X"}, 1]}


def _template():
    stack = StackDefinition("Demo", description="Demo stack")
    net = stack.add("Net", ResourceKind.NETWORK, {"CidrBlock": "10.0.0.0/16"},
                    deletion_policy="Retain")
    stack.add("Sub", ResourceKind.SUBNET, {
        "VpcId": net.ref(),
        "CidrBlock": "10.0.1.0/24",
        "AvailabilityZone": select_az(0),
    }, depends_on=["Net"])
    stack.output("VpcId", net.ref(), description="VPC", export_name="demo-vpc")
    stack.output("Url", "https://${Net.CidrBlock}/")
    graph = stack.assemble()
    return Template(graph, description=stack.description)


class TestTemplate:
    def test_document_shape(self):
        doc = _template().to_dict()
        assert list(doc) == ["AWSTemplateFormatVersion", "Description", "Resources", "Outputs"]
        assert doc["AWSTemplateFormatVersion"] == "2010-09-09"
        assert doc["Description"] == "Demo stack"

    def test_resources(self):
        resources = _template().to_dict()["Resources"]
        assert resources["Net"] == {
            "Type": "AWS::EC2::VPC",
            "Properties": {"CidrBlock": "10.0.0.0/16"},
            "DeletionPolicy": "Retain",
            "UpdateReplacePolicy": "Retain",
        }
        sub = resources["Sub"]
        assert sub["Type"] == "AWS::EC2::Subnet"
        assert sub["Properties"]["VpcId"] == {"Ref": "Net"}
        assert sub["Properties"]["AvailabilityZone"] == {"Fn::Select": [0, {"Fn::GetAZs": ""}]}
        assert sub["DependsOn"] == ["Net"]

    def test_outputs(self):
        outputs = _template().to_dict()["Outputs"]
        assert outputs["VpcId"] == {
            "Value": {"Ref": "Net"},
            "Description": "VPC",
            "Export": {"Name": "demo-vpc"},
        }
        assert outputs["Url"] == {
            "Value": {"Fn::Join": ["", ["https://", {"Fn::GetAtt": ["Net", "CidrBlock"]}, "/"]]},
        }

    def test_no_outputs_section_when_empty(self):
        stack = StackDefinition("Empty")
        stack.add("Net", ResourceKind.NETWORK, {})
        doc = Template(stack.assemble()).to_dict()
        assert "Outputs" not in doc
        assert "Description" not in doc
        assert doc["Resources"] == {"Net": {"Type": "AWS::EC2::VPC"}}

    def test_single_transform(self):
        stack = StackDefinition("T")
        stack.transform("AWS::SecretsManager-2020-07-23")
        stack.transform("AWS::SecretsManager-2020-07-23")
        doc = Template(stack.assemble()).to_dict()
        assert doc["Transform"] == "AWS::SecretsManager-2020-07-23"

    def test_multiple_transforms(self):
        stack = StackDefinition("T")
        stack.transform("AWS::Serverless-2016-10-31")
        stack.transform("AWS::SecretsManager-2020-07-23")
        doc = Template(stack.assemble()).to_dict()
        assert doc["Transform"] == ["AWS::Serverless-2016-10-31", "AWS::SecretsManager-2020-07-23"]

    def test_retain_except_on_create_has_no_replace_policy(self):
        stack = StackDefinition("T")
        stack.add("Net", ResourceKind.NETWORK, {}, deletion_policy="RetainExceptOnCreate")
        net = Template(stack.assemble()).to_dict()["Resources"]["Net"]
        assert net["DeletionPolicy"] == "RetainExceptOnCreate"
        assert "UpdateReplacePolicy" not in net

    def test_json_roundtrip(self):
        template = _template()
        assert json.loads(template.to_json()) == template.to_dict()

    def test_yaml_roundtrip(self):
        template = _template()
        text = template.to_yaml()
        assert text.startswith("AWSTemplateFormatVersion")
        assert yaml.safe_load(text) == template.to_dict()

    def test_graph_accessible(self):
        template = _template()
        assert template.graph.name == "Demo"
        assert template.graph.order == ("Net", "Sub")

    def test_intrinsic_passthrough(self):
        stack = StackDefinition("T")
        stack.add("Net", ResourceKind.NETWORK, {})
        stack.add("Srv", ResourceKind.COMPUTE, {
            "UserData": Intrinsic("Fn::Base64", "echo ${Net}"),
        })
        props = Template(stack.assemble()).to_dict()["Resources"]["Srv"]["Properties"]
        assert props["UserData"] == {"Fn::Base64": {"Fn::Join": ["", ["echo ", {"Ref": "Net"}]]}}
