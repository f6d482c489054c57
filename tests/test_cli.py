"""
tests/test_cli.py — CLI tests.

Tests commands using Click CliRunner.
"""

import json
import os
import sys
import tempfile

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from click.testing import CliRunner

from stackgraph.cli import main
from stackgraph.topology.registry import reset_registry


@pytest.fixture(autouse=True)
def clean():
    reset_registry()
    yield
    reset_registry()


runner = CliRunner()


def _write_yaml(data):
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
    return f.name


def _write_text(text):
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(text)
    return f.name


STACK = {
    "apiVersion": "stackgraph.io/v1",
    "kind": "Stack",
    "metadata": {"name": "CliDemo"},
    "context": {"withRole": False},
    "resources": [
        {"logicalId": "Net", "type": "Network", "properties": {"CidrBlock": "10.0.0.0/16"}},
        {"logicalId": "Srv", "type": "Compute", "properties": {"SubnetId": {"ref": "Net"}}},
        {"logicalId": "Role", "type": "Role", "condition": "withRole"},
    ],
    "outputs": [{"name": "ServerId", "value": "${Srv}"}],
}


class TestSynth:
    def test_synth_default(self):
        result = runner.invoke(main, ["synth", "ftp"])
        assert result.exit_code == 0
        doc = yaml.safe_load(result.output)
        assert doc["AWSTemplateFormatVersion"] == "2010-09-09"
        assert doc["Resources"]["Asg"]["Type"] == "AWS::AutoScaling::AutoScalingGroup"
        assert "LoadBalancerDNS" in doc["Outputs"]

    def test_synth_json(self):
        result = runner.invoke(main, ["synth", "managed-login", "--format", "json"])
        assert result.exit_code == 0
        doc = json.loads(result.output)
        assert doc["Resources"]["ManagedLoginUserPool"]["Type"] == "AWS::Cognito::UserPool"

    def test_synth_with_set(self):
        result = runner.invoke(main, [
            "synth", "ftp",
            "--set", "capacity.max=6",
            "--set", "capacity.desired=3",
        ])
        assert result.exit_code == 0
        asg = yaml.safe_load(result.output)["Resources"]["Asg"]["Properties"]
        assert asg["MaxSize"] == "6"
        assert asg["DesiredCapacity"] == "3"

    def test_synth_with_values_file(self):
        path = _write_yaml({"instanceType": "t3.small"})
        result = runner.invoke(main, ["synth", "cdn-web", "-f", path])
        os.unlink(path)
        assert result.exit_code == 0
        server = yaml.safe_load(result.output)["Resources"]["WebServer"]
        assert server["Properties"]["InstanceType"] == "t3.small"

    def test_synth_gated_subgraph(self):
        off = yaml.safe_load(runner.invoke(main, ["synth", "rds-proxy"]).output)
        result = runner.invoke(main, ["synth", "rds-proxy", "--set", "enablePeering=true"])
        assert result.exit_code == 0
        on = yaml.safe_load(result.output)
        assert "VPCPeeringConnection" not in off["Resources"]
        assert "VPCPeeringConnection" in on["Resources"]
        assert "PeeringConnectionId" in on["Outputs"]

    def test_synth_to_file(self):
        with tempfile.NamedTemporaryFile(suffix=".json", delete=False) as f:
            outpath = f.name
        result = runner.invoke(main, ["synth", "ftp", "--format", "json", "-o", outpath])
        assert result.exit_code == 0
        assert "Written to" in result.output
        with open(outpath) as f:
            doc = json.load(f)
        os.unlink(outpath)
        assert "Resources" in doc

    def test_synth_name_override(self):
        result = runner.invoke(main, ["synth", "ftp", "--name", "FtpProd"])
        assert result.exit_code == 0
        tags = yaml.safe_load(result.output)["Resources"]["Asg"]["Properties"]["Tags"]
        assert {"Key": "stackgraph:stack", "Value": "FtpProd", "PropagateAtLaunch": True} in tags

    def test_topology_not_found(self):
        result = runner.invoke(main, ["synth", "nonexistent"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_no_topology_no_file(self):
        result = runner.invoke(main, ["synth"])
        assert result.exit_code == 1
        assert "give a topology name or a stack file" in result.output

    def test_assembly_error(self):
        result = runner.invoke(main, ["synth", "ftp", "--set", "capacity.min=5"])
        assert result.exit_code == 1
        assert "Error (invalid-property)" in result.output
        assert "Asg" in result.output

    def test_bad_set(self):
        result = runner.invoke(main, ["synth", "ftp", "--set", "invalid"])
        assert result.exit_code == 1
        assert "expected key=value" in result.output

    def test_missing_values_file(self):
        result = runner.invoke(main, ["synth", "ftp", "-f", "/nonexistent.yaml"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_invalid_values_yaml(self):
        path = _write_text("capacity: {min: 2\n")
        result = runner.invoke(main, ["synth", "ftp", "-f", path])
        os.unlink(path)
        assert result.exit_code == 1
        assert "invalid YAML" in result.output
        assert isinstance(result.exception, SystemExit)

    def test_invalid_stack_yaml(self):
        path = _write_text("resources:\n  - logicalId: [Net\n")
        result = runner.invoke(main, ["synth", "-f", path])
        os.unlink(path)
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "invalid YAML" in result.output

    def test_scalar_for_mapping_value(self):
        result = runner.invoke(main, ["synth", "ftp", "--set", "capacity=3"])
        assert result.exit_code == 1
        assert "'capacity' must be a mapping" in result.output
        assert isinstance(result.exception, SystemExit)

    def test_bad_vpc_cidr(self):
        result = runner.invoke(main, ["synth", "ftp", "--set", "vpcCidr=10.0.0.1/16"])
        assert result.exit_code == 1
        assert "Error (invalid-property)" in result.output
        assert "MyVpc" in result.output


class TestSynthStackFile:
    def test_render_stack_file(self):
        path = _write_yaml(STACK)
        result = runner.invoke(main, ["synth", "-f", path])
        os.unlink(path)
        assert result.exit_code == 0
        doc = yaml.safe_load(result.output)
        assert list(doc["Resources"]) == ["Net", "Srv"]
        assert doc["Resources"]["Srv"]["Properties"]["SubnetId"] == {"Ref": "Net"}
        assert doc["Outputs"]["ServerId"] == {"Value": {"Ref": "Srv"}}

    def test_stack_file_with_set(self):
        path = _write_yaml(STACK)
        result = runner.invoke(main, ["synth", "-f", path, "--set", "context.withRole=true"])
        os.unlink(path)
        assert result.exit_code == 0
        assert "Role" in yaml.safe_load(result.output)["Resources"]

    def test_stack_file_overlay(self):
        base = _write_yaml(STACK)
        overlay = _write_yaml({"resources": {"Net": {"properties": {"CidrBlock": "10.8.0.0/16"}}}})
        result = runner.invoke(main, ["synth", "-f", base, "-f", overlay])
        os.unlink(base)
        os.unlink(overlay)
        assert result.exit_code == 0
        net = yaml.safe_load(result.output)["Resources"]["Net"]
        assert net["Properties"]["CidrBlock"] == "10.8.0.0/16"

    def test_stack_file_cycle(self):
        data = dict(STACK, resources=[
            {"logicalId": "A", "type": "Role", "properties": {"Path": "${B.Arn}"}},
            {"logicalId": "B", "type": "Role", "properties": {"Path": "${A.Arn}"}},
        ], outputs=[])
        path = _write_yaml(data)
        result = runner.invoke(main, ["synth", "-f", path])
        os.unlink(path)
        assert result.exit_code == 1
        assert "cyclic-reference" in result.output

    def test_stack_file_not_found(self):
        result = runner.invoke(main, ["synth", "-f", "/nonexistent/stack.yaml"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestGraph:
    def test_graph_topology(self):
        result = runner.invoke(main, ["graph", "managed-login"])
        assert result.exit_code == 0
        assert "Stack: ManagedLoginStack (4 resources)" in result.output
        assert "ManagedLoginUserPoolClient" in result.output
        assert "Outputs:" in result.output
        assert "ManagedLoginUrl" in result.output

    def test_graph_stack_file(self):
        path = _write_yaml(STACK)
        result = runner.invoke(main, ["graph", "-f", path])
        os.unlink(path)
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "Stack: CliDemo (2 resources)"
        net = next(line for line in lines if line.strip().startswith("Net"))
        srv = next(line for line in lines if line.strip().startswith("Srv"))
        assert net.endswith("← -")
        assert srv.endswith("← Net")


class TestList:
    def test_list(self):
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0
        assert "NAME" in result.output
        for name in ("cdn-web", "ftp", "rds-proxy", "managed-login"):
            assert name in result.output


class TestInspect:
    def test_inspect(self):
        result = runner.invoke(main, ["inspect", "rds-proxy"])
        assert result.exit_code == 0
        assert "Name:        rds-proxy" in result.output
        assert "Stack:       RdsProxyVpcStack" in result.output
        assert "Default Values:" in result.output
        assert "enablePeering: false" in result.output

    def test_inspect_not_found(self):
        result = runner.invoke(main, ["inspect", "nonexistent"])
        assert result.exit_code == 1
        assert "Available:" in result.output


class TestMain:
    def test_version(self):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output

    def test_verbose_flag(self):
        result = runner.invoke(main, ["-v", "list"])
        assert result.exit_code == 0
