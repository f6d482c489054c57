"""
tests/test_builder.py — Graph assembly.

Reference resolution, ordering, conditional subgraphs, the error
taxonomy and tag merging.
"""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from stackgraph.core import (
    ContextRef,
    CyclicReferenceError,
    Declaration,
    DuplicateIdError,
    GatedReferenceError,
    InvalidPropertyError,
    OutputDeclaration,
    Ref,
    ResourceKind,
    StackDefinition,
    UnknownReferenceError,
    assemble,
    flag_enabled,
)
from stackgraph.core.refs import Join


def _net(stack, logical_id="Net", cidr="10.0.0.0/16"):
    return stack.add(logical_id, ResourceKind.NETWORK, {"CidrBlock": cidr})


# ─────────────────────────────────────────────
# BASIC ASSEMBLY
# ─────────────────────────────────────────────
class TestAssemble:
    def test_network_and_server(self):
        graph = assemble([
            Declaration("net", ResourceKind.NETWORK, {"CidrBlock": "10.0.0.0/16"}),
            Declaration("srv", ResourceKind.COMPUTE, {"networkId": {"ref": "net", "attribute": "id"}}),
        ], context={})

        assert len(graph) == 2
        assert graph["srv"].properties["networkId"] == Ref("net", "id")
        assert graph["srv"].dependencies == ("net",)
        assert len(graph.outputs) == 0

    def test_one_node_per_declaration(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        for i in range(5):
            stack.add(f"Subnet{i}", ResourceKind.SUBNET, {
                "VpcId": net.ref(),
                "CidrBlock": f"10.0.{i}.0/24",
            })
        graph = stack.assemble()
        assert len(graph) == 6
        assert [n.logical_id for n in graph] == ["Net"] + [f"Subnet{i}" for i in range(5)]

    def test_reference_stays_a_pointer(self):
        stack = StackDefinition("Demo")
        a = _net(stack, "A")
        stack.add("B", ResourceKind.SUBNET, {"VpcId": a.ref(), "CidrBlock": "10.0.0.0/24"})
        graph = stack.assemble()
        assert graph["B"].properties["VpcId"] == Ref("A")
        assert graph["B"].properties["VpcId"] != "A"

    def test_producers_resolved_before_consumers(self):
        stack = StackDefinition("Demo")
        # consumer declared first
        stack.add("Srv", ResourceKind.COMPUTE, {"SubnetId": Ref("Sub")})
        stack.add("Sub", ResourceKind.SUBNET, {"VpcId": Ref("Net"), "CidrBlock": "10.0.1.0/24"})
        _net(stack)
        graph = stack.assemble()
        assert graph.order == ("Net", "Sub", "Srv")
        # declaration order is kept for iteration
        assert list(graph.nodes) == ["Srv", "Sub", "Net"]

    def test_interpolated_string(self):
        stack = StackDefinition("Demo")
        _net(stack)
        stack.add("Sg", ResourceKind.SECURITY_GROUP, {
            "GroupDescription": "net ${Net} in ${AWS::Region}",
            "VpcId": "${Net}",
        })
        graph = stack.assemble()
        props = graph["Sg"].properties
        assert props["VpcId"] == Ref("Net")
        assert props["GroupDescription"] == Join(("net ", Ref("Net"), " in ", Ref("AWS::Region")))
        assert graph["Sg"].dependencies == ("Net",)

    def test_pseudo_parameter_is_not_a_dependency(self):
        stack = StackDefinition("Demo")
        stack.add("Key", ResourceKind.KMS_KEY, {"Description": "${AWS::StackName} key"})
        graph = stack.assemble()
        assert graph["Key"].dependencies == ()

    def test_explicit_depends_on(self):
        stack = StackDefinition("Demo")
        _net(stack)
        stack.add("Role", ResourceKind.ROLE, {}, depends_on=["Net"])
        graph = stack.assemble()
        assert graph["Role"].depends_on == ("Net",)
        assert graph["Role"].dependencies == ("Net",)
        assert graph.order.index("Net") < graph.order.index("Role")

    def test_edges_and_dependents(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.add("S1", ResourceKind.SUBNET, {"VpcId": net.ref(), "CidrBlock": "10.0.1.0/24"})
        stack.add("S2", ResourceKind.SUBNET, {"VpcId": net.ref(), "CidrBlock": "10.0.2.0/24"})
        graph = stack.assemble()
        assert graph.edges() == [("S1", "Net"), ("S2", "Net")]
        assert graph.dependents("Net") == ["S1", "S2"]
        assert "S1" in graph and "S3" not in graph

    def test_unknown_item_type(self):
        with pytest.raises(TypeError, match="Cannot assemble"):
            assemble(["not a declaration"])


class TestIdempotence:
    def _stack(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        with stack.gated("extra") as extra:
            extra.add("Sub", ResourceKind.SUBNET, {"VpcId": net.ref(), "CidrBlock": "10.0.1.0/24"})
            extra.output("SubnetId", Ref("Sub"))
        stack.output("VpcId", net.ref())
        stack.tags = {"team": "platform"}
        return stack

    def test_same_input_same_graph(self):
        first = self._stack().assemble({"extra": True})
        second = self._stack().assemble({"extra": True})
        assert first == second
        assert first is not second

    def test_different_context_different_graph(self):
        assert self._stack().assemble({"extra": True}) != self._stack().assemble({"extra": False})


class TestImmutability:
    def test_properties_read_only(self):
        stack = StackDefinition("Demo")
        stack.add("Sg", ResourceKind.SECURITY_GROUP, {
            "GroupDescription": "x",
            "SecurityGroupIngress": [{"IpProtocol": "-1", "CidrIp": "0.0.0.0/0"}],
        })
        graph = stack.assemble()
        props = graph["Sg"].properties
        with pytest.raises(TypeError):
            props["GroupDescription"] = "y"
        assert isinstance(props["SecurityGroupIngress"], tuple)
        with pytest.raises(TypeError):
            props["SecurityGroupIngress"][0]["CidrIp"] = "10.0.0.0/8"

    def test_nodes_read_only(self):
        graph = assemble([Declaration("Net", ResourceKind.NETWORK, {})])
        with pytest.raises(TypeError):
            graph.nodes["Other"] = graph["Net"]

    def test_declaration_input_not_mutated(self):
        props = {"CidrBlock": "10.0.0.0/16", "Tags": [{"Key": "Name", "Value": "n"}]}
        assemble([Declaration("Net", ResourceKind.NETWORK, props)], tags={"team": "x"})
        assert props == {"CidrBlock": "10.0.0.0/16", "Tags": [{"Key": "Name", "Value": "n"}]}


# ─────────────────────────────────────────────
# CONDITIONAL SUBGRAPHS
# ─────────────────────────────────────────────
class TestGatedSubgraph:
    def _stack(self):
        stack = StackDefinition("Peered")
        a = _net(stack, "VpcA", "10.0.0.0/16")
        b = _net(stack, "VpcB", "10.1.0.0/16")
        with stack.gated("enablePeering") as peering:
            conn = peering.add("Peering", ResourceKind.PEERING_CONNECTION, {
                "VpcId": a.ref(), "PeerVpcId": b.ref(),
            })
            peering.add("RouteA", ResourceKind.ROUTE, {
                "RouteTableId": "rtb-123",
                "DestinationCidrBlock": "10.1.0.0/16",
                "VpcPeeringConnectionId": conn.ref(),
            })
            peering.output("PeeringConnectionId", conn.ref())
        stack.output("VpcAId", a.ref())
        return stack

    def test_disabled_gate_prunes_everything(self):
        graph = self._stack().assemble({"enablePeering": False})
        assert set(graph.nodes) == {"VpcA", "VpcB"}
        assert set(graph.outputs) == {"VpcAId"}

    def test_enabled_gate_includes_everything_once(self):
        graph = self._stack().assemble({"enablePeering": True})
        assert list(graph.nodes) == ["VpcA", "VpcB", "Peering", "RouteA"]
        assert set(graph.outputs) == {"PeeringConnectionId", "VpcAId"}
        assert graph.outputs["PeeringConnectionId"].value == Ref("Peering")

    @pytest.mark.parametrize("flag,expected", [
        ("true", True), ("false", False), ("TRUE", True), ("0", False), (1, True), (None, False),
    ])
    def test_flag_values(self, flag, expected):
        graph = self._stack().assemble({"enablePeering": flag})
        assert ("Peering" in graph) is expected

    def test_unknown_gate_flag(self):
        with pytest.raises(UnknownReferenceError, match="unknown context flag 'enablePeering'"):
            self._stack().assemble({})

    def test_reference_into_gate_rejected(self):
        stack = self._stack()
        stack.add("Outsider", ResourceKind.ROUTE, {
            "RouteTableId": "rtb-1",
            "DestinationCidrBlock": "10.1.0.0/16",
            "VpcPeeringConnectionId": Ref("Peering"),
        })
        # rejected whichever way the flag falls
        for flag in (True, False):
            with pytest.raises(GatedReferenceError) as exc:
                stack.assemble({"enablePeering": flag})
            assert exc.value.logical_id == "Outsider"

    def test_gated_reference_is_an_unknown_reference(self):
        assert issubclass(GatedReferenceError, UnknownReferenceError)

    def test_ungated_output_cannot_reference_gated_node(self):
        stack = self._stack()
        stack.output("Leak", Ref("Peering"))
        with pytest.raises(GatedReferenceError):
            stack.assemble({"enablePeering": True})

    def test_subgraph_repr(self):
        stack = StackDefinition("S")
        with stack.gated("flag") as sub:
            sub.add("Net", ResourceKind.NETWORK, {})
        assert repr(sub) == "Subgraph(gate='flag', declarations=1)"
        assert sub.declarations[0].condition == "flag"


class TestContextRefs:
    def test_context_ref_resolves_to_literal(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {"CidrBlock": {"refContext": "cidr"}})
        graph = stack.assemble({"cidr": "10.9.0.0/16"})
        assert graph["Net"].properties["CidrBlock"] == "10.9.0.0/16"

    def test_context_ref_value_is_validated(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {"CidrBlock": ContextRef("cidr")})
        with pytest.raises(InvalidPropertyError):
            stack.assemble({"cidr": "not-a-cidr"})

    def test_unknown_context_flag(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {"CidrBlock": ContextRef("cidr")})
        with pytest.raises(UnknownReferenceError, match="unknown context flag 'cidr'"):
            stack.assemble({})

    def test_context_is_exposed_read_only(self):
        graph = StackDefinition("Demo").assemble({"a": 1})
        assert graph.context["a"] == 1
        with pytest.raises(TypeError):
            graph.context["a"] = 2

    def test_flag_enabled(self):
        assert flag_enabled("yes") and flag_enabled(" On ") and flag_enabled(True)
        assert not flag_enabled("no") and not flag_enabled("") and not flag_enabled(0)


# ─────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────
class TestDuplicateIds:
    def test_duplicate_logical_id(self):
        stack = StackDefinition("Demo")
        _net(stack, "X")
        stack.add("X", ResourceKind.SUBNET, {})
        with pytest.raises(DuplicateIdError) as exc:
            stack.assemble()
        assert exc.value.logical_id == "X"
        assert exc.value.kind == "duplicate-id"

    def test_duplicate_across_gate(self):
        stack = StackDefinition("Demo")
        _net(stack, "X")
        with stack.gated("flag") as sub:
            sub.add("X", ResourceKind.NETWORK, {})
        # checked before gates are evaluated
        with pytest.raises(DuplicateIdError):
            stack.assemble({"flag": False})

    def test_duplicate_output_name(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.output("Out", net.ref())
        stack.output("Out", net.ref())
        with pytest.raises(DuplicateIdError, match="Duplicate output name"):
            stack.assemble()

    def test_invalid_logical_id(self):
        with pytest.raises(InvalidPropertyError) as exc:
            assemble([Declaration("my-net", ResourceKind.NETWORK, {})])
        assert exc.value.prop == "logicalId"


class TestUnknownReferences:
    def test_unknown_target(self):
        stack = StackDefinition("Demo")
        stack.add("Sub", ResourceKind.SUBNET, {"VpcId": Ref("Ghost")})
        with pytest.raises(UnknownReferenceError, match="unknown resource 'Ghost'") as exc:
            stack.assemble()
        assert exc.value.logical_id == "Sub"

    def test_unknown_attribute(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.add("Sub", ResourceKind.SUBNET, {"VpcId": net.ref("DNSName")})
        with pytest.raises(UnknownReferenceError, match="attribute 'DNSName'"):
            stack.assemble()

    def test_known_attribute(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.add("Sub", ResourceKind.SUBNET, {"Cidr": net.ref("CidrBlock")})
        assert stack.assemble()["Sub"].properties["Cidr"] == Ref("Net", "CidrBlock")

    def test_pseudo_parameter_has_no_attributes(self):
        stack = StackDefinition("Demo")
        stack.add("Key", ResourceKind.KMS_KEY, {"Description": Ref("AWS::Region", "Name")})
        with pytest.raises(UnknownReferenceError):
            stack.assemble()

    def test_unknown_depends_on(self):
        stack = StackDefinition("Demo")
        stack.add("Role", ResourceKind.ROLE, {}, depends_on=["Ghost"])
        with pytest.raises(UnknownReferenceError, match="depends on unknown resource"):
            stack.assemble()

    def test_output_unknown_target(self):
        stack = StackDefinition("Demo")
        stack.output("Out", Ref("Ghost"))
        with pytest.raises(UnknownReferenceError) as exc:
            stack.assemble()
        assert exc.value.logical_id == "Out"


class TestCycles:
    def test_two_node_cycle(self):
        stack = StackDefinition("Demo")
        stack.add("A", ResourceKind.SECURITY_GROUP, {"GroupDescription": "${B.GroupId}"})
        stack.add("B", ResourceKind.SECURITY_GROUP, {"GroupDescription": "${A.GroupId}"})
        with pytest.raises(CyclicReferenceError) as exc:
            stack.assemble()
        assert exc.value.cycle == ["A", "B", "A"]
        assert str(exc.value) == "Cyclic reference: A -> B -> A"
        assert exc.value.logical_id == "A"

    def test_longer_cycle_through_depends_on(self):
        stack = StackDefinition("Demo")
        stack.add("A", ResourceKind.ROLE, {"Path": Ref("B", "Arn")})
        stack.add("B", ResourceKind.ROLE, {"Path": Ref("C", "Arn")})
        stack.add("C", ResourceKind.ROLE, {}, depends_on=["A"])
        with pytest.raises(CyclicReferenceError) as exc:
            stack.assemble()
        assert exc.value.cycle == ["A", "B", "C", "A"]

    def test_self_reference(self):
        stack = StackDefinition("Demo")
        stack.add("A", ResourceKind.ROLE, {"Path": Ref("A", "Arn")})
        with pytest.raises(CyclicReferenceError):
            stack.assemble()

    def test_cycle_in_disabled_gate_is_pruned(self):
        stack = StackDefinition("Demo")
        with stack.gated("flag") as sub:
            sub.add("A", ResourceKind.ROLE, {"Path": Ref("B", "Arn")})
            sub.add("B", ResourceKind.ROLE, {"Path": Ref("A", "Arn")})
        assert len(stack.assemble({"flag": False})) == 0
        with pytest.raises(CyclicReferenceError):
            stack.assemble({"flag": True})

    def test_diamond_is_not_a_cycle(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.add("L", ResourceKind.SUBNET, {"VpcId": net.ref(), "CidrBlock": "10.0.1.0/24"})
        stack.add("R", ResourceKind.SUBNET, {"VpcId": net.ref(), "CidrBlock": "10.0.2.0/24"})
        stack.add("Top", ResourceKind.ROUTE_TABLE, {"A": Ref("L"), "B": Ref("R")})
        graph = stack.assemble()
        assert graph.order == ("Net", "L", "R", "Top")

    def test_long_chain(self):
        stack = StackDefinition("Demo")
        depth = 3000
        for i in range(depth):
            stack.add(f"R{i}", ResourceKind.ROLE, {"Path": Ref(f"R{i + 1}", "Arn")})
        stack.add(f"R{depth}", ResourceKind.ROLE, {})
        graph = stack.assemble()
        assert graph.order[0] == f"R{depth}"
        assert graph.order[-1] == "R0"
        assert graph["R0"].dependencies == ("R1",)

    def test_long_cycle(self):
        stack = StackDefinition("Demo")
        depth = 3000
        for i in range(depth):
            stack.add(f"R{i}", ResourceKind.ROLE, {}, depends_on=[f"R{(i + 1) % depth}"])
        with pytest.raises(CyclicReferenceError) as exc:
            stack.assemble()
        assert len(exc.value.cycle) == depth + 1
        assert exc.value.cycle[0] == exc.value.cycle[-1] == "R0"


class TestInvalidProperties:
    def test_bad_cidr(self):
        stack = StackDefinition("Demo")
        _net(stack, cidr="10.0.0.1/16")
        with pytest.raises(InvalidPropertyError) as exc:
            stack.assemble()
        assert exc.value.prop == "CidrBlock"
        assert exc.value.logical_id == "Net"

    def test_whole_resource_check(self):
        stack = StackDefinition("Demo")
        stack.add("Asg", ResourceKind.AUTO_SCALING_GROUP, {
            "MinSize": "3", "MaxSize": "2",
        })
        with pytest.raises(InvalidPropertyError, match="greater than MaxSize") as exc:
            stack.assemble()
        assert exc.value.prop is None

    def test_unknown_properties_pass_through(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {"SomethingNew": [1, 2]})
        assert stack.assemble()["Net"].properties["SomethingNew"] == (1, 2)

    def test_reference_values_skip_validation(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.add("Sub", ResourceKind.SUBNET, {"VpcId": net.ref(), "CidrBlock": net.ref("CidrBlock")})
        stack.assemble()

    def test_unknown_kind(self):
        with pytest.raises(InvalidPropertyError) as exc:
            assemble([Declaration("Thing", "Teleporter", {})])
        assert exc.value.logical_id == "Thing"
        assert exc.value.prop == "type"

    def test_bad_deletion_policy(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {}, deletion_policy="Keep")
        with pytest.raises(InvalidPropertyError, match="DeletionPolicy"):
            stack.assemble()


# ─────────────────────────────────────────────
# TAGS & OUTPUTS
# ─────────────────────────────────────────────
class TestTags:
    def test_list_tags_merged(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {
            "Tags": [{"Key": "team", "Value": "mine"}, {"Key": "Name", "Value": "net"}],
        })
        stack.tags = {"team": "platform", "env": "dev"}
        tags = stack.assemble()["Net"].properties["Tags"]
        assert [dict(t) for t in tags] == [
            {"Key": "team", "Value": "mine"},
            {"Key": "Name", "Value": "net"},
            {"Key": "env", "Value": "dev"},
        ]

    def test_map_tags(self):
        stack = StackDefinition("Demo")
        stack.add("Pool", ResourceKind.USER_POOL, {"UserPoolName": "p"})
        stack.tags = {"env": "dev"}
        props = stack.assemble()["Pool"].properties
        assert dict(props["UserPoolTags"]) == {"env": "dev"}
        assert "Tags" not in props

    def test_propagating_tags(self):
        stack = StackDefinition("Demo")
        stack.add("Asg", ResourceKind.AUTO_SCALING_GROUP, {"MinSize": 1, "MaxSize": 1})
        stack.tags = {"env": "dev"}
        tags = stack.assemble()["Asg"].properties["Tags"]
        assert dict(tags[0]) == {"Key": "env", "Value": "dev", "PropagateAtLaunch": True}

    def test_untaggable_kind(self):
        stack = StackDefinition("Demo")
        stack.add("Route", ResourceKind.ROUTE, {"DestinationCidrBlock": "0.0.0.0/0"})
        stack.tags = {"env": "dev"}
        assert "Tags" not in stack.assemble()["Route"].properties

    def test_list_tags_on_map_kind_rejected(self):
        stack = StackDefinition("Demo")
        stack.add("Pool", ResourceKind.USER_POOL, {
            "UserPoolName": "p",
            "UserPoolTags": [{"Key": "team", "Value": "mine"}],
        })
        stack.tags = {"env": "dev"}
        with pytest.raises(InvalidPropertyError, match="mapping of tags") as exc:
            stack.assemble()
        assert exc.value.logical_id == "Pool"
        assert exc.value.prop == "UserPoolTags"

    def test_string_tags_rejected(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {"Tags": "ab"})
        stack.tags = {"env": "dev"}
        with pytest.raises(InvalidPropertyError) as exc:
            stack.assemble()
        assert exc.value.logical_id == "Net"
        assert exc.value.prop == "Tags"

    def test_tag_without_value_rejected(self):
        stack = StackDefinition("Demo")
        stack.add("Net", ResourceKind.NETWORK, {"Tags": [{"Key": "team"}]})
        with pytest.raises(InvalidPropertyError, match=r"\[0\]: missing Value"):
            stack.assemble()


class TestOutputs:
    def test_output_fields(self):
        stack = StackDefinition("Demo")
        net = _net(stack)
        stack.output("VpcId", net.ref(), description="The VPC", export_name="demo-vpc")
        out = stack.assemble().outputs["VpcId"]
        assert out.value == Ref("Net")
        assert out.description == "The VPC"
        assert out.export_name == "demo-vpc"

    def test_output_with_interpolation(self):
        graph = assemble([
            Declaration("Net", ResourceKind.NETWORK, {}),
            OutputDeclaration("Url", "vpc/${Net}"),
        ])
        assert graph.outputs["Url"].value == Join(("vpc/", Ref("Net")))

    def test_invalid_output_name(self):
        with pytest.raises(InvalidPropertyError):
            assemble([OutputDeclaration("VPC-A-ID", "x")])
