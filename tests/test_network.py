"""Tests for modules.network: security rules and the LabNetwork component."""

import pulumi
import pytest

from conftest import linux_spec_args, windows_spec_args
from modules.compute import VMSpecs
from modules.network import LabNetwork, security_rules


def _summary(rules):
    return [
        (rule.name, rule.destination_port_range, rule.priority)
        for rule in rules
    ]


class TestSecurityRules:
    def test_linux_only(self):
        rules = security_rules([VMSpecs(**linux_spec_args())])
        assert _summary(rules) == [("AllowSSH", "22", 1000)]

    def test_mixed_os_and_extra_ports(self):
        specs = [
            VMSpecs(**linux_spec_args()),
            VMSpecs(**windows_spec_args()),
        ]
        rules = security_rules(specs, extra_ports=[80, 443])
        assert _summary(rules) == [
            ("AllowSSH", "22", 1000),
            ("AllowRDP", "3389", 1010),
            ("Allow80", "80", 1020),
            ("Allow443", "443", 1030),
        ]

    def test_duplicate_ports_opened_once(self):
        rules = security_rules(
            [VMSpecs(**linux_spec_args())], extra_ports=[22, 8080, 8080]
        )
        assert _summary(rules) == [
            ("AllowSSH", "22", 1000),
            ("Allow8080", "8080", 1010),
        ]

    def test_source_prefix_applied(self):
        rules = security_rules(
            [VMSpecs(**windows_spec_args())],
            source_address_prefix="198.51.100.7/32",
        )
        assert [rule.source_address_prefix for rule in rules] == [
            "198.51.100.7/32"
        ]
        assert rules[0].access == "Allow"
        assert rules[0].direction == "Inbound"
        assert rules[0].protocol == "Tcp"

    def test_empty(self):
        assert security_rules([]) == []

    def test_invalid_port(self):
        with pytest.raises(ValueError, match="Invalid port"):
            security_rules([], extra_ports=[70000])


class TestLabNetwork:
    @pulumi.runtime.test
    def test_subnet_is_first_block_of_address_space(self):
        network = LabNetwork(
            "lab03",
            location="westeurope",
            address_space="10.3.0.0/16",
            rules=security_rules([VMSpecs(**linux_spec_args())]),
        )
        assert network.subnet_prefix == "10.3.0.0/24"

        def check(args):
            vnet_space, subnet_prefixes = args
            assert vnet_space.address_prefixes == ["10.3.0.0/16"]
            assert subnet_prefixes == ["10.3.0.0/24"]

        return pulumi.Output.all(
            network.virtual_network.address_space,
            network.subnet.address_prefixes,
        ).apply(check)

    @pulumi.runtime.test
    def test_resource_names(self):
        network = LabNetwork(
            "lab04",
            location="westeurope",
            address_space="10.4.0.0/16",
            rules=[],
            tags={"environment": "lab"},
        )

        def check(names):
            assert names == ["lab04-rg", "lab04-vnet", "lab04-nsg", "lab04-subnet"]

        return pulumi.Output.all(
            network.resource_group.name,
            network.virtual_network.name,
            network.network_security_group.name,
            network.subnet.name,
        ).apply(check)

    @pulumi.runtime.test
    def test_env_spec(self):
        network = LabNetwork(
            "lab05",
            location="westeurope",
            address_space="10.5.0.0/16",
            rules=[],
            tags={"environment": "lab"},
        )
        env_spec = network.env_spec()
        assert env_spec.resource_group is network.resource_group
        assert env_spec.subnet is network.subnet
        assert env_spec.network_security_group is network.network_security_group
        assert env_spec.tags == {"environment": "lab"}
