from typing import Iterable, Optional

from pulumi import ComponentResource, ResourceOptions
from pulumi_azure_native import (
    network as az_network,
    resources as az_resources,
)

from modules.compute import EnvironmentSpecs, VMSpecs
from utils.utils import resource_name, subnet_prefix

FIRST_RULE_PRIORITY = 1000
RULE_PRIORITY_STEP = 10
SSH_PORT = 22
RDP_PORT = 3389


def _rule(
    name: str, port: int, priority: int, source_address_prefix: str
) -> az_network.SecurityRuleArgs:
    return az_network.SecurityRuleArgs(
        name=name,
        protocol="Tcp",
        source_port_range="*",
        destination_port_range=str(port),
        source_address_prefix=source_address_prefix,
        destination_address_prefix="*",
        access="Allow",
        priority=priority,
        direction="Inbound",
    )


def security_rules(
    vm_specs: Iterable[VMSpecs],
    source_address_prefix: str = "*",
    extra_ports: Iterable[int] = (),
) -> list[az_network.SecurityRuleArgs]:
    """
    Builds the inbound allow rules for a lab subnet: SSH when the stack has
    a Linux machine, RDP when it has a Windows machine, then one rule per
    extra port. Each port is opened once.
    """

    ports: list[tuple[str, int]] = []
    os_types = {vm_spec.os_type for vm_spec in vm_specs}
    if "linux" in os_types:
        ports.append(("AllowSSH", SSH_PORT))
    if "windows" in os_types:
        ports.append(("AllowRDP", RDP_PORT))
    for port in extra_ports:
        port = int(port)
        if not 0 < port < 65536:
            raise ValueError(f"Invalid port for security rule: {port}")
        ports.append((f"Allow{port}", port))

    rules = []
    seen: set[int] = set()
    for name, port in ports:
        if port in seen:
            continue
        seen.add(port)
        rules.append(
            _rule(
                name=name,
                port=port,
                priority=FIRST_RULE_PRIORITY
                + RULE_PRIORITY_STEP * len(rules),
                source_address_prefix=source_address_prefix,
            )
        )
    return rules


class LabNetwork(ComponentResource):
    """
    Create an isolated network for one lab stack: a resource group, a
    virtual network, a network security group and a subnet guarded by it.
    """

    def __init__(
        self,
        name: str,
        location: str,
        address_space: str,
        rules: list[az_network.SecurityRuleArgs],
        tags: Optional[dict] = None,
        opts: Optional[ResourceOptions] = None,
    ):
        super().__init__("azurelab:network:LabNetwork", name, None, opts)

        self.stack = name
        self.tags = tags
        self.address_space = address_space
        self.subnet_prefix = subnet_prefix(address_space)

        self.resource_group = az_resources.ResourceGroup(
            resource_name(name, "rg"),
            location=location,
            tags=tags,
            opts=ResourceOptions(parent=self),
        )

        self.virtual_network = az_network.VirtualNetwork(
            resource_name(name, "vnet"),
            resource_group_name=self.resource_group.name,
            address_space=az_network.AddressSpaceArgs(
                address_prefixes=[address_space],
            ),
            location=location,
            tags=tags,
            opts=ResourceOptions(parent=self.resource_group),
        )

        self.network_security_group = az_network.NetworkSecurityGroup(
            resource_name(name, "nsg"),
            location=location,
            resource_group_name=self.resource_group.name,
            security_rules=rules,
            tags=tags,
            opts=ResourceOptions(parent=self.virtual_network),
        )

        self.subnet = az_network.Subnet(
            resource_name(name, "subnet"),
            address_prefixes=[self.subnet_prefix],
            network_security_group=az_network.NetworkSecurityGroupArgs(
                id=self.network_security_group.id,
            ),
            resource_group_name=self.resource_group.name,
            virtual_network_name=self.virtual_network.name,
            opts=ResourceOptions(parent=self.virtual_network),
        )

        self.register_outputs(
            {
                "resource_group_name": self.resource_group.name,
                "subnet_id": self.subnet.id,
            }
        )

    def env_spec(self) -> EnvironmentSpecs:
        return EnvironmentSpecs(
            resource_group=self.resource_group,
            vnet=self.virtual_network,
            subnet=self.subnet,
            network_security_group=self.network_security_group,
            tags=self.tags,
        )
