from typing import Iterable, Optional
from attr import dataclass, field

from pulumi import ResourceOptions

from modules.compute import VM, VMSpecs
from modules.network import LabNetwork, security_rules
from utils.module_dataclasses import MachineRecord
from utils.utils import (
    max_stack_count,
    resource_name,
    stack_address_space,
    stack_name,
)

DEFAULT_TAGS = {
    "environment": "lab",
    "created_by": "pulumi",
    "purpose": "training",
}
CLIENT_STACK_BLOCK = 0


@dataclass
class LabStack:
    network: LabNetwork
    vms: list[VM] = field(factory=list)

    @property
    def name(self) -> str:
        return self.network.stack

    def records(self) -> list[MachineRecord]:
        return [vm.record(self.name) for vm in self.vms]


def _check_unique_roles(vm_specs: list[VMSpecs]):
    roles = [vm_spec.role.lower() for vm_spec in vm_specs]
    duplicates = sorted({role for role in roles if roles.count(role) > 1})
    if duplicates:
        raise ValueError(f"Duplicate VM roles in vm_specs: {duplicates}")


def build_lab_stacks(
    count: int,
    prefix: str,
    location: str,
    base_cidr: str,
    vm_specs: list[VMSpecs],
    source_address_prefix: str = "*",
    allowed_ports: Iterable[int] = (),
    tags: Optional[dict] = None,
) -> list[LabStack]:
    """
    Creates `count` identical lab stacks. Stack `i` lives in its own
    resource group and gets the `i`-th address block of `base_cidr`, with
    one VM per entry in `vm_specs`.
    """

    if count < 1:
        raise ValueError(f"stack_count must be >= 1, got {count}")
    if count > max_stack_count(base_cidr):
        raise ValueError(
            f"stack_count {count} does not fit in {base_cidr} (max {max_stack_count(base_cidr)})"  # noqa: E501
        )
    if not vm_specs:
        raise ValueError("At least one VM spec is required per lab stack")
    _check_unique_roles(vm_specs)

    rules = security_rules(vm_specs, source_address_prefix, allowed_ports)

    stacks = []
    for index in range(1, count + 1):
        name = stack_name(prefix, index)
        network = LabNetwork(
            name,
            location=location,
            address_space=stack_address_space(base_cidr, index),
            rules=rules,
            tags=tags,
        )
        env_spec = network.env_spec()
        vms = [
            VM(
                name=resource_name(name, vm_spec.role),
                server_name=resource_name(name, vm_spec.role),
                vm_spec=vm_spec,
                env_spec=env_spec,
                opts=ResourceOptions(parent=network.subnet),
            )
            for vm_spec in vm_specs
        ]
        stacks.append(LabStack(network=network, vms=vms))

    return stacks


def build_client_stack(
    count: int,
    prefix: str,
    location: str,
    base_cidr: str,
    client_vm_spec: VMSpecs,
    source_address_prefix: str = "*",
    tags: Optional[dict] = None,
) -> LabStack:
    """
    Creates the remote-desktop client stack: one network on the reserved
    address block and `count` Windows machines named `<prefix>-<role><ii>`.
    """

    if not client_vm_spec.is_windows:
        raise ValueError(
            f"Client machines must run Windows, got {client_vm_spec.os_type}"
        )
    if count < 1:
        raise ValueError(f"client count must be >= 1, got {count}")

    name = resource_name(prefix, "clients")
    network = LabNetwork(
        name,
        location=location,
        address_space=stack_address_space(base_cidr, CLIENT_STACK_BLOCK),
        rules=security_rules([client_vm_spec], source_address_prefix),
        tags=tags,
    )
    env_spec = network.env_spec()
    vms = []
    for index in range(1, count + 1):
        server_name = f"{prefix}-{client_vm_spec.role}{index:02d}"
        vms.append(
            VM(
                name=server_name,
                server_name=server_name,
                vm_spec=client_vm_spec,
                env_spec=env_spec,
                opts=ResourceOptions(parent=network.subnet),
            )
        )

    return LabStack(network=network, vms=vms)
