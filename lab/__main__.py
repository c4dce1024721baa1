# __main__.py
"""
Pulumi program creating `stack_count` identical lab stacks and, optionally,
a stack of Windows remote-desktop clients.
"""

import modulepath_fixer  # noqa: F401

import os

from pulumi import export, log
from config import (
    add_my_public_ip_to_nsg,
    allowed_ports,
    azure_location,
    base_cidr,
    client_vm_spec,
    create_clients,
    custom_tags,
    name_prefix,
    stack_count,
    subscription_id,
    vm_specs,
)
from modules.lab import DEFAULT_TAGS, build_client_stack, build_lab_stacks
from utils.utils import get_my_public_ip

DEBUG = os.getenv("DEBUG")
default_tags = {**DEFAULT_TAGS, **custom_tags}

source_address_prefix = "*"
if add_my_public_ip_to_nsg:
    source_address_prefix = get_my_public_ip()
    default_tags["allowed_source"] = source_address_prefix

if DEBUG:
    log.info(
        f"Building {stack_count} lab stacks in {azure_location} "
        f"(subscription {subscription_id}, source {source_address_prefix})"
    )

stacks = build_lab_stacks(
    count=stack_count,
    prefix=name_prefix,
    location=azure_location,
    base_cidr=base_cidr,
    vm_specs=vm_specs,
    source_address_prefix=source_address_prefix,
    allowed_ports=allowed_ports,
    tags=default_tags,
)

if create_clients:
    stacks.append(
        build_client_stack(
            count=stack_count,
            prefix=name_prefix,
            location=azure_location,
            base_cidr=base_cidr,
            client_vm_spec=client_vm_spec,
            source_address_prefix=source_address_prefix,
            tags=default_tags,
        )
    )
elif DEBUG:
    log.info("Remote-desktop clients disabled")

export("stack_count", stack_count)
export(
    "resource_groups",
    [stack.network.resource_group.name for stack in stacks],
)
export(
    "machines",
    [record.to_output() for stack in stacks for record in stack.records()],
)
