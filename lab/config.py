from typing import Optional

from modules.compute import VMSpecs
import pulumi

az_native_config = pulumi.Config("azure-native")
azure_location: str = az_native_config.require("location")
subscription_id: Optional[str] = az_native_config.get("subscriptionId")

config = pulumi.Config()

# Replication
stack_count: int = config.require_int("stack_count")
name_prefix: str = config.get("name_prefix") or "lab"
base_cidr: str = config.get("base_cidr") or "10.0.0.0/8"

# Network access
allowed_ports: list[int] = config.get_object("allowed_ports")
if allowed_ports is None:
    allowed_ports = [80, 443]
add_my_public_ip_to_nsg: bool = (
    config.get_bool("add_my_public_ip_to_nsg") or False
)

# VM specifications, one VM per spec in every lab stack
vm_specs = [VMSpecs(**spec) for spec in config.require_object("vm_specs")]

# Remote-desktop clients
create_clients: bool = config.get_bool("create_clients") or False
client_vm_spec: Optional[VMSpecs] = None
if create_clients:
    client_vm_spec = VMSpecs(**config.require_object("client_vm_spec"))

custom_tags: dict = config.get_object("tags") or {}
