from typing import Optional
from attr import dataclass, field
import re

from pulumi import ComponentResource, Output, ResourceOptions
from pulumi_azure_native import (
    compute as az_compute,
    network as az_network,
    resources as az_resources,
)
from pulumi_random import RandomPassword

from utils.module_dataclasses import MachineRecord

SUPPORTED_OS_TYPES = ("linux", "windows")
WINDOWS_COMPUTER_NAME_MAX_LENGTH = 15
# Azure rejects these as admin user names on both Linux and Windows images.
RESERVED_ADMIN_USERNAMES = frozenset(
    {
        "1",
        "123",
        "a",
        "actuser",
        "adm",
        "admin",
        "admin1",
        "admin2",
        "administrator",
        "aspnet",
        "backup",
        "console",
        "david",
        "guest",
        "john",
        "owner",
        "root",
        "server",
        "sql",
        "support",
        "support_388945a0",
        "sys",
        "test",
        "test1",
        "test2",
        "test3",
        "user",
        "user1",
        "user2",
        "user3",
        "user4",
        "user5",
    }
)


@dataclass
class EnvironmentSpecs:
    resource_group: az_resources.ResourceGroup
    vnet: az_network.VirtualNetwork
    subnet: az_network.Subnet
    network_security_group: az_network.NetworkSecurityGroup
    tags: Optional[dict] = None


@dataclass
class VMSpecs:
    role: str
    os_type: str
    size: str
    publisher: str
    offer: str
    sku: str
    admin_username: str
    version: str = "latest"
    admin_password_version: str = "1"
    disk_size_gb: int = 64
    script_uris: list[str] = field(factory=list)

    def __attrs_post_init__(self):
        if not re.match(r"^[A-Za-z0-9\-]+$", self.role):
            raise ValueError(
                f"role '{self.role}' contains invalid characters. Only letters, numbers, and hyphens are allowed."  # noqa: E501
            )
        self.os_type = self.os_type.lower()
        if self.os_type not in SUPPORTED_OS_TYPES:
            raise ValueError(
                f"Unsupported OS type for role {self.role}: {self.os_type}"
            )
        if self.admin_username.lower() in RESERVED_ADMIN_USERNAMES:
            raise ValueError(
                f"admin_username '{self.admin_username}' is reserved by Azure"
            )
        if self.disk_size_gb < 30:
            raise ValueError(
                f"disk_size_gb for role {self.role} must be at least 30, got {self.disk_size_gb}"  # noqa: E501
            )

    @property
    def is_windows(self) -> bool:
        return self.os_type == "windows"


def script_extension_args(vm_spec: VMSpecs) -> dict:
    """
    Custom script extension settings running every script in
    `vm_spec.script_uris` in order, with bash on Linux and PowerShell on
    Windows.
    """

    filenames = [
        uri.rstrip("/").rsplit("/", 1)[-1] for uri in vm_spec.script_uris
    ]

    if vm_spec.is_windows:
        command_to_execute = " ; ".join(
            f"powershell -ExecutionPolicy Unrestricted -File {filename}"
            for filename in filenames
        )
        publisher = "Microsoft.Compute"
        type_ = "CustomScriptExtension"
        type_handler_version = "1.10"
    else:
        command_to_execute = " && ".join(
            f"bash --noprofile --norc -eo pipefail {filename}"
            for filename in filenames
        )
        publisher = "Microsoft.Azure.Extensions"
        type_ = "CustomScript"
        type_handler_version = "2.1"

    return {
        "publisher": publisher,
        "type": type_,
        "type_handler_version": type_handler_version,
        "settings": {
            "fileUris": list(vm_spec.script_uris),
            "commandToExecute": command_to_execute,
        },
    }


def _first_private_ip(ip_configurations) -> Optional[str]:
    if not ip_configurations:
        return None
    return ip_configurations[0].private_ip_address


class VM(ComponentResource):
    """
    Create a lab Virtual Machine with a static public IP and a generated
    admin password.
    """

    def __init__(
        self,
        name: str,
        server_name: str,
        vm_spec: VMSpecs,
        env_spec: EnvironmentSpecs,
        opts: Optional[ResourceOptions] = None,
    ):
        if not re.match(r"^[A-Za-z0-9\-]+$", server_name):
            raise ValueError(
                f"server_name '{server_name}' contains invalid characters. Only letters, numbers, and hyphens are allowed."  # noqa: E501
            )
        if (
            vm_spec.is_windows
            and len(server_name) > WINDOWS_COMPUTER_NAME_MAX_LENGTH
        ):
            raise ValueError(
                f"server_name '{server_name}' is longer than {WINDOWS_COMPUTER_NAME_MAX_LENGTH} characters, which Windows does not allow."  # noqa: E501
            )

        super().__init__("azurelab:compute:VM", name, None, opts)

        self.server_name = server_name
        self.vm_spec = vm_spec
        self.opts = ResourceOptions.merge(opts, ResourceOptions(parent=self))

        self.public_ip = az_network.PublicIPAddress(
            f"{server_name}-public-ip",
            resource_group_name=env_spec.resource_group.name,
            public_ip_allocation_method="Static",
            sku=az_network.PublicIPAddressSkuArgs(name="Standard"),
            opts=self.opts,
            tags=env_spec.tags,
        )

        self.network_interface = az_network.NetworkInterface(
            f"{server_name}-nic",
            resource_group_name=env_spec.resource_group.name,
            ip_configurations=[
                az_network.NetworkInterfaceIPConfigurationArgs(
                    name=f"{server_name}-ipconfig",
                    subnet=az_network.SubnetArgs(
                        id=env_spec.subnet.id,
                    ),
                    private_ip_allocation_method="Dynamic",
                    public_ip_address=az_network.PublicIPAddressArgs(
                        id=self.public_ip.id,
                    ),
                )
            ],
            opts=self.opts,
            tags=env_spec.tags,
        )

        self.password = RandomPassword(
            f"{server_name}-basic-auth-{vm_spec.admin_username}-password",
            length=16,
            keepers={"version": vm_spec.admin_password_version},
            lower=True,
            upper=True,
            special=True,
            override_special="!#%^*_+=-./?~",
            numeric=True,
            min_lower=1,
            min_upper=1,
            min_numeric=1,
            min_special=1,
            opts=self.opts,
        )

        if vm_spec.is_windows:
            os_profile = az_compute.OSProfileArgs(
                computer_name=server_name,
                admin_username=vm_spec.admin_username,
                admin_password=self.password.result,
                windows_configuration=az_compute.WindowsConfigurationArgs(
                    enable_automatic_updates=True,
                    provision_vm_agent=True,
                ),
            )
        else:
            os_profile = az_compute.OSProfileArgs(
                computer_name=server_name,
                admin_username=vm_spec.admin_username,
                admin_password=self.password.result,
                linux_configuration=az_compute.LinuxConfigurationArgs(
                    disable_password_authentication=False,
                ),
            )

        self.virtual_machine = az_compute.VirtualMachine(
            f"{server_name}-vm",
            resource_group_name=env_spec.resource_group.name,
            network_profile=az_compute.NetworkProfileArgs(
                network_interfaces=[
                    az_compute.NetworkInterfaceReferenceArgs(
                        id=self.network_interface.id,
                        primary=True,
                    )
                ]
            ),
            hardware_profile=az_compute.HardwareProfileArgs(
                vm_size=vm_spec.size,
            ),
            os_profile=os_profile,
            storage_profile=az_compute.StorageProfileArgs(
                os_disk=az_compute.OSDiskArgs(
                    name=f"{server_name}-os-disk",
                    caching=az_compute.CachingTypes.READ_WRITE,
                    create_option=az_compute.DiskCreateOption.FROM_IMAGE,
                    delete_option=az_compute.DiskDeleteOptionTypes.DELETE,
                    disk_size_gb=vm_spec.disk_size_gb,
                    managed_disk=az_compute.ManagedDiskParametersArgs(
                        storage_account_type=az_compute.StorageAccountTypes.STANDARD_LRS,  # noqa: E501
                    ),
                ),
                image_reference=az_compute.ImageReferenceArgs(
                    publisher=vm_spec.publisher,
                    offer=vm_spec.offer,
                    sku=vm_spec.sku,
                    version=vm_spec.version,
                ),
            ),
            opts=self.opts,
            tags=env_spec.tags,
        )

        self.script_extension = None
        if vm_spec.script_uris:
            self.script_extension = self._add_script_extension(env_spec)

        self.private_ip = self.network_interface.ip_configurations.apply(
            _first_private_ip
        )

        self.register_outputs(
            {
                "public_ip": self.public_ip.ip_address,
                "private_ip": self.private_ip,
            }
        )

    def _add_script_extension(
        self, env_spec: EnvironmentSpecs
    ) -> az_compute.VirtualMachineExtension:
        return az_compute.VirtualMachineExtension(
            f"{self.server_name}-bootstrap-script",
            resource_group_name=env_spec.resource_group.name,
            vm_name=self.virtual_machine.name,
            **script_extension_args(self.vm_spec),
            opts=ResourceOptions(parent=self.virtual_machine),
        )

    def record(self, stack: str) -> MachineRecord:
        return MachineRecord(
            stack=stack,
            role=self.vm_spec.role,
            hostname=self.server_name,
            os_type=self.vm_spec.os_type,
            username=self.vm_spec.admin_username,
            public_ip=self.public_ip.ip_address,
            private_ip=self.private_ip,
            password=Output.secret(self.password.result),
        )
