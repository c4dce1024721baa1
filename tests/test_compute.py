"""Tests for modules.compute: VM spec validation and the VM component."""

import pulumi
import pytest

from conftest import MOCK_PASSWORD, MOCK_PUBLIC_IP, linux_spec_args, windows_spec_args
from modules.compute import VM, VMSpecs, script_extension_args
from modules.network import LabNetwork, security_rules


class TestVMSpecs:
    def test_defaults(self):
        spec = VMSpecs(**linux_spec_args())
        assert spec.version == "latest"
        assert spec.admin_password_version == "1"
        assert spec.disk_size_gb == 64
        assert spec.script_uris == []
        assert not spec.is_windows

    def test_os_type_is_normalised(self):
        spec = VMSpecs(**windows_spec_args(os_type="Windows"))
        assert spec.os_type == "windows"
        assert spec.is_windows

    def test_rejects_invalid_role(self):
        with pytest.raises(ValueError, match="invalid characters"):
            VMSpecs(**linux_spec_args(role="jump box"))

    def test_rejects_unknown_os(self):
        with pytest.raises(ValueError, match="Unsupported OS type"):
            VMSpecs(**linux_spec_args(os_type="freebsd"))

    @pytest.mark.parametrize("username", ["admin", "Administrator", "root"])
    def test_rejects_reserved_username(self, username):
        with pytest.raises(ValueError, match="reserved"):
            VMSpecs(**linux_spec_args(admin_username=username))

    def test_rejects_small_disk(self):
        with pytest.raises(ValueError, match="at least 30"):
            VMSpecs(**linux_spec_args(disk_size_gb=10))


def _network(name="lab01", specs=None):
    specs = specs or [VMSpecs(**linux_spec_args())]
    return LabNetwork(
        name,
        location="westeurope",
        address_space="10.1.0.0/16",
        rules=security_rules(specs),
        tags={"environment": "lab"},
    )


class TestVM:
    @pulumi.runtime.test
    def test_windows_name_too_long(self):
        network = _network()
        spec = VMSpecs(**windows_spec_args())
        with pytest.raises(ValueError, match="15 characters"):
            VM(
                name="long",
                server_name="lab01-workstation-01",
                vm_spec=spec,
                env_spec=network.env_spec(),
            )

    @pulumi.runtime.test
    def test_rejects_invalid_server_name(self):
        network = _network()
        with pytest.raises(ValueError, match="invalid characters"):
            VM(
                name="bad",
                server_name="lab01_jumpbox",
                vm_spec=VMSpecs(**linux_spec_args()),
                env_spec=network.env_spec(),
            )

    @pulumi.runtime.test
    def test_no_script_extension_by_default(self):
        network = _network()
        vm = VM(
            name="lab01-jumpbox",
            server_name="lab01-jumpbox",
            vm_spec=VMSpecs(**linux_spec_args()),
            env_spec=network.env_spec(),
        )
        assert vm.script_extension is None

    @pulumi.runtime.test
    def test_linux_os_profile(self):
        network = _network()
        vm = VM(
            name="lab01-jumpbox",
            server_name="lab01-jumpbox",
            vm_spec=VMSpecs(**linux_spec_args()),
            env_spec=network.env_spec(),
        )

        def check(os_profile):
            assert os_profile.computer_name == "lab01-jumpbox"
            assert os_profile.admin_username == "labadmin"
            assert os_profile.windows_configuration is None
            assert os_profile.linux_configuration is not None

        return vm.virtual_machine.os_profile.apply(check)

    @pulumi.runtime.test
    def test_disk_size_from_spec(self):
        network = _network()
        vm = VM(
            name="lab01-target",
            server_name="lab01-target",
            vm_spec=VMSpecs(**linux_spec_args(role="target", disk_size_gb=128)),
            env_spec=network.env_spec(),
        )

        def check(storage_profile):
            assert storage_profile.os_disk.disk_size_gb == 128
            assert storage_profile.image_reference.publisher == "Canonical"

        return vm.virtual_machine.storage_profile.apply(check)

    @pulumi.runtime.test
    def test_record(self):
        network = _network()
        vm = VM(
            name="lab01-jumpbox",
            server_name="lab01-jumpbox",
            vm_spec=VMSpecs(**linux_spec_args()),
            env_spec=network.env_spec(),
        )
        record = vm.record("lab01")
        assert record.stack == "lab01"
        assert record.role == "jumpbox"
        assert record.hostname == "lab01-jumpbox"
        assert record.os_type == "linux"
        assert record.username == "labadmin"

        def check(args):
            public_ip, password = args
            assert public_ip == MOCK_PUBLIC_IP
            assert password == MOCK_PASSWORD

        return pulumi.Output.all(record.public_ip, record.password).apply(check)

    @pulumi.runtime.test
    def test_script_extension_created(self):
        network = _network("lab-clients", [VMSpecs(**windows_spec_args())])
        spec = VMSpecs(
            **windows_spec_args(
                script_uris=["https://example.com/scripts/setup.ps1"]
            )
        )
        vm = VM(
            name="lab-client01",
            server_name="lab-client01",
            vm_spec=spec,
            env_spec=network.env_spec(),
        )
        assert vm.script_extension is not None


class TestScriptExtensionArgs:
    def test_windows_runs_powershell(self):
        spec = VMSpecs(
            **windows_spec_args(
                script_uris=[
                    "https://example.com/scripts/setup.ps1",
                    "https://example.com/scripts/tools.ps1",
                ]
            )
        )
        args = script_extension_args(spec)
        assert args["publisher"] == "Microsoft.Compute"
        assert args["type"] == "CustomScriptExtension"
        assert args["type_handler_version"] == "1.10"
        assert args["settings"]["fileUris"] == spec.script_uris
        assert args["settings"]["commandToExecute"] == (
            "powershell -ExecutionPolicy Unrestricted -File setup.ps1 ; "
            "powershell -ExecutionPolicy Unrestricted -File tools.ps1"
        )

    def test_linux_runs_bash_in_order(self):
        spec = VMSpecs(
            **linux_spec_args(
                script_uris=[
                    "https://example.com/bootstrap.sh",
                    "https://example.com/tools/install.sh",
                ]
            )
        )
        args = script_extension_args(spec)
        assert args["publisher"] == "Microsoft.Azure.Extensions"
        assert args["type"] == "CustomScript"
        assert args["settings"]["commandToExecute"] == (
            "bash --noprofile --norc -eo pipefail bootstrap.sh && "
            "bash --noprofile --norc -eo pipefail install.sh"
        )
