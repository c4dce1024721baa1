"""Shared fixtures and Pulumi mocks for the lab test suite."""

import sys
from pathlib import Path

import pulumi
import pytest
import yaml

BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

MOCK_PUBLIC_IP = "203.0.113.10"
MOCK_PASSWORD = "Secr3t!Passw0rd#"


class LabMocks(pulumi.runtime.Mocks):
    """Echo inputs back as outputs, filling in what Azure would assign."""

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        outputs = dict(args.inputs)
        outputs.setdefault("name", args.name)
        if args.typ == "azure-native:network:PublicIPAddress":
            outputs["ipAddress"] = MOCK_PUBLIC_IP
        if args.typ == "random:index/randomPassword:RandomPassword":
            outputs["result"] = MOCK_PASSWORD
        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}


pulumi.runtime.set_mocks(LabMocks(), preview=False)


def linux_spec_args(**overrides) -> dict:
    args = {
        "role": "jumpbox",
        "os_type": "linux",
        "size": "Standard_B1s",
        "publisher": "Canonical",
        "offer": "0001-com-ubuntu-server-jammy",
        "sku": "22_04-lts-gen2",
        "admin_username": "labadmin",
    }
    args.update(overrides)
    return args


def windows_spec_args(**overrides) -> dict:
    args = {
        "role": "client",
        "os_type": "windows",
        "size": "Standard_B2ms",
        "publisher": "MicrosoftWindowsDesktop",
        "offer": "windows-11",
        "sku": "win11-23h2-pro",
        "admin_username": "labuser",
    }
    args.update(overrides)
    return args


EXAMPLE_VM_SPECS = [linux_spec_args()]
EXAMPLE_CLIENT_VM_SPEC = windows_spec_args()


@pytest.fixture
def project_dir(tmp_path):
    """A minimal Pulumi project directory with an example stack config."""
    (tmp_path / "Pulumi.yaml").write_text("name: lab\nruntime: python\n")
    (tmp_path / "Pulumi.example.yaml").write_text(
        yaml.safe_dump(
            {
                "config": {
                    "lab:vm_specs": EXAMPLE_VM_SPECS,
                    "lab:client_vm_spec": EXAMPLE_CLIENT_VM_SPEC,
                }
            }
        )
    )
    return tmp_path


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "AZURE_SUBSCRIPTION_ID",
        "ARM_SUBSCRIPTION_ID",
        "ARM_CLIENT_ID",
        "ARM_CLIENT_SECRET",
        "ARM_TENANT_ID",
    ):
        monkeypatch.delenv(name, raising=False)
