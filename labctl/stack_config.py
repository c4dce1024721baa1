from pathlib import Path
from typing import Optional

import yaml
from attr import dataclass, field
from loguru import logger

from labctl.errors import ConfigurationError

PROJECT_FILES = ("Pulumi.yaml", "Pulumi.yml")
EXAMPLE_CONFIG_FILE = "Pulumi.example.yaml"
LOCATION_KEY = "azure-native:location"
SUBSCRIPTION_KEY = "azure-native:subscriptionId"


@dataclass
class LabVariables:
    """
    Values injected into the engine stack configuration. Unset values keep
    whatever the stack file already holds.
    """

    subscription_id: str
    location: Optional[str] = None
    stack_count: Optional[int] = None
    name_prefix: Optional[str] = None
    create_clients: Optional[bool] = None
    add_my_public_ip_to_nsg: Optional[bool] = None
    extra: dict = field(factory=dict)

    def __attrs_post_init__(self):
        if self.stack_count is not None:
            try:
                self.stack_count = int(self.stack_count)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"stack count must be an integer, got {self.stack_count!r}"
                ) from e
            if self.stack_count < 1:
                raise ConfigurationError(
                    f"stack count must be >= 1, got {self.stack_count}"
                )

    def to_config(self, project: str) -> dict:
        config = {SUBSCRIPTION_KEY: self.subscription_id}
        if self.location:
            config[LOCATION_KEY] = self.location

        for key in (
            "stack_count",
            "name_prefix",
            "create_clients",
            "add_my_public_ip_to_nsg",
        ):
            value = getattr(self, key)
            if value is not None:
                config[f"{project}:{key}"] = value

        for key, value in self.extra.items():
            config[key if ":" in key else f"{project}:{key}"] = value

        return config


def project_name(project_dir: Path) -> str:
    for filename in PROJECT_FILES:
        project_file = Path(project_dir) / filename
        if project_file.is_file():
            project = yaml.safe_load(project_file.read_text()) or {}
            if not project.get("name"):
                raise ConfigurationError(
                    f"[{project_file}] Project file has no name"
                )
            return project["name"]

    raise ConfigurationError(
        f"No Pulumi project found in {project_dir}. Run from the project directory, pass --project_dir or set LABCTL_PROJECT_DIR."  # noqa: E501
    )


def stack_config_path(project_dir: Path, stack: str) -> Path:
    return Path(project_dir) / f"Pulumi.{stack}.yaml"


def _read_config_document(path: Path) -> dict:
    document = {}
    if path.is_file():
        document = yaml.safe_load(path.read_text()) or {}
    if not isinstance(document, dict):
        raise ConfigurationError(f"[{path}] Stack config is not a mapping")
    return document


def _seed_from_example(project_dir: Path, config: dict, keys: list[str]):
    """Copy `keys` missing from `config` out of `Pulumi.example.yaml`."""

    missing = [key for key in keys if key not in config]
    if not missing:
        return

    example_path = Path(project_dir) / EXAMPLE_CONFIG_FILE
    example = {}
    if example_path.is_file():
        example = _read_config_document(example_path).get("config") or {}

    for key in missing:
        if key not in example:
            raise ConfigurationError(
                f"No {key} configured and none in {example_path}. Add {key} to the stack config."  # noqa: E501
            )
        config[key] = example[key]
        logger.info("[{}] Seeded {}", example_path, key)


def write_stack_config(
    project_dir: Path, stack: str, variables: LabVariables
) -> Path:
    """
    Merge `variables` into `Pulumi.<stack>.yaml`, keeping every other key
    (secrets provider settings, VM specs, ...) as it is. VM specs the stack
    file does not have yet are taken from `Pulumi.example.yaml`.
    """

    project = project_name(project_dir)
    path = stack_config_path(project_dir, stack)

    document = _read_config_document(path)
    config = document.get("config") or {}
    config.update(variables.to_config(project))
    document["config"] = config

    if LOCATION_KEY not in config:
        raise ConfigurationError(
            f"[{path}] No location configured. Pass --location or set {LOCATION_KEY}."  # noqa: E501
        )
    if f"{project}:stack_count" not in config:
        raise ConfigurationError(
            f"[{path}] No stack count configured. Pass --count or set {project}:stack_count."  # noqa: E501
        )

    required = [f"{project}:vm_specs"]
    if config.get(f"{project}:create_clients"):
        required.append(f"{project}:client_vm_spec")
    _seed_from_example(project_dir, config, required)

    path.write_text(yaml.safe_dump(document, sort_keys=False))
    logger.info("[{}] Wrote stack config ({} keys)", path, len(config))
    return path
