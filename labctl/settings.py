import os
from pathlib import Path
from typing import Mapping, Optional

from attr import dataclass, field

ENV_PREFIX = "LABCTL_"
PROJECT_SUBDIR = "lab"


def default_project_dir(cwd: Optional[Path] = None) -> Path:
    """
    The current directory when it holds a Pulumi project, else its `lab/`
    subdirectory when that does (a checkout of this repo).
    """

    cwd = Path.cwd() if cwd is None else Path(cwd)
    for candidate in (cwd, cwd / PROJECT_SUBDIR):
        if (candidate / "Pulumi.yaml").is_file():
            return candidate
    return cwd


@dataclass
class Settings:
    """
    Settings for the `labctl` command: defaults, overlaid by LABCTL_*
    environment variables, overlaid by command line flags.
    """

    stack: str = "dev"
    project_dir: Path = field(
        factory=default_project_dir,
        converter=lambda value: Path(value).expanduser(),
    )
    log_level: str = field(default="INFO", converter=str.upper)
    location: Optional[str] = None
    name_prefix: Optional[str] = None

    @classmethod
    def load(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "Settings":
        env = os.environ if environ is None else environ

        values = {}
        for name in ("stack", "project_dir", "log_level", "location", "name_prefix"):  # noqa: E501
            value = env.get(f"{ENV_PREFIX}{name.upper()}")
            if value:
                values[name] = value

        values.update(
            {name: value for name, value in overrides.items() if value is not None}
        )
        return cls(**values)
