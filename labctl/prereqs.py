import shutil
import subprocess
from typing import Iterable, Optional

from loguru import logger

from labctl.errors import PrerequisiteError

REQUIRED_TOOLS = ("pulumi", "az")
VERSION_ARGS = {"az": ["--version"]}


def check_prerequisites(tools: Iterable[str] = REQUIRED_TOOLS) -> dict[str, str]:
    """Make sure every tool is on PATH. Returns tool name => resolved path."""

    found = {}
    missing = []
    for tool in tools:
        path = shutil.which(tool)
        if path is None:
            missing.append(tool)
        else:
            found[tool] = path

    if missing:
        raise PrerequisiteError(
            f"Required tools not found on PATH: {', '.join(missing)}"
        )

    for tool, path in found.items():
        logger.debug("[{}] Found at {}", tool, path)

    return found


def tool_version(tool: str) -> Optional[str]:
    result = subprocess.run(
        [tool, *VERSION_ARGS.get(tool, ["version"])],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        logger.warning("[{}] Could not determine version", tool)
        return None

    lines = result.stdout.strip().splitlines()
    version = lines[0].strip() if lines else None
    logger.info("[{}] Version: {}", tool, version)
    return version
