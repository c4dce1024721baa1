import json
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger

from labctl.errors import EngineError


class PulumiEngine:
    """
    Runs the `pulumi` CLI against one stack of the lab project. Planning,
    diffing and state reconciliation are all left to the engine, failures
    surface as `EngineError` carrying its exit status.
    """

    def __init__(
        self,
        project_dir: Path,
        stack: str,
        env: Optional[Mapping[str, str]] = None,
        binary: str = "pulumi",
    ):
        self.project_dir = Path(project_dir)
        self.stack = stack
        self.env = dict(env or {})
        self.binary = binary

    def _environment(self) -> dict[str, str]:
        environment = {**os.environ, **self.env}
        environment.setdefault("PULUMI_SKIP_UPDATE_CHECK", "true")
        return environment

    def _run(
        self, args: list[str], capture: bool = False
    ) -> subprocess.CompletedProcess:
        command = [self.binary, *args]
        logger.info("[{}] Running: {}", self.stack, " ".join(command))

        result = subprocess.run(
            command,
            cwd=self.project_dir,
            env=self._environment(),
            capture_output=capture,
            text=True,
        )

        if result.returncode != 0:
            message = f"`{' '.join(command)}` failed with exit status {result.returncode}"  # noqa: E501
            if capture and result.stderr:
                message = f"{message}: {result.stderr.strip()}"
            raise EngineError(message, returncode=result.returncode)

        return result

    def select_stack(self, create: bool = True):
        args = ["stack", "select", self.stack, "--non-interactive"]
        if create:
            args.append("--create")
        self._run(args)

    def plan(self):
        self._run(
            ["preview", "--stack", self.stack, "--diff", "--non-interactive"]
        )

    def apply(self):
        self._run(["up", "--stack", self.stack, "--yes", "--non-interactive"])

    def destroy(self):
        self._run(
            ["destroy", "--stack", self.stack, "--yes", "--non-interactive"]
        )

    def outputs(self) -> dict:
        result = self._run(
            [
                "stack",
                "output",
                "--stack",
                self.stack,
                "--json",
                "--show-secrets",
            ],
            capture=True,
        )
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise EngineError(
                f"[{self.stack}] Stack outputs are not valid JSON: {e}"
            ) from e
