"""
`labctl` drives the lab Pulumi project: it checks the local tools and the
Azure login, resolves the subscription, writes the stack configuration,
runs the engine and optionally exports the created logins.

    labctl --count=3 --location=westeurope plan
    labctl --count=3 --clients apply --report=logins.xlsx
    labctl report logins.csv
    labctl destroy
"""

import sys
from typing import Optional

from loguru import logger

from labctl.auth import (
    ensure_authenticated,
    resolve_service_principal,
    resolve_subscription,
)
from labctl.engine import PulumiEngine
from labctl.errors import LabctlError
from labctl.prereqs import check_prerequisites, tool_version
from labctl.report import machine_rows, write_report
from labctl.settings import Settings
from labctl.stack_config import LabVariables, project_name, write_stack_config

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
)


def configure_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)


class LabCtl:
    """Provision replicated Azure lab stacks with Pulumi."""

    def __init__(
        self,
        stack: Optional[str] = None,
        project_dir: Optional[str] = None,
        subscription: Optional[str] = None,
        location: Optional[str] = None,
        count: Optional[int] = None,
        prefix: Optional[str] = None,
        clients: Optional[bool] = None,
        my_ip: Optional[bool] = None,
        log_level: Optional[str] = None,
    ):
        self.settings = Settings.load(
            stack=stack,
            project_dir=project_dir,
            log_level=log_level,
            location=location,
            name_prefix=prefix,
        )
        self.subscription = subscription
        self.count = count
        self.clients = clients
        self.my_ip = my_ip

        configure_logging(self.settings.log_level)

    def _authenticate(self) -> tuple[str, dict[str, str]]:
        """Prerequisites, login and subscription. Returns the engine env."""

        check_prerequisites()
        tool_version("pulumi")

        project_dir = self.settings.project_dir
        service_principal = resolve_service_principal(project_dir)
        ensure_authenticated(service_principal)
        subscription_id = resolve_subscription(
            self.subscription, project_dir=project_dir
        )

        env = {"ARM_SUBSCRIPTION_ID": subscription_id}
        if service_principal is not None:
            env.update(service_principal.as_env())
        return subscription_id, env

    def _engine(self, configure: bool = True) -> PulumiEngine:
        project_name(self.settings.project_dir)
        subscription_id, env = self._authenticate()

        # Config is validated and written before a new stack can be created.
        if configure:
            variables = LabVariables(
                subscription_id=subscription_id,
                location=self.settings.location,
                stack_count=self.count,
                name_prefix=self.settings.name_prefix,
                create_clients=self.clients,
                add_my_public_ip_to_nsg=self.my_ip,
            )
            write_stack_config(
                self.settings.project_dir, self.settings.stack, variables
            )

        engine = PulumiEngine(
            self.settings.project_dir, self.settings.stack, env=env
        )
        engine.select_stack(create=configure)
        return engine

    def check(self) -> str:
        """Check tools, Azure login and subscription without touching state."""

        subscription_id, _ = self._authenticate()
        return subscription_id

    def plan(self):
        """Preview the changes for the configured lab."""

        self._engine().plan()

    def apply(
        self, report: Optional[str] = None, report_format: Optional[str] = None
    ) -> Optional[str]:
        """Create or update the lab, optionally writing a credential report."""

        engine = self._engine()
        engine.apply()

        if report:
            return self._write_report(engine, report, report_format)
        return None

    def destroy(self):
        """Tear down every resource in the stack."""

        self._engine(configure=False).destroy()

    def report(self, path: str, report_format: Optional[str] = None) -> str:
        """Write the logins of an existing lab to a spreadsheet or CSV."""

        check_prerequisites(("pulumi",))
        project_name(self.settings.project_dir)
        engine = PulumiEngine(self.settings.project_dir, self.settings.stack)
        return self._write_report(engine, path, report_format)

    def _write_report(
        self, engine: PulumiEngine, path: str, report_format: Optional[str]
    ) -> str:
        rows = machine_rows(engine.outputs())
        return str(write_report(rows, path, report_format))


def cmd():
    import fire

    try:
        fire.Fire(LabCtl, name="labctl")
    except LabctlError as e:
        logger.error("{}", e)
        sys.exit(e.exit_code)


if __name__ == "__main__":
    cmd()
