import json
import os
import re
import subprocess
import sys
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional

from attr import dataclass, field
from loguru import logger

from labctl.errors import (
    CredentialsError,
    NotAuthenticatedError,
    SubscriptionError,
)

SUBSCRIPTION_ID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-(?:[0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}$"
)
SUBSCRIPTION_ENV_VARS = ("AZURE_SUBSCRIPTION_ID", "ARM_SUBSCRIPTION_ID")
SERVICE_PRINCIPAL_ENV_VARS = ("ARM_CLIENT_ID", "ARM_CLIENT_SECRET", "ARM_TENANT_ID")
SUBSCRIPTION_FILE = ".subscription"
CREDENTIALS_FILE = ".azure-credentials.json"
AZURE_PROFILE_PATH = Path.home() / ".azure" / "azureProfile.json"


@dataclass
class ServicePrincipal:
    client_id: str
    client_secret: str = field(repr=False)
    tenant_id: str
    source: str = "environment"

    def as_env(self) -> dict[str, str]:
        return {
            "ARM_CLIENT_ID": self.client_id,
            "ARM_CLIENT_SECRET": self.client_secret,
            "ARM_TENANT_ID": self.tenant_id,
        }


def resolve_service_principal(
    project_dir: Path, environ: Optional[Mapping[str, str]] = None
) -> Optional[ServicePrincipal]:
    """
    Looks up service principal credentials, first in the ARM_* environment
    variables, then in `<project_dir>/.azure-credentials.json` as written by
    `az ad sp create-for-rbac`. Returns None when neither is present, in
    which case the Azure CLI login is used.
    """

    env = os.environ if environ is None else environ

    values = {name: env.get(name) for name in SERVICE_PRINCIPAL_ENV_VARS}
    if all(values.values()):
        logger.info("Using service principal from environment")
        return ServicePrincipal(
            client_id=values["ARM_CLIENT_ID"],
            client_secret=values["ARM_CLIENT_SECRET"],
            tenant_id=values["ARM_TENANT_ID"],
        )
    if any(values.values()):
        missing = [name for name, value in values.items() if not value]
        raise CredentialsError(
            f"Incomplete service principal environment, missing: {', '.join(missing)}"  # noqa: E501
        )

    credentials_file = Path(project_dir) / CREDENTIALS_FILE
    if not credentials_file.is_file():
        return None

    try:
        credentials = json.loads(credentials_file.read_text())
        service_principal = ServicePrincipal(
            client_id=credentials["appId"],
            client_secret=credentials["password"],
            tenant_id=credentials["tenant"],
            source=str(credentials_file),
        )
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise CredentialsError(
            f"[{credentials_file}] Invalid service principal file: {e}"
        ) from e

    logger.info("[{}] Using service principal", credentials_file)
    return service_principal


def ensure_authenticated(
    service_principal: Optional[ServicePrincipal] = None,
) -> Optional[dict]:
    """
    With a service principal there is nothing to check up front, the engine
    authenticates with it directly. Otherwise an Azure CLI login is required.
    """

    if service_principal is not None:
        logger.info(
            "Authenticating as service principal {} ({})",
            service_principal.client_id,
            service_principal.source,
        )
        return None

    result = subprocess.run(
        ["az", "account", "show", "--output", "json"],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise NotAuthenticatedError(
            "Not logged in to Azure. Run `az login` or provide service principal credentials."  # noqa: E501
        )

    try:
        account = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise NotAuthenticatedError(
            f"Could not read `az account show` output: {e}"
        ) from e

    logger.info(
        "Logged in to Azure as {} (tenant {})",
        account.get("user", {}).get("name"),
        account.get("tenantId"),
    )
    return account


def profile_subscriptions(profile_path: Path = AZURE_PROFILE_PATH) -> list[dict]:
    """Subscriptions known to the local Azure CLI profile."""

    profile_path = Path(profile_path)
    if not profile_path.is_file():
        return []

    try:
        # The Azure CLI writes this file with a byte order mark.
        profile = json.loads(profile_path.read_text(encoding="utf-8-sig"))
    except ValueError:
        logger.warning("[{}] Unreadable Azure CLI profile", profile_path)
        return []

    if not isinstance(profile, dict):
        logger.warning("[{}] Unreadable Azure CLI profile", profile_path)
        return []
    return profile.get("subscriptions") or []


def _read_subscription_file(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            return line
    return None


def _validated(value: str, source: str) -> str:
    value = value.strip()
    if not SUBSCRIPTION_ID_PATTERN.match(value):
        raise SubscriptionError(
            f"Subscription from {source} is not a subscription id: '{value}'"
        )
    logger.info("Using subscription {} (from {})", value, source)
    return value


def _candidates(
    subscription: Optional[str],
    project_dir: Optional[Path],
    env: Mapping[str, str],
    profile_path: Path,
) -> Iterator[tuple[str, Optional[str]]]:
    yield "parameter", subscription
    for name in SUBSCRIPTION_ENV_VARS:
        yield f"${name}", env.get(name)
    if project_dir is not None:
        subscription_file = Path(project_dir) / SUBSCRIPTION_FILE
        yield str(subscription_file), _read_subscription_file(subscription_file)
    defaults = [
        s.get("id")
        for s in profile_subscriptions(profile_path)
        if s.get("isDefault")
    ]
    yield str(profile_path), defaults[0] if defaults else None


def _prompt_for_subscription(
    prompt: Callable[[str], str], profile_path: Path
) -> Optional[str]:
    known = profile_subscriptions(profile_path)
    for number, known_subscription in enumerate(known, start=1):
        logger.info(
            "  [{}] {} ({})",
            number,
            known_subscription.get("name"),
            known_subscription.get("id"),
        )

    answer = prompt("Azure subscription id (or number from the list): ").strip()
    if answer.isdigit() and 1 <= int(answer) <= len(known):
        return known[int(answer) - 1].get("id")
    return answer or None


def resolve_subscription(
    subscription: Optional[str] = None,
    project_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    prompt: Callable[[str], str] = input,
    profile_path: Path = AZURE_PROFILE_PATH,
    interactive: Optional[bool] = None,
) -> str:
    """
    Resolve the target subscription id, trying in order: the explicit
    parameter, $AZURE_SUBSCRIPTION_ID, $ARM_SUBSCRIPTION_ID, the project's
    `.subscription` file, the Azure CLI default subscription and finally an
    interactive prompt.
    """

    env = os.environ if environ is None else environ

    for source, value in _candidates(subscription, project_dir, env, profile_path):
        if value:
            return _validated(value, source)

    if interactive is None:
        interactive = sys.stdin.isatty()

    if interactive:
        answer = _prompt_for_subscription(prompt, profile_path)
        if answer:
            return _validated(answer, "prompt")

    raise SubscriptionError(
        "No Azure subscription found. Pass --subscription, set AZURE_SUBSCRIPTION_ID, "  # noqa: E501
        f"write it to {SUBSCRIPTION_FILE} in the project directory or run `az account set`."  # noqa: E501
    )
