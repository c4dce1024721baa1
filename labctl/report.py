from pathlib import Path
from typing import Optional

import pandas as pd
from loguru import logger

from labctl.errors import ReportError

REPORT_COLUMNS = [
    "stack",
    "role",
    "hostname",
    "os_type",
    "public_ip",
    "private_ip",
    "username",
    "password",
    "connect",
]
SUPPORTED_FORMATS = ("xlsx", "csv")
SHEET_NAME = "credentials"


def connect_command(os_type: str, username: str, public_ip: Optional[str]) -> str:
    if not public_ip:
        return ""
    if os_type == "windows":
        return f"mstsc /v:{public_ip}"
    return f"ssh {username}@{public_ip}"


def machine_rows(outputs: dict) -> list[dict]:
    """Turn the `machines` stack output into report rows."""

    machines = outputs.get("machines")
    if machines is None:
        raise ReportError(
            "Stack has no 'machines' output, run `labctl apply` first."
        )

    rows = []
    for machine in machines:
        row = {column: machine.get(column) for column in REPORT_COLUMNS[:-1]}
        row["connect"] = connect_command(
            row["os_type"], row["username"], row["public_ip"]
        )
        rows.append(row)

    rows.sort(
        key=lambda row: (row["stack"] or "", row["role"] or "", row["hostname"] or "")  # noqa: E501
    )
    return rows


def report_format(path: Path, fmt: Optional[str] = None) -> str:
    fmt = (fmt or Path(path).suffix.lstrip(".")).lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ReportError(
            f"Unsupported report format '{fmt}', use one of {', '.join(SUPPORTED_FORMATS)}"  # noqa: E501
        )
    return fmt


def write_report(rows: list[dict], path: Path, fmt: Optional[str] = None) -> Path:
    path = Path(path)
    fmt = report_format(path, fmt)

    frame = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "xlsx":
        frame.to_excel(path, sheet_name=SHEET_NAME, index=False, engine="openpyxl")
    else:
        frame.to_csv(path, index=False)

    logger.info("[{}] Wrote {} credential rows", path, len(frame))
    return path
