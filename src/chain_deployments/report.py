"""Run report for chain-deployments library."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from .types import (
    DeploymentRecord,
    NetworkProfile,
    RunReport,
    VerificationOutcome,
    VerificationStatus,
)


def build_report(
    profile: NetworkProfile,
    record: DeploymentRecord,
    outcomes: Iterable[VerificationOutcome] = (),
    deployer: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RunReport:
    """
    Aggregate a deployment record and verification outcomes.

    Args:
        profile: Network the run targeted
        record: Deployment record after the run
        outcomes: All verification outcomes of the run
        deployer: Deployer address (defaults to the one in the record)
        now: Report time (defaults to current UTC time)

    Returns:
        RunReport
    """
    if now is None:
        now = datetime.now(timezone.utc)

    return RunReport(
        network=profile.id,
        chain_id=profile.chain_id,
        deployer=deployer or record.deployer,
        deployment_id=record.deployment_id,
        timestamp=now.isoformat(),
        contracts=dict(record.addresses),
        verification=tuple(outcomes),
    )


def report_to_dict(report: RunReport) -> Dict[str, Any]:
    return {
        "network": report.network,
        "chainId": report.chain_id,
        "deploymentId": report.deployment_id,
        "deployer": report.deployer,
        "timestamp": report.timestamp,
        "contracts": dict(report.contracts),
        "verification": [
            {
                "contractName": o.contract_name,
                "backendId": o.backend_id,
                "status": o.status.value,
                "detail": o.detail,
            }
            for o in report.verification
        ],
    }


def report_from_dict(data: Dict[str, Any]) -> RunReport:
    return RunReport(
        network=data["network"],
        chain_id=int(data["chainId"]),
        deployer=data.get("deployer"),
        deployment_id=data.get("deploymentId", ""),
        timestamp=data["timestamp"],
        contracts=dict(data.get("contracts", {})),
        verification=tuple(
            VerificationOutcome(
                contract_name=v["contractName"],
                backend_id=v["backendId"],
                status=VerificationStatus(v["status"]),
                detail=v.get("detail", ""),
            )
            for v in data.get("verification", [])
        ),
    )


def save_report(report: RunReport, reports_dir: Union[Path, str]) -> Path:
    """
    Write a report as <reports_dir>/<network>-deployment-<epoch ms>.json.

    Creates parent directories if they don't exist. An existing report is
    never overwritten: a numeric suffix is added instead.
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)
    millis = int(datetime.fromisoformat(report.timestamp).timestamp() * 1000)
    stem = f"{report.network}-deployment-{millis}"

    suffix = 0
    while True:
        path = reports_dir / (f"{stem}.json" if suffix == 0 else f"{stem}-{suffix}.json")
        try:
            with open(path, "x") as f:
                json.dump(report_to_dict(report), f, indent=2)
            return path
        except FileExistsError:
            suffix += 1


def load_report(path: Union[Path, str]) -> RunReport:
    """
    Read a saved report.

    Raises:
        FileNotFoundError: If the report does not exist
        json.JSONDecodeError: If the file is not valid JSON
    """
    with open(path) as f:
        return report_from_dict(json.load(f))


def render_summary(report: RunReport) -> str:
    """Render the contract address table and the per-backend verification table."""
    rule = "-" * 72
    lines = [
        f"Network: {report.network} (chain {report.chain_id})",
        f"Deployment: {report.deployment_id}",
        f"Deployer: {report.deployer or 'unknown'}",
        "",
        "Contract Addresses:",
        rule,
    ]
    width = max((len(name) for name in report.contracts), default=0) + 2
    for name, address in report.contracts.items():
        lines.append(f"{name.ljust(width)}{address}")
    lines.append(rule)

    if report.verification:
        name_width = max(len(o.contract_name) for o in report.verification) + 2
        backend_width = max(len(o.backend_id) for o in report.verification) + 2
        lines += ["", "Verification:", rule]
        for o in report.verification:
            lines.append(
                f"{o.status.value.ljust(16)}{o.contract_name.ljust(name_width)}"
                f"{o.backend_id.ljust(backend_width)}{o.detail}"
            )
        lines.append(rule)

        failed = sum(1 for o in report.verification if o.status is VerificationStatus.FAILED)
        lines.append(f"{len(report.verification) - failed}/{len(report.verification)} verification steps without failure")

    return "\n".join(lines)
