"""Command line entry point for chain-deployments library."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .artifacts import BuildOutput, export_abis
from .deployments import deploy_and_verify, verify_deployment
from .exceptions import OrchestratorError, TransactionRevertedError
from .networks import load_network_config, load_network_profile, network_ids
from .parsers import load_module_definition, load_parameters
from .paths import get_output_paths
from .report import build_report, load_report, render_summary, save_report
from .store import DeploymentStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chain-deployments",
        description="Deploy a contract module to a network and verify it.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--networks-file", help="JSON file adding or overriding networks")
    parser.add_argument("--project-root", default=".", help="Hardhat project with artifacts/build-info")
    parser.add_argument("--output-root", help="Records, reports and bundles (default ./.chain-deployments)")

    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Deploy a module, then verify it")
    deploy.add_argument("module", help="Module definition JSON file")
    deploy.add_argument("--network", required=True)
    deploy.add_argument("--deployment-id", help="Idempotency key (default <module>-<network>)")
    deploy.add_argument("--parameters", help="Parameter overrides JSON file")
    deploy.add_argument("--skip-verify", action="store_true")

    verify = sub.add_parser("verify", help="Verify an existing deployment")
    verify.add_argument("--network", required=True)
    verify.add_argument("--deployment-id", required=True)
    verify.add_argument("contracts", nargs="*", help="Contracts to verify (default: all recorded)")

    sub.add_parser("networks", help="List configured networks")

    summary = sub.add_parser("summary", help="Print the summary of a saved run report")
    summary.add_argument("report", help="Run report JSON file")

    export = sub.add_parser("export-abis", help="Write <Name>.json with ABI and bytecode per contract")
    export.add_argument("contracts", nargs="+", help="Contracts to export")
    export.add_argument("--out", default="abis", help="Destination directory (default ./abis)")
    return parser


def _cmd_deploy(args: argparse.Namespace) -> int:
    module = load_module_definition(args.module)
    parameters = load_parameters(args.parameters, module.name) if args.parameters else None

    try:
        report, report_path = deploy_and_verify(
            module,
            args.network,
            deployment_id=args.deployment_id,
            parameters=parameters,
            project_root=args.project_root,
            output_root=args.output_root,
            network_config=args.networks_file,
            skip_verify=args.skip_verify,
        )
    except TransactionRevertedError as e:
        print(f"Deployment failed: {e}", file=sys.stderr)
        if e.reason:
            print(f"Revert reason: {e.reason}", file=sys.stderr)
        print("The partial deployment record was kept; re-run to resume.", file=sys.stderr)
        return 1

    print(render_summary(report))
    print(f"\nReport saved to {report_path}")
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    profile = load_network_profile(args.network, config_path=args.networks_file)
    deployments_dir, reports_dir, verification_dir = get_output_paths(args.output_root)

    store = DeploymentStore(deployments_dir)
    if not store.exists(args.deployment_id):
        print(f"No deployment record for '{args.deployment_id}' in {deployments_dir}", file=sys.stderr)
        return 1
    record = store.load(args.deployment_id)

    outcomes = verify_deployment(
        record,
        profile,
        project_root=args.project_root,
        verification_dir=verification_dir,
        contract_names=args.contracts or None,
    )
    report = build_report(profile, record, outcomes)
    report_path = save_report(report, reports_dir)
    print(render_summary(report))
    print(f"\nReport saved to {report_path}")
    return 0


def _cmd_networks(args: argparse.Namespace) -> int:
    config = load_network_config(args.networks_file)
    for name in network_ids(args.networks_file):
        entry = config[name]
        backends = ", ".join(b.get("id", b.get("kind", "?")) for b in entry.get("verification_backends", []))
        print(f"{name.ljust(16)}chain {str(entry.get('chain_id')).ljust(8)}{backends}")
    return 0


def _cmd_summary(args: argparse.Namespace) -> int:
    try:
        report = load_report(args.report)
    except KeyError as e:
        print(f"Error: {args.report} is not a run report (missing {e})", file=sys.stderr)
        return 1
    print(render_summary(report))
    return 0


def _cmd_export_abis(args: argparse.Namespace) -> int:
    paths = export_abis(BuildOutput(args.project_root), args.contracts, args.out)
    print(f"Exported ABIs for {len(paths)} contract(s):")
    for path in paths:
        print(f"  - {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the CLI.

    Returns:
        0 when every deployment step succeeded (verification failures are
        reported but do not change the exit code), 1 otherwise
    """
    load_dotenv(Path.cwd() / ".env")
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "deploy": _cmd_deploy,
        "verify": _cmd_verify,
        "networks": _cmd_networks,
        "summary": _cmd_summary,
        "export-abis": _cmd_export_abis,
    }
    try:
        return commands[args.command](args)
    except (OrchestratorError, FileNotFoundError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
