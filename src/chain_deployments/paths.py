"""Path management utilities for chain-deployments library."""

from pathlib import Path
from typing import Optional, Union


def get_default_state_dir() -> Path:
    """
    Get default output directory (current working directory).

    Returns:
        Path to ./.chain-deployments
    """
    return Path.cwd() / ".chain-deployments"


def get_output_paths(output_root: Optional[Union[Path, str]] = None) -> tuple[Path, Path, Path]:
    """
    Get output directory paths.

    Args:
        output_root: Custom output directory (defaults to ./.chain-deployments)

    Returns:
        Tuple of (deployments_dir, reports_dir, verification_dir)
    """
    if output_root is None:
        output_root = get_default_state_dir()
    else:
        output_root = Path(output_root).absolute()

    deployments_dir = output_root / "deployments"
    reports_dir = output_root / "reports"
    verification_dir = output_root / "verification"

    return (deployments_dir, reports_dir, verification_dir)


def get_record_path(deployments_dir: Path, deployment_id: str) -> Path:
    """
    Get the persisted address record for a deployment ID.

    Args:
        deployments_dir: Root of persisted run state
        deployment_id: Stable deployment identifier

    Returns:
        Path to <deployments_dir>/<deployment_id>/deployed_addresses.json
    """
    return deployments_dir / deployment_id / "deployed_addresses.json"


def get_bundle_dir(verification_dir: Path, network: str, contract_name: str) -> Path:
    """Get the manual verification bundle directory for a contract."""
    return verification_dir / network / contract_name
