"""Network profile loading for chain-deployments library."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .constants import NETWORK_CONFIG, NO_KEY_SENTINELS
from .exceptions import ConfigurationError
from .types import BackendKind, BackendRef, NetworkProfile


def load_network_config(config_path: Optional[Union[Path, str]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Get the network registry, optionally extended by a JSON file.

    Entries in the file use the NETWORK_CONFIG schema and replace built-in
    networks of the same name.

    Args:
        config_path: Optional path to a networks JSON file

    Returns:
        Dictionary mapping network id -> network config

    Raises:
        ConfigurationError: If the file is missing or not valid JSON
    """
    config = dict(NETWORK_CONFIG)
    if config_path is None:
        return config

    try:
        with open(config_path) as f:
            extra = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Network config file not found: {config_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Network config file is not valid JSON: {config_path}: {e}") from e

    if not isinstance(extra, dict):
        raise ConfigurationError(f"Network config file must hold an object: {config_path}")

    config.update(extra)
    return config


def network_ids(config_path: Optional[Union[Path, str]] = None) -> List[str]:
    """Get the names of all configured networks, sorted."""
    return sorted(load_network_config(config_path).keys())


def _backend_from_config(entry: Dict[str, Any], env: Mapping[str, str]) -> BackendRef:
    try:
        kind = BackendKind(entry["kind"])
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"Invalid verification backend kind in {entry!r}") from e

    if kind is not BackendKind.MANUAL_BUNDLE and not entry.get("api_url"):
        raise ConfigurationError(
            f"Verification backend '{entry.get('id', kind.value)}' ({kind.value}) has no api_url"
        )

    api_key = None
    api_key_env = entry.get("api_key_env")
    if api_key_env:
        value = env.get(api_key_env)
        # "NONE" / "empty" mean the explorer accepts unauthenticated requests
        if value is not None and value.strip().lower() not in NO_KEY_SENTINELS:
            api_key = value.strip()

    return BackendRef(
        id=entry.get("id", kind.value),
        kind=kind,
        api_url=entry.get("api_url"),
        browser_url=entry.get("browser_url"),
        api_key=api_key,
        api_key_env=api_key_env,
        key_required=bool(entry.get("key_required", False)),
    )


def load_network_profile(
    network: str,
    env: Optional[Mapping[str, str]] = None,
    config_path: Optional[Union[Path, str]] = None,
    rpc_url: Optional[str] = None,
) -> NetworkProfile:
    """
    Build the immutable profile for a network.

    Args:
        network: Network id (e.g. "lisk", "hederaTestnet")
        env: Environment mapping (defaults to os.environ)
        config_path: Optional networks JSON file
        rpc_url: Explicit RPC URL, overriding the environment

    Returns:
        NetworkProfile

    Raises:
        ConfigurationError: If the network is unknown or its RPC URL is not set
    """
    if env is None:
        env = os.environ

    config = load_network_config(config_path)
    if network not in config:
        raise ConfigurationError(
            f"Unknown network '{network}'. Configured: {', '.join(sorted(config))}"
        )
    entry = config[network]

    for required in ("chain_id", "rpc_env", "signer_env"):
        if required not in entry:
            raise ConfigurationError(f"Network '{network}' is missing '{required}'")

    if rpc_url is None:
        rpc_url = env.get(entry["rpc_env"])
    if not rpc_url:
        raise ConfigurationError(
            f"RPC URL required for '{network}': set ${entry['rpc_env']}"
        )

    backends = tuple(
        _backend_from_config(b, env) for b in entry.get("verification_backends", [])
    )

    return NetworkProfile(
        id=network,
        rpc_url=rpc_url,
        chain_id=int(entry["chain_id"]),
        signer_env=entry["signer_env"],
        native_fee_symbol=entry.get("native_fee_symbol", "ETH"),
        verification_backends=backends,
        explorer_url=entry.get("block_explorer_url"),
    )


def load_signer_key(profile: NetworkProfile, env: Optional[Mapping[str, str]] = None) -> str:
    """
    Read the deployer private key named by a profile.

    Returns:
        Private key with 0x prefix

    Raises:
        ConfigurationError: If the variable is not set
    """
    if env is None:
        env = os.environ

    key = env.get(profile.signer_env)
    if not key:
        raise ConfigurationError(
            f"Signer key required for '{profile.id}': set ${profile.signer_env}"
        )
    key = key.strip()
    return key if key.startswith("0x") else f"0x{key}"
