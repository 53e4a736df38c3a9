"""Module definition and build output parsers for chain-deployments library."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import ArtifactNotFoundError, GraphError, MetadataMalformedError
from .types import (
    AccountRef,
    ContractRef,
    ContractSpec,
    Literal,
    ModuleDefinition,
    ModuleParameter,
    ParamRef,
    PostDeployCall,
)


def parse_param(value: Any) -> ParamRef:
    """
    Convert a JSON argument into a parameter reference.

    Single-key objects select the reference kind:
    - {"account": 0} -> AccountRef
    - {"contract": "Name"} -> ContractRef
    - {"param": "name"} -> ModuleParameter
    - {"literal": value} -> Literal (for values that would otherwise be read as a reference)

    Anything else is a literal.

    Args:
        value: Decoded JSON value

    Returns:
        ParamRef
    """
    if isinstance(value, dict) and len(value) == 1:
        kind, inner = next(iter(value.items()))
        if kind == "account":
            return AccountRef(int(inner))
        if kind == "contract":
            return ContractRef(str(inner))
        if kind == "param":
            return ModuleParameter(str(inner))
        if kind == "literal":
            return Literal(inner)
    return Literal(value)


def parse_module_definition(data: Dict[str, Any]) -> ModuleDefinition:
    """
    Parse a decoded module definition.

    Args:
        data: Dictionary with name, contracts, and optional parameters/calls

    Returns:
        ModuleDefinition

    Raises:
        GraphError: If required keys are missing
    """
    if "name" not in data:
        raise GraphError("Module definition is missing 'name'")

    contracts = []
    for entry in data.get("contracts", []):
        if isinstance(entry, str):
            entry = {"name": entry}
        if "name" not in entry:
            raise GraphError(f"Contract entry without name in module '{data['name']}'")
        contracts.append(
            ContractSpec(
                name=entry["name"],
                constructor_params=tuple(parse_param(a) for a in entry.get("args", [])),
            )
        )

    calls = []
    for entry in data.get("calls", []):
        if "target" not in entry or "method" not in entry:
            raise GraphError(f"Post-deploy call needs target and method: {entry!r}")
        calls.append(
            PostDeployCall(
                target=entry["target"],
                method=entry["method"],
                args=tuple(parse_param(a) for a in entry.get("args", [])),
            )
        )

    parameters = {
        name: parse_param(default) for name, default in data.get("parameters", {}).items()
    }

    return ModuleDefinition(
        name=data["name"],
        contracts=contracts,
        calls=calls,
        parameters=parameters,
    )


def load_module_definition(file_path: Union[Path, str]) -> ModuleDefinition:
    """Parse a module definition JSON file."""
    with open(file_path) as f:
        return parse_module_definition(json.load(f))


def load_parameters(file_path: Union[Path, str], module_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Load per-run parameter overrides.

    Accepts either a flat {"name": value} object or an object keyed by module
    name ({"DeployAllModule": {...}}) like Hardhat Ignition parameter files.
    """
    with open(file_path) as f:
        data = json.load(f)

    if module_name is not None and isinstance(data.get(module_name), dict):
        data = data[module_name]
    return {name: parse_param(value) for name, value in data.items()}


def parse_build_info(file_path: Path) -> Dict[str, Any]:
    """
    Parse a Hardhat build-info JSON file.

    Args:
        file_path: Path to artifacts/build-info/<id>.json

    Returns:
        Decoded build-info with "input" and "output" sections

    Raises:
        ArtifactNotFoundError: If the file does not exist
        MetadataMalformedError: If the file is not valid build-info JSON
    """
    try:
        with open(file_path) as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ArtifactNotFoundError(f"Build info not found: {file_path}") from e
    except json.JSONDecodeError as e:
        raise MetadataMalformedError(f"Build info is not valid JSON: {file_path}: {e}") from e

    if not isinstance(data, dict) or "output" not in data or "input" not in data:
        raise MetadataMalformedError(f"Build info lacks input/output sections: {file_path}")

    return data


def find_contract_output(build_info: Dict[str, Any], contract_name: str) -> Optional[tuple[str, Dict[str, Any]]]:
    """
    Locate a contract in compiler output.

    Prefers contracts/<Name>.sol, then any source declaring the name.

    Returns:
        Tuple of (source_name, contract_output) or None if absent
    """
    contracts = build_info.get("output", {}).get("contracts", {})

    preferred = f"contracts/{contract_name}.sol"
    if contract_name in contracts.get(preferred, {}):
        return preferred, contracts[preferred][contract_name]

    for source_name in sorted(contracts):
        if contract_name in contracts[source_name]:
            return source_name, contracts[source_name][contract_name]

    return None


def parse_contract_metadata(contract_output: Dict[str, Any], contract_name: str) -> Dict[str, Any]:
    """
    Decode the metadata string embedded in a contract's compiler output.

    Raises:
        MetadataMalformedError: If metadata is absent, not JSON, or lacks compiler/settings
    """
    raw = contract_output.get("metadata")
    if not raw:
        raise MetadataMalformedError(f"No compiler metadata for {contract_name}")

    try:
        metadata = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError as e:
        raise MetadataMalformedError(f"Compiler metadata for {contract_name} is not JSON: {e}") from e

    if not isinstance(metadata, dict):
        raise MetadataMalformedError(f"Compiler metadata for {contract_name} is not an object")
    if "version" not in metadata.get("compiler", {}) or "settings" not in metadata:
        raise MetadataMalformedError(
            f"Compiler metadata for {contract_name} lacks compiler version or settings"
        )

    return metadata
