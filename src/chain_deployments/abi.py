"""ABI encoding helpers for chain-deployments library."""

from typing import Any, Dict, List, Sequence

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak

from .exceptions import ArtifactError


def _canonical_type(param: Dict[str, Any]) -> str:
    """
    Render an ABI input as its canonical type string.

    Tuples are expanded from their components, keeping any array suffix:
    {"type": "tuple[]", "components": [...]} -> "(address,uint256)[]"
    """
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def coerce_arg(abi_type: str, value: Any) -> Any:
    """Convert JSON-friendly values (hex strings, numeric strings) to what eth-abi expects."""
    if isinstance(value, str):
        if abi_type.startswith("bytes") and not abi_type.endswith("]"):
            return bytes.fromhex(strip_0x(value))
        if abi_type.startswith(("uint", "int")) and not abi_type.endswith("]"):
            return int(value, 0)
    return value


def constructor_inputs(abi: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Get constructor inputs from an ABI (empty when there is no constructor)."""
    for item in abi:
        if item.get("type") == "constructor":
            return item.get("inputs", [])
    return []


def encode_constructor_args(abi: List[Dict[str, Any]], args: Sequence[Any]) -> str:
    """
    ABI-encode constructor arguments in declaration order.

    Args:
        abi: Contract ABI
        args: Argument values, ordered as the constructor declares them

    Returns:
        Hex string without 0x prefix ("" for no arguments)

    Raises:
        ArtifactError: If the argument count does not match the constructor
    """
    inputs = constructor_inputs(abi)
    if len(inputs) != len(args):
        raise ArtifactError(
            f"Constructor takes {len(inputs)} argument(s), got {len(args)}"
        )
    if not inputs:
        return ""

    types = [_canonical_type(i) for i in inputs]
    try:
        values = [coerce_arg(t, v) for t, v in zip(types, args)]
        return encode(types, values).hex()
    except (EncodingError, ValueError) as e:
        raise ArtifactError(f"Cannot encode constructor arguments as {types}: {e}") from e


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def encode_function_call(abi: List[Dict[str, Any]], method: str, args: Sequence[Any]) -> str:
    """
    Build call data for a contract method.

    Args:
        abi: Contract ABI
        method: Function name (first overload with a matching argument count wins)
        args: Argument values

    Returns:
        0x-prefixed selector followed by the encoded arguments

    Raises:
        ArtifactError: If the ABI has no such function or the arguments do not encode
    """
    candidates = [
        item.get("inputs", [])
        for item in abi
        if item.get("type") == "function" and item.get("name") == method
    ]
    inputs = next((c for c in candidates if len(c) == len(args)), None)
    if inputs is None:
        raise ArtifactError(f"ABI has no function {method} taking {len(args)} argument(s)")

    types = [_canonical_type(i) for i in inputs]
    selector = keccak(text=f"{method}({','.join(types)})")[:4]
    try:
        values = [coerce_arg(t, v) for t, v in zip(types, args)]
        return "0x" + (selector + encode(types, values)).hex()
    except (EncodingError, ValueError) as e:
        raise ArtifactError(f"Cannot encode arguments of {method} as {types}: {e}") from e
