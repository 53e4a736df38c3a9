"""Build output reading and verification artifact extraction for chain-deployments library."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .abi import encode_constructor_args
from .exceptions import ArtifactNotFoundError, MetadataMalformedError
from .parsers import find_contract_output, parse_build_info, parse_contract_metadata
from .types import VerificationArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledContract:
    """Compiler output for one contract in one build."""

    name: str
    source_name: str
    build_id: str
    abi: List[Dict[str, Any]]
    bytecode: str
    deployed_bytecode: str
    output: Dict[str, Any]
    build_info: Dict[str, Any]


def _hex(value: Optional[str]) -> str:
    if not value:
        return "0x"
    return value if value.startswith("0x") else f"0x{value}"


class BuildOutput:
    """
    Read-only view of Hardhat build output.

    Build records live in <project>/artifacts/build-info/<build id>.json. When
    several records hold the same contract, the one with the lexicographically
    greatest build id wins.
    """

    def __init__(self, project_root: Union[Path, str], artifacts_dir: str = "artifacts"):
        self.project_root = Path(project_root)
        self.build_info_dir = self.project_root / artifacts_dir / "build-info"
        self._cache: Dict[str, Dict[str, Any]] = {}

    def build_ids(self) -> List[str]:
        """Get all build ids, newest (greatest) first."""
        if not self.build_info_dir.exists():
            return []
        return sorted((p.stem for p in self.build_info_dir.glob("*.json")), reverse=True)

    def _load(self, build_id: str) -> Dict[str, Any]:
        if build_id not in self._cache:
            self._cache[build_id] = parse_build_info(self.build_info_dir / f"{build_id}.json")
        return self._cache[build_id]

    def compiled_contract(self, contract_name: str) -> CompiledContract:
        """
        Find a contract in the latest build that contains it.

        Args:
            contract_name: Contract name (e.g. "SwapRouter")

        Returns:
            CompiledContract

        Raises:
            ArtifactNotFoundError: If no build record contains the contract
            MetadataMalformedError: If a build record is not valid JSON
        """
        build_ids = self.build_ids()
        if not build_ids:
            raise ArtifactNotFoundError(
                f"No build-info files in {self.build_info_dir}. Compile the contracts first."
            )

        for build_id in build_ids:
            build_info = self._load(build_id)
            found = find_contract_output(build_info, contract_name)
            if found is None:
                continue

            source_name, output = found
            evm = output.get("evm", {})
            logger.debug("Using build %s for %s", build_id, contract_name)
            return CompiledContract(
                name=contract_name,
                source_name=source_name,
                build_id=build_id,
                abi=output.get("abi", []),
                bytecode=_hex(evm.get("bytecode", {}).get("object")),
                deployed_bytecode=_hex(evm.get("deployedBytecode", {}).get("object")),
                output=output,
                build_info=build_info,
            )

        raise ArtifactNotFoundError(
            f"Contract {contract_name} not found in any build in {self.build_info_dir}"
        )


def export_abis(
    build_output: BuildOutput, contract_names: Sequence[str], output_dir: Union[Path, str]
) -> List[Path]:
    """
    Write <output_dir>/<Name>.json for each contract, for consumers of the deployed contracts.

    Each file holds contractName, sourceName, abi, bytecode and deployedBytecode.

    Args:
        build_output: Build output to read
        contract_names: Contracts to export, in order
        output_dir: Destination directory (created if missing)

    Returns:
        Written paths, in contract order

    Raises:
        ArtifactNotFoundError: If a contract is absent from every build
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for name in contract_names:
        compiled = build_output.compiled_contract(name)
        payload = {
            "contractName": compiled.name,
            "sourceName": compiled.source_name,
            "abi": compiled.abi,
            "bytecode": compiled.bytecode,
            "deployedBytecode": compiled.deployed_bytecode,
        }
        path = output_dir / f"{name}.json"
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)
        logger.info("Exported ABI of %s to %s", name, path)
        paths.append(path)
    return paths


class ArtifactExtractor:
    """Produces backend-independent verification artifacts from build output."""

    def __init__(self, build_output: BuildOutput):
        self.build_output = build_output

    def extract(self, contract_name: str, constructor_args: Sequence[Any] = ()) -> VerificationArtifact:
        """
        Build the verification artifact for a contract.

        Args:
            contract_name: Contract name
            constructor_args: Deployed constructor argument values in declaration order

        Returns:
            VerificationArtifact

        Raises:
            ArtifactNotFoundError: If compiled output is absent
            MetadataMalformedError: If embedded compiler metadata cannot be parsed
        """
        compiled = self.build_output.compiled_contract(contract_name)
        metadata = parse_contract_metadata(compiled.output, contract_name)

        settings = metadata["settings"]
        input_sources = compiled.build_info["input"].get("sources", {})

        # Metadata lists every source the compilation target depends on
        sources: Dict[str, str] = {}
        for source_name in metadata.get("sources", {}) or input_sources:
            entry = input_sources.get(source_name)
            if entry is None or "content" not in entry:
                raise MetadataMalformedError(
                    f"Source {source_name} required by {contract_name} is missing "
                    f"from build {compiled.build_id}"
                )
            sources[source_name] = entry["content"]

        if compiled.source_name not in sources:
            raise MetadataMalformedError(
                f"Main source {compiled.source_name} of {contract_name} is missing "
                f"from build {compiled.build_id}"
            )

        optimizer = settings.get("optimizer", {})

        return VerificationArtifact(
            contract_name=contract_name,
            source_name=compiled.source_name,
            abi=compiled.abi,
            bytecode=compiled.bytecode,
            deployed_bytecode=compiled.deployed_bytecode,
            compiler_version=compiled.build_info.get("solcLongVersion")
            or metadata["compiler"]["version"],
            optimizer={
                "enabled": bool(optimizer.get("enabled", False)),
                "runs": int(optimizer.get("runs", 200)),
            },
            evm_version=settings.get("evmVersion"),
            source_text=sources[compiled.source_name],
            sources=sources,
            metadata=metadata,
            standard_input=compiled.build_info["input"],
            constructor_args_encoded=encode_constructor_args(compiled.abi, constructor_args),
            build_id=compiled.build_id,
        )
