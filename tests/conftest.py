"""Shared pytest fixtures for chain-deployments tests."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest

from chain_deployments.chain import TransactionResult
from chain_deployments.exceptions import TransactionRevertedError
from chain_deployments.parsers import load_module_definition
from chain_deployments.store import DeploymentStore
from chain_deployments.types import BackendKind, BackendRef, ModuleDefinition, NetworkProfile

COMPILER_VERSION = "0.8.28+commit.7893614a"

# Constructor input types and functions of every contract the fixtures can compile
CONTRACT_INTERFACES: Dict[str, Dict[str, Any]] = {
    "SessionKeyModule": {"constructor": [], "functions": {}},
    "CPPayPaymaster": {"constructor": ["address"], "functions": {"deposit": []}},
    "SwapRouter": {"constructor": ["address"], "functions": {"setAggregator": ["address", "bool"]}},
    "BillPaymentAdapter": {"constructor": ["address"], "functions": {"setSwapRouter": ["address"]}},
    "ContractA": {"constructor": [], "functions": {}},
    "ContractB": {"constructor": ["address"], "functions": {}},
}

SHARED_SOURCE = "contracts/lib/Ownable.sol"


def _abi(interface: Dict[str, Any]) -> List[Dict[str, Any]]:
    abi: List[Dict[str, Any]] = []
    if interface["constructor"]:
        abi.append(
            {
                "type": "constructor",
                "stateMutability": "nonpayable",
                "inputs": [
                    {"name": f"arg{i}", "type": t, "internalType": t}
                    for i, t in enumerate(interface["constructor"])
                ],
            }
        )
    for name, types in interface["functions"].items():
        abi.append(
            {
                "type": "function",
                "name": name,
                "stateMutability": "nonpayable",
                "inputs": [{"name": f"arg{i}", "type": t, "internalType": t} for i, t in enumerate(types)],
                "outputs": [],
            }
        )
    return abi


def build_info_document(build_id: str, names: Iterable[str], bytecode_tag: str = "00") -> Dict[str, Any]:
    """Create a Hardhat build-info document compiling the given contracts."""
    settings = {"optimizer": {"enabled": True, "runs": 200}, "evmVersion": "paris"}
    sources = {SHARED_SOURCE: {"content": "// SPDX-License-Identifier: MIT\ncontract Ownable {}\n"}}
    contracts: Dict[str, Dict[str, Any]] = {}

    for name in names:
        source_name = f"contracts/{name}.sol"
        sources[source_name] = {
            "content": f'// SPDX-License-Identifier: MIT\nimport "./lib/Ownable.sol";\ncontract {name} is Ownable {{}}\n'
        }
        abi = _abi(CONTRACT_INTERFACES[name])
        metadata = {
            "compiler": {"version": COMPILER_VERSION},
            "language": "Solidity",
            "output": {"abi": abi, "devdoc": {}, "userdoc": {}},
            "settings": {**settings, "compilationTarget": {source_name: name}, "libraries": {}},
            "sources": {source_name: {"keccak256": "0x01"}, SHARED_SOURCE: {"keccak256": "0x02"}},
            "version": 1,
        }
        contracts[source_name] = {
            name: {
                "abi": abi,
                "evm": {
                    "bytecode": {"object": f"6080604052{bytecode_tag}{name.encode().hex()}"},
                    "deployedBytecode": {"object": f"60806040{bytecode_tag}"},
                },
                "metadata": json.dumps(metadata),
            }
        }

    return {
        "_format": "hh-sol-build-info-1",
        "id": build_id,
        "solcVersion": COMPILER_VERSION.split("+")[0],
        "solcLongVersion": COMPILER_VERSION,
        "input": {
            "language": "Solidity",
            "sources": sources,
            "settings": {**settings, "outputSelection": {"*": {"*": ["abi", "evm.bytecode", "metadata"]}}},
        },
        "output": {"contracts": contracts},
    }


class FakeChain:
    """In-memory stand-in for ChainClient."""

    def __init__(self, chain_id: int = 4202, balance: int = 10**18):
        self.deployer = "0x" + "d" * 40
        self.accounts = [self.deployer]
        self._chain_id = chain_id
        self._balance = balance
        self.deployments: List[tuple] = []
        self.calls: List[tuple] = []
        self.fail_on: set = set()
        self._nonce = 0

    def chain_id(self) -> int:
        return self._chain_id

    def balance(self, address: Optional[str] = None) -> int:
        return self._balance

    def _result(self, address: Optional[str] = None) -> TransactionResult:
        return TransactionResult(
            tx_hash="0x" + f"{self._nonce:064x}", block_number=self._nonce, contract_address=address
        )

    def deploy_contract(self, name: str, bytecode: str, encoded_args: str = "") -> TransactionResult:
        if name in self.fail_on:
            raise TransactionRevertedError(f"Deployment of {name} reverted: boom", reason="boom")
        self._nonce += 1
        self.deployments.append((name, bytecode, encoded_args))
        return self._result("0x" + f"{0xA000 + self._nonce:040x}")

    def transact(self, address: str, abi: list, method: str, args: list) -> TransactionResult:
        if method in self.fail_on:
            raise TransactionRevertedError(f"Call {method} reverted: denied", reason="denied")
        self._nonce += 1
        self.calls.append((address, method, list(args)))
        return self._result()


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def deploy_all_module(fixtures_dir: Path) -> ModuleDefinition:
    return load_module_definition(fixtures_dir / "modules" / "deploy_all.json")


@pytest.fixture
def make_build_info() -> Callable[..., Path]:
    """Return a function writing <root>/artifacts/build-info/<build_id>.json."""

    def _write(root: Path, build_id: str, names: Iterable[str], bytecode_tag: str = "00") -> Path:
        build_dir = root / "artifacts" / "build-info"
        build_dir.mkdir(parents=True, exist_ok=True)
        path = build_dir / f"{build_id}.json"
        with open(path, "w") as f:
            json.dump(build_info_document(build_id, names, bytecode_tag), f)
        return path

    return _write


@pytest.fixture
def project_root(tmp_path: Path, make_build_info: Callable[..., Path]) -> Path:
    """A Hardhat project whose single build compiles every fixture contract."""
    root = tmp_path / "project"
    make_build_info(root, "a1b2c3", CONTRACT_INTERFACES.keys())
    return root


@pytest.fixture
def build_info_factory() -> Callable[..., Dict[str, Any]]:
    """Return a function creating build-info documents in memory."""
    return build_info_document


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def make_chain() -> Callable[..., FakeChain]:
    """Return the FakeChain class for tests needing another chain id or balance."""
    return FakeChain


@pytest.fixture
def store(tmp_path: Path) -> DeploymentStore:
    return DeploymentStore(tmp_path / "state" / "deployments")


@pytest.fixture
def lisk_profile() -> NetworkProfile:
    return NetworkProfile(
        id="lisk",
        rpc_url="http://localhost:8545",
        chain_id=4202,
        signer_env="PRIVATE_KEY",
        native_fee_symbol="ETH",
        verification_backends=(
            BackendRef(
                id="blockscout",
                kind=BackendKind.EXPLORER_API,
                api_url="https://explorer.test/api",
                api_key="KEY",
                api_key_env="LISK_EXPLORER_KEY",
                key_required=True,
            ),
            BackendRef(id="bundle", kind=BackendKind.MANUAL_BUNDLE),
        ),
        explorer_url="https://explorer.test",
    )


@pytest.fixture
def hedera_profile() -> NetworkProfile:
    return NetworkProfile(
        id="hederaTestnet",
        rpc_url="http://localhost:7546",
        chain_id=296,
        signer_env="HEDERA_TESTNET_PRIVATE_KEY",
        native_fee_symbol="HBAR",
        verification_backends=(
            BackendRef(
                id="hashscan-sourcify",
                kind=BackendKind.METADATA_MATCHING,
                api_url="https://sourcify.test",
            ),
            BackendRef(id="bundle", kind=BackendKind.MANUAL_BUNDLE),
        ),
        explorer_url="https://hashscan.test/testnet",
    )
