"""Data types and dataclasses for chain-deployments library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class BackendKind(Enum):
    """
    Verification backend capability.

    Value strings define de/serialization law (network config files use them).
    """

    EXPLORER_API = "explorer-api"
    METADATA_MATCHING = "metadata-matching"
    MANUAL_BUNDLE = "manual-bundle"


class VerificationStatus(Enum):
    """Outcome of one verification attempt."""

    VERIFIED = "Verified"
    ALREADY_VERIFIED = "AlreadyVerified"
    SUBMITTED = "Submitted"  # accepted by an asynchronous backend, match not confirmed
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class BackendRef:
    """A verification backend configured for a network."""

    id: str
    kind: BackendKind
    api_url: Optional[str] = None
    browser_url: Optional[str] = None
    api_key: Optional[str] = None  # None means "no key required" or not configured
    api_key_env: Optional[str] = None
    key_required: bool = False


@dataclass(frozen=True)
class NetworkProfile:
    """Connection and verification settings for one network."""

    id: str
    rpc_url: str
    chain_id: int
    signer_env: str  # env var holding the deployer private key
    native_fee_symbol: str
    verification_backends: Tuple[BackendRef, ...] = ()
    explorer_url: Optional[str] = None


@dataclass(frozen=True)
class Literal:
    """A constructor or call argument given as a plain value."""

    value: Any


@dataclass(frozen=True)
class AccountRef:
    """Reference to a signer account by index (0 is the deployer)."""

    index: int = 0


@dataclass(frozen=True)
class ContractRef:
    """Reference to the future address of another contract in the module."""

    name: str


@dataclass(frozen=True)
class ModuleParameter:
    """Reference to a module-level parameter, substituted during resolution."""

    name: str


ParamRef = Union[Literal, AccountRef, ContractRef, ModuleParameter]


@dataclass(frozen=True)
class ContractSpec:
    """A contract to deploy and its constructor parameters in declaration order."""

    name: str
    constructor_params: Tuple[ParamRef, ...] = ()


@dataclass(frozen=True)
class PostDeployCall:
    """A state-changing call issued against a deployed contract during setup."""

    target: str
    method: str
    args: Tuple[ParamRef, ...] = ()


@dataclass
class ModuleDefinition:
    """Declarative module: contracts, setup calls and parameter defaults."""

    name: str
    contracts: List[ContractSpec] = field(default_factory=list)
    calls: List[PostDeployCall] = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentPlan:
    """Topologically ordered contract creations plus post-deploy calls."""

    deployment_id: str
    module_name: str
    contracts: Tuple[ContractSpec, ...]
    calls: Tuple[PostDeployCall, ...] = ()

    def call_key(self, index: int) -> str:
        """Stable key identifying a post-deploy call within this plan."""
        call = self.calls[index]
        return f"{index}:{call.target}.{call.method}"


@dataclass
class DeploymentRecord:
    """Addresses deployed under one deployment ID. Append-only."""

    deployment_id: str
    chain_id: Optional[int] = None
    deployer: Optional[str] = None
    addresses: Dict[str, str] = field(default_factory=dict)
    transactions: Dict[str, str] = field(default_factory=dict)
    constructor_args: Dict[str, List[Any]] = field(default_factory=dict)
    completed_calls: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class VerificationArtifact:
    """Backend-independent verification input for one contract."""

    contract_name: str
    source_name: str  # e.g. "contracts/SwapRouter.sol"
    abi: List[Dict[str, Any]]
    bytecode: str
    deployed_bytecode: str
    compiler_version: str  # long form, e.g. "0.8.28+commit.7893614a"
    optimizer: Dict[str, Any]
    evm_version: Optional[str]
    source_text: str
    sources: Dict[str, str]
    metadata: Dict[str, Any]
    standard_input: Dict[str, Any]
    constructor_args_encoded: str = ""  # hex without 0x prefix
    build_id: Optional[str] = None

    @property
    def fully_qualified_name(self) -> str:
        return f"{self.source_name}:{self.contract_name}"


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of one (contract, backend) verification attempt."""

    contract_name: str
    backend_id: str
    status: VerificationStatus
    detail: str = ""


@dataclass(frozen=True)
class RunReport:
    """Addresses and verification outcomes of one run."""

    network: str
    chain_id: int
    deployer: Optional[str]
    deployment_id: str
    timestamp: str  # ISO 8601, UTC
    contracts: Dict[str, str]
    verification: Tuple[VerificationOutcome, ...] = ()
