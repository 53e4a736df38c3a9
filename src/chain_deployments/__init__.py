"""
chain-deployments: deploy interdependent smart contracts and verify them across EVM networks
"""

from importlib.metadata import PackageNotFoundError, version

from .artifacts import ArtifactExtractor, BuildOutput, export_abis
from .deployments import DeploymentExecutor, deploy_and_verify, verify_deployment
from .exceptions import (
    ArtifactError,
    ArtifactNotFoundError,
    BackendError,
    ChainError,
    ConfigurationError,
    CyclicDependencyError,
    DeploymentInProgressError,
    GraphError,
    InsufficientFundsError,
    MetadataMalformedError,
    NetworkUnreachableError,
    OrchestratorError,
    TransactionRevertedError,
    UnresolvedParameterError,
)
from .graph import resolve_module
from .networks import load_network_profile
from .parsers import load_module_definition
from .store import DeploymentStore
from .types import (
    DeploymentPlan,
    DeploymentRecord,
    NetworkProfile,
    RunReport,
    VerificationArtifact,
    VerificationOutcome,
    VerificationStatus,
)
from .verification import VerificationDispatcher

try:
    __version__ = version("chain-deployments")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "ArtifactExtractor",
    "BuildOutput",
    "DeploymentExecutor",
    "DeploymentStore",
    "VerificationDispatcher",
    "deploy_and_verify",
    "verify_deployment",
    "export_abis",
    "resolve_module",
    "load_module_definition",
    "load_network_profile",
    "DeploymentPlan",
    "DeploymentRecord",
    "NetworkProfile",
    "RunReport",
    "VerificationArtifact",
    "VerificationOutcome",
    "VerificationStatus",
    "OrchestratorError",
    "ConfigurationError",
    "GraphError",
    "CyclicDependencyError",
    "UnresolvedParameterError",
    "ChainError",
    "InsufficientFundsError",
    "TransactionRevertedError",
    "NetworkUnreachableError",
    "DeploymentInProgressError",
    "ArtifactError",
    "ArtifactNotFoundError",
    "MetadataMalformedError",
    "BackendError",
]
