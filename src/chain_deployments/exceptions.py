"""Custom exception classes for chain-deployments library."""

from typing import Optional


class OrchestratorError(Exception):
    """Base exception for deployment and verification errors."""

    pass


class ConfigurationError(OrchestratorError, ValueError):
    """Raised when a required network profile or environment value is missing."""

    pass


class GraphError(OrchestratorError, ValueError):
    """Raised when a module definition is not a well-formed dependency graph."""

    pass


class CyclicDependencyError(GraphError):
    """Raised when contract address references form a cycle."""

    def __init__(self, message: str, cycle: Optional[list] = None):
        super().__init__(message)
        self.cycle = cycle or []


class UnresolvedParameterError(GraphError):
    """Raised when a parameter references a contract or module parameter that does not exist."""

    pass


class ChainError(OrchestratorError, RuntimeError):
    """Base exception for on-chain failures. Aborts the remaining plan."""

    pass


class InsufficientFundsError(ChainError):
    """Raised when the signer cannot pay for deployment."""

    pass


class TransactionRevertedError(ChainError):
    """Raised when a contract creation or call reverts."""

    def __init__(self, message: str, reason: Optional[str] = None, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.tx_hash = tx_hash


class NetworkUnreachableError(ChainError, ConnectionError):
    """Raised when the RPC endpoint cannot be reached after bounded retries."""

    pass


class ConfirmationTimeoutError(ChainError):
    """Raised when a submitted transaction is not confirmed in time."""

    pass


class DeploymentInProgressError(OrchestratorError, RuntimeError):
    """Raised when another run holds the lock for the same deployment ID."""

    pass


class RecordConflictError(OrchestratorError, ValueError):
    """Raised when a persisted deployment record disagrees with the current run."""

    pass


class RunAbortedError(OrchestratorError, RuntimeError):
    """Raised when a run is aborted at a plan step boundary."""

    pass


class ArtifactError(OrchestratorError):
    """Base exception for build output problems. Fatal to one contract's verification only."""

    pass


class ArtifactNotFoundError(ArtifactError, FileNotFoundError):
    """Raised when compiled output for a contract is absent."""

    pass


class MetadataMalformedError(ArtifactError, ValueError):
    """Raised when embedded compiler metadata cannot be parsed."""

    pass


class BackendError(OrchestratorError, RuntimeError):
    """Raised when a verification backend fails or answers unexpectedly."""

    pass


class RateLimitedError(BackendError):
    """Raised when a verification backend rejects a request for rate limiting."""

    pass
