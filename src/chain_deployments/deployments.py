"""Deployment execution and run orchestration for chain-deployments library."""

import logging
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Union

import requests

from .abi import encode_constructor_args
from .artifacts import ArtifactExtractor, BuildOutput
from .chain import ChainClient
from .constants import VERIFICATION_DELAY
from .exceptions import (
    ArtifactError,
    ChainError,
    ConfigurationError,
    InsufficientFundsError,
    RecordConflictError,
    RunAbortedError,
    UnresolvedParameterError,
)
from .graph import resolve_module
from .networks import load_network_profile, load_signer_key
from .paths import get_output_paths
from .report import build_report, save_report
from .store import DeploymentStore
from .types import (
    AccountRef,
    ContractRef,
    ContractSpec,
    DeploymentPlan,
    DeploymentRecord,
    Literal,
    ModuleDefinition,
    NetworkProfile,
    ParamRef,
    PostDeployCall,
    RunReport,
    VerificationOutcome,
)
from .verification import VerificationDispatcher, VerificationTarget, build_backends

logger = logging.getLogger(__name__)


def resolve_argument(param: ParamRef, record: DeploymentRecord, accounts: Sequence[str]) -> Any:
    """
    Substitute a live value for a parameter reference.

    Args:
        param: Literal, account or contract reference
        record: Deployment record holding already deployed addresses
        accounts: Signer accounts (index 0 is the deployer)

    Returns:
        Value to ABI-encode

    Raises:
        ConfigurationError: If an account index is out of range
        UnresolvedParameterError: If a referenced contract has no recorded address
    """
    if isinstance(param, Literal):
        return param.value
    if isinstance(param, AccountRef):
        try:
            return accounts[param.index]
        except IndexError as e:
            raise ConfigurationError(
                f"Account #{param.index} requested but only {len(accounts)} signer(s) configured"
            ) from e
    if isinstance(param, ContractRef):
        try:
            return record.addresses[param.name]
        except KeyError as e:
            raise UnresolvedParameterError(
                f"Address of '{param.name}' is not recorded in deployment '{record.deployment_id}'"
            ) from e
    raise UnresolvedParameterError(f"Parameter {param!r} was not resolved before deployment")


class DeploymentExecutor:
    """
    Turns a deployment plan into on-chain state, exactly once per deployment ID.

    Each deployed address is persisted before the next transaction is
    submitted, so a crashed run resumes without redeploying confirmed
    contracts.
    """

    def __init__(
        self,
        chain: ChainClient,
        store: DeploymentStore,
        build_output: BuildOutput,
        abort: Optional[threading.Event] = None,
    ):
        self.chain = chain
        self.store = store
        self.build_output = build_output
        self.abort = abort

    def deploy(self, plan: DeploymentPlan, profile: NetworkProfile) -> DeploymentRecord:
        """
        Deploy every contract of a plan, then run its post-deploy calls.

        Args:
            plan: Resolved deployment plan
            profile: Target network

        Returns:
            DeploymentRecord with an address for every contract in the plan

        Raises:
            DeploymentInProgressError: If another run holds this deployment ID
            ConfigurationError: If the RPC endpoint serves another chain
            RecordConflictError: If the persisted record belongs to another chain
            InsufficientFundsError: If the deployer has no balance
            TransactionRevertedError: If a creation or call reverts
            NetworkUnreachableError: If the RPC endpoint stays unreachable
            RunAbortedError: If the abort event is set between steps
        """
        with self.store.lock(plan.deployment_id):
            return self._deploy_locked(plan, profile)

    def _deploy_locked(self, plan: DeploymentPlan, profile: NetworkProfile) -> DeploymentRecord:
        record = self.store.load(plan.deployment_id)

        chain_id = self.chain.chain_id()
        if chain_id != profile.chain_id:
            raise ConfigurationError(
                f"RPC for '{profile.id}' serves chain {chain_id}, expected {profile.chain_id}"
            )
        if record.chain_id is not None and record.chain_id != chain_id:
            raise RecordConflictError(
                f"Deployment '{plan.deployment_id}' was recorded on chain {record.chain_id}, "
                f"not {chain_id}. Use another deployment ID."
            )
        record.chain_id = chain_id
        if record.deployer is None:
            record.deployer = self.chain.deployer

        pending = [spec.name for spec in plan.contracts if spec.name not in record.addresses]
        pending_calls = [
            i for i in range(len(plan.calls)) if plan.call_key(i) not in record.completed_calls
        ]
        if not pending and not pending_calls:
            logger.info("Deployment '%s' is already complete", plan.deployment_id)
            return record

        self._check_accounts(
            [spec for spec in plan.contracts if spec.name in pending],
            [plan.calls[i] for i in pending_calls],
        )
        self._check_funds(profile)
        logger.info(
            "Deploying %s to %s as '%s': %d contract(s) and %d call(s) pending",
            plan.module_name,
            profile.id,
            plan.deployment_id,
            len(pending),
            len(pending_calls),
        )

        for spec in plan.contracts:
            if spec.name in record.addresses:
                logger.info("Reusing %s at %s", spec.name, record.addresses[spec.name])
                continue
            self._check_abort(f"before deploying {spec.name}")
            self._deploy_contract(spec, record)

        for index, call in enumerate(plan.calls):
            key = plan.call_key(index)
            if key in record.completed_calls:
                logger.info("Skipping completed call %s", key)
                continue
            self._check_abort(f"before call {key}")
            self._execute_call(call, key, record)

        return record

    def _check_abort(self, where: str) -> None:
        if self.abort is not None and self.abort.is_set():
            raise RunAbortedError(f"Run aborted {where}")

    def _check_accounts(self, specs: Sequence[ContractSpec], calls: Sequence[PostDeployCall]) -> None:
        """Reject signer indexes the chain client cannot serve before any transaction."""
        available = len(self.chain.accounts)
        params = [p for spec in specs for p in spec.constructor_params]
        params += [p for call in calls for p in call.args]
        for param in params:
            if isinstance(param, AccountRef) and not 0 <= param.index < available:
                raise ConfigurationError(
                    f"Account #{param.index} requested but only {available} signer(s) configured"
                )

    def _check_funds(self, profile: NetworkProfile) -> None:
        deployer = self.chain.deployer
        balance = self.chain.balance(deployer)
        logger.info(
            "Deployer %s balance: %s %s",
            deployer,
            Decimal(balance) / Decimal(10**18),
            profile.native_fee_symbol,
        )
        if balance == 0:
            raise InsufficientFundsError(
                f"Deployer {deployer} has no {profile.native_fee_symbol} on {profile.id}. "
                "Please fund the account."
            )

    def _deploy_contract(self, spec: ContractSpec, record: DeploymentRecord) -> None:
        compiled = self.build_output.compiled_contract(spec.name)
        if "__$" in compiled.bytecode:
            raise ArtifactError(f"{spec.name} needs library linking, which is not supported")

        args = [resolve_argument(p, record, self.chain.accounts) for p in spec.constructor_params]
        encoded = encode_constructor_args(compiled.abi, args)

        logger.info("Deploying %s", spec.name)
        try:
            result = self.chain.deploy_contract(spec.name, compiled.bytecode, encoded)
        except ChainError as e:
            logger.error("Deployment of %s failed: %s", spec.name, e)
            raise

        self.store.record_deployment(
            record, spec.name, result.contract_address, result.tx_hash, args
        )
        logger.info("Deployed %s at %s (tx %s)", spec.name, result.contract_address, result.tx_hash)

    def _execute_call(self, call: PostDeployCall, key: str, record: DeploymentRecord) -> None:
        address = resolve_argument(ContractRef(call.target), record, self.chain.accounts)
        abi = self.build_output.compiled_contract(call.target).abi
        args = [resolve_argument(p, record, self.chain.accounts) for p in call.args]

        logger.info("Calling %s.%s", call.target, call.method)
        try:
            result = self.chain.transact(address, abi, call.method, args)
        except ChainError as e:
            logger.error("Call %s failed: %s", key, e)
            raise

        self.store.record_call(record, key)
        logger.info("Call %s confirmed (tx %s)", key, result.tx_hash)


def verify_deployment(
    record: DeploymentRecord,
    profile: NetworkProfile,
    project_root: Union[Path, str] = ".",
    verification_dir: Optional[Union[Path, str]] = None,
    contract_names: Optional[Sequence[str]] = None,
    session: Optional[requests.Session] = None,
    delay: float = VERIFICATION_DELAY,
    **backend_options: Any,
) -> List[VerificationOutcome]:
    """
    Verify recorded contracts with every backend the network declares.

    Args:
        record: Deployment record with addresses and constructor arguments
        profile: Network profile
        project_root: Hardhat project holding artifacts/build-info
        verification_dir: Root for manual bundles (defaults to the output dir)
        contract_names: Contracts to verify, in order (defaults to all recorded)
        session: Shared HTTP session
        delay: Cooperative delay between submissions to one backend

    Returns:
        One outcome per (contract, backend)
    """
    if verification_dir is None:
        verification_dir = get_output_paths()[2]
    if contract_names is None:
        contract_names = list(record.addresses)

    backends = build_backends(profile, verification_dir, session=session, **backend_options)
    dispatcher = VerificationDispatcher(backends, delay=delay)
    extractor = ArtifactExtractor(BuildOutput(project_root))

    targets = [
        VerificationTarget(
            contract_name=name,
            address=record.addresses.get(name),
            constructor_args=tuple(record.constructor_args.get(name, [])),
        )
        for name in contract_names
    ]
    return dispatcher.verify_all(targets, extractor)


def deploy_and_verify(
    module: ModuleDefinition,
    network: str,
    deployment_id: Optional[str] = None,
    parameters: Optional[Mapping[str, Any]] = None,
    project_root: Union[Path, str] = ".",
    output_root: Optional[Union[Path, str]] = None,
    env: Optional[Mapping[str, str]] = None,
    network_config: Optional[Union[Path, str]] = None,
    chain: Optional[ChainClient] = None,
    skip_verify: bool = False,
    session: Optional[requests.Session] = None,
    delay: float = VERIFICATION_DELAY,
    abort: Optional[threading.Event] = None,
) -> tuple[RunReport, Path]:
    """
    Run one module on one network: resolve, deploy, verify, report.

    Deployment errors propagate and leave the partial record on disk for a
    resumable re-run. Verification errors are collected into the report.

    Args:
        module: Parsed module definition
        network: Network id
        deployment_id: Idempotency key (defaults to "<module>-<network>")
        parameters: Module parameter overrides
        project_root: Hardhat project holding artifacts/build-info
        output_root: Where records, reports and bundles go (defaults to ./.chain-deployments)
        env: Environment mapping (defaults to os.environ)
        network_config: Optional networks JSON file
        chain: Chain client to use instead of one built from the profile
        skip_verify: Deploy only
        session: Shared HTTP session for verification backends
        delay: Cooperative delay between verification submissions
        abort: Event checked between plan steps

    Returns:
        Tuple of (report, report_path)

    Raises:
        ConfigurationError: If the profile or signer is not configured
        GraphError: If the module is not a well-formed dependency graph
        ChainError: If a deployment step fails
    """
    profile = load_network_profile(network, env=env, config_path=network_config)
    if deployment_id is None:
        deployment_id = f"{module.name}-{network}"
    plan = resolve_module(module, deployment_id, parameters)

    deployments_dir, reports_dir, verification_dir = get_output_paths(output_root)

    if chain is None:
        chain = ChainClient(profile.rpc_url, load_signer_key(profile, env))

    executor = DeploymentExecutor(
        chain, DeploymentStore(deployments_dir), BuildOutput(project_root), abort=abort
    )
    record = executor.deploy(plan, profile)

    outcomes: List[VerificationOutcome] = []
    if not skip_verify:
        outcomes = verify_deployment(
            record,
            profile,
            project_root=project_root,
            verification_dir=verification_dir,
            contract_names=[spec.name for spec in plan.contracts],
            session=session,
            delay=delay,
        )

    report = build_report(profile, record, outcomes, deployer=chain.deployer)
    report_path = save_report(report, reports_dir)
    logger.info("Run report saved to %s", report_path)
    return report, report_path
