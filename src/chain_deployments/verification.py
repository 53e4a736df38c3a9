"""Verification backends and dispatch for chain-deployments library."""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import requests

from .abi import strip_0x
from .artifacts import ArtifactExtractor
from .constants import MAX_POLLS, POLL_INTERVAL, REQUEST_TIMEOUT, VERIFICATION_DELAY
from .exceptions import ArtifactError, BackendError, ConfigurationError, RateLimitedError
from .paths import get_bundle_dir
from .types import (
    BackendKind,
    BackendRef,
    NetworkProfile,
    VerificationArtifact,
    VerificationOutcome,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


def is_already_verified_message(text: str) -> bool:
    """
    Substring check for "already verified" replies.

    Only used for backends that report this condition as free text instead of
    a status code (Etherscan-style APIs answer status "0" with a message).
    """
    return "already verified" in (text or "").lower()


def _is_rate_limit_message(text: str) -> bool:
    lowered = (text or "").lower()
    return "rate limit" in lowered or "too many requests" in lowered


def _json_body(response: requests.Response, backend_id: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise BackendError(
            f"{backend_id} returned a malformed response (HTTP {response.status_code}): "
            f"{response.text[:200]}"
        ) from e


class VerificationBackend(ABC):
    """A way of attesting that deployed bytecode matches published source."""

    # Whether submissions hit a remote service and need the inter-request delay
    rate_limited = True

    def __init__(self, ref: BackendRef):
        self.ref = ref

    @property
    def backend_id(self) -> str:
        return self.ref.id

    def outcome(self, artifact: VerificationArtifact, status: VerificationStatus, detail: str = "") -> VerificationOutcome:
        return VerificationOutcome(
            contract_name=artifact.contract_name,
            backend_id=self.backend_id,
            status=status,
            detail=detail,
        )

    @abstractmethod
    def submit(self, artifact: VerificationArtifact, address: str) -> VerificationOutcome:
        """
        Submit one contract for verification.

        Raises:
            BackendError: On HTTP failure, malformed response or rate limiting
        """


class ExplorerApiBackend(VerificationBackend):
    """
    Etherscan/Blockscout-compatible explorer API.

    Submits solc standard-JSON input with verifysourcecode, then polls
    checkverifystatus until a terminal answer or the poll budget runs out.
    """

    def __init__(
        self,
        ref: BackendRef,
        chain_id: int,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        max_polls: int = MAX_POLLS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(ref)
        if not ref.api_url:
            raise ConfigurationError(f"Explorer backend '{ref.id}' has no api_url")
        self.chain_id = chain_id
        self.session = session or requests.Session()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._sleep = sleep

    def _auth(self) -> Dict[str, str]:
        return {"apikey": self.ref.api_key} if self.ref.api_key else {}

    def _check(self, response: requests.Response) -> Dict[str, Any]:
        if response.status_code == 429:
            raise RateLimitedError(f"{self.backend_id} rate limited the request (HTTP 429)")
        if not response.ok:
            raise BackendError(
                f"{self.backend_id} answered HTTP {response.status_code}: {response.text[:200]}"
            )
        body = _json_body(response, self.backend_id)
        if not isinstance(body, dict):
            raise BackendError(f"{self.backend_id} returned unexpected body: {body!r}")
        return body

    def submit(self, artifact: VerificationArtifact, address: str) -> VerificationOutcome:
        if self.ref.key_required and not self.ref.api_key:
            return self.outcome(
                artifact,
                VerificationStatus.SKIPPED,
                f"API key not configured (set ${self.ref.api_key_env})",
            )

        payload = {
            **self._auth(),
            "module": "contract",
            "action": "verifysourcecode",
            "contractaddress": address,
            "sourceCode": json.dumps(artifact.standard_input),
            "codeformat": "solidity-standard-json-input",
            "contractname": artifact.fully_qualified_name,
            "compilerversion": f"v{artifact.compiler_version}",
            "optimizationUsed": "1" if artifact.optimizer.get("enabled") else "0",
            "runs": str(artifact.optimizer.get("runs", 200)),
            "constructorArguements": strip_0x(artifact.constructor_args_encoded),
        }
        if artifact.evm_version:
            payload["evmversion"] = artifact.evm_version

        logger.info("Submitting %s to %s", artifact.contract_name, self.backend_id)
        response = self.session.post(
            self.ref.api_url, data=payload, params={"chainid": self.chain_id}, timeout=self.timeout
        )
        body = self._check(response)
        result = str(body.get("result", ""))

        if str(body.get("status")) != "1":
            if is_already_verified_message(result):
                return self.outcome(artifact, VerificationStatus.ALREADY_VERIFIED, result)
            if _is_rate_limit_message(result):
                raise RateLimitedError(f"{self.backend_id}: {result}")
            return self.outcome(artifact, VerificationStatus.FAILED, result or body.get("message", ""))

        return self._poll(artifact, guid=result)

    def _poll(self, artifact: VerificationArtifact, guid: str) -> VerificationOutcome:
        for attempt in range(1, self.max_polls + 1):
            self._sleep(self.poll_interval)
            response = self.session.get(
                self.ref.api_url,
                params={
                    **self._auth(),
                    "chainid": self.chain_id,
                    "module": "contract",
                    "action": "checkverifystatus",
                    "guid": guid,
                },
                timeout=self.timeout,
            )
            body = self._check(response)
            result = str(body.get("result", ""))
            lowered = result.lower()

            if str(body.get("status")) == "1":
                return self.outcome(artifact, VerificationStatus.VERIFIED, result or "Pass - Verified")
            if is_already_verified_message(result):
                return self.outcome(artifact, VerificationStatus.ALREADY_VERIFIED, result)
            if "pending" in lowered or "in queue" in lowered:
                logger.debug("%s pending on %s (%d/%d)", guid, self.backend_id, attempt, self.max_polls)
                continue
            return self.outcome(artifact, VerificationStatus.FAILED, result)

        return self.outcome(
            artifact,
            VerificationStatus.SUBMITTED,
            f"Still pending after {self.max_polls} checks (guid {guid})",
        )


class MetadataMatchBackend(VerificationBackend):
    """
    Sourcify-style metadata matching server.

    Posts metadata.json plus every source file as multipart form data. The
    server may process asynchronously; a 2xx answer without a match status is
    recorded as Submitted rather than Verified.
    """

    MATCH_STATUSES = {"perfect": "perfect match", "full": "full match", "partial": "partial match"}

    def __init__(
        self,
        ref: BackendRef,
        chain_id: int,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        super().__init__(ref)
        if not ref.api_url:
            raise ConfigurationError(f"Metadata backend '{ref.id}' has no api_url")
        self.chain_id = chain_id
        self.session = session or requests.Session()
        self.timeout = timeout

    def submit(self, artifact: VerificationArtifact, address: str) -> VerificationOutcome:
        files = [
            ("files", ("metadata.json", json.dumps(artifact.metadata, indent=2), "application/json"))
        ]
        for source_name, content in sorted(artifact.sources.items()):
            files.append(("files", (source_name, content, "text/plain")))

        logger.info("Submitting %s to %s", artifact.contract_name, self.backend_id)
        response = self.session.post(
            self.ref.api_url,
            data={"address": address, "chain": str(self.chain_id)},
            files=files,
            timeout=self.timeout,
        )

        if response.status_code == 409:
            return self.outcome(
                artifact, VerificationStatus.ALREADY_VERIFIED, response.text[:200] or "HTTP 409"
            )
        if response.status_code == 429:
            raise RateLimitedError(f"{self.backend_id} rate limited the request (HTTP 429)")
        if not response.ok:
            if is_already_verified_message(response.text):
                return self.outcome(artifact, VerificationStatus.ALREADY_VERIFIED, response.text[:200])
            raise BackendError(
                f"{self.backend_id} answered HTTP {response.status_code}: {response.text[:200]}"
            )

        if not response.content:
            return self.outcome(artifact, VerificationStatus.SUBMITTED, "Accepted, no match reported")

        body = _json_body(response, self.backend_id)
        return self._interpret(artifact, body)

    def _interpret(self, artifact: VerificationArtifact, body: Any) -> VerificationOutcome:
        if isinstance(body, dict) and body.get("error"):
            return self.outcome(artifact, VerificationStatus.FAILED, str(body["error"]))

        results = body.get("result", []) if isinstance(body, dict) else []
        if not isinstance(results, list):
            raise BackendError(f"{self.backend_id} returned unexpected result: {results!r}")
        entry = results[0] if results else {}
        if not isinstance(entry, dict):
            raise BackendError(f"{self.backend_id} returned unexpected result entry: {entry!r}")
        status = str(entry.get("status") or "").lower()

        if status in self.MATCH_STATUSES:
            detail = self.MATCH_STATUSES[status]
            # Sourcify reports a storage timestamp for contracts it already held
            if entry.get("storageTimestamp"):
                return self.outcome(artifact, VerificationStatus.ALREADY_VERIFIED, detail)
            return self.outcome(artifact, VerificationStatus.VERIFIED, detail)
        if entry.get("message") or status in ("error", "failed"):
            return self.outcome(artifact, VerificationStatus.FAILED, str(entry.get("message") or status))

        return self.outcome(artifact, VerificationStatus.SUBMITTED, "Accepted, match not yet confirmed")


class ManualBundleBackend(VerificationBackend):
    """
    Writes a self-contained directory for manual verification.

    No network call is made, so the outcome is always Verified, meaning
    "bundle produced".
    """

    rate_limited = False

    def __init__(self, ref: BackendRef, profile: NetworkProfile, output_root: Union[Path, str]):
        super().__init__(ref)
        self.profile = profile
        self.output_root = Path(output_root)

    def bundle_dir(self, contract_name: str) -> Path:
        return get_bundle_dir(self.output_root, self.profile.id, contract_name)

    def submit(self, artifact: VerificationArtifact, address: str) -> VerificationOutcome:
        bundle = self.bundle_dir(artifact.contract_name)
        sources_dir = (bundle / "sources").resolve()
        targets = {}
        for source_name in artifact.sources:
            target = (sources_dir / source_name).resolve()
            if not target.is_relative_to(sources_dir):
                raise BackendError(f"Source name {source_name!r} escapes the bundle directory")
            targets[source_name] = target

        sources_dir.mkdir(parents=True, exist_ok=True)
        (bundle / f"{artifact.contract_name}.sol").write_text(artifact.source_text)
        for source_name, content in artifact.sources.items():
            targets[source_name].parent.mkdir(parents=True, exist_ok=True)
            targets[source_name].write_text(content)

        with open(bundle / "metadata.json", "w") as f:
            json.dump(artifact.metadata, f, indent=2)
        with open(bundle / "standard-input.json", "w") as f:
            json.dump(artifact.standard_input, f, indent=2)
        (bundle / "verification-instructions.md").write_text(self.instructions(artifact, address))

        logger.info("Wrote verification bundle for %s to %s", artifact.contract_name, bundle)
        return self.outcome(artifact, VerificationStatus.VERIFIED, f"Bundle produced at {bundle}")

    def instructions(self, artifact: VerificationArtifact, address: str) -> str:
        optimizer = artifact.optimizer
        optimization = (
            f"Enabled ({optimizer.get('runs')} runs)" if optimizer.get("enabled") else "Disabled"
        )
        args = artifact.constructor_args_encoded
        verify_url = self.ref.browser_url or self.profile.explorer_url or ""

        lines = [
            f"# Verification Instructions for {artifact.contract_name}",
            "",
            "## Contract Details",
            f"- **Address**: {address}",
            f"- **Network**: {self.profile.id} (Chain ID: {self.profile.chain_id})",
            f"- **Source**: {artifact.fully_qualified_name}",
            f"- **Compiler Version**: {artifact.compiler_version}",
            f"- **Optimization**: {optimization}",
            f"- **EVM Version**: {artifact.evm_version or 'default'}",
            f"- **Constructor Arguments (ABI-encoded)**: {args or 'None'}",
            "",
            "## Files in this directory",
            f"- `{artifact.contract_name}.sol` - Main source code",
            "- `sources/` - Every source file of the compilation",
            "- `metadata.json` - Compiler metadata",
            "- `standard-input.json` - Solidity standard-JSON compiler input",
            "",
            "## Manual Verification Steps",
            f"1. Open the verification page{': ' + verify_url if verify_url else ''}",
            f"2. Enter contract address `{address}`",
            "3. Upload `metadata.json` and the files under `sources/`,"
            " or `standard-input.json` where the form accepts standard-JSON input",
            f"4. Select compiler `{artifact.compiler_version}`",
            (
                f"5. Enter constructor arguments `{args}`"
                if args
                else "5. No constructor arguments needed"
            ),
            "6. Submit for verification",
            "",
        ]
        return "\n".join(lines)


def build_backends(
    profile: NetworkProfile,
    bundle_root: Union[Path, str],
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
    max_polls: int = MAX_POLLS,
    sleep: Callable[[float], None] = time.sleep,
) -> List[VerificationBackend]:
    """
    Instantiate the backends a network profile declares, in declared order.

    Args:
        profile: Network profile
        bundle_root: Root directory for manual bundles
        session: Shared HTTP session (created if None)

    Returns:
        List of backends
    """
    session = session or requests.Session()
    backends: List[VerificationBackend] = []
    for ref in profile.verification_backends:
        match ref.kind:
            case BackendKind.EXPLORER_API:
                backends.append(
                    ExplorerApiBackend(
                        ref,
                        profile.chain_id,
                        session=session,
                        timeout=timeout,
                        poll_interval=poll_interval,
                        max_polls=max_polls,
                        sleep=sleep,
                    )
                )
            case BackendKind.METADATA_MATCHING:
                backends.append(
                    MetadataMatchBackend(ref, profile.chain_id, session=session, timeout=timeout)
                )
            case BackendKind.MANUAL_BUNDLE:
                backends.append(ManualBundleBackend(ref, profile, bundle_root))
            case _:
                # Unreachable but exhaustive
                raise ConfigurationError(f"Unsupported backend kind: {ref.kind}")
    return backends


@dataclass(frozen=True)
class VerificationTarget:
    """A deployed contract to verify."""

    contract_name: str
    address: Optional[str]
    constructor_args: Sequence[Any] = field(default_factory=tuple)


class VerificationDispatcher:
    """
    Runs every configured backend for every contract.

    Backends are independent: a failure in one never prevents the others from
    running, and each (contract, backend) pair yields exactly one outcome.
    Consecutive submissions to the same backend are separated by a fixed
    cooperative delay.
    """

    def __init__(
        self,
        backends: Sequence[VerificationBackend],
        delay: float = VERIFICATION_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backends = list(backends)
        self.delay = delay
        self._sleep = sleep
        self._clock = clock
        self._last_submission: Dict[str, float] = {}

    def _throttle(self, backend: VerificationBackend) -> None:
        if not backend.rate_limited:
            return
        last = self._last_submission.get(backend.backend_id)
        if last is not None:
            remaining = self.delay - (self._clock() - last)
            if remaining > 0:
                self._sleep(remaining)

    def _failed(self, contract_name: str, backend: VerificationBackend, detail: str) -> VerificationOutcome:
        return VerificationOutcome(
            contract_name=contract_name,
            backend_id=backend.backend_id,
            status=VerificationStatus.FAILED,
            detail=detail,
        )

    def _run_backend(
        self, backend: VerificationBackend, artifact: VerificationArtifact, address: str
    ) -> VerificationOutcome:
        self._throttle(backend)
        try:
            return backend.submit(artifact, address)
        except BackendError as e:
            return self._failed(artifact.contract_name, backend, str(e))
        except requests.Timeout as e:
            return self._failed(artifact.contract_name, backend, f"Request timed out: {e}")
        except requests.RequestException as e:
            return self._failed(artifact.contract_name, backend, f"Request failed: {e}")
        except OSError as e:
            return self._failed(artifact.contract_name, backend, f"Could not write bundle: {e}")
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.exception("%s raised while verifying %s", backend.backend_id, artifact.contract_name)
            return self._failed(artifact.contract_name, backend, f"Unexpected backend error: {e!r}")
        finally:
            if backend.rate_limited:
                self._last_submission[backend.backend_id] = self._clock()

    def verify_contract(self, artifact: VerificationArtifact, address: str) -> List[VerificationOutcome]:
        """Run all backends, in order, for one contract."""
        outcomes = []
        for backend in self.backends:
            outcome = self._run_backend(backend, artifact, address)
            log = logger.warning if outcome.status is VerificationStatus.FAILED else logger.info
            log(
                "%s on %s: %s %s",
                artifact.contract_name,
                backend.backend_id,
                outcome.status.value,
                outcome.detail,
            )
            outcomes.append(outcome)
        return outcomes

    def verify_all(
        self, targets: Sequence[VerificationTarget], extractor: ArtifactExtractor
    ) -> List[VerificationOutcome]:
        """
        Verify each target with every backend.

        Artifact problems fail that contract's outcomes only; missing addresses
        skip it.

        Returns:
            One outcome per (target, backend), in target then backend order
        """
        outcomes: List[VerificationOutcome] = []
        for target in targets:
            if not target.address:
                outcomes.extend(
                    VerificationOutcome(
                        contract_name=target.contract_name,
                        backend_id=backend.backend_id,
                        status=VerificationStatus.SKIPPED,
                        detail="Not deployed",
                    )
                    for backend in self.backends
                )
                continue

            try:
                artifact = extractor.extract(target.contract_name, target.constructor_args)
            except ArtifactError as e:
                logger.warning("Cannot verify %s: %s", target.contract_name, e)
                outcomes.extend(
                    self._failed(target.contract_name, backend, str(e)) for backend in self.backends
                )
                continue

            outcomes.extend(self.verify_contract(artifact, target.address))
        return outcomes
