"""RPC access for chain-deployments library."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from eth_account import Account
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .abi import encode_function_call, strip_0x
from .constants import (
    CONFIRMATION_TIMEOUT,
    CONFIRMATIONS,
    GAS_BUFFER,
    RPC_BACKOFF_MAX,
    RPC_BACKOFF_MIN,
    RPC_MAX_ATTEMPTS,
)
from .exceptions import (
    ChainError,
    ConfirmationTimeoutError,
    InsufficientFundsError,
    NetworkUnreachableError,
    TransactionRevertedError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionResult:
    """A confirmed transaction."""

    tx_hash: str
    block_number: int
    contract_address: Optional[str] = None


def _error_message(exc: Exception) -> str:
    # JSON-RPC errors arrive as ValueError({"code": ..., "message": ...})
    if exc.args and isinstance(exc.args[0], dict):
        return str(exc.args[0].get("message", exc.args[0]))
    return str(exc)


def _revert_reason(exc: ContractLogicError) -> str:
    message = getattr(exc, "message", None) or str(exc)
    prefix = "execution reverted: "
    return message[len(prefix):] if message.startswith(prefix) else message


class ChainClient:
    """
    Signs and submits transactions for one network.

    RPC calls are retried with bounded exponential backoff when the endpoint
    cannot be reached; any other failure surfaces immediately.
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        *,
        request_timeout: float = 30,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
        confirmations: int = CONFIRMATIONS,
        max_attempts: int = RPC_MAX_ATTEMPTS,
        backoff_min: float = RPC_BACKOFF_MIN,
        backoff_max: float = RPC_BACKOFF_MAX,
        web3: Optional[Web3] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.rpc_url = rpc_url
        self._w3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )
        self._account = Account.from_key(private_key)
        self._confirmation_timeout = confirmation_timeout
        self._confirmations = max(1, confirmations)
        self._sleep = sleep
        self._retrying = Retrying(
            retry=retry_if_exception_type(NetworkUnreachableError),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=backoff_min, min=backoff_min, max=backoff_max),
            sleep=sleep,
            before_sleep=lambda state: logger.warning(
                "RPC %s unreachable (attempt %d/%d), retrying",
                rpc_url,
                state.attempt_number,
                max_attempts,
            ),
            reraise=True,
        )

    @property
    def deployer(self) -> str:
        return self._account.address

    @property
    def accounts(self) -> List[str]:
        return [self._account.address]

    def _rpc(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one RPC call under the retry policy, mapping transport errors."""

        def attempt() -> Any:
            try:
                return fn(*args, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                raise NetworkUnreachableError(f"RPC endpoint {self.rpc_url} unreachable: {e}") from e

        return self._retrying(attempt)

    def chain_id(self) -> int:
        return int(self._rpc(lambda: self._w3.eth.chain_id))

    def balance(self, address: Optional[str] = None) -> int:
        return int(self._rpc(self._w3.eth.get_balance, address or self.deployer))

    def _fee_fields(self) -> Dict[str, int]:
        """EIP-1559 fee fields when the chain reports a base fee, else legacy gasPrice."""
        latest = self._rpc(self._w3.eth.get_block, "latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is not None:
            try:
                tip = int(self._rpc(lambda: self._w3.eth.max_priority_fee))
            except (ValueError, Web3Exception):
                # Node without eth_maxPriorityFeePerGas
                tip = None
            if tip is not None:
                return {"maxFeePerGas": int(base_fee) * 2 + tip, "maxPriorityFeePerGas": tip}
        return {"gasPrice": int(self._rpc(lambda: self._w3.eth.gas_price))}

    def _send(self, tx: Dict[str, Any], label: str) -> TransactionResult:
        """Estimate, sign, submit and wait for a transaction."""
        tx.setdefault("from", self.deployer)
        tx["chainId"] = self.chain_id()
        tx["nonce"] = int(self._rpc(self._w3.eth.get_transaction_count, self.deployer, "pending"))
        tx.update(self._fee_fields())

        try:
            tx["gas"] = int(self._rpc(self._w3.eth.estimate_gas, tx) * GAS_BUFFER)
        except ContractLogicError as e:
            reason = _revert_reason(e)
            raise TransactionRevertedError(f"{label} reverted: {reason}", reason=reason) from e
        except (ValueError, Web3Exception) as e:
            self._raise_rpc_error(e, label)

        signed = self._account.sign_transaction(tx)
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
        try:
            tx_hash = self._rpc(self._w3.eth.send_raw_transaction, raw)
        except (ValueError, Web3Exception) as e:
            self._raise_rpc_error(e, label)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info("%s submitted: %s", label, tx_hash_hex)

        try:
            receipt = self._rpc(
                self._w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self._confirmation_timeout,
            )
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"{label} ({tx_hash_hex}) not confirmed within {self._confirmation_timeout}s"
            ) from e

        if receipt["status"] != 1:
            raise TransactionRevertedError(
                f"{label} reverted in transaction {tx_hash_hex}", tx_hash=tx_hash_hex
            )

        self._wait_confirmations(receipt["blockNumber"], tx_hash_hex)
        return TransactionResult(
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            contract_address=receipt.get("contractAddress"),
        )

    def _wait_confirmations(self, block_number: int, tx_hash: str) -> None:
        target = block_number + self._confirmations - 1
        deadline = time.monotonic() + self._confirmation_timeout
        while self._rpc(lambda: self._w3.eth.block_number) < target:
            if time.monotonic() > deadline:
                raise ConfirmationTimeoutError(
                    f"{tx_hash} did not reach {self._confirmations} confirmations"
                )
            self._sleep(2)

    def _raise_rpc_error(self, exc: Exception, label: str) -> None:
        message = _error_message(exc)
        if "insufficient funds" in message.lower():
            raise InsufficientFundsError(f"{label}: {message}") from exc
        raise ChainError(f"{label} rejected by node: {message}") from exc

    def deploy_contract(self, name: str, bytecode: str, encoded_args: str = "") -> TransactionResult:
        """
        Submit a contract creation and wait for confirmation.

        Args:
            name: Contract name (for logging)
            bytecode: Creation bytecode (0x-prefixed)
            encoded_args: ABI-encoded constructor arguments (hex, no 0x)

        Returns:
            TransactionResult with contract_address set
        """
        data = "0x" + strip_0x(bytecode) + strip_0x(encoded_args)
        result = self._send({"data": data}, f"Deployment of {name}")
        if not result.contract_address:
            raise ChainError(f"Deployment of {name} confirmed without a contract address")
        return result

    def transact(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any],
    ) -> TransactionResult:
        """Call a state-changing contract method and wait for confirmation."""
        target = Web3.to_checksum_address(address)
        data = encode_function_call(abi, method, args)
        return self._send(
            {"to": target, "data": data, "value": 0},
            f"Call {method} on {address}",
        )
