"""Persisted deployment records for chain-deployments library."""

import json
import logging
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .exceptions import ConfigurationError, DeploymentInProgressError, RecordConflictError
from .paths import get_record_path
from .types import DeploymentRecord

logger = logging.getLogger(__name__)

_DEPLOYMENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def record_to_dict(record: DeploymentRecord) -> Dict[str, Any]:
    """Serialize a record to its on-disk JSON shape."""
    return {
        "deploymentId": record.deployment_id,
        "chainId": record.chain_id,
        "deployer": record.deployer,
        "contracts": {
            name: {
                "address": address,
                "transactionHash": record.transactions.get(name),
                "constructorArgs": record.constructor_args.get(name, []),
            }
            for name, address in record.addresses.items()
        },
        "completedCalls": list(record.completed_calls),
    }


def record_from_dict(data: Dict[str, Any]) -> DeploymentRecord:
    """Deserialize a record from its on-disk JSON shape."""
    record = DeploymentRecord(
        deployment_id=data["deploymentId"],
        chain_id=data.get("chainId"),
        deployer=data.get("deployer"),
        completed_calls=list(data.get("completedCalls", [])),
    )
    for name, entry in data.get("contracts", {}).items():
        record.addresses[name] = entry["address"]
        if entry.get("transactionHash"):
            record.transactions[name] = entry["transactionHash"]
        record.constructor_args[name] = list(entry.get("constructorArgs", []))
    return record


class DeploymentStore:
    """
    Durable, deployment-ID keyed address records.

    Each deployment ID owns <root>/<deployment_id>/deployed_addresses.json.
    Writes replace the file atomically, so a crash leaves either the previous
    or the new record on disk.
    """

    def __init__(self, root: Union[Path, str]):
        self.root = Path(root)

    def path_for(self, deployment_id: str) -> Path:
        if not _DEPLOYMENT_ID_PATTERN.match(deployment_id):
            raise ConfigurationError(
                f"Invalid deployment ID '{deployment_id}': use letters, digits, '.', '_' or '-'"
            )
        return get_record_path(self.root, deployment_id)

    def exists(self, deployment_id: str) -> bool:
        return self.path_for(deployment_id).exists()

    def load(self, deployment_id: str) -> DeploymentRecord:
        """
        Load the record for a deployment ID.

        Returns:
            Persisted record, or an empty one if nothing was deployed yet

        Raises:
            RecordConflictError: If the file is corrupted or belongs to another ID
        """
        path = self.path_for(deployment_id)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return DeploymentRecord(deployment_id=deployment_id)
        except json.JSONDecodeError as e:
            raise RecordConflictError(f"Deployment record is corrupted: {path}: {e}") from e

        record = record_from_dict(data)
        if record.deployment_id != deployment_id:
            raise RecordConflictError(
                f"Record at {path} belongs to deployment '{record.deployment_id}'"
            )
        return record

    def save(self, record: DeploymentRecord) -> Path:
        """Persist a record atomically."""
        path = self.path_for(record.deployment_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(record_to_dict(record), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        return path

    def record_deployment(
        self,
        record: DeploymentRecord,
        name: str,
        address: str,
        tx_hash: Optional[str] = None,
        constructor_args: Optional[List[Any]] = None,
    ) -> None:
        """
        Append a deployed address and persist the record before returning.

        Raises:
            RecordConflictError: If the name is already bound to another address
        """
        existing = record.addresses.get(name)
        if existing is not None and existing.lower() != address.lower():
            raise RecordConflictError(
                f"'{name}' is already recorded at {existing} in deployment "
                f"'{record.deployment_id}', refusing to overwrite with {address}"
            )

        record.addresses[name] = address
        if tx_hash:
            record.transactions[name] = tx_hash
        record.constructor_args[name] = list(constructor_args or [])
        self.save(record)
        logger.debug("Recorded %s at %s in %s", name, address, record.deployment_id)

    def record_call(self, record: DeploymentRecord, call_key: str) -> None:
        """Mark a post-deploy call as completed and persist the record."""
        if call_key not in record.completed_calls:
            record.completed_calls.append(call_key)
        self.save(record)

    @contextmanager
    def lock(self, deployment_id: str) -> Iterator[Path]:
        """
        Hold the exclusive run lock for a deployment ID.

        The lock file holds the owner's PID. A lock left behind by a process
        that no longer exists is taken over, so a crashed run can resume.

        Raises:
            DeploymentInProgressError: If a live run holds the lock
        """
        lock_path = self.path_for(deployment_id).parent / ".lock"
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            owner = _lock_owner(lock_path)
            if owner is None or _pid_alive(owner):
                raise DeploymentInProgressError(
                    f"Deployment '{deployment_id}' is locked by another run "
                    f"(pid {owner if owner is not None else 'unknown'}, {lock_path})"
                ) from None
            logger.warning(
                "Taking over stale lock of '%s' left by exited process %d", deployment_id, owner
            )
            lock_path.unlink(missing_ok=True)
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError as e:
                raise DeploymentInProgressError(
                    f"Deployment '{deployment_id}' was locked by another run ({lock_path})"
                ) from e

        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        try:
            yield lock_path
        finally:
            lock_path.unlink(missing_ok=True)


def _lock_owner(lock_path: Path) -> Optional[int]:
    # None while the owner is still writing its PID
    try:
        return int(lock_path.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user
        return True
    return True
