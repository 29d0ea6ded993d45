"""
Persistent storage for a local MessageVault chain.

Provides:
- Atomic writes (temp file + rename)
- SHA-256 checksum verification on load
- Reconstruction of contract objects by registered type name
- Byte values (hashes, calldata) tagged so they load back as bytes
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Any, Dict, Mapping, Type

from .contracts import CONTRACT_TYPES
from .exceptions import CorruptedStateError, StorageError
from .vm.abi import Contract
from .vm.state import ChainState, LogEntry

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.1"

BYTES_TAG = "__bytes__"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return {BYTES_TAG: "0x" + bytes(value).hex()}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _from_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {BYTES_TAG}:
            return bytes.fromhex(value[BYTES_TAG][2:])
        return {k: _from_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_jsonable(v) for v in value]
    return value


def _checksum(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def chain_to_dict(chain: ChainState) -> Dict[str, Any]:
    contracts = {}
    for address, contract in chain.contracts.items():
        contracts[address] = {"type": type(contract).__name__, "state": _jsonable(contract.to_dict())}
    return {
        "chain_id": chain.chain_id,
        "balances": dict(chain.balances),
        "nonces": dict(chain.nonces),
        "contracts": contracts,
        "logs": [
            {"address": log.address, "event": log.event, "args": _jsonable(log.args)}
            for log in chain.logs
        ],
    }


def chain_from_dict(
    data: Dict[str, Any],
    contract_types: Mapping[str, Type[Contract]] = CONTRACT_TYPES,
) -> ChainState:
    chain = ChainState(chain_id=int(data["chain_id"]))
    chain.balances.update({k: int(v) for k, v in data.get("balances", {}).items()})
    chain.nonces.update({k: int(v) for k, v in data.get("nonces", {}).items()})
    for address, entry in data.get("contracts", {}).items():
        contract_cls = contract_types.get(entry["type"])
        if contract_cls is None:
            raise CorruptedStateError(
                f"Unknown contract type {entry['type']!r}", details={"address": address}
            )
        contract = contract_cls.from_dict(_from_jsonable(entry["state"]))
        contract.bind(chain, address)
        chain.contracts[address] = contract
    for index, log in enumerate(data.get("logs", [])):
        chain.logs.append(
            LogEntry(address=log["address"], event=log["event"], args=_from_jsonable(log["args"]), index=index)
        )
    return chain


class ChainStorage:
    """
    JSON file storage for a ChainState.

    Example:
        storage = ChainStorage("devnet.json")
        storage.save(chain)
        chain = storage.load()
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def save(self, chain: ChainState) -> str:
        """
        Save chain state with an atomic write.

        Returns:
            Checksum of the stored state

        Raises:
            StorageError: If the file cannot be written
        """
        state = chain_to_dict(chain)
        state_json = json.dumps(state, indent=2, sort_keys=True)
        checksum = _checksum(state_json)
        package = {
            "metadata": {"timestamp": time.time(), "checksum": checksum, "version": FORMAT_VERSION},
            "chain": state,
        }

        temp_file = self.path + ".tmp"
        try:
            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(package, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, self.path)
        except OSError as e:
            logger.error(
                "Failed to save chain state",
                extra={"event": "storage.save_failed", "path": self.path, "error": str(e)},
            )
            raise StorageError(f"Failed to save chain state: {e}", details={"path": self.path}) from e

        logger.debug(
            "Chain state saved",
            extra={"event": "storage.saved", "path": self.path, "checksum": checksum[:8]},
        )
        return checksum

    def load(self) -> ChainState:
        """
        Load chain state, verifying its checksum.

        Raises:
            StorageError: If the file is missing or unreadable
            CorruptedStateError: If the content fails integrity checks
        """
        if not self.exists():
            raise StorageError(f"No chain state at {self.path}", details={"path": self.path})

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                package = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptedStateError(f"Chain state is not valid JSON: {e}", details={"path": self.path}) from e
        except OSError as e:
            raise StorageError(f"Failed to read chain state: {e}", details={"path": self.path}) from e

        state = package.get("chain", {})
        expected = package.get("metadata", {}).get("checksum")
        if expected and _checksum(json.dumps(state, indent=2, sort_keys=True)) != expected:
            logger.error(
                "Chain state checksum mismatch",
                extra={"event": "storage.checksum_mismatch", "path": self.path},
            )
            raise CorruptedStateError("Chain state checksum mismatch", details={"path": self.path})

        return chain_from_dict(state)
