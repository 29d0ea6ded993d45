"""
Atomic execution host for MessageVault contracts.

ChainState owns every piece of mutable state a contract can touch: native
balances, deployed contract objects and the event log. Each call runs inside
a frame; if the call raises, the frame restores the snapshot
taken on entry, in place, before the exception propagates. Nested calls open
nested frames, so a caller that catches a callee's failure keeps its own
earlier effects while every effect of the callee is discarded.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from eth_abi.exceptions import DecodingError, EncodingError

from .abi import AbiFunction, Contract
from .address import ZERO_ADDRESS, contract_address, normalize_address
from .exceptions import (
    AbiCodecError,
    InsufficientBalance,
    NonPayableFunction,
    UnsupportedOperation,
    VMExecutionError,
)

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Contract)


@dataclass
class LogEntry:
    """An emitted contract event."""

    address: str
    event: str
    args: Dict[str, Any]
    index: int = 0


@dataclass
class Receipt:
    """Outcome of a successful top-level transaction."""

    sender: str
    to: str
    return_value: Any = None
    logs: List[LogEntry] = field(default_factory=list)

    def events(self, name: str) -> List[LogEntry]:
        return [log for log in self.logs if log.event == name]


@dataclass
class _Snapshot:
    balances: Dict[str, int]
    contracts: Dict[str, Contract]
    states: Dict[str, Dict[str, Any]]
    nonces: Dict[str, int]
    log_count: int


class ChainState:
    """
    In-memory chain that hosts contracts with all-or-nothing call semantics.

    Example:
        chain = ChainState(chain_id=31337)
        vault = chain.deploy(MessageVault(owner=alice), deployer=alice)
        receipt = chain.transact(alice, vault.address, "send_message_to_wallet", "hi")
    """

    def __init__(self, chain_id: int = 31337) -> None:
        self.chain_id = chain_id
        self.balances: Dict[str, int] = {}
        self.contracts: Dict[str, Contract] = {}
        self.nonces: Dict[str, int] = {}
        self.logs: List[LogEntry] = []

    # ==================== Accounts ====================

    def balance_of(self, address: str) -> int:
        return self.balances.get(normalize_address(address), 0)

    def set_balance(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Balance cannot be negative")
        self.balances[normalize_address(address)] = amount

    def get_contract(self, address: str) -> Optional[Contract]:
        return self.contracts.get(normalize_address(address))

    def has_code(self, address: str) -> bool:
        return normalize_address(address) in self.contracts

    def deploy(self, contract: C, deployer: str, address: Optional[str] = None) -> C:
        """
        Register a constructed contract at a fresh or given address.

        Constructor checks run when the contract object is built, before it
        is registered, so a failing constructor leaves the chain untouched.
        """
        deployer = normalize_address(deployer)
        nonce = self.nonces.get(deployer, 0)
        target = normalize_address(address) if address else contract_address(deployer, nonce)
        if target in self.contracts:
            raise VMExecutionError(f"Address {target} already has code")
        self.nonces[deployer] = nonce + 1
        contract.bind(self, target)
        self.contracts[target] = contract
        logger.info(
            "Contract deployed",
            extra={
                "event": "chain.contract_deployed",
                "contract": type(contract).__name__,
                "address": target,
                "deployer": deployer,
            },
        )
        return contract

    # ==================== Events ====================

    def emit(self, address: str, event: str, args: Dict[str, Any]) -> None:
        self.logs.append(LogEntry(address=address, event=event, args=dict(args), index=len(self.logs)))

    def get_logs(self, address: Optional[str] = None, event: Optional[str] = None) -> List[LogEntry]:
        wanted = normalize_address(address) if address else None
        return [
            log
            for log in self.logs
            if (wanted is None or log.address == wanted) and (event is None or log.event == event)
        ]

    # ==================== Calls ====================

    def transact(
        self,
        sender: str,
        to: str,
        function: Optional[str] = None,
        *args: Any,
        value: int = 0,
    ) -> Receipt:
        """
        Run a top-level transaction calling ``function`` by Python name.

        With ``function=None`` the transaction is a plain value transfer.

        Raises:
            VMExecutionError: If the call reverted; no state changed
        """
        sender = normalize_address(sender)
        to = normalize_address(to)
        first_log = len(self.logs)
        abi_fn = self._resolve_by_name(to, function) if function else None
        result = self._dispatch(sender, to, abi_fn, args, value)
        return Receipt(sender=sender, to=to, return_value=result, logs=self.logs[first_log:])

    def transfer(self, sender: str, to: str, value: int) -> None:
        """Send native value, invoking the recipient's receive hook if it is a contract."""
        self._dispatch(normalize_address(sender), normalize_address(to), None, (), value)

    def call(self, sender: str, to: str, data: bytes = b"", value: int = 0) -> bytes:
        """
        Nested call with ABI-encoded calldata; returns ABI-encoded output.

        Calls to addresses without code only move value and return b"".
        """
        sender = normalize_address(sender)
        to = normalize_address(to)
        contract = self.contracts.get(to)
        if contract is None or not data:
            self._dispatch(sender, to, None, (), value)
            return b""
        if len(data) < 4:
            raise UnsupportedOperation(f"Calldata too short for a selector: 0x{bytes(data).hex()}")
        abi_fn = type(contract).function_by_selector(data[:4])
        try:
            args = abi_fn.decode_args(bytes(data[4:]))
        except (DecodingError, UnicodeDecodeError) as e:
            raise AbiCodecError(
                f"Malformed calldata for {abi_fn.signature}: {e}",
                details={"to": to, "selector": "0x" + bytes(data[:4]).hex()},
            ) from e
        with self._frame():
            result = self._dispatch(sender, to, abi_fn, args, value)
            try:
                return abi_fn.encode_result(result)
            except EncodingError as e:
                raise AbiCodecError(f"Cannot encode result of {abi_fn.signature}: {e}") from e

    def static_call(self, to: str, function: str, *args: Any, sender: str = ZERO_ADDRESS) -> Any:
        """Evaluate a function by name and discard every state change."""
        to = normalize_address(to)
        abi_fn = self._resolve_by_name(to, function)
        with self._frame(commit=False):
            return self._dispatch(normalize_address(sender), to, abi_fn, args, 0)

    def static_call_raw(self, sender: str, to: str, data: bytes) -> bytes:
        with self._frame(commit=False):
            return self.call(sender, to, data)

    # ==================== Internal ====================

    def _resolve_by_name(self, to: str, function: str) -> AbiFunction:
        contract = self.contracts.get(to)
        if contract is None:
            raise UnsupportedOperation(f"No contract at {to}")
        return type(contract).function_by_name(function)

    def _dispatch(
        self,
        sender: str,
        to: str,
        abi_fn: Optional[AbiFunction],
        args: Any,
        value: int,
    ) -> Any:
        with self._frame():
            if value < 0:
                raise VMExecutionError("Negative value")
            if value:
                self._move_value(sender, to, value)
            contract = self.contracts.get(to)
            if contract is None:
                return None
            if abi_fn is None:
                if value:
                    contract.receive(sender, value)
                return None
            if value and not abi_fn.payable:
                raise NonPayableFunction(f"{abi_fn.signature} is not payable")
            method = getattr(contract, abi_fn.name)
            if abi_fn.view:
                return method(*args)
            if abi_fn.payable:
                return method(sender, *args, value=value)
            return method(sender, *args)

    def _move_value(self, sender: str, to: str, value: int) -> None:
        available = self.balances.get(sender, 0)
        if available < value:
            raise InsufficientBalance(
                f"Insufficient balance for transfer ({value} > {available})",
                details={"sender": sender, "value": value, "available": available},
            )
        self.balances[sender] = available - value
        self.balances[to] = self.balances.get(to, 0) + value

    def _snapshot(self) -> _Snapshot:
        memo: Dict[int, Any] = {id(self): self}
        return _Snapshot(
            balances=dict(self.balances),
            contracts=dict(self.contracts),
            states={addr: copy.deepcopy(c.__dict__, memo) for addr, c in self.contracts.items()},
            nonces=dict(self.nonces),
            log_count=len(self.logs),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self.balances.clear()
        self.balances.update(snapshot.balances)
        self.nonces.clear()
        self.nonces.update(snapshot.nonces)
        self.contracts.clear()
        self.contracts.update(snapshot.contracts)
        for addr, state in snapshot.states.items():
            contract = snapshot.contracts[addr]
            contract.__dict__.clear()
            contract.__dict__.update(state)
        del self.logs[snapshot.log_count:]

    @contextmanager
    def _frame(self, commit: bool = True) -> Iterator[None]:
        snapshot = self._snapshot()
        try:
            yield
        except Exception:
            self._restore(snapshot)
            raise
        if not commit:
            self._restore(snapshot)
