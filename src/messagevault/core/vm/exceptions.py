"""
Execution errors raised by the contract host.

Every hard failure inside a contract call derives from VMExecutionError.
The host restores the state snapshot of the failing call frame before the
exception leaves it, so a raised VMExecutionError always means "no effect".
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VMExecutionError(Exception):
    """Base exception for a reverted contract call.

    Attributes:
        message: Human-readable revert reason
        details: Additional context about the failure
    """

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message or type(self).__name__)
        self.message = message or type(self).__name__
        self.details = details or {}


class ContractRevert(VMExecutionError):
    """A revert carrying a named custom error (Solidity ``error Foo()``).

    Subclasses name the error; the class name is the error name.
    """

    @property
    def error_name(self) -> str:
        return type(self).__name__


class UnsupportedOperation(VMExecutionError):
    """Raised when the callee has no function for the given selector.

    Also raised when native value is sent to a contract without a
    ``receive`` hook. Callers that query optional interfaces rely on this
    exact type to tell "not implemented" apart from a real failure.
    """
    pass


class InsufficientBalance(VMExecutionError):
    """Raised when a native value transfer exceeds the sender's balance."""
    pass


class NonPayableFunction(VMExecutionError):
    """Raised when value is sent to a function not marked payable."""
    pass


class AbiCodecError(VMExecutionError):
    """Raised when calldata or return data does not match the function's ABI types."""
    pass
