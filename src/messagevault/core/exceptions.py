"""
Exception hierarchy for MessageVault tooling outside the contract host.

Contract reverts derive from ``messagevault.core.vm.VMExecutionError``;
the classes here cover storage and configuration of the local chain.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MessageVaultError(Exception):
    """Base exception for MessageVault tooling errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


class StorageError(MessageVaultError):
    """Raised when chain state cannot be read from or written to disk."""
    pass


class CorruptedStateError(StorageError):
    """Raised when a stored chain snapshot fails its integrity check."""
    recoverable = False


class ConfigurationError(MessageVaultError):
    """Raised when required configuration is missing or invalid."""
    pass
