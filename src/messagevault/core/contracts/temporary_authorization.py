"""
One-shot delegated signer slot.

A successful validation grants the slot; the next privileged call routed by
the EntryPoint consumes it. Consumption clears the slot before the caller
does anything else, so a revert later in that call restores it together with
every other effect.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..vm.address import ZERO_ADDRESS, normalize_address


@dataclass
class TemporaryAuthorization:
    """Holds at most one pending signer; zero address means none."""

    signer: str = ZERO_ADDRESS

    @property
    def pending(self) -> bool:
        return self.signer != ZERO_ADDRESS

    def grant(self, signer: str) -> None:
        self.signer = normalize_address(signer)

    def clear(self) -> None:
        self.signer = ZERO_ADDRESS

    def consume(self) -> Optional[str]:
        """Return the pending signer and clear the slot, or None if empty."""
        if not self.pending:
            return None
        signer = self.signer
        self.signer = ZERO_ADDRESS
        return signer
