"""
MessageVault configuration.

Values come from environment variables with devnet defaults, resolved by
``VaultSettings.from_env``. Invalid values raise ConfigurationError.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from eth_utils import is_address, to_checksum_address

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

WEI_PER_ETHER = 10**18


class NetworkType(Enum):
    DEVNET = "devnet"
    SEPOLIA = "sepolia"
    MAINNET = "mainnet"


DEFAULT_CHAIN_IDS = {
    NetworkType.DEVNET: 31337,
    NetworkType.SEPOLIA: 11155111,
    NetworkType.MAINNET: 1,
}

DEFAULT_ENTRY_POINT_ADDRESS = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
DEFAULT_MIN_DEPOSIT_WEI = WEI_PER_ETHER // 10
DEFAULT_STATE_FILE = os.path.join(os.getcwd(), "data", "messagevault_chain.json")


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 0)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _get_address(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name, "").strip() or default
    if not is_address(raw):
        raise ConfigurationError(f"{name} is not a valid address: {raw!r}")
    return to_checksum_address(raw)


def _get_network(env: Mapping[str, str]) -> NetworkType:
    raw = env.get("MESSAGEVAULT_NETWORK", NetworkType.DEVNET.value).strip().lower()
    try:
        return NetworkType(raw)
    except ValueError as e:
        choices = ", ".join(n.value for n in NetworkType)
        raise ConfigurationError(f"MESSAGEVAULT_NETWORK must be one of {choices}, got {raw!r}") from e


@dataclass(frozen=True)
class VaultSettings:
    """Resolved configuration for the local chain and maintenance checks."""

    network: NetworkType = NetworkType.DEVNET
    chain_id: int = DEFAULT_CHAIN_IDS[NetworkType.DEVNET]
    expected_chain_id: int = DEFAULT_CHAIN_IDS[NetworkType.DEVNET]
    entry_point_address: str = DEFAULT_ENTRY_POINT_ADDRESS
    min_deposit_wei: int = DEFAULT_MIN_DEPOSIT_WEI
    state_file: str = DEFAULT_STATE_FILE
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VaultSettings":
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        network = _get_network(env)
        chain_id = _get_int(env, "MESSAGEVAULT_CHAIN_ID", DEFAULT_CHAIN_IDS[network])
        log_level = env.get("MESSAGEVAULT_LOG_LEVEL", "INFO").strip().upper() or "INFO"
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"MESSAGEVAULT_LOG_LEVEL is not a logging level: {log_level!r}")

        settings = cls(
            network=network,
            chain_id=chain_id,
            expected_chain_id=_get_int(env, "MESSAGEVAULT_EXPECTED_CHAIN_ID", DEFAULT_CHAIN_IDS[network]),
            entry_point_address=_get_address(env, "MESSAGEVAULT_ENTRYPOINT_ADDRESS", DEFAULT_ENTRY_POINT_ADDRESS),
            min_deposit_wei=_get_int(env, "MESSAGEVAULT_MIN_DEPOSIT_WEI", DEFAULT_MIN_DEPOSIT_WEI),
            state_file=env.get("MESSAGEVAULT_STATE_FILE", "").strip() or DEFAULT_STATE_FILE,
            log_level=log_level,
            log_file=env.get("MESSAGEVAULT_LOG_FILE", "").strip() or None,
        )
        if settings.chain_id != settings.expected_chain_id:
            logger.warning(
                "Configured chain id differs from expected chain id",
                extra={
                    "event": "config.chain_id_mismatch",
                    "chain_id": settings.chain_id,
                    "expected": settings.expected_chain_id,
                },
            )
        return settings

