"""
MessageVault - an ERC-4337 style smart account that stores messages.

The package is split into:
- core.vm: the atomic execution host contracts run on
- core.contracts: the vault, its EntryPoint and supporting policy modules
- cli: command line tools operating on a persisted local chain
"""

__version__ = "0.3.0"
