"""Core MessageVault components."""
