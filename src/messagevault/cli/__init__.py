"""Command line interface for a locally hosted MessageVault."""
