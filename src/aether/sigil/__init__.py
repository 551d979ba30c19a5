"""Signatures and transaction serialization."""
