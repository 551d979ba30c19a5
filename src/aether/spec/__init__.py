"""Typed JSON-RPC method table, result schemas and formatters."""
