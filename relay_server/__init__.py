"""
Server package for the chat relay.

This package contains all server-side functionality including:
- Credential registration and login
- Message history and broadcast fan-out
- Per-connection session handling
- Configuration and utilities
"""
