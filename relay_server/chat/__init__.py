"""
Chat module for server-side messaging functionality.

Handles:
- Message history management
- Broadcast fan-out to live sessions
"""
