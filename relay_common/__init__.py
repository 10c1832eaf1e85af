"""
Shared definitions for the chat relay.

Constants, the error taxonomy and the wire message structures used by both
the server and the client packages.
"""
