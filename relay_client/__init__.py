"""
Client package for the chat relay.

Command-line WebSocket client: register or log in, show the history and
live messages, send lines typed on stdin.
"""
