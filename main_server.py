#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

WebSocket chat relay: clients register or log in, receive the message
history, then exchange messages broadcast to every connected client.

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 127.0.0.1)
    --port PORT           WebSocket port (default: 8100)
    --history-limit N     Keep only the newest N messages (default: all)
    --auth-timeout SECS   Time allowed to authenticate, 0 disables (default: 30)
    --idle-timeout SECS   Close idle sessions (default: never)
    --logs-dir DIR        Chat log directory (default: logs)
    --no-chat-log         Do not write the chat log
    --debug               Verbose logging
"""

if __name__ == "__main__":
    from relay_server.main_server import main
    
    main()
