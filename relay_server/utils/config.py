"""
Server configuration module.

This module handles server-side configuration settings.
"""

from typing import Optional

from relay_common.constants import (
    DEFAULT_HOST, DEFAULT_PORT, BROADCAST_CAPACITY, MAX_MESSAGE_SIZE,
    AUTH_TIMEOUT, IDLE_TIMEOUT, LOG_DIR
)


class ServerConfig:
    """Server configuration class."""
    
    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 history_limit: Optional[int] = None, logs_dir: Optional[str] = LOG_DIR):
        self.host = host
        self.port = port
        
        # Logging configuration; None disables the chat log file
        self.logs_dir = logs_dir
        
        # History settings (None = unbounded)
        self.history_limit = history_limit
        
        # Broadcast settings
        self.bus_capacity = BROADCAST_CAPACITY
        
        # Connection settings
        self.max_message_size = MAX_MESSAGE_SIZE
        self.auth_timeout: Optional[float] = AUTH_TIMEOUT
        self.idle_timeout: Optional[float] = IDLE_TIMEOUT
    
    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'uri': f"ws://{self.host}:{self.port}"
        }

