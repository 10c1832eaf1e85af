"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from relay_common.constants import CHAT_LOG_FILE


class ServerLogger:
    """Server logging class."""
    
    def __init__(self, log_level: int = logging.INFO):
        # Set up main logger
        self.logger = logging.getLogger('chat_relay_server')
        self.logger.setLevel(log_level)
        
        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        
        # Create console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        
        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)
        
        # Add handler to logger
        self.logger.addHandler(console_handler)
        
        # Chat log file is off until configure() names a directory
        self.logs_dir: Optional[Path] = None
        self.chat_log_path: Optional[Path] = None
    
    def configure(self, logs_dir: Optional[str] = None, log_level: Optional[int] = None):
        """Point the chat log at a directory and/or change the level."""
        if log_level is not None:
            self.logger.setLevel(log_level)
            for handler in self.logger.handlers:
                handler.setLevel(log_level)
        if logs_dir is None:
            self.logs_dir = None
            self.chat_log_path = None
        else:
            self.logs_dir = Path(logs_dir)
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            self.chat_log_path = self.logs_dir / CHAT_LOG_FILE
    
    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)
    
    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)
    
    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)
    
    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)
    
    def log_connection(self, addr, uid: int):
        """Log client connection."""
        self.info(f"New connection from {addr}, assigned uid={uid}")
    
    def log_auth(self, action: str, username: str, uid: int, success: bool):
        """Log a register/login attempt."""
        if success:
            self.info(f"User '{username}' {action} succeeded (uid={uid})")
        else:
            self.warning(f"User '{username}' {action} failed (uid={uid})")
    
    def log_history_replay(self, uid: int, count: int):
        """Log history sent to a new session."""
        self.info(f"Replayed {count} history message(s) to uid={uid}")
    
    def log_message(self, sender: str, uid: int, content: str):
        """Log accepted chat message."""
        self.info(f"Message from {sender} (uid={uid}): {content}")
        if self.chat_log_path is not None:
            self._write_to_file(self.chat_log_path, f"{datetime.now().isoformat()} | {sender} (uid={uid}) | {content}")
    
    def log_malformed(self, uid: int, error: Exception):
        """Log a discarded payload."""
        self.warning(f"Discarded malformed payload from uid={uid}: {error}")
    
    def log_lagged(self, uid: int, skipped: int):
        """Log messages dropped for a slow subscriber."""
        self.warning(f"uid={uid} fell behind, {skipped} message(s) skipped")
    
    def log_disconnect(self, username: Optional[str], uid: int):
        """Log user disconnect."""
        self.info(f"User {username or '<unauthenticated>'} (uid={uid}) disconnected")
    
    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")
    
    def _write_to_file(self, file_path: Path, content: str):
        """Write content to log file."""
        try:
            with open(file_path, 'a', encoding='utf-8', errors='backslashreplace') as f:
                f.write(content + '\n')
        except (OSError, UnicodeError) as e:
            self.error(f"Failed to write to log file {file_path}: {e}")


# Global logger instance
logger = ServerLogger()
