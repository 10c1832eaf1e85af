"""
Shared constants for the chat relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 8100

# Limits
MAX_MESSAGE_SIZE = 1024 * 1024  # 1MB per inbound frame
BROADCAST_CAPACITY = 100  # pending messages per bus, not per subscriber

# Timeouts
AUTH_TIMEOUT = 30  # seconds to send the control envelope
IDLE_TIMEOUT = None  # disabled

# Logging
LOG_DIR = 'logs'
CHAT_LOG_FILE = 'chat_history.log'


# Control envelope types
class AuthTypes:
    REGISTER = 'register'
    LOGIN = 'login'


# Server responses during authentication
class ServerResponses:
    REGISTRATION_SUCCESSFUL = 'Registration successful'
    REGISTRATION_FAILED = 'Registration failed: {reason}'
    AUTHENTICATION_SUCCESSFUL = 'Authentication successful'
    AUTHENTICATION_FAILED = 'Authentication failed'
    INVALID_AUTH_TYPE = 'Invalid authentication type'

    SUCCESSES = (REGISTRATION_SUCCESSFUL, AUTHENTICATION_SUCCESSFUL)
