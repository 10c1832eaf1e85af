"""
Authentication module for the relay server.

Handles:
- User registration (unique usernames)
- Login credential checks
"""
