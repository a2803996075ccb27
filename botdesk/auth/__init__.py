"""
Authentication helpers

This module provides:
- Password hashing with bcrypt
- Bearer token (JWT) signing and validation
- Persisted login sessions
- One-time verification codes for signup and password resets
"""

from .manager import AuthManager, TokenPayload, get_auth_manager, require_auth, reset_auth_manager
from .passwords import hash_password, verify_password

__all__ = [
    'AuthManager',
    'TokenPayload',
    'get_auth_manager',
    'require_auth',
    'reset_auth_manager',
    'hash_password',
    'verify_password',
]
