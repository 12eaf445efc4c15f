"""
Security utilities for the OAuth app marketplace.

This module provides password verification, session token generation, input
sanitization and response security headers.
"""

import re
import secrets
from typing import Optional

from passlib.context import CryptContext

# bcrypt with 12 rounds, the cost the demo account hashes were made with
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12
)


class PasswordHasher:
    """Password verification against bcrypt hashes."""

    @staticmethod
    def verify_password(password: str, hashed_password: str) -> bool:
        """
        Verify a password against its bcrypt hash.

        Returns False for non-string input or a hash that is not bcrypt.
        """
        if not isinstance(password, str) or not isinstance(hashed_password, str):
            return False

        if not hashed_password.startswith('$2b$'):
            return False

        try:
            return pwd_context.verify(password, hashed_password)
        except ValueError:
            # Malformed hash
            return False


class TokenGenerator:
    """Secure token generation for marketplace sessions."""

    @staticmethod
    def generate_session_token() -> str:
        """
        Generate a bearer session token.

        Returns:
            str: URL-safe token from 32 random bytes
        """
        return secrets.token_urlsafe(32)


class InputValidator:
    """
    Input validation and sanitization utilities.

    Applied to free text that reaches the store so control characters and
    oversized values never get persisted.
    """

    USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_.-]+$')

    @staticmethod
    def validate_username(username: str) -> bool:
        """
        Validate username format.

        Returns:
            bool: True for 1-50 characters of letters, digits, '_', '.' or '-'
        """
        if not isinstance(username, str):
            return False

        return (
            1 <= len(username) <= 50 and
            InputValidator.USERNAME_PATTERN.match(username) is not None
        )

    @staticmethod
    def sanitize_string(input_str: Optional[str], max_length: int = 1000, strip: bool = True) -> str:
        """
        Sanitize string input by removing dangerous characters.

        Args:
            input_str: String to sanitize, None becomes ""
            max_length: Maximum allowed length
            strip: Trim surrounding whitespace

        Returns:
            str: Sanitized string
        """
        if not isinstance(input_str, str):
            return ""

        # Remove null bytes and control characters
        sanitized = ''.join(char for char in input_str if ord(char) >= 32 or char in ['\n', '\r', '\t'])

        sanitized = sanitized[:max_length]

        return sanitized.strip() if strip else sanitized


class SecurityHeaders:
    """Standard security headers for HTTP responses."""

    @staticmethod
    def get_api_security_headers() -> dict:
        """
        Get security headers for marketplace API responses.

        Responses may carry client secrets, so nothing is cacheable.
        """
        return {
            'X-Content-Type-Options': 'nosniff',
            'X-Frame-Options': 'DENY',
            'X-XSS-Protection': '1; mode=block',
            'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
            'Cache-Control': 'no-cache, no-store, must-revalidate',
            'Pragma': 'no-cache',
            'Expires': '0'
        }


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return PasswordHasher.verify_password(password, hashed_password)
