"""Error taxonomy for the authentication core."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AuthCoreError(Exception):
    """Base exception for all authcore errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvalidInputError(AuthCoreError):
    """Rejected request: bad password length, malformed token, bad field."""


class AlreadyRegisteredError(InvalidInputError):
    """Raised when an email or username is already taken."""


class NotFoundError(AuthCoreError):
    """Definitive negative result for boundaries that prefer raising."""


class TransientError(AuthCoreError):
    """Store or network failure. Safe to retry with backoff."""


class FatalError(AuthCoreError):
    """Misconfiguration or randomness failure. Must abort loudly."""
