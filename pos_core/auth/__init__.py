"""
Authentication module for the POS terminal.

Online-first login with local fallback, session restore and logout.
"""

from .credential_broker import CredentialBroker, OFFLINE_TOKEN_PREFIX
from .validation import is_valid_email, validate_login, validate_registration

__all__ = [
    "CredentialBroker",
    "OFFLINE_TOKEN_PREFIX",
    "is_valid_email",
    "validate_login",
    "validate_registration",
]
