"""Auth adapters - Allowlist RBAC and bcrypt admin credentials."""

from .allowlist import AllowlistAccessPolicy, parse_email_list
from .credentials import BcryptCredentialVerifier, hash_password

__all__ = [
    "AllowlistAccessPolicy",
    "BcryptCredentialVerifier",
    "hash_password",
    "parse_email_list",
]
