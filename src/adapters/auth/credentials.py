"""
Admin credential verifier - bcrypt check of HTTP Basic credentials.

Timing Attack Prevention:
-------------------------
Unknown emails are checked against a pre-computed dummy hash, so bcrypt
always runs and response time does not reveal which admin emails exist.
"""

import logging
from collections.abc import Mapping

import bcrypt

logger = logging.getLogger(__name__)

# Pre-computed bcrypt hash used when the email has no configured credential.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10))


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash an admin password for the ADMIN_CREDENTIALS setting."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


class BcryptCredentialVerifier:
    """Verifies admin email/password pairs against configured bcrypt hashes."""

    def __init__(self, credentials: Mapping[str, str]) -> None:
        """
        Args:
            credentials: Mapping of admin email to bcrypt hash
        """
        self._hashes = {email.strip().lower(): hashed for email, hashed in credentials.items()}

    def verify(self, email: str, password: str) -> bool:
        """
        Check a password in constant time with respect to email existence.

        Returns:
            True if the email is configured and the password matches
        """
        stored = self._hashes.get(email.strip().lower())
        candidate = stored.encode() if stored else _DUMMY_BCRYPT_HASH
        try:
            matches = bcrypt.checkpw(password.encode(), candidate)
        except ValueError:
            logger.error("Malformed bcrypt hash configured for %s", email)
            return False
        return matches and stored is not None
