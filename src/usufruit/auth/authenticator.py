"""
Secret-key authentication for usufruit.

A librarian's secret key is a bearer capability: whoever presents it acts as
that librarian. Keys are 256-bit random values, hex encoded, generated once at
registration. There is no password, no hashing and no expiry; a key stays
valid until the librarian is deleted.

An unknown or empty key is a normal outcome (``None``), never an error. Keys
are never logged.
"""

import hmac
import logging
import secrets

from sqlalchemy.orm import Session

from ..database.librarian_repository import LibrarianRepository
from ..database.session import DatabaseManager
from ..models.librarian import Librarian

logger = logging.getLogger(__name__)

SECRET_KEY_BYTES = 32


def generate_secret_key() -> str:
    """Return a new 64-character hex secret key."""
    return secrets.token_hex(SECRET_KEY_BYTES)


def parse_bearer_credential(header: str | None) -> str | None:
    """
    Extract the secret from an ``Authorization: Bearer <secret>`` value.

    Returns None for a missing header, another scheme, or an empty token.
    """
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class SecretKeyAuthenticator:
    """Resolves secret keys to librarians."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def resolve(self, session: Session, secret_key: str | None) -> Librarian | None:
        """Authenticate within an existing session."""
        if not secret_key or not secret_key.strip():
            return None

        # Compared byte for byte; a padded key is a different key
        librarian = LibrarianRepository(session).get_by_secret_key(secret_key)
        if librarian is None or librarian.secret_key is None:
            logger.debug("Authentication failed: unknown credential")
            return None

        if not hmac.compare_digest(
            librarian.secret_key.encode("utf-8"), secret_key.encode("utf-8")
        ):
            logger.debug("Authentication failed: credential mismatch")
            return None

        logger.debug("Authenticated librarian %s", librarian.id)
        return librarian

    def authenticate(self, secret_key: str | None) -> Librarian | None:
        """
        Resolve a secret key to its librarian, or None.

        Raises:
            DependencyError: If the store is unavailable
        """
        if not secret_key or not secret_key.strip():
            return None
        with self.db_manager.session_scope() as session:
            return self.resolve(session, secret_key)
