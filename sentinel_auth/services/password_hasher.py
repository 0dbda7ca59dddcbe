"""
Password Hasher
===============

Argon2id credential hashing.

Salting, encoding and constant-time comparison are delegated entirely to
argon2-cffi; nothing here touches raw salts.
"""

from argon2 import PasswordHasher as Argon2PasswordHasher
from argon2.exceptions import Argon2Error, InvalidHashError, VerifyMismatchError

from sentinel_auth.core.config import Settings, get_settings
from sentinel_auth.core.logging import get_logger

logger = get_logger(__name__)


class PasswordHasher:
    """
    Thin wrapper around argon2-cffi with cost parameters from settings.

    Usage:
        hasher = PasswordHasher.from_settings(settings)
        stored = hasher.hash("s3cret")
        hasher.verify("s3cret", stored)  # True
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ):
        self._ph = Argon2PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(
            time_cost=settings.PASSWORD_HASH_TIME_COST,
            memory_cost=settings.PASSWORD_HASH_MEMORY_COST,
            parallelism=settings.PASSWORD_HASH_PARALLELISM,
        )

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        Output differs on every call (random salt); verification is
        deterministic.
        """
        return self._ph.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Verify a password against its stored hash.

        Returns:
            True if password matches, False on mismatch or malformed hash
        """
        try:
            return self._ph.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, Argon2Error) as e:
            logger.warning("Password verification error", error=str(e))
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """True when the stored hash was made with weaker parameters than the current ones."""
        try:
            return self._ph.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


password_hasher = PasswordHasher.from_settings(get_settings())
