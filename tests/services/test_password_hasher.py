"""
Password Hasher Unit Tests
==========================
"""

import pytest

from sentinel_auth.services.password_hasher import PasswordHasher


pytestmark = pytest.mark.unit


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


class TestPasswordHashing:
    """Tests for hashing and verification."""

    def test_hash_uses_argon2id(self, hasher: PasswordHasher):
        # Act
        hashed = hasher.hash("CorrectHorse42!")

        # Assert
        assert hashed.startswith("$argon2id$")

    def test_same_password_hashes_differently(self, hasher: PasswordHasher):
        # Act
        first = hasher.hash("CorrectHorse42!")
        second = hasher.hash("CorrectHorse42!")

        # Assert
        assert first != second

    def test_verify_correct_password(self, hasher: PasswordHasher):
        # Arrange
        hashed = hasher.hash("CorrectHorse42!")

        # Act / Assert
        assert hasher.verify("CorrectHorse42!", hashed) is True

    def test_verify_wrong_password(self, hasher: PasswordHasher):
        # Arrange
        hashed = hasher.hash("CorrectHorse42!")

        # Act / Assert
        assert hasher.verify("correcthorse42!", hashed) is False

    def test_verify_malformed_hash_returns_false(self, hasher: PasswordHasher):
        assert hasher.verify("CorrectHorse42!", "not-a-hash") is False


class TestRehash:
    def test_weaker_parameters_need_rehash(self, hasher: PasswordHasher):
        # Arrange
        stronger = PasswordHasher(time_cost=2, memory_cost=2048, parallelism=1)
        hashed = hasher.hash("CorrectHorse42!")

        # Act / Assert
        assert stronger.needs_rehash(hashed) is True
        assert hasher.needs_rehash(hashed) is False
