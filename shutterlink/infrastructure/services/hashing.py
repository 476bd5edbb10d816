"""Credential hashing with bcrypt."""
import bcrypt

from ...config import BCRYPT_ROUNDS


class BcryptHasher:
    """Hashes and verifies principal secrets."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    def hash(self, secret: str) -> str:
        return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, secret: str, digest: str) -> bool:
        """Check a secret against a stored digest.

        A malformed digest counts as a mismatch rather than an error.
        """
        try:
            return bcrypt.checkpw(secret.encode(), digest.encode())
        except ValueError:
            return False
