"""Field-level encryption for personal data (email addresses) using AES-256-GCM."""
import base64
import hashlib
import hmac
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ...config import ENCRYPTION_KEY

# Constants
KEY_SIZE = 32    # 256 bits for AES-256
NONCE_SIZE = 12  # 96 bits for GCM


def _derive(master: bytes, purpose: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=b"shutterlink:" + purpose,
    ).derive(master)


class FieldEncryptor:
    """Seals PII fields and fingerprints them for equality lookups.

    Two independent keys are derived from the master secret: one for
    AES-GCM, one for the HMAC fingerprint. A fingerprint lets us find
    "the guest with this email" without decrypting every row.
    """

    def __init__(self, master_key: str = ENCRYPTION_KEY):
        master = master_key.encode()
        self._aead = AESGCM(_derive(master, b"seal"))
        self._mac_key = _derive(master, b"fingerprint")

    def seal(self, plaintext: str) -> str:
        """Encrypt with a random nonce; returns base64(nonce + ciphertext)."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def open(self, sealed: str) -> str:
        """Decrypt a value produced by ``seal``.

        Raises:
            ValueError: If the value is malformed or was sealed with another key
        """
        try:
            raw = base64.b64decode(sealed.encode("ascii"), validate=True)
            nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
            return self._aead.decrypt(nonce, ciphertext, None).decode("utf-8")
        except (InvalidTag, ValueError) as exc:
            raise ValueError("Cannot open sealed value") from exc

    def fingerprint(self, value: str) -> str:
        """Deterministic keyed digest of a normalized value."""
        normalized = value.strip().lower().encode("utf-8")
        return hmac.new(self._mac_key, normalized, hashlib.sha256).hexdigest()
