"""
ParamGuard Crypto Boundary

Password-based authenticated encryption for record payloads:
- Argon2id key derivation (memory-hard, per-blob random salt)
- AES-256-GCM with a fresh random nonce per encryption
- Store-level password check value, compared in constant time

Derived keys are never cached; they live for a single call and the
mutable copy is overwritten before returning.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import AuthenticationFailedError, KeyDerivationFailedError
from .models import BLOB_VERSION, EncryptedBlob, b64d, b64e


logger = logging.getLogger(__name__)


# Constants
KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12  # 96 bits for GCM
SALT_SIZE = 16
CHECK_CONTEXT = b"paramguard-password-check-v1"


def record_associated_data(record_id: int) -> bytes:
    """Binds a ciphertext to the record it belongs to."""
    return f"paramguard:record:{record_id}".encode()


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters."""
    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4

    def to_dict(self) -> Dict[str, int]:
        return {
            "time_cost": self.time_cost,
            "memory_cost": self.memory_cost,
            "parallelism": self.parallelism,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KdfParams":
        return cls(
            time_cost=int(data["time_cost"]),
            memory_cost=int(data["memory_cost"]),
            parallelism=int(data["parallelism"]),
        )


@dataclass
class PasswordCheck:
    """Salted verifier for the store password. Not a key."""
    salt: bytes
    check: bytes
    params: KdfParams

    def to_dict(self) -> Dict[str, Any]:
        return {
            "salt": b64e(self.salt),
            "check": b64e(self.check),
            "kdf": self.params.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PasswordCheck":
        return cls(
            salt=b64d(data["salt"]),
            check=b64d(data["check"]),
            params=KdfParams.from_dict(data["kdf"]),
        )


def _random_bytes(size: int) -> bytes:
    try:
        return secrets.token_bytes(size)
    except OSError as e:
        raise KeyDerivationFailedError("Entropy source unavailable", original_error=e)


def derive_key(password: str, salt: bytes, params: KdfParams) -> bytearray:
    """Derive a 256-bit key with Argon2id.

    Returns a bytearray so callers can wipe it once done.
    """
    if not isinstance(password, str) or not password:
        raise KeyDerivationFailedError("Password must be a non-empty string")
    try:
        raw = hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=KEY_SIZE,
            type=Type.ID,
        )
    except (HashingError, ValueError, MemoryError) as e:
        raise KeyDerivationFailedError(original_error=e)
    return bytearray(raw)


def _wipe(buffer: bytearray) -> None:
    for i in range(len(buffer)):
        buffer[i] = 0


class PasswordCipher:
    """
    Encrypts and decrypts payloads under a password.

    The password is passed explicitly on every call and never retained.
    """

    def __init__(self, params: Optional[KdfParams] = None):
        self.params = params or KdfParams()

    def encrypt(
        self,
        plaintext: bytes,
        password: str,
        associated_data: Optional[bytes] = None,
    ) -> EncryptedBlob:
        salt = _random_bytes(SALT_SIZE)
        nonce = _random_bytes(NONCE_SIZE)
        key = derive_key(password, salt, self.params)
        try:
            ciphertext = AESGCM(bytes(key)).encrypt(nonce, plaintext, associated_data)
        finally:
            _wipe(key)

        return EncryptedBlob(
            ciphertext=ciphertext,
            nonce=nonce,
            salt=salt,
            time_cost=self.params.time_cost,
            memory_cost=self.params.memory_cost,
            parallelism=self.params.parallelism,
            version=BLOB_VERSION,
        )

    def decrypt(
        self,
        blob: EncryptedBlob,
        password: str,
        associated_data: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt a blob.

        Raises:
            AuthenticationFailedError: wrong password, tampering, wrong
                associated data or a malformed blob. The cause is not reported.
        """
        if blob.version != BLOB_VERSION or len(blob.nonce) != NONCE_SIZE:
            raise AuthenticationFailedError()

        params = KdfParams(blob.time_cost, blob.memory_cost, blob.parallelism)
        try:
            key = derive_key(password, blob.salt, params)
        except KeyDerivationFailedError:
            raise AuthenticationFailedError()

        try:
            return AESGCM(bytes(key)).decrypt(blob.nonce, blob.ciphertext, associated_data)
        except (InvalidTag, ValueError):
            raise AuthenticationFailedError()
        finally:
            _wipe(key)

    def create_password_check(self, password: str) -> PasswordCheck:
        salt = _random_bytes(SALT_SIZE)
        return PasswordCheck(
            salt=salt,
            check=self._check_value(password, salt, self.params),
            params=self.params,
        )

    def verify_password(self, candidate: str, check: PasswordCheck) -> bool:
        """Constant-time comparison of a candidate against the stored check."""
        try:
            value = self._check_value(candidate, check.salt, check.params)
        except KeyDerivationFailedError:
            return False
        return hmac.compare_digest(value, check.check)

    @staticmethod
    def _check_value(password: str, salt: bytes, params: KdfParams) -> bytes:
        key = derive_key(password, salt, params)
        try:
            return hmac.new(bytes(key), CHECK_CONTEXT, "sha256").digest()
        finally:
            _wipe(key)
