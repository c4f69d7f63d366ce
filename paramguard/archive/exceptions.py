"""
ParamGuard Archive Exceptions

Custom exceptions for archive, retention and encrypted storage operations.
"""

from datetime import datetime
from typing import Optional


class ArchiveError(Exception):
    """Base exception for archive operations."""

    pass


class RecordNotFoundError(ArchiveError):
    """Referenced record does not exist (or has been purged)."""

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class DuplicateNameError(ArchiveError):
    """An active record with the same name already exists in the set."""

    def __init__(self, name: str, set_name: str):
        self.name = name
        self.set_name = set_name
        super().__init__(f"Active record '{name}' already exists in set '{set_name}'")


class InvalidStateError(ArchiveError):
    """Transition is not permitted from the record's current state."""

    def __init__(self, record_id: int, current_state: str, operation: str):
        self.record_id = record_id
        self.current_state = current_state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} record {record_id}: record is {current_state}"
        )


class ConcurrentModificationError(ArchiveError):
    """The stored value changed between read and write."""

    def __init__(
        self,
        key: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of {key}: "
            f"expected version {expected_version}, found {actual_version}"
        )


class RetentionNotExpiredError(ArchiveError):
    """Purge attempted before the retention window elapsed."""

    def __init__(self, record_id: int, eligible_at: datetime):
        self.record_id = record_id
        self.eligible_at = eligible_at
        super().__init__(
            f"Retention period for record {record_id} has not expired "
            f"(eligible at {eligible_at.isoformat()})"
        )


class CryptoError(ArchiveError):
    """Base exception for encryption and key derivation errors."""

    pass


class KeyDerivationFailedError(CryptoError):
    """Key derivation could not complete (entropy or KDF failure)."""

    def __init__(
        self,
        message: str = "Key derivation failed",
        original_error: Optional[Exception] = None,
    ):
        self.original_error = original_error
        super().__init__(message)


class AuthenticationFailedError(CryptoError):
    """Password was wrong or the ciphertext failed authentication.

    The message never says which.
    """

    def __init__(self):
        super().__init__("Authentication failed")


class StorageError(ArchiveError):
    """Error during storage operations."""

    def __init__(
        self,
        message: str,
        operation: str,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        self.original_error = original_error
        super().__init__(message)


class ValidationError(ArchiveError):
    """Configuration content failed format validation."""

    def __init__(self, format_name: str, errors: Optional[list] = None):
        self.format_name = format_name
        self.errors = list(errors or [])
        detail = "; ".join(self.errors) if self.errors else "invalid content"
        super().__init__(f"Invalid {format_name} content: {detail}")
