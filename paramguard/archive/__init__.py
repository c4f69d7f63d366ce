"""
ParamGuard Archive Module

Lifecycle management for configuration records with encrypted storage.

Features:
- Active -> Archived -> Deleted state machine with restore
- Argon2id + AES-256-GCM payload encryption
- Inclusive retention windows and idempotent sweeps
- Versioned record store with compare-and-swap writes (memory, SQLite)
"""

from .config import (
    ArchiveConfig,
    ConfigError,
    ConfigValidationError,
    create_engine,
    create_sweeper,
    get_config,
    load_config,
    open_store,
    set_config,
)
from .crypto import (
    KdfParams,
    PasswordCheck,
    PasswordCipher,
)
from .exceptions import (
    ArchiveError,
    AuthenticationFailedError,
    ConcurrentModificationError,
    CryptoError,
    DuplicateNameError,
    InvalidStateError,
    KeyDerivationFailedError,
    RecordNotFoundError,
    RetentionNotExpiredError,
    StorageError,
    ValidationError,
)
from .lifecycle import (
    ArchiveStatistics,
    LifecycleEngine,
)
from .models import (
    ConfigFormat,
    ConfigRecord,
    EncryptedBlob,
    RecordKind,
    RecordState,
    RecordSummary,
    Tombstone,
)
from .retention import (
    RetentionInfo,
    RetentionSettings,
    is_eligible_for_purge,
    retention_info,
)
from .session import SessionClosedError, UnlockedSession
from .store import (
    InMemoryRecordStore,
    RecordStore,
    SQLiteRecordStore,
    VersionedValue,
)
from .sweep import (
    PeriodicSweeper,
    SweepAction,
    SweepCoordinator,
    SweepOutcome,
    SweepReport,
)
from .validation import ValidationResult, validate

__all__ = [
    # Models
    "ConfigFormat",
    "ConfigRecord",
    "EncryptedBlob",
    "RecordKind",
    "RecordState",
    "RecordSummary",
    "Tombstone",
    # Exceptions
    "ArchiveError",
    "AuthenticationFailedError",
    "ConcurrentModificationError",
    "CryptoError",
    "DuplicateNameError",
    "InvalidStateError",
    "KeyDerivationFailedError",
    "RecordNotFoundError",
    "RetentionNotExpiredError",
    "StorageError",
    "ValidationError",
    # Crypto
    "KdfParams",
    "PasswordCheck",
    "PasswordCipher",
    # Retention
    "RetentionInfo",
    "RetentionSettings",
    "is_eligible_for_purge",
    "retention_info",
    # Store
    "InMemoryRecordStore",
    "RecordStore",
    "SQLiteRecordStore",
    "VersionedValue",
    # Lifecycle
    "ArchiveStatistics",
    "LifecycleEngine",
    "SessionClosedError",
    "UnlockedSession",
    # Sweep
    "PeriodicSweeper",
    "SweepAction",
    "SweepCoordinator",
    "SweepOutcome",
    "SweepReport",
    # Validation
    "ValidationResult",
    "validate",
    # Config
    "ArchiveConfig",
    "ConfigError",
    "ConfigValidationError",
    "create_engine",
    "create_sweeper",
    "get_config",
    "load_config",
    "open_store",
    "set_config",
]
