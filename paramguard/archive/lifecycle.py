"""
ParamGuard Lifecycle Engine

Owns the record state machine:

    create -> ACTIVE --archive--> ARCHIVED --purge--> DELETED
                 ^                    |
                 +------restore-------+

Every transition re-reads the record, checks its precondition, builds the
complete new value and commits it with a single version-checked write. A
concurrent writer makes the transition fail with
ConcurrentModificationError; nothing is retried automatically.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from .crypto import PasswordCheck, PasswordCipher, record_associated_data
from .exceptions import (
    AuthenticationFailedError,
    ConcurrentModificationError,
    DuplicateNameError,
    InvalidStateError,
    RecordNotFoundError,
    RetentionNotExpiredError,
    ValidationError,
)
from .models import (
    ConfigFormat,
    ConfigRecord,
    RecordKind,
    RecordState,
    RecordSummary,
    Tombstone,
    content_hash,
)
from .retention import (
    RetentionInfo,
    RetentionSettings,
    is_eligible_for_purge,
    retention_info,
)
from .session import UnlockedSession
from .store import RecordStore
from .validation import Validator, validate


logger = logging.getLogger(__name__)


RECORD_PREFIX = "record/"
SEQUENCE_KEY = "meta/sequence"
RETENTION_KEY = "meta/retention"
PASSWORD_CHECK_KEY = "meta/password_check"

SEQUENCE_ATTEMPTS = 16

Clock = Callable[[], datetime]
Payload = Union[bytes, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def record_key(record_id: int) -> str:
    # Zero-padded so lexical key order matches id order
    return f"{RECORD_PREFIX}{record_id:012d}"


@dataclass
class ArchiveStatistics:
    """Counts across the whole store."""
    active_count: int = 0
    archived_count: int = 0
    deleted_count: int = 0
    encrypted_count: int = 0
    eligible_count: int = 0
    plaintext_bytes: int = 0
    retention_days: float = 0.0

    @property
    def total_count(self) -> int:
        return self.active_count + self.archived_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_count": self.total_count,
            "active_count": self.active_count,
            "archived_count": self.archived_count,
            "deleted_count": self.deleted_count,
            "encrypted_count": self.encrypted_count,
            "eligible_count": self.eligible_count,
            "plaintext_bytes": self.plaintext_bytes,
            "retention_days": self.retention_days,
        }


class LifecycleEngine:
    """
    Create, archive, restore, purge and read configuration records.

    Passwords are supplied per call and never retained by the engine.
    """

    def __init__(
        self,
        store: RecordStore,
        cipher: Optional[PasswordCipher] = None,
        clock: Optional[Clock] = None,
        validator: Optional[Validator] = validate,
        keep_tombstones: bool = True,
        default_settings: Optional[RetentionSettings] = None,
    ):
        """
        Initialize lifecycle engine.

        Args:
            store: Versioned record store
            cipher: Password cipher (default Argon2id parameters if omitted)
            clock: Returns the current UTC time
            validator: Format validator for CONFIG_FILE content, or None
            keep_tombstones: Replace purged records with tombstones instead
                of removing them physically
            default_settings: Retention settings used until some are persisted
        """
        self._store = store
        self._cipher = cipher or PasswordCipher()
        self._clock = clock or utc_now
        self._validator = validator
        self._keep_tombstones = keep_tombstones
        self._default_settings = default_settings or RetentionSettings()
        # Serializes name checks with the write that depends on them
        self._names_lock = threading.Lock()

    @property
    def store(self) -> RecordStore:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        set_name: str,
        kind: RecordKind,
        payload: Payload,
        encrypt: bool = False,
        password: Optional[str] = None,
        format: Optional[ConfigFormat] = None,
    ) -> int:
        """
        Create a new ACTIVE record.

        Returns:
            The new record id

        Raises:
            DuplicateNameError: an ACTIVE record of that name exists in the set
            AuthenticationFailedError: password does not match the store password
            ValidationError: CONFIG_FILE content does not parse as ``format``
        """
        if not name:
            raise ValueError("Record name must not be empty")
        data = self._to_bytes(payload)
        self._validate(kind, format, data)

        pending_check = self._authorize(password) if encrypt else None

        with self._names_lock:
            self._ensure_name_free(name, set_name)
            if pending_check is not None:
                self._establish_password(password, pending_check)

            record_id = self._next_id()
            now = self.now()
            record = ConfigRecord(
                record_id=record_id,
                name=name,
                kind=kind,
                set_name=set_name,
                encrypted=encrypt,
                state=RecordState.ACTIVE,
                created_at=now,
                updated_at=now,
                format=format,
            )
            if encrypt:
                record.blob = self._cipher.encrypt(
                    data, password, record_associated_data(record_id)
                )
            else:
                record.payload = data
                record.content_hash = content_hash(data)

            self._store.put(record_key(record_id), record.to_dict(), expected_version=0)

        logger.info(
            f"Created record {record_id} ({kind.name}, set={set_name}, encrypted={encrypt})"
        )
        return record_id

    def update(
        self,
        record_id: int,
        payload: Payload,
        password: Optional[str] = None,
    ) -> RecordSummary:
        """Replace the payload of an ACTIVE record."""
        record = self._load_record(record_id)
        if record.state != RecordState.ACTIVE:
            raise InvalidStateError(record_id, record.state.name, "update")

        data = self._to_bytes(payload)
        self._validate(record.kind, record.format, data)

        updated = replace(record, updated_at=self.now())
        if record.encrypted:
            pending_check = self._authorize(password)
            if pending_check is not None:
                self._establish_password(password, pending_check)
            updated.blob = self._cipher.encrypt(
                data, password, record_associated_data(record_id)
            )
        else:
            updated.payload = data
            updated.content_hash = content_hash(data)

        updated.version = self._commit(updated, record.version)
        logger.info(f"Updated record {record_id}")
        return updated.summary()

    def archive(self, record_id: int, reason: Optional[str] = None) -> RecordSummary:
        """
        Move an ACTIVE record to ARCHIVED and start its retention window.

        Raises:
            RecordNotFoundError: no such record
            InvalidStateError: record is not ACTIVE
            ConcurrentModificationError: record changed since it was read
        """
        record = self._load_record(record_id)
        if record.state != RecordState.ACTIVE:
            raise InvalidStateError(record_id, record.state.name, "archive")

        now = self.now()
        archived = replace(
            record,
            state=RecordState.ARCHIVED,
            archived_at=now,
            archive_reason=reason,
            updated_at=now,
        )
        archived.version = self._commit(archived, record.version)
        logger.info(f"Archived record {record_id}")
        return archived.summary()

    def restore(self, record_id: int) -> RecordSummary:
        """
        Move an ARCHIVED record back to ACTIVE.

        Raises:
            RecordNotFoundError: no such record
            InvalidStateError: record is not ARCHIVED
            DuplicateNameError: an ACTIVE record already uses the name
        """
        with self._names_lock:
            record = self._load_record(record_id)
            if record.state != RecordState.ARCHIVED:
                raise InvalidStateError(record_id, record.state.name, "restore")
            self._ensure_name_free(record.name, record.set_name)

            restored = replace(
                record,
                state=RecordState.ACTIVE,
                archived_at=None,
                archive_reason=None,
                updated_at=self.now(),
            )
            restored.version = self._commit(restored, record.version)

        logger.info(f"Restored record {record_id}")
        return restored.summary()

    def purge(self, record_id: int, force: bool = False) -> Tombstone:
        """
        Permanently delete an ARCHIVED record.

        Args:
            record_id: Record to purge
            force: Purge even if the retention window has not elapsed

        Raises:
            RecordNotFoundError: no such record
            InvalidStateError: record is not ARCHIVED
            RetentionNotExpiredError: window still open and ``force`` not set
        """
        record = self._load_record(record_id)
        if record.state != RecordState.ARCHIVED:
            raise InvalidStateError(record_id, record.state.name, "purge")

        now = self.now()
        if not force:
            settings = self.get_retention_settings()
            if not is_eligible_for_purge(record.archived_at, settings.retention_period, now):
                raise RetentionNotExpiredError(
                    record_id, record.archived_at + settings.retention_period
                )

        tombstone = Tombstone(
            record_id=record.record_id,
            kind=record.kind,
            set_name=record.set_name,
            deleted_at=now,
        )
        key = record_key(record_id)
        if self._keep_tombstones:
            self._store.put(key, tombstone.to_dict(), expected_version=record.version)
        else:
            self._store.delete(key, expected_version=record.version)

        logger.info(f"Purged record {record_id}{' (forced)' if force else ''}")
        return tombstone

    def read(self, record_id: int, password: Optional[str] = None) -> bytes:
        """
        Return the plaintext payload of an ACTIVE or ARCHIVED record.

        When a password is supplied, a missing record is reported as an
        authentication failure so callers cannot probe for existence.

        Raises:
            RecordNotFoundError: no such record (only without a password)
            AuthenticationFailedError: wrong or missing password
        """
        record, _ = self._load(record_id)
        if not isinstance(record, ConfigRecord):
            if password is not None:
                check = self._password_check() or self._decoy_check()
                self._cipher.verify_password(password, check)
                logger.warning(f"Authentication failed reading record {record_id}")
                raise AuthenticationFailedError()
            raise RecordNotFoundError(record_id)

        if not record.encrypted:
            return record.payload

        if password is None:
            raise AuthenticationFailedError()
        try:
            return self._cipher.decrypt(
                record.blob, password, record_associated_data(record_id)
            )
        except AuthenticationFailedError:
            logger.warning(f"Authentication failed reading record {record_id}")
            raise

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, record_id: int) -> RecordSummary:
        return self._load_record(record_id).summary()

    def get_state(self, record_id: int) -> RecordState:
        """State of a record, including DELETED for tombstoned records."""
        record, _ = self._load(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record.state

    def list_by_state(
        self,
        state: RecordState,
        set_name: Optional[str] = None,
    ) -> Iterator[RecordSummary]:
        """
        Lazily yield summaries of records in ``state``, ordered by id.

        Each call starts a fresh pass over the store.
        """
        if state == RecordState.DELETED:
            raise ValueError("Deleted records are not listable; use list_tombstones()")
        return self._iter_summaries(state, set_name)

    def _iter_summaries(
        self,
        state: RecordState,
        set_name: Optional[str],
    ) -> Iterator[RecordSummary]:
        for record in self._iter_records():
            if record.state != state:
                continue
            if set_name is not None and record.set_name != set_name:
                continue
            yield record.summary()

    def list_tombstones(self) -> Iterator[Tombstone]:
        for key in self._store.list_keys(RECORD_PREFIX):
            entry = self._store.get(key)
            if entry and entry.value.get("state") == RecordState.DELETED.name:
                yield Tombstone.from_dict(entry.value)

    def search(self, query: str, state: Optional[RecordState] = None) -> List[RecordSummary]:
        """Case-insensitive substring match over name, set and archive reason."""
        needle = query.lower()
        results = []
        for record in self._iter_records():
            if state is not None and record.state != state:
                continue
            haystack = (record.name, record.set_name, record.archive_reason or "")
            if any(needle in text.lower() for text in haystack):
                results.append(record.summary())
        return results

    def retention_info(self, record_id: int) -> RetentionInfo:
        record = self._load_record(record_id)
        if record.state != RecordState.ARCHIVED:
            raise InvalidStateError(record_id, record.state.name, "query retention of")
        settings = self.get_retention_settings()
        return retention_info(record.archived_at, settings.retention_period, self.now())

    def statistics(self) -> ArchiveStatistics:
        settings = self.get_retention_settings()
        now = self.now()
        stats = ArchiveStatistics(
            retention_days=settings.retention_period.total_seconds() / 86400
        )
        for record in self._iter_records():
            if record.state == RecordState.ACTIVE:
                stats.active_count += 1
            else:
                stats.archived_count += 1
                if is_eligible_for_purge(record.archived_at, settings.retention_period, now):
                    stats.eligible_count += 1
            if record.encrypted:
                stats.encrypted_count += 1
            else:
                stats.plaintext_bytes += len(record.payload or b"")
        stats.deleted_count = sum(1 for _ in self.list_tombstones())
        return stats

    # ------------------------------------------------------------------
    # Retention settings
    # ------------------------------------------------------------------

    def get_retention_settings(self) -> RetentionSettings:
        entry = self._store.get(RETENTION_KEY)
        if entry is None:
            return self._default_settings
        return RetentionSettings.from_dict(entry.value)

    def set_retention_settings(
        self,
        retention_period: Optional[timedelta] = None,
        auto_remove: Optional[bool] = None,
    ) -> RetentionSettings:
        """Persist new retention settings. Omitted fields keep their value."""
        entry = self._store.get(RETENTION_KEY)
        current = (
            RetentionSettings.from_dict(entry.value) if entry else self._default_settings
        )
        settings = RetentionSettings(
            retention_period=(
                retention_period if retention_period is not None else current.retention_period
            ),
            auto_remove=auto_remove if auto_remove is not None else current.auto_remove,
        )
        self._store.put(
            RETENTION_KEY,
            settings.to_dict(),
            expected_version=entry.version if entry else 0,
        )
        logger.info(
            f"Retention settings updated: period={settings.retention_period}, "
            f"auto_remove={settings.auto_remove}"
        )
        return settings

    # ------------------------------------------------------------------
    # Password
    # ------------------------------------------------------------------

    def has_password(self) -> bool:
        return self._store.get(PASSWORD_CHECK_KEY) is not None

    def verify_password(self, candidate: str) -> bool:
        check = self._password_check()
        if check is None:
            return False
        return self._cipher.verify_password(candidate, check)

    def unlock(self, password: str) -> UnlockedSession:
        """Return a context manager holding ``password`` for its ``with`` block."""
        return UnlockedSession(self, password)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, record_id: int) -> Tuple[Optional[Union[ConfigRecord, Tombstone]], int]:
        entry = self._store.get(record_key(record_id))
        if entry is None:
            return None, 0
        if entry.value.get("state") == RecordState.DELETED.name:
            return Tombstone.from_dict(entry.value), entry.version
        return ConfigRecord.from_dict(entry.value, version=entry.version), entry.version

    def _load_record(self, record_id: int) -> ConfigRecord:
        record, _ = self._load(record_id)
        if not isinstance(record, ConfigRecord):
            raise RecordNotFoundError(record_id)
        return record

    def _iter_records(self) -> Iterator[ConfigRecord]:
        for key in self._store.list_keys(RECORD_PREFIX):
            entry = self._store.get(key)
            if entry is None or entry.value.get("state") == RecordState.DELETED.name:
                continue
            yield ConfigRecord.from_dict(entry.value, version=entry.version)

    def _commit(self, record: ConfigRecord, expected_version: int) -> int:
        try:
            return self._store.put(
                record_key(record.record_id),
                record.to_dict(),
                expected_version=expected_version,
            )
        except ConcurrentModificationError:
            logger.warning(f"Concurrent modification of record {record.record_id}")
            raise

    def _next_id(self) -> int:
        for _ in range(SEQUENCE_ATTEMPTS):
            entry = self._store.get(SEQUENCE_KEY)
            current = entry.value["next_id"] if entry else 1
            try:
                self._store.put(
                    SEQUENCE_KEY,
                    {"next_id": current + 1},
                    expected_version=entry.version if entry else 0,
                )
            except ConcurrentModificationError:
                continue
            return current
        raise ConcurrentModificationError(SEQUENCE_KEY)

    def _ensure_name_free(self, name: str, set_name: str) -> None:
        for summary in self._iter_summaries(RecordState.ACTIVE, set_name):
            if summary.name == name:
                raise DuplicateNameError(name, set_name)

    def _password_check(self) -> Optional[PasswordCheck]:
        entry = self._store.get(PASSWORD_CHECK_KEY)
        return PasswordCheck.from_dict(entry.value) if entry else None

    def _decoy_check(self) -> PasswordCheck:
        return PasswordCheck(
            salt=secrets.token_bytes(16),
            check=secrets.token_bytes(32),
            params=self._cipher.params,
        )

    def _authorize(self, password: Optional[str]) -> Optional[PasswordCheck]:
        """
        Check ``password`` against the store without writing anything.

        Returns:
            None if the store password matched, or a new check value to be
            persisted with ``_establish_password`` when the store has none yet
        """
        if not password:
            raise AuthenticationFailedError()

        check = self._password_check()
        if check is None:
            return self._cipher.create_password_check(password)

        if not self._cipher.verify_password(password, check):
            logger.warning("Authentication failed: password does not match store")
            raise AuthenticationFailedError()
        return None

    def _establish_password(self, password: str, new_check: PasswordCheck) -> None:
        try:
            self._store.put(PASSWORD_CHECK_KEY, new_check.to_dict(), expected_version=0)
            logger.info("Store password established")
            return
        except ConcurrentModificationError:
            check = self._password_check()

        # Another writer established it first
        if not self._cipher.verify_password(password, check):
            logger.warning("Authentication failed: password does not match store")
            raise AuthenticationFailedError()

    def _validate(
        self,
        kind: RecordKind,
        fmt: Optional[ConfigFormat],
        data: bytes,
    ) -> None:
        if kind != RecordKind.CONFIG_FILE or fmt is None or self._validator is None:
            return
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError(fmt.value, ["content is not valid UTF-8"])
        result = self._validator(fmt, text)
        if not result.valid:
            raise ValidationError(fmt.value, result.errors)

    @staticmethod
    def _to_bytes(payload: Payload) -> bytes:
        if isinstance(payload, str):
            return payload.encode("utf-8")
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        raise TypeError("payload must be bytes or str")
