"""
ParamGuard Archive Data Model

Records, lifecycle states, config formats and the serialized forms
persisted through the record store.
"""

import base64
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional


BLOB_VERSION = 1


def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64d(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"))


def content_hash(data: bytes) -> str:
    """SHA-256 of plaintext content."""
    return hashlib.sha256(data).hexdigest()


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RecordKind(Enum):
    """Kind of configuration artifact."""
    ENV_VAR = auto()
    CONFIG_FILE = auto()
    KEY_VALUE = auto()


class RecordState(Enum):
    """Lifecycle state of a record."""
    ACTIVE = auto()
    ARCHIVED = auto()
    DELETED = auto()


class ConfigFormat(Enum):
    """Format of a CONFIG_FILE record."""
    JSON = "json"
    YAML = "yaml"
    TOML = "toml"
    INI = "ini"
    ENV = "env"
    CFG = "cfg"
    NIX = "nix"

    @classmethod
    def from_extension(cls, extension: str) -> Optional["ConfigFormat"]:
        ext = extension.lower().lstrip(".")
        if ext == "yml":
            ext = "yaml"
        for fmt in cls:
            if fmt.value == ext:
                return fmt
        return None

    @classmethod
    def supported_extensions(cls) -> List[str]:
        return [fmt.value for fmt in cls] + ["yml"]

    def as_extension(self) -> str:
        return self.value

    def default_content(self) -> str:
        """Minimal valid document for a new file of this format."""
        return {
            ConfigFormat.JSON: "{}",
            ConfigFormat.YAML: "---",
            ConfigFormat.TOML: "",
            ConfigFormat.INI: "",
            ConfigFormat.ENV: "",
            ConfigFormat.CFG: "# Configuration File",
            ConfigFormat.NIX: "{ }",
        }[self]


@dataclass
class EncryptedBlob:
    """Authenticated ciphertext plus everything needed to re-derive its key."""
    ciphertext: bytes  # includes the GCM tag
    nonce: bytes
    salt: bytes
    time_cost: int
    memory_cost: int
    parallelism: int
    version: int = BLOB_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ciphertext": b64e(self.ciphertext),
            "nonce": b64e(self.nonce),
            "salt": b64e(self.salt),
            "kdf": {
                "time_cost": self.time_cost,
                "memory_cost": self.memory_cost,
                "parallelism": self.parallelism,
            },
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedBlob":
        kdf = data["kdf"]
        return cls(
            ciphertext=b64d(data["ciphertext"]),
            nonce=b64d(data["nonce"]),
            salt=b64d(data["salt"]),
            time_cost=int(kdf["time_cost"]),
            memory_cost=int(kdf["memory_cost"]),
            parallelism=int(kdf["parallelism"]),
            version=int(data.get("version", BLOB_VERSION)),
        )


@dataclass
class RecordSummary:
    """Everything about a record except its payload."""
    record_id: int
    name: str
    kind: RecordKind
    set_name: str
    encrypted: bool
    state: RecordState
    created_at: datetime
    updated_at: datetime
    archived_at: Optional[datetime] = None
    archive_reason: Optional[str] = None
    format: Optional[ConfigFormat] = None
    content_hash: Optional[str] = None
    size_bytes: Optional[int] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "name": self.name,
            "kind": self.kind.name,
            "set_name": self.set_name,
            "encrypted": self.encrypted,
            "state": self.state.name,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "archive_reason": self.archive_reason,
            "format": self.format.value if self.format else None,
            "content_hash": self.content_hash,
            "size_bytes": self.size_bytes,
        }


@dataclass
class ConfigRecord:
    """A configuration artifact as persisted in the record store.

    Exactly one of ``payload`` (plaintext records) or ``blob`` (encrypted
    records) is set while the record is ACTIVE or ARCHIVED.
    """
    record_id: int
    name: str
    kind: RecordKind
    set_name: str
    encrypted: bool
    state: RecordState
    created_at: datetime
    updated_at: datetime
    payload: Optional[bytes] = None
    blob: Optional[EncryptedBlob] = None
    archived_at: Optional[datetime] = None
    archive_reason: Optional[str] = None
    format: Optional[ConfigFormat] = None
    content_hash: Optional[str] = None
    version: int = 0

    def summary(self) -> RecordSummary:
        return RecordSummary(
            record_id=self.record_id,
            name=self.name,
            kind=self.kind,
            set_name=self.set_name,
            encrypted=self.encrypted,
            state=self.state,
            created_at=self.created_at,
            updated_at=self.updated_at,
            archived_at=self.archived_at,
            archive_reason=self.archive_reason,
            format=self.format,
            content_hash=self.content_hash,
            size_bytes=len(self.payload) if self.payload is not None else None,
            version=self.version,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage. The store version is not part of the value."""
        return {
            "record_id": self.record_id,
            "name": self.name,
            "kind": self.kind.name,
            "set_name": self.set_name,
            "encrypted": self.encrypted,
            "state": self.state.name,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "payload": b64e(self.payload) if self.payload is not None else None,
            "blob": self.blob.to_dict() if self.blob else None,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "archive_reason": self.archive_reason,
            "format": self.format.value if self.format else None,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], version: int = 0) -> "ConfigRecord":
        return cls(
            record_id=int(data["record_id"]),
            name=data["name"],
            kind=RecordKind[data["kind"]],
            set_name=data["set_name"],
            encrypted=bool(data["encrypted"]),
            state=RecordState[data["state"]],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            payload=b64d(data["payload"]) if data.get("payload") is not None else None,
            blob=EncryptedBlob.from_dict(data["blob"]) if data.get("blob") else None,
            archived_at=_dt(data.get("archived_at")),
            archive_reason=data.get("archive_reason"),
            format=ConfigFormat(data["format"]) if data.get("format") else None,
            content_hash=data.get("content_hash"),
            version=version,
        )


@dataclass
class Tombstone:
    """What remains of a purged record: no name, no payload."""
    record_id: int
    kind: RecordKind
    set_name: str
    deleted_at: datetime
    state: RecordState = field(default=RecordState.DELETED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "kind": self.kind.name,
            "set_name": self.set_name,
            "state": RecordState.DELETED.name,
            "deleted_at": self.deleted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tombstone":
        return cls(
            record_id=int(data["record_id"]),
            kind=RecordKind[data["kind"]],
            set_name=data["set_name"],
            deleted_at=datetime.fromisoformat(data["deleted_at"]),
        )
