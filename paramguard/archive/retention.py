"""
ParamGuard Retention Policy

Pure functions deciding when an archived record may be purged.
The current time is always passed in; nothing here reads a clock.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict


DEFAULT_RETENTION_PERIOD = timedelta(days=30)


def is_eligible_for_purge(
    archived_at: datetime,
    retention_period: timedelta,
    now: datetime,
) -> bool:
    """True once ``retention_period`` has fully elapsed (inclusive boundary)."""
    return (now - archived_at) >= retention_period


@dataclass
class RetentionSettings:
    """Store-wide retention configuration."""
    retention_period: timedelta = DEFAULT_RETENTION_PERIOD
    auto_remove: bool = False

    def __post_init__(self):
        if not isinstance(self.retention_period, timedelta):
            raise TypeError("retention_period must be a timedelta")
        if self.retention_period < timedelta(0):
            raise ValueError("retention_period must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retention_seconds": self.retention_period.total_seconds(),
            "auto_remove": self.auto_remove,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetentionSettings":
        return cls(
            retention_period=timedelta(seconds=float(data["retention_seconds"])),
            auto_remove=bool(data.get("auto_remove", False)),
        )


@dataclass
class RetentionInfo:
    """Where an archived record stands in its retention window."""
    archived_at: datetime
    retention_period: timedelta
    eligible_at: datetime
    time_remaining: timedelta
    can_delete: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "archived_at": self.archived_at.isoformat(),
            "retention_seconds": int(self.retention_period.total_seconds()),
            "eligible_at": self.eligible_at.isoformat(),
            "time_remaining_seconds": int(self.time_remaining.total_seconds()),
            "can_delete": self.can_delete,
        }


def retention_info(
    archived_at: datetime,
    retention_period: timedelta,
    now: datetime,
) -> RetentionInfo:
    eligible_at = archived_at + retention_period
    remaining = max(eligible_at - now, timedelta(0))
    return RetentionInfo(
        archived_at=archived_at,
        retention_period=retention_period,
        eligible_at=eligible_at,
        time_remaining=remaining,
        can_delete=is_eligible_for_purge(archived_at, retention_period, now),
    )
