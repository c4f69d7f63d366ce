"""
ParamGuard Unlocked Session

Holds the store password for the duration of a ``with`` block so a caller
can perform several encrypted operations without re-entering it. The
password is verified on entry and dropped on exit.
"""

import logging
from typing import Optional

from .exceptions import AuthenticationFailedError
from .models import ConfigFormat, RecordKind, RecordSummary


logger = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    """Session used outside its ``with`` block."""


class UnlockedSession:
    def __init__(self, engine, password: str):
        self._engine = engine
        self._password: Optional[str] = password
        self._open = False

    def __enter__(self) -> "UnlockedSession":
        if self._engine.has_password() and not self._engine.verify_password(self._password):
            self._password = None
            logger.warning("Authentication failed opening session")
            raise AuthenticationFailedError()
        self._open = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._password = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def _secret(self) -> str:
        if not self._open or self._password is None:
            raise SessionClosedError("Session is closed")
        return self._password

    def read(self, record_id: int) -> bytes:
        return self._engine.read(record_id, password=self._secret())

    def create(
        self,
        name: str,
        set_name: str,
        kind: RecordKind,
        payload,
        format: Optional[ConfigFormat] = None,
    ) -> int:
        """Create an encrypted record under the session password."""
        return self._engine.create(
            name,
            set_name,
            kind,
            payload,
            encrypt=True,
            password=self._secret(),
            format=format,
        )

    def update(self, record_id: int, payload) -> RecordSummary:
        return self._engine.update(record_id, payload, password=self._secret())
