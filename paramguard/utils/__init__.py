"""
ParamGuard Utilities

Common utility modules for ParamGuard.
"""

from .redaction import (
    RedactingFilter,
    SensitiveDataRedactor,
    configure_logging,
)

__all__ = [
    "SensitiveDataRedactor",
    "RedactingFilter",
    "configure_logging",
]
