"""
ParamGuard - Configuration Archive & Retention

This package provides the archive core of ParamGuard:
- Record lifecycle (create, archive, restore, purge) with optimistic concurrency
- Password-based authenticated encryption of record payloads
- Retention windows and idempotent purge sweeps
"""

__version__ = "0.1.0"
__author__ = "ParamGuard Contributors"
