"""
bandledger/__init__.py

bandledger: shared financials for bands.

A registry of groups (bands), their members, and payment settlements
between members, with an optional signed append-only journal.
"""

__version__ = "0.1.0"

from bandledger.config import RegistryConfig
from bandledger.core.crypto import Ed25519KeyManager
from bandledger.core.exceptions import (
    BandLedgerError,
    ConfigError,
    IntegrityError,
    JournalError,
    ResultError,
)
from bandledger.core.journal import Journal, JournalEntry, Operation
from bandledger.core.models import (
    Err,
    ErrorCode,
    Group,
    Ok,
    Result,
    Settlement,
)
from bandledger.registry import Registry

__all__ = [
    # Registry
    "Registry",
    "RegistryConfig",
    # Records
    "Group",
    "Settlement",
    # Results
    "Ok",
    "Err",
    "Result",
    "ErrorCode",
    # Journal
    "Journal",
    "JournalEntry",
    "Operation",
    "Ed25519KeyManager",
    # Errors
    "BandLedgerError",
    "ConfigError",
    "JournalError",
    "IntegrityError",
    "ResultError",
]
