"""
bandledger exception hierarchy

Business failures of registry operations are returned as Err results,
not raised. The exceptions below cover infrastructure: configuration,
journal I/O, integrity, and unwrapping an Err.

All exceptions inherit from BandLedgerError for easy catching.
"""


class BandLedgerError(Exception):
    """Base exception for all bandledger errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(BandLedgerError):
    """Raised when registry configuration is invalid"""
    pass


class JournalError(BandLedgerError):
    """Raised when the journal cannot be read, written, or replayed"""
    pass


class IntegrityError(JournalError):
    """Raised when journal chain or signature verification fails"""
    pass


class ResultError(BandLedgerError):
    """Raised when unwrapping an Err result, or expecting the wrong variant"""
    pass
