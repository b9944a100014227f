"""
bandledger/core/time.py

Single source of timestamps for records and journal entries.

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)
"""

from datetime import datetime, timezone


def ledger_timestamp() -> str:
    """
    Return current UTC time in journal wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
