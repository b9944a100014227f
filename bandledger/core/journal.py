"""
bandledger/core/journal.py

Append-only registry journal.

Every successful registry mutation is written as one JournalEntry per
JSONL line. Entries are hash-chained and signed with the registry key,
so the file on disk is enough to rebuild the registry and to detect
tampering.

Journal contract — append() MUST, in this exact order:
  1. Acquire lock
  2. Build entry via JournalEntry.create(..., prev=last_entry)
  3. Sign it
  4. Append to the JSONL file
  5. Advance sequence and last_entry only after the write succeeded

Chain rule:
    prev_hash = SHA-256(JCS(prev.to_signing_dict()))
    first entry carries GENESIS_HASH ("0" * 64)
"""

import json
import logging
import os
import re
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from bandledger.core.canonical import canonical_hash, canonicalize
from bandledger.core.crypto import Ed25519KeyManager
from bandledger.core.exceptions import IntegrityError, JournalError
from bandledger.core.time import ledger_timestamp

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64


class Operation:
    """Journaled operation names. Match the registry entry points."""
    CREATE_GROUP   = "create-group"
    ADD_MEMBER     = "add-member"
    SETTLE_PAYMENT = "settle-payment"


_VALID_OPERATIONS = {
    Operation.CREATE_GROUP,
    Operation.ADD_MEMBER,
    Operation.SETTLE_PAYMENT,
}

_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


def _is_hex(value: Any, length: int) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


# ─────────────────────────────────────────────────────────────
# JournalEntry
# ─────────────────────────────────────────────────────────────

@dataclass
class JournalEntry:
    """One signed, chained journal line."""

    sequence:          int
    entry_id:          str
    operation:         str
    caller:            str
    payload:           Dict[str, Any]
    timestamp:         str
    prev_hash:         str
    signer_public_key: str
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        sequence:          int,
        operation:         str,
        caller:            str,
        payload:           Dict[str, Any],
        signer_public_key: str,
        prev:              Optional["JournalEntry"] = None,
    ) -> "JournalEntry":
        """Create an unsigned entry chained to prev. Call .sign() next."""
        if operation not in _VALID_OPERATIONS:
            raise ValueError(
                f"Invalid operation '{operation}'. "
                f"Valid: {sorted(_VALID_OPERATIONS)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(
                f"payload must be dict, got {type(payload).__name__}"
            )
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(
                f"sequence must be non-negative int, got {sequence!r}"
            )

        return cls(
            sequence=          sequence,
            entry_id=          f"jrn-{uuid.uuid4()}",
            operation=         operation,
            caller=            caller,
            payload=           payload,
            timestamp=         ledger_timestamp(),
            prev_hash=         cls.expected_prev_hash(prev),
            signer_public_key= signer_public_key,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        """
        Deserialize one JSONL line.
        Trusts persisted data; callers check validate_schema().
        Raises KeyError when a field is missing entirely.
        """
        return cls(
            sequence=          data["sequence"],
            entry_id=          data["entry_id"],
            operation=         data["operation"],
            caller=            data["caller"],
            payload=           data.get("payload", {}),
            timestamp=         data["timestamp"],
            prev_hash=         data["prev_hash"],
            signer_public_key= data["signer_public_key"],
            signature=         data.get("signature"),
        )

    def validate_schema(self) -> List[str]:
        """Return the list of schema problems. Empty list means valid."""
        errors: List[str] = []

        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not isinstance(self.entry_id, str) or not self.entry_id.startswith("jrn-"):
            errors.append(f"entry_id must start with 'jrn-', got {self.entry_id!r}")
        if self.operation not in _VALID_OPERATIONS:
            errors.append(f"unknown operation {self.operation!r}")
        if not isinstance(self.caller, str) or not self.caller:
            errors.append("caller must be a non-empty string")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")
        if not isinstance(self.timestamp, str) or not _TIMESTAMP_RE.match(self.timestamp):
            errors.append(f"timestamp {self.timestamp!r} is not YYYY-MM-DDTHH:MM:SS.mmmZ")
        if not _is_hex(self.prev_hash, 64):
            errors.append("prev_hash must be 64 hex chars")
        if not _is_hex(self.signer_public_key, 64):
            errors.append("signer_public_key must be 64 hex chars")

        return errors

    def to_signing_dict(self) -> Dict[str, Any]:
        """Every field except signature. Signed and hashed for the chain."""
        return {
            "caller":            self.caller,
            "entry_id":          self.entry_id,
            "operation":         self.operation,
            "payload":           self.payload,
            "prev_hash":         self.prev_hash,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    @staticmethod
    def expected_prev_hash(prev: Optional["JournalEntry"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    def sign(self, key_manager: Ed25519KeyManager) -> "JournalEntry":
        self.signature = key_manager.sign(canonicalize(self.to_signing_dict()))
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return Ed25519KeyManager.verify_detached(
            canonicalize(self.to_signing_dict()),
            self.signature,
            self.signer_public_key,
        )


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────

@dataclass
class JournalViolation:
    """A single problem found in a journal."""
    at_sequence:    int
    entry_id:       str
    violation_type: str   # "schema" | "sequence_gap" | "chain_break" | "invalid_signature" | "signer_mismatch"
    detail:         str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "at_sequence":    self.at_sequence,
            "entry_id":       self.entry_id,
            "violation_type": self.violation_type,
            "detail":         self.detail,
        }


@dataclass
class JournalVerification:
    total_entries: int
    signer:        Optional[str]
    head_hash:     Optional[str]
    violations:    List[JournalViolation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid":         self.valid,
            "total_entries": self.total_entries,
            "signer":        self.signer,
            "head_hash":     self.head_hash,
            "violations":    [v.to_dict() for v in self.violations],
        }


def _try_hash(entry: JournalEntry) -> Optional[str]:
    try:
        return canonical_hash(entry.to_signing_dict())
    except (ValueError, TypeError):
        return None


def _reject_constant(name: str) -> None:
    raise ValueError(f"non-finite number {name} is not allowed")


def verify_entries(
    entries:         List[JournalEntry],
    expected_signer: Optional[str] = None,
) -> JournalVerification:
    """
    Check schema, sequence, chain linkage and signatures of a loaded journal.

    All entries must be signed by one key. When expected_signer is given,
    that key must be it; otherwise the first entry's key is taken.
    """
    violations: List[JournalViolation] = []
    signer = expected_signer or (entries[0].signer_public_key if entries else None)

    # Entries JCS cannot encode have no hash and no verifiable signature
    hashes = [_try_hash(entry) for entry in entries]

    for i, entry in enumerate(entries):
        for problem in entry.validate_schema():
            violations.append(JournalViolation(i, str(entry.entry_id), "schema", problem))

        if hashes[i] is None:
            violations.append(JournalViolation(
                i, str(entry.entry_id), "schema",
                "entry is not canonical JSON (non-finite or out-of-range number)",
            ))

        if entry.sequence != i:
            violations.append(JournalViolation(
                i, str(entry.entry_id), "sequence_gap",
                f"expected sequence {i}, got {entry.sequence}",
            ))

        expected_prev = GENESIS_HASH if i == 0 else hashes[i - 1]
        if expected_prev is None or entry.prev_hash != expected_prev:
            violations.append(JournalViolation(
                i, str(entry.entry_id), "chain_break",
                "prev_hash does not match previous entry",
            ))
        if entry.signer_public_key != signer:
            violations.append(JournalViolation(
                i, str(entry.entry_id), "signer_mismatch",
                f"signed by {str(entry.signer_public_key)[:16]}..., expected {str(signer)[:16]}...",
            ))
        if hashes[i] is None or not entry.verify_signature():
            violations.append(JournalViolation(
                i, str(entry.entry_id), "invalid_signature",
                "Ed25519 signature does not verify",
            ))

    head_hash = hashes[-1] if entries else None
    return JournalVerification(
        total_entries= len(entries),
        signer=        signer,
        head_hash=     head_hash,
        violations=    violations,
    )


def load_entries(path: Path) -> List[JournalEntry]:
    """
    Read every entry from a JSONL journal.
    Blank lines are skipped. Raises JournalError on unparseable lines.
    Missing file yields an empty list.
    """
    path = Path(path)
    if not path.exists():
        return []

    entries: List[JournalEntry] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line, parse_constant=_reject_constant)
                    entries.append(JournalEntry.from_dict(data))
                except json.JSONDecodeError as exc:
                    raise JournalError(
                        f"Invalid JSON at line {line_num}",
                        {"path": str(path), "error": exc.msg},
                    ) from exc
                except (KeyError, AttributeError, TypeError, ValueError) as exc:
                    raise JournalError(
                        f"Malformed entry at line {line_num}",
                        {"path": str(path), "error": repr(exc)},
                    ) from exc
    except OSError as exc:
        raise JournalError(
            "Failed to read journal",
            {"path": str(path), "error": str(exc)},
        ) from exc

    return entries


# ─────────────────────────────────────────────────────────────
# Journal
# ─────────────────────────────────────────────────────────────

class Journal:
    """
    Signed append-only journal backed by one JSONL file.

    An existing file is loaded and verified on construction. A journal
    signed by another key, or one with any violation, refuses to open.

    Thread-safe via internal lock (single-process only).
    """

    def __init__(self, path: Path, key_manager: Ed25519KeyManager) -> None:
        self.path        = Path(path)
        self.key_manager = key_manager

        self._lock:       threading.Lock         = threading.Lock()
        self._entries:    List[JournalEntry]     = []
        self._last_entry: Optional[JournalEntry] = None

        self._restore_state()

    @property
    def next_sequence(self) -> int:
        return len(self._entries)

    def get_all_entries(self) -> List[JournalEntry]:
        with self._lock:
            return list(self._entries)

    def append(
        self,
        operation: str,
        caller:    str,
        payload:   Dict[str, Any],
    ) -> JournalEntry:
        """
        Sign and append one entry.
        Raises JournalError when the write fails; state does not advance.
        """
        with self._lock:
            entry = JournalEntry.create(
                sequence=          len(self._entries),
                operation=         operation,
                caller=            caller,
                payload=           payload,
                signer_public_key= self.key_manager.public_key_hex,
                prev=              self._last_entry,
            ).sign(self.key_manager)

            self._write(entry)

            self._entries.append(entry)
            self._last_entry = entry
            return entry

    def verify(self) -> JournalVerification:
        """Re-read the file from disk and verify it against this journal's key."""
        return verify_entries(load_entries(self.path), self.key_manager.public_key_hex)

    # ── Internal ──────────────────────────────────────────────

    def _restore_state(self) -> None:
        entries = load_entries(self.path)
        if not entries:
            return

        result = verify_entries(entries, self.key_manager.public_key_hex)
        if not result:
            first = result.violations[0]
            raise IntegrityError(
                f"Journal failed verification: {first.violation_type} at sequence {first.at_sequence}",
                {"path": str(self.path), "violations": len(result.violations)},
            )

        self._entries    = entries
        self._last_entry = entries[-1]
        logger.debug("Restored %d journal entries from %s", len(entries), self.path)

    def _write(self, entry: JournalEntry) -> None:
        """
        Append one line. On failure the file is cut back to its prior size,
        so a half-written line never precedes the next entry.
        """
        line = json.dumps(entry.to_dict()) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            offset = self.path.stat().st_size if self.path.exists() else 0
        except OSError as exc:
            raise JournalError(
                "Journal write failed",
                {"path": str(self.path), "error": str(exc)},
            ) from exc

        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as exc:
            logger.warning("Journal write failed for %s: %s", self.path, exc)
            self._truncate_to(offset)
            raise JournalError(
                "Journal write failed",
                {"path": str(self.path), "error": str(exc)},
            ) from exc

    def _truncate_to(self, offset: int) -> None:
        try:
            os.truncate(self.path, offset)
        except OSError as exc:
            logger.warning(
                "Could not roll back partial write in %s to %d bytes: %s",
                self.path, offset, exc,
            )
