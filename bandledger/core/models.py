"""
bandledger/core/models.py

Registry data model.

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Results
    Every registry operation returns Ok(value) or Err(code, message).
    Business failures are never raised. Err carries an ErrorCode whose
    .number is the stable numeric constant used on the wire.

CONTRACT 2 — Ids
    Group ids and settlement ids start at 1 and never skip.

CONTRACT 3 — Identity
    An identity is an opaque, non-empty string without whitespace.
    The registry never interprets it beyond equality.

CONTRACT 4 — Group names
    ASCII only, 1..max_name_length bytes (default 32).
═══════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bandledger.core.exceptions import ResultError


DEFAULT_MAX_NAME_LENGTH = 32
MAX_UINT128             = 2 ** 128 - 1
_MAX_IDENTITY_LENGTH    = 256


# ─────────────────────────────────────────────────────────────
# Error codes
# ─────────────────────────────────────────────────────────────

class ErrorCode(str, Enum):
    """Categorized failure of a registry operation."""

    GROUP_NOT_FOUND      = "GroupNotFound"
    UNAUTHORIZED         = "Unauthorized"
    ALREADY_MEMBER       = "AlreadyMember"
    RECIPIENT_NOT_MEMBER = "RecipientNotMember"
    INVALID_AMOUNT       = "InvalidAmount"
    INVALID_NAME         = "InvalidName"
    INVALID_IDENTITY     = "InvalidIdentity"
    SELF_SETTLEMENT      = "SelfSettlement"

    @property
    def number(self) -> int:
        return _ERROR_NUMBERS[self]


_ERROR_NUMBERS: Dict[ErrorCode, int] = {
    ErrorCode.GROUP_NOT_FOUND:      101,
    ErrorCode.UNAUTHORIZED:         102,
    ErrorCode.ALREADY_MEMBER:       103,
    ErrorCode.RECIPIENT_NOT_MEMBER: 104,
    ErrorCode.INVALID_AMOUNT:       105,
    ErrorCode.INVALID_NAME:         106,
    ErrorCode.INVALID_IDENTITY:     107,
    ErrorCode.SELF_SETTLEMENT:      108,
}


# ─────────────────────────────────────────────────────────────
# Result
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Ok:
    """Successful operation result."""
    value: Any

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> Any:
        return self.value

    def expect_ok(self) -> Any:
        return self.value

    def expect_err(self) -> "ErrorCode":
        raise ResultError(
            "Expected Err, got Ok",
            {"value": self.value},
        )

    def __bool__(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.value}


@dataclass(frozen=True)
class Err:
    """
    Failed operation result.

    bool(err) is False so callers can write `if result:`.
    """
    code:    ErrorCode
    message: str = ""

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise ResultError(
            self.message or self.code.value,
            {"code": self.code.value, "number": self.code.number},
        )

    def expect_ok(self) -> Any:
        raise ResultError(
            f"Expected Ok, got Err({self.code.value})",
            {"message": self.message},
        )

    def expect_err(self) -> ErrorCode:
        return self.code

    def __bool__(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "err":     self.code.value,
            "number":  self.code.number,
            "message": self.message,
        }


Result = Union[Ok, Err]


# ─────────────────────────────────────────────────────────────
# Validation helpers
# ─────────────────────────────────────────────────────────────

def validate_identity(identity: Any) -> Optional[str]:
    """Return a reason string if identity is malformed, else None."""
    if not isinstance(identity, str):
        return f"identity must be str, got {type(identity).__name__}"
    if not identity:
        return "identity must be non-empty"
    if len(identity) > _MAX_IDENTITY_LENGTH:
        return f"identity longer than {_MAX_IDENTITY_LENGTH} characters"
    if any(c.isspace() for c in identity):
        return f"identity must not contain whitespace: {identity!r}"
    return None


def validate_group_name(name: Any, max_length: int = DEFAULT_MAX_NAME_LENGTH) -> Optional[str]:
    """Return a reason string if name is not a valid group name, else None."""
    if not isinstance(name, str):
        return f"name must be str, got {type(name).__name__}"
    if not name:
        return "name must be non-empty"
    if not name.isascii():
        return f"name must be ASCII: {name!r}"
    if len(name.encode("ascii")) > max_length:
        return f"name longer than {max_length} bytes"
    return None


def validate_amount(amount: Any, max_amount: int = MAX_UINT128) -> Optional[str]:
    """Return a reason string if amount is not a positive unsigned integer."""
    # bool is an int subclass; True must not settle as 1
    if isinstance(amount, bool) or not isinstance(amount, int):
        return f"amount must be int, got {type(amount).__name__}"
    if amount <= 0:
        return f"amount must be positive, got {amount}"
    if amount > max_amount:
        return f"amount exceeds maximum {max_amount}"
    return None


# ─────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────

@dataclass
class Group:
    """
    A band: a named set of members sharing a settlement context.

    members maps identity → joined_at timestamp, in join order.
    """
    group_id:   int
    name:       str
    creator:    str
    created_at: str
    members:    Dict[str, str] = field(default_factory=dict)

    def has_member(self, identity: str) -> bool:
        return identity in self.members

    def member_list(self) -> List[str]:
        return list(self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id":   self.group_id,
            "name":       self.name,
            "creator":    self.creator,
            "created_at": self.created_at,
            "members":    [
                {"identity": m, "joined_at": ts} for m, ts in self.members.items()
            ],
        }


@dataclass(frozen=True)
class Settlement:
    """A recorded transfer of amount from payer to recipient within a group."""
    settlement_id: int
    group_id:      int
    payer:         str
    recipient:     str
    amount:        int
    created_at:    str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settlement_id": self.settlement_id,
            "group_id":      self.group_id,
            "payer":         self.payer,
            "recipient":     self.recipient,
            "amount":        self.amount,
            "created_at":    self.created_at,
        }
