"""
Band registry: groups, members and settlements between members.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from bandledger.config import (
    DUPLICATE_REJECT,
    SCOPE_GROUP,
    RegistryConfig,
)
from bandledger.core.crypto import Ed25519KeyManager
from bandledger.core.exceptions import ConfigError, JournalError
from bandledger.core.journal import (
    Journal,
    JournalEntry,
    JournalVerification,
    Operation,
)
from bandledger.core.models import (
    Err,
    ErrorCode,
    Group,
    Ok,
    Result,
    Settlement,
    validate_amount,
    validate_group_name,
    validate_identity,
)
from bandledger.core.time import ledger_timestamp

logger = logging.getLogger(__name__)


def _as_group_id(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class Registry:
    """
    Owns all group, membership and settlement state.

    Each mutating operation runs under one lock, so ids follow lock
    acquisition order with no gaps. When a Journal is attached, every
    successful mutation is appended before state changes; a journal write
    failure raises JournalError and leaves state untouched.

    Operations return Ok/Err and never raise for business failures.
    """

    def __init__(
        self,
        config:  Optional[RegistryConfig] = None,
        journal: Optional[Journal] = None,
    ) -> None:
        self.config = config or RegistryConfig()

        self._lock = threading.Lock()

        self._groups:        Dict[int, Group] = {}
        self._next_group_id: int              = 1

        # Keyed by (group_id, settlement_id): ids repeat across groups under group scope
        self._settlements:          Dict[Tuple[int, int], Settlement] = {}
        self._group_settlements:    Dict[int, List[Settlement]]       = {}
        self._next_settlement_id:   int                               = 1
        self._next_group_settlement: Dict[int, int]                   = {}

        self._journal = journal
        if journal is not None:
            self._replay(journal.get_all_entries())

    @classmethod
    def open(cls, config: RegistryConfig) -> "Registry":
        """
        Build a registry from config, attaching a journal when journal_path is set.

        The signing key is loaded from config.resolved_key_path, or generated
        and saved there on first use.
        """
        if config.journal_path is None:
            return cls(config)

        key_path = config.resolved_key_path
        if key_path.exists():
            try:
                key_manager = Ed25519KeyManager.from_file(key_path)
            except ValueError as exc:
                raise ConfigError("Cannot load journal key", {"path": str(key_path)}) from exc
        else:
            key_manager = Ed25519KeyManager.generate()
            key_manager.save(key_path)
            logger.info("Generated journal signing key at %s", key_path)

        return cls(config, Journal(Path(config.journal_path), key_manager))

    @property
    def journal(self) -> Optional[Journal]:
        return self._journal

    # ── Operations ────────────────────────────────────────────

    def create_group(self, caller: str, name: str) -> Result:
        """
        Create a group named name, owned by caller.

        Ok(group_id) — ids start at 1 and increase by one per group.
        Err(InvalidName) — empty, non-ASCII, or longer than max_name_length bytes.
        Err(InvalidIdentity) — malformed caller.
        """
        with self._lock:
            return self._create_group(caller, name, self.config.creator_is_member)

    def add_member(self, caller: str, group_id: int, member: str) -> Result:
        """
        Add member to group_id. Only the group's creator may add members.

        Ok(True) — added, or already present under the idempotent policy.
        Err(GroupNotFound | Unauthorized | InvalidIdentity | AlreadyMember)
        """
        with self._lock:
            return self._add_member(caller, group_id, member)

    def settle_payment(
        self,
        caller:    str,
        group_id:  int,
        recipient: str,
        amount:    int,
    ) -> Result:
        """
        Record a transfer of amount from caller to recipient within group_id.

        Any member may settle with any other member.

        Ok(settlement_id) — first settlement is 1, global or per group by config.
        Err(GroupNotFound | InvalidAmount | Unauthorized | RecipientNotMember | SelfSettlement)
        """
        with self._lock:
            return self._settle_payment(caller, group_id, recipient, amount)

    # ── Queries ───────────────────────────────────────────────

    def get_group(self, group_id: int) -> Optional[Group]:
        """Snapshot of the group, or None."""
        with self._lock:
            group = self._lookup(group_id)
            if group is None:
                return None
            return Group(
                group_id=   group.group_id,
                name=       group.name,
                creator=    group.creator,
                created_at= group.created_at,
                members=    dict(group.members),
            )

    def get_members(self, group_id: int) -> Optional[List[str]]:
        with self._lock:
            group = self._lookup(group_id)
            return group.member_list() if group is not None else None

    def is_member(self, group_id: int, identity: str) -> bool:
        with self._lock:
            group = self._lookup(group_id)
            return group is not None and group.has_member(identity)

    def get_settlement(
        self,
        settlement_id: int,
        group_id:      Optional[int] = None,
    ) -> Optional[Settlement]:
        """
        Look up a settlement by id.

        Under group scope ids repeat across groups, so an unqualified id is
        ambiguous and returns None; pass group_id.
        """
        with self._lock:
            if group_id is None:
                if self.config.settlement_scope == SCOPE_GROUP:
                    return None
                for (_, sid), settlement in self._settlements.items():
                    if sid == settlement_id:
                        return settlement
                return None
            return self._settlements.get((group_id, settlement_id))

    def get_group_settlements(self, group_id: int) -> Optional[List[Settlement]]:
        with self._lock:
            if self._lookup(group_id) is None:
                return None
            return list(self._group_settlements.get(group_id, []))

    def get_balances(self, group_id: int) -> Optional[Dict[str, int]]:
        """
        Net position per member from recorded settlements.

        A payer's balance rises by amount and the recipient's falls, so a
        positive balance is what the group owes back to that member.
        """
        with self._lock:
            group = self._lookup(group_id)
            if group is None:
                return None
            balances = {member: 0 for member in group.members}
            for s in self._group_settlements.get(group.group_id, []):
                balances[s.payer]     = balances.get(s.payer, 0) + s.amount
                balances[s.recipient] = balances.get(s.recipient, 0) - s.amount
            return balances

    @property
    def group_count(self) -> int:
        with self._lock:
            return len(self._groups)

    @property
    def settlement_count(self) -> int:
        with self._lock:
            return len(self._settlements)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "groups":           len(self._groups),
                "members":          sum(len(g.members) for g in self._groups.values()),
                "settlements":      len(self._settlements),
                "next_group_id":    self._next_group_id,
                "settlement_scope": self.config.settlement_scope,
                "journal":          str(self._journal.path) if self._journal else None,
            }

    def verify_journal(self) -> Optional[JournalVerification]:
        if self._journal is None:
            return None
        return self._journal.verify()

    # ── Internal: operation bodies (lock held) ────────────────

    def _create_group(
        self,
        caller:            str,
        name:              str,
        creator_is_member: bool,
        replay_timestamp:  Optional[str] = None,
    ) -> Result:
        reason = validate_identity(caller)
        if reason:
            return self._reject(Operation.CREATE_GROUP, ErrorCode.INVALID_IDENTITY, reason)

        reason = validate_group_name(name, self.config.max_name_length)
        if reason:
            return self._reject(Operation.CREATE_GROUP, ErrorCode.INVALID_NAME, reason)

        group_id  = self._next_group_id
        timestamp = self._record(
            Operation.CREATE_GROUP,
            caller,
            {
                "group_id":          group_id,
                "name":              name,
                "creator_is_member": creator_is_member,
            },
            replay_timestamp,
        )

        group = Group(group_id=group_id, name=name, creator=caller, created_at=timestamp)
        if creator_is_member:
            group.members[caller] = timestamp

        self._groups[group_id] = group
        self._next_group_id   += 1

        logger.debug("Created group %d %r for %s", group_id, name, caller)
        return Ok(group_id)

    def _add_member(
        self,
        caller:           str,
        group_id:         int,
        member:           str,
        replay_timestamp: Optional[str] = None,
    ) -> Result:
        group = self._lookup(group_id)
        if group is None:
            return self._reject(
                Operation.ADD_MEMBER, ErrorCode.GROUP_NOT_FOUND, f"no group {group_id!r}"
            )

        if caller != group.creator:
            return self._reject(
                Operation.ADD_MEMBER, ErrorCode.UNAUTHORIZED,
                f"{caller} is not the creator of group {group.group_id}",
            )

        reason = validate_identity(member)
        if reason:
            return self._reject(Operation.ADD_MEMBER, ErrorCode.INVALID_IDENTITY, reason)

        if group.has_member(member):
            if self.config.duplicate_member_policy == DUPLICATE_REJECT:
                return self._reject(
                    Operation.ADD_MEMBER, ErrorCode.ALREADY_MEMBER,
                    f"{member} is already in group {group.group_id}",
                )
            return Ok(True)

        timestamp = self._record(
            Operation.ADD_MEMBER,
            caller,
            {"group_id": group.group_id, "member": member},
            replay_timestamp,
        )
        group.members[member] = timestamp

        logger.debug("Added %s to group %d", member, group.group_id)
        return Ok(True)

    def _settle_payment(
        self,
        caller:           str,
        group_id:         int,
        recipient:        str,
        amount:           int,
        replay_timestamp: Optional[str] = None,
    ) -> Result:
        group = self._lookup(group_id)
        if group is None:
            return self._reject(
                Operation.SETTLE_PAYMENT, ErrorCode.GROUP_NOT_FOUND, f"no group {group_id!r}"
            )

        reason = validate_amount(amount, self.config.max_amount)
        if reason:
            return self._reject(Operation.SETTLE_PAYMENT, ErrorCode.INVALID_AMOUNT, reason)

        if not group.has_member(caller):
            return self._reject(
                Operation.SETTLE_PAYMENT, ErrorCode.UNAUTHORIZED,
                f"{caller} is not a member of group {group.group_id}",
            )

        if not group.has_member(recipient):
            return self._reject(
                Operation.SETTLE_PAYMENT, ErrorCode.RECIPIENT_NOT_MEMBER,
                f"{recipient} is not a member of group {group.group_id}",
            )

        if caller == recipient:
            return self._reject(
                Operation.SETTLE_PAYMENT, ErrorCode.SELF_SETTLEMENT,
                "payer and recipient are the same identity",
            )

        settlement_id = self._peek_settlement_id(group.group_id)
        timestamp     = self._record(
            Operation.SETTLE_PAYMENT,
            caller,
            {
                "settlement_id": settlement_id,
                "group_id":      group.group_id,
                "recipient":     recipient,
                # decimal string: JCS numbers are IEEE doubles
                "amount":        str(amount),
            },
            replay_timestamp,
        )

        settlement = Settlement(
            settlement_id= settlement_id,
            group_id=      group.group_id,
            payer=         caller,
            recipient=     recipient,
            amount=        amount,
            created_at=    timestamp,
        )
        self._settlements[(group.group_id, settlement_id)] = settlement
        self._group_settlements.setdefault(group.group_id, []).append(settlement)
        if self.config.settlement_scope == SCOPE_GROUP:
            self._next_group_settlement[group.group_id] = settlement_id + 1
        else:
            self._next_settlement_id = settlement_id + 1

        logger.debug(
            "Settlement %d in group %d: %s -> %s (%d)",
            settlement_id, group.group_id, caller, recipient, amount,
        )
        return Ok(settlement_id)

    # ── Internal: helpers ─────────────────────────────────────

    def _lookup(self, group_id: Any) -> Optional[Group]:
        gid = _as_group_id(group_id)
        return self._groups.get(gid) if gid is not None else None

    def _peek_settlement_id(self, group_id: int) -> int:
        if self.config.settlement_scope == SCOPE_GROUP:
            return self._next_group_settlement.get(group_id, 1)
        return self._next_settlement_id

    def _record(
        self,
        operation:        str,
        caller:           str,
        payload:          Dict[str, Any],
        replay_timestamp: Optional[str],
    ) -> str:
        """Journal the mutation (unless replaying) and return its timestamp."""
        if replay_timestamp is not None:
            return replay_timestamp
        if self._journal is not None:
            return self._journal.append(operation, caller, payload).timestamp
        return ledger_timestamp()

    @staticmethod
    def _reject(operation: str, code: ErrorCode, message: str) -> Err:
        logger.info("%s rejected: %s (%s)", operation, code.value, message)
        return Err(code, message)

    # ── Internal: journal replay ──────────────────────────────

    def _replay(self, entries: List[JournalEntry]) -> None:
        with self._lock:
            for entry in entries:
                self._apply_entry(entry)
        if entries:
            logger.info("Replayed %d journal entries", len(entries))

    def _apply_entry(self, entry: JournalEntry) -> None:
        """Re-run one journaled mutation; any divergence is a JournalError."""
        payload = entry.payload
        try:
            if entry.operation == Operation.CREATE_GROUP:
                expected = payload["group_id"]
                result   = self._create_group(
                    entry.caller,
                    payload["name"],
                    bool(payload.get("creator_is_member", False)),
                    replay_timestamp=entry.timestamp,
                )
            elif entry.operation == Operation.ADD_MEMBER:
                expected = True
                group    = self._lookup(payload["group_id"])
                if group is not None and group.has_member(payload["member"]):
                    raise JournalError(
                        "Journal adds an existing member",
                        {"sequence": entry.sequence, "member": payload["member"]},
                    )
                result = self._add_member(
                    entry.caller,
                    payload["group_id"],
                    payload["member"],
                    replay_timestamp=entry.timestamp,
                )
            elif entry.operation == Operation.SETTLE_PAYMENT:
                expected = payload["settlement_id"]
                result   = self._settle_payment(
                    entry.caller,
                    payload["group_id"],
                    payload["recipient"],
                    int(payload["amount"]),
                    replay_timestamp=entry.timestamp,
                )
            else:
                raise JournalError(
                    "Unknown journal operation",
                    {"sequence": entry.sequence, "operation": entry.operation},
                )
        except (KeyError, TypeError, ValueError) as exc:
            raise JournalError(
                "Malformed journal payload",
                {"sequence": entry.sequence, "error": repr(exc)},
            ) from exc

        if not result:
            raise JournalError(
                "Journal entry does not replay",
                {"sequence": entry.sequence, "error": result.code.value},
            )
        if result.value != expected:
            raise JournalError(
                "Journal entry replays to a different id",
                {"sequence": entry.sequence, "expected": expected, "got": result.value},
            )
