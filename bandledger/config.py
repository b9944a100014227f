"""
bandledger/config.py

Registry configuration.

Sources, lowest to highest priority:
    1. Dataclass defaults
    2. YAML file        (RegistryConfig.from_yaml)
    3. Environment      (RegistryConfig.from_env, BANDLEDGER_* variables)

Environment variables:
    BANDLEDGER_CONFIG                   YAML file to start from
    BANDLEDGER_JOURNAL_PATH             JSONL journal file
    BANDLEDGER_KEY_PATH                 PEM signing key for the journal
    BANDLEDGER_MAX_NAME_LENGTH          int
    BANDLEDGER_CREATOR_IS_MEMBER        true/false
    BANDLEDGER_DUPLICATE_MEMBER_POLICY  idempotent | reject
    BANDLEDGER_SETTLEMENT_SCOPE         global | group
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from bandledger.core.exceptions import ConfigError
from bandledger.core.models import DEFAULT_MAX_NAME_LENGTH, MAX_UINT128

logger = logging.getLogger(__name__)


DUPLICATE_IDEMPOTENT = "idempotent"
DUPLICATE_REJECT     = "reject"

SCOPE_GLOBAL = "global"
SCOPE_GROUP  = "group"

_TRUE_VALUES  = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


@dataclass(frozen=True)
class RegistryConfig:
    """
    Policy knobs for a Registry.

    creator_is_member:       add the creator to the member set on create-group
    duplicate_member_policy: "idempotent" (Ok(True) again) or "reject" (AlreadyMember)
    settlement_scope:        "global" counter or one counter per "group"
    journal_path:            persist mutations to this JSONL file when set
    key_path:                PEM key for signing the journal; defaults next to it
    """

    max_name_length:         int            = DEFAULT_MAX_NAME_LENGTH
    max_amount:              int            = MAX_UINT128
    creator_is_member:       bool           = False
    duplicate_member_policy: str            = DUPLICATE_IDEMPOTENT
    settlement_scope:        str            = SCOPE_GLOBAL
    journal_path:            Optional[Path] = None
    key_path:                Optional[Path] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if isinstance(self.max_name_length, bool) or not isinstance(self.max_name_length, int) \
                or self.max_name_length < 1:
            raise ConfigError(
                "max_name_length must be a positive int",
                {"max_name_length": self.max_name_length},
            )
        if isinstance(self.max_amount, bool) or not isinstance(self.max_amount, int) \
                or self.max_amount < 1:
            raise ConfigError(
                "max_amount must be a positive int",
                {"max_amount": self.max_amount},
            )
        if not isinstance(self.creator_is_member, bool):
            raise ConfigError(
                "creator_is_member must be a bool",
                {"creator_is_member": self.creator_is_member},
            )
        if self.duplicate_member_policy not in (DUPLICATE_IDEMPOTENT, DUPLICATE_REJECT):
            raise ConfigError(
                f"duplicate_member_policy must be '{DUPLICATE_IDEMPOTENT}' or '{DUPLICATE_REJECT}'",
                {"duplicate_member_policy": self.duplicate_member_policy},
            )
        if self.settlement_scope not in (SCOPE_GLOBAL, SCOPE_GROUP):
            raise ConfigError(
                f"settlement_scope must be '{SCOPE_GLOBAL}' or '{SCOPE_GROUP}'",
                {"settlement_scope": self.settlement_scope},
            )

    @property
    def resolved_key_path(self) -> Optional[Path]:
        """key_path, or <journal>.key beside the journal when only a journal is set."""
        if self.key_path is not None:
            return Path(self.key_path)
        if self.journal_path is not None:
            return Path(self.journal_path).with_suffix(".key")
        return None

    # ── Loading ───────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryConfig":
        known   = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError("Unknown configuration keys", {"keys": unknown})

        values = dict(data)
        for key in ("journal_path", "key_path"):
            if values.get(key) is not None:
                values[key] = Path(values[key])
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> "RegistryConfig":
        """Load configuration from a YAML mapping. An empty file yields defaults."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError("Cannot read config file", {"path": str(path)}) from exc
        except yaml.YAMLError as exc:
            raise ConfigError("Invalid YAML in config file", {"path": str(path)}) from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(
                "Config file must contain a mapping",
                {"path": str(path), "type": type(data).__name__},
            )

        config = cls.from_dict(data)
        logger.info("Loaded registry config from %s", path)
        return config

    @classmethod
    def from_env(cls, base: Optional["RegistryConfig"] = None) -> "RegistryConfig":
        """
        Overlay BANDLEDGER_* environment variables on base.
        base defaults to BANDLEDGER_CONFIG if set, else dataclass defaults.
        """
        if base is None:
            config_file = os.getenv("BANDLEDGER_CONFIG")
            base = cls.from_yaml(Path(config_file)) if config_file else cls()

        overrides: Dict[str, Any] = {}

        journal_path = os.getenv("BANDLEDGER_JOURNAL_PATH")
        if journal_path:
            overrides["journal_path"] = Path(journal_path)

        key_path = os.getenv("BANDLEDGER_KEY_PATH")
        if key_path:
            overrides["key_path"] = Path(key_path)

        max_name_length = os.getenv("BANDLEDGER_MAX_NAME_LENGTH")
        if max_name_length:
            try:
                overrides["max_name_length"] = int(max_name_length)
            except ValueError as exc:
                raise ConfigError(
                    "BANDLEDGER_MAX_NAME_LENGTH must be an integer",
                    {"value": max_name_length},
                ) from exc

        creator_is_member = os.getenv("BANDLEDGER_CREATOR_IS_MEMBER")
        if creator_is_member:
            overrides["creator_is_member"] = _parse_bool(
                "BANDLEDGER_CREATOR_IS_MEMBER", creator_is_member
            )

        policy = os.getenv("BANDLEDGER_DUPLICATE_MEMBER_POLICY")
        if policy:
            overrides["duplicate_member_policy"] = policy.lower()

        scope = os.getenv("BANDLEDGER_SETTLEMENT_SCOPE")
        if scope:
            overrides["settlement_scope"] = scope.lower()

        return replace(base, **overrides)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean", {"value": value})
