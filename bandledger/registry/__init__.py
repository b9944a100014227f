"""
bandledger Registry

Owns bands (groups), their members, and settlements between members.

Entry points:
- create_group(caller, name)                          → Ok(group_id)
- add_member(caller, group_id, member)                → Ok(True)
- settle_payment(caller, group_id, recipient, amount) → Ok(settlement_id)

Failures come back as Err(ErrorCode, message), never as exceptions.
"""

from bandledger.registry.registry import Registry

__all__ = ["Registry"]
