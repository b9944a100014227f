"""
bandledger/cli/operations.py

Registry entry points as CLI commands.

    bandledger create-group NAME --caller ID
    bandledger add-member GROUP_ID MEMBER --caller ID
    bandledger settle-payment GROUP_ID RECIPIENT AMOUNT --caller ID
    bandledger show-group GROUP_ID
    bandledger keygen PATH
"""

import json
import sys
from pathlib import Path

import click

from bandledger.config import RegistryConfig
from bandledger.core.crypto import Ed25519KeyManager
from bandledger.core.exceptions import BandLedgerError
from bandledger.core.models import Err, ErrorCode, Result
from bandledger.registry import Registry


_format_option = click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format.",
)

_caller_option = click.option(
    "--caller",
    required=True,
    metavar="IDENTITY",
    help="Identity performing the call (the transaction sender).",
)


def _open_registry(config: RegistryConfig) -> Registry:
    if config.journal_path is None:
        click.echo("Error: a journal is required (--journal or BANDLEDGER_JOURNAL_PATH)", err=True)
        sys.exit(2)
    try:
        return Registry.open(config)
    except BandLedgerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


def _emit_result(result: Result, fmt: str) -> None:
    """Print result and exit 0 for Ok, 1 for Err."""
    if fmt == "json":
        click.echo(json.dumps(result.to_dict()))
    elif result:
        value = result.value
        click.echo("true" if value is True else str(value))
    else:
        click.echo(
            f"Error: {result.code.value} (u{result.code.number}): {result.message}",
            err=True,
        )
    sys.exit(0 if result else 1)


def _run(operation, fmt: str) -> None:
    try:
        result = operation()
    except BandLedgerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    _emit_result(result, fmt)


@click.command(name="create-group")
@click.argument("name")
@_caller_option
@_format_option
@click.pass_obj
def create_group_command(config: RegistryConfig, name: str, caller: str, fmt: str) -> None:
    """Create a group called NAME owned by --caller. Prints the group id."""
    registry = _open_registry(config)
    _run(lambda: registry.create_group(caller, name), fmt)


@click.command(name="add-member")
@click.argument("group_id", type=int)
@click.argument("member")
@_caller_option
@_format_option
@click.pass_obj
def add_member_command(
    config: RegistryConfig, group_id: int, member: str, caller: str, fmt: str,
) -> None:
    """Add MEMBER to GROUP_ID. Only the group's creator may call this."""
    registry = _open_registry(config)
    _run(lambda: registry.add_member(caller, group_id, member), fmt)


@click.command(name="settle-payment")
@click.argument("group_id", type=int)
@click.argument("recipient")
@click.argument("amount", type=int)
@_caller_option
@_format_option
@click.pass_obj
def settle_payment_command(
    config: RegistryConfig,
    group_id: int,
    recipient: str,
    amount: int,
    caller: str,
    fmt: str,
) -> None:
    """Record a payment of AMOUNT from --caller to RECIPIENT in GROUP_ID."""
    registry = _open_registry(config)
    _run(lambda: registry.settle_payment(caller, group_id, recipient, amount), fmt)


@click.command(name="show-group")
@click.argument("group_id", type=int)
@_format_option
@click.pass_obj
def show_group_command(config: RegistryConfig, group_id: int, fmt: str) -> None:
    """Show a group's members, settlements and net balances."""
    registry = _open_registry(config)
    group    = registry.get_group(group_id)
    if group is None:
        _emit_result(Err(ErrorCode.GROUP_NOT_FOUND, f"no group {group_id}"), fmt)

    settlements = registry.get_group_settlements(group_id)
    balances    = registry.get_balances(group_id)

    if fmt == "json":
        data = group.to_dict()
        data["settlements"] = [s.to_dict() for s in settlements]
        data["balances"]    = balances
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"Group {group.group_id}: {group.name}")
    click.echo(f"  creator     {group.creator}")
    click.echo(f"  created_at  {group.created_at}")
    click.echo(f"  members     {len(group.members)}")
    for member in group.member_list():
        click.echo(f"    {member:<40} {balances.get(member, 0):>+12}")
    click.echo(f"  settlements {len(settlements)}")
    for s in settlements:
        click.echo(f"    #{s.settlement_id:<5} {s.payer} -> {s.recipient}  {s.amount}")


@click.command(name="keygen")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key.")
def keygen_command(path: str, force: bool) -> None:
    """Generate a journal signing key at PATH and print its public key."""
    key_path = Path(path)
    if key_path.exists() and not force:
        click.echo(f"Error: {key_path} exists (use --force to overwrite)", err=True)
        sys.exit(2)
    key = Ed25519KeyManager.generate()
    try:
        key.save(key_path)
    except RuntimeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    click.echo(key.public_key_hex)
