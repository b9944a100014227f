"""
bandledger/cli/verify.py

bandledger verify — journal verification.

Checks every entry's schema, sequence, chain link and signature without
replaying it into a registry. Needs only the journal file; the signing
key is not required.

Usage:
    bandledger --journal band.jsonl verify
    bandledger --journal band.jsonl verify --format json
    bandledger --journal band.jsonl verify --signer <64-hex public key>
"""

import json
import sys
from typing import Optional

import click

from bandledger.config import RegistryConfig
from bandledger.core.exceptions import JournalError
from bandledger.core.journal import JournalVerification, load_entries, verify_entries


def _output_human(result: JournalVerification, journal: str) -> None:
    click.echo(f"Journal   {journal}")
    click.echo(f"Entries   {result.total_entries}")
    if result.signer:
        click.echo(f"Signer    {result.signer}")
    if result.head_hash:
        click.echo(f"Head      {result.head_hash}")

    if result.valid:
        click.echo("Status    VALID")
        return

    click.echo(f"Status    INVALID ({len(result.violations)} violations)")
    for v in result.violations:
        click.echo(f"  [{v.at_sequence}] {v.violation_type}: {v.detail}")


@click.command(name="verify")
@click.option(
    "--signer",
    type=str,
    default=None,
    metavar="PUBKEY_HEX",
    help="Require every entry to be signed by this public key.",
)
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.pass_obj
def verify_command(config: RegistryConfig, signer: Optional[str], fmt: str) -> None:
    """Verify the journal: schema, sequence, chain and signatures."""
    if config.journal_path is None:
        click.echo("Error: a journal is required (--journal or BANDLEDGER_JOURNAL_PATH)", err=True)
        sys.exit(2)

    journal = config.journal_path
    if not journal.exists():
        click.echo(f"Error: Journal not found: {journal}", err=True)
        sys.exit(2)

    try:
        entries = load_entries(journal)
    except JournalError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    result = verify_entries(entries, expected_signer=signer)

    if fmt == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _output_human(result, str(journal))

    sys.exit(0 if result.valid else 1)
