"""
bandledger/cli/__init__.py

bandledger CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    bandledger = "bandledger.cli:cli"

Every command works against a journal-backed registry: the journal file
is replayed on start, and successful mutations are appended to it.

Exit codes:
    0  Operation succeeded / journal valid
    1  Operation returned an error result / journal has violations
    2  Usage, configuration or I/O error
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click

from bandledger.cli.operations import (
    add_member_command,
    create_group_command,
    keygen_command,
    settle_payment_command,
    show_group_command,
)
from bandledger.cli.verify import verify_command
from bandledger.config import RegistryConfig
from bandledger.core.exceptions import ConfigError


@click.group()
@click.version_option(package_name="band-shared-financials")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML registry configuration.",
)
@click.option(
    "--journal", "journal_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="JSONL journal file.",
)
@click.option(
    "--key", "key_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="PEM signing key for the journal. Defaults to <journal>.key.",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging.")
@click.pass_context
def cli(
    ctx:          click.Context,
    config_path:  Optional[str],
    journal_path: Optional[str],
    key_path:     Optional[str],
    verbose:      bool,
) -> None:
    """
    bandledger — shared financials for bands.

    \b
    Quick start:
      bandledger --journal band.jsonl create-group "Rock Stars" --caller alice
      bandledger --journal band.jsonl add-member 1 bob --caller alice
      bandledger --journal band.jsonl add-member 1 carol --caller alice
      bandledger --journal band.jsonl settle-payment 1 bob 500 --caller carol
      bandledger --journal band.jsonl verify
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if config_path:
            config = RegistryConfig.from_env(RegistryConfig.from_yaml(Path(config_path)))
        else:
            config = RegistryConfig.from_env()

        overrides = {}
        if journal_path:
            overrides["journal_path"] = Path(journal_path)
        if key_path:
            overrides["key_path"] = Path(key_path)
        config = replace(config, **overrides)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    ctx.obj = config


cli.add_command(create_group_command)
cli.add_command(add_member_command)
cli.add_command(settle_payment_command)
cli.add_command(show_group_command)
cli.add_command(verify_command)
cli.add_command(keygen_command)
