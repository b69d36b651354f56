"""CLI for fieldseal key and configuration management."""
import base64
import json
import logging
import secrets
import sys

import click

from fieldseal.domain.encryption.manager import EncryptionManager
from fieldseal.domain.encryption.ports import KEY_SIZE
from fieldseal.errors import EncryptionError
from fieldseal.logging_hardening import setup_logging_redaction
from fieldseal.settings import EncryptionSettings


def _load_manager() -> EncryptionManager:
    return EncryptionManager(EncryptionSettings().to_config())


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool):
    """fieldseal encryption CLI."""
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING)
    setup_logging_redaction()


@cli.command("generate-key")
@click.option("--version", "version", default=None, help="Emit a JSON key map entry for this version")
@click.option("--size", default=KEY_SIZE, show_default=True, type=click.IntRange(min=KEY_SIZE),
              help="Key size in bytes")
def generate_key(version, size: int):
    """Generate a random base64 master key."""
    key = base64.b64encode(secrets.token_bytes(size)).decode("ascii")
    if version:
        click.echo(json.dumps({version: key}))
    else:
        click.echo(key)


@cli.command("validate")
def validate():
    """Validate FIELDSEAL_* encryption settings."""
    try:
        manager = _load_manager()
        manager.validate_configuration()
    except EncryptionError as e:
        click.echo(f"✗ Encryption configuration error: {e}", err=True)
        sys.exit(1)
    click.echo("✓ Encryption configuration validated")
    click.echo(f"  Algorithm: {manager.provider.algorithm}")
    click.echo(f"  Key versions: {', '.join(manager.keyring.versions)}")


@cli.command("status")
def status():
    """Print the encryption status (never key material) as JSON."""
    try:
        manager = _load_manager()
    except EncryptionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(json.dumps(manager.status(), indent=2))


if __name__ == "__main__":
    cli()
