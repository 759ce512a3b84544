"""supa-dynamic CLI Entry Point.

Command-line access to retrying HTTP dispatch and the secret vault.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import structlog
import typer

from supadynamic.core.config import ConfigurationError, get_settings
from supadynamic.core.exceptions import (
    DecryptionError,
    InvalidArgument,
    PermissionDenied,
    RetryExhausted,
    SecretAlreadyExists,
)
from supadynamic.core.log_config import configure_logging
from supadynamic.http.dispatcher import RetryingDispatcher, dispatch as dispatch_request
from supadynamic.vault.accessor import Identity, SecretAccessor
from supadynamic.vault.store import SecretStore

configure_logging()
log = structlog.get_logger()

EXIT_INVALID_ARGUMENT = 2
EXIT_PERMISSION_DENIED = 3

# Main app
app = typer.Typer(
    name="supa-dynamic",
    help="supa-dynamic - retrying HTTP dispatch and secret vault",
    no_args_is_help=True,
)

# Secret subcommand group
secret_app = typer.Typer(help="Secret vault commands", no_args_is_help=True)
app.add_typer(secret_app, name="secret")


def load_config_callback(config: Optional[Path]) -> Optional[Path]:
    """Load configuration file if provided, then configure logging."""
    if config:
        if not config.exists():
            typer.echo(f"Error: Config file '{config}' not found", err=True)
            raise typer.Exit(code=1)

        try:
            get_settings(force_reload=True, system_config_path=config)
        except ConfigurationError as e:
            typer.echo(f"Error loading config: {e}", err=True)
            raise typer.Exit(code=1)

    configure_logging(get_settings().logging)
    if config:
        log.info("config_loaded", path=str(config))
    return config


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c",
        callback=load_config_callback,
        is_eager=True,
        help="Path to configuration file",
    ),
) -> None:
    """supa-dynamic CLI."""
    pass


def parse_pairs(pairs: List[str], option: str) -> dict[str, str]:
    """Parse repeated ``KEY=VALUE`` options into a dict.

    Raises:
        typer.BadParameter: If an entry has no ``=``.
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint=option)
        result[key.strip()] = value
    return result


def _open_store() -> SecretStore:
    try:
        return SecretStore.from_settings(get_settings())
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


class _DeferredStore:
    """Opens the configured vault on first lookup, after authorization."""

    def get_decrypted(self, name: str) -> Optional[str]:
        return _open_store().get_decrypted(name)


@app.command("dispatch")
def dispatch_command(
    url: str = typer.Argument(..., help="Target URL"),
    method: Optional[str] = typer.Option(None, "--method", "-X", help="HTTP method"),
    header: List[str] = typer.Option([], "--header", "-H", help="Header KEY=VALUE (repeatable)"),
    param: List[str] = typer.Option([], "--param", "-p", help="Query param KEY=VALUE (not sent)"),
    payload: str = typer.Option("{}", "--payload", "-d", help="JSON object request body"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Per-attempt timeout"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retries after first attempt"),
    region: List[str] = typer.Option([], "--region", "-r", help="Region rotated into x-region (repeatable)"),
) -> None:
    """Send an HTTP request with retries and print the JSON envelope."""
    cfg = get_settings().dispatch

    try:
        body: Any = json.loads(payload)
    except ValueError as e:
        typer.echo(f"Error: --payload is not valid JSON: {e}", err=True)
        raise typer.Exit(code=EXIT_INVALID_ARGUMENT)

    try:
        envelope = dispatch_request(
            url,
            method=method or cfg.method,
            headers=parse_pairs(header, "--header") if header else dict(cfg.headers),
            params=parse_pairs(param, "--param"),
            payload=body,
            timeout_ms=cfg.timeout_ms if timeout_ms is None else timeout_ms,
            max_retries=cfg.max_retries if max_retries is None else max_retries,
            allowed_regions=region or None,
            dispatcher=RetryingDispatcher.from_settings(),
        )
    except InvalidArgument as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_INVALID_ARGUMENT)
    except RetryExhausted as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(envelope))


@secret_app.command("get")
def secret_get(
    name: str = typer.Argument(..., help="Secret name"),
    role: Optional[str] = typer.Option(None, "--role", help="JWT role claim of the caller"),
    user: str = typer.Option("", "--user", help="Database user of the caller"),
) -> None:
    """Print a decrypted secret (privileged callers only)."""
    settings = get_settings()
    identity = Identity(current_user=user, claims={"role": role} if role else {})
    accessor = SecretAccessor(
        _DeferredStore(),
        privileged_roles=settings.vault.privileged_roles,
        admin_users=settings.vault.admin_users,
    )

    try:
        value = accessor.fetch_secret(name, identity)
    except PermissionDenied as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_PERMISSION_DENIED)
    except DecryptionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if value is None:
        typer.echo(f"Error: Secret '{name}' not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(value)


@secret_app.command("set")
def secret_set(
    name: str = typer.Argument(..., help="Secret name"),
    value: str = typer.Argument(..., help="Secret value"),
    description: Optional[str] = typer.Option(None, "--description", help="Free-form description"),
) -> None:
    """Create a secret, or replace its value if it exists."""
    store = _open_store()
    try:
        store.create_secret(name, value, description or "")
        typer.echo(f"Created secret '{name}'")
    except SecretAlreadyExists:
        store.update_secret(name, value, description)
        typer.echo(f"Updated secret '{name}'")


@secret_app.command("delete")
def secret_delete(name: str = typer.Argument(..., help="Secret name")) -> None:
    """Delete a secret."""
    if not _open_store().delete_secret(name):
        typer.echo(f"Error: Secret '{name}' not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted secret '{name}'")


@secret_app.command("list")
def secret_list() -> None:
    """List secret names."""
    for name in _open_store().list_secret_names():
        typer.echo(name)


if __name__ == "__main__":
    app()
