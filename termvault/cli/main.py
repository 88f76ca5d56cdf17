"""Termvault CLI - Remote shell client with an encrypted credential vault."""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config import Settings, configure, get_settings
from ..exceptions import (
    AuthenticationError,
    CryptoIntegrityError,
    FormatError,
    TermvaultError,
    VaultAlreadyExistsError,
)
from ..models import AuthMethod, ServerConnection, SSHKey
from ..utils.logging import setup_logging

app = typer.Typer(
    name="termvault",
    help="Remote shell client with an encrypted credential vault.",
    no_args_is_help=True,
)
vault_app = typer.Typer(help="Manage the master password.", no_args_is_help=True)
conn_app = typer.Typer(help="Manage saved connections.", no_args_is_help=True)
key_app = typer.Typer(help="Manage stored SSH keys.", no_args_is_help=True)
app.add_typer(vault_app, name="vault")
app.add_typer(conn_app, name="conn")
app.add_typer(key_app, name="key")

console = Console()

# Replaced in tests to avoid network access
transport_factory = None

PASSWORD_ENV = "TERMVAULT_MASTER_PASSWORD"


@app.callback()
def main_callback(
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        help="Configuration directory (default: ~/.termvault)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    ),
):
    """Remote shell client with an encrypted credential vault."""
    settings = Settings.from_env()
    if config_dir is not None:
        settings.config_dir = config_dir
    if log_level:
        settings.log_level = log_level
    configure(settings)
    setup_logging(level=settings.log_level, log_file=settings.log_file)


def _vault():
    from ..vault import VaultManager

    return VaultManager(get_settings().config_dir)


def _master_password(password: Optional[str]) -> str:
    if password is not None:
        return password
    return typer.prompt("Master password", hide_input=True)


def _unlock(password: Optional[str]):
    """Unlock the vault or exit with an error."""
    vm = _vault()
    if not vm.is_password_set():
        console.print("[red]Error: No master password set. Run 'termvault vault init' first.[/red]")
        raise typer.Exit(1)
    try:
        vm.unlock(_master_password(password))
    except AuthenticationError:
        console.print("[red]Error: Invalid master password[/red]")
        raise typer.Exit(1)
    except FormatError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    return vm


def _repositories():
    from ..storage import ConnectionRepository, SSHKeyStore

    config_dir = get_settings().config_dir
    return ConnectionRepository(config_dir), SSHKeyStore(config_dir)


# Vault commands


@vault_app.command("init")
def vault_init(
    password: Optional[str] = typer.Option(
        None,
        "--password", "-p",
        envvar=PASSWORD_ENV,
        help="Master password (prompted if omitted)",
    ),
):
    """
    Set up the master password.

    There is no recovery: losing the master password makes every stored
    secret unreadable.
    """
    vm = _vault()
    if password is None:
        password = typer.prompt("New master password", hide_input=True, confirmation_prompt=True)

    try:
        vm.setup_password(password)
    except VaultAlreadyExistsError:
        console.print(f"[red]Error: A master password is already set in {vm.config_dir}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        vm.clear()

    console.print("[green]Master password set up.[/green]")
    console.print(f"Record: {vm.record_path}")


@vault_app.command("status")
def vault_status():
    """Show whether a master password is set."""
    vm = _vault()
    console.print(f"\n[bold]Vault: {vm.config_dir}[/bold]")
    if not vm.is_password_set():
        console.print("  Status: [yellow]not configured[/yellow]")
        return

    try:
        record = vm.load_record()
    except FormatError as e:
        console.print(f"  Status: [red]corrupted ({e})[/red]")
        raise typer.Exit(1)

    console.print("  Status: [green]configured[/green]")
    console.print(f"  Algorithm: {record.algorithm}")
    console.print(f"  Key derivation: {record.key_derivation} ({record.iterations:,} iterations)")
    console.print(f"  Created: {record.created_at}")


@vault_app.command("change-password")
def vault_change_password(
    password: Optional[str] = typer.Option(
        None,
        "--password", "-p",
        envvar=PASSWORD_ENV,
        help="Current master password (prompted if omitted)",
    ),
    new_password: Optional[str] = typer.Option(
        None,
        "--new-password",
        help="New master password (prompted if omitted)",
    ),
):
    """
    Change the master password and re-encrypt every stored secret.

    Secrets are re-encrypted one by one. Entries that fail are reported and
    left encrypted under the old password.
    """
    from ..vault import SecretStore

    vm = _vault()
    if not vm.is_password_set():
        console.print("[red]Error: No master password set. Run 'termvault vault init' first.[/red]")
        raise typer.Exit(1)

    old_password = _master_password(password)
    if new_password is None:
        new_password = typer.prompt("New master password", hide_input=True, confirmation_prompt=True)

    try:
        rotation = vm.change_password(old_password, new_password)
    except AuthenticationError:
        console.print("[red]Error: Current master password is incorrect[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    secrets = SecretStore(vm.config)
    connections, key_store = _repositories()
    failures: list[tuple[str, str]] = []
    migrated = 0

    for connection in connections.all():
        try:
            secrets.re_encrypt_connection(connection, rotation.old_key, rotation.new_key)
            migrated += 1
        except (FormatError, CryptoIntegrityError) as e:
            failures.append((f"connection {connection.display_name}", str(e)))

    for ssh_key in key_store.all_keys():
        try:
            secrets.re_encrypt_ssh_key(ssh_key, rotation.old_key, rotation.new_key)
            migrated += 1
        except (FormatError, CryptoIntegrityError) as e:
            failures.append((f"SSH key {ssh_key.name}", str(e)))

    connections.save()
    key_store.save()
    rotation.finish()
    vm.clear()

    console.print("[green]Master password changed.[/green]")
    console.print(f"  Re-encrypted entries: {migrated}")

    if failures:
        table = Table(title="Entries not re-encrypted")
        table.add_column("Entry", style="cyan")
        table.add_column("Error", style="red")
        for entry, error in failures:
            table.add_row(entry, error)
        console.print(table)
        raise typer.Exit(1)


# Connection commands


@conn_app.command("add")
def conn_add(
    name: str = typer.Argument(..., help="Connection name"),
    host: str = typer.Option(..., "--host", "-H", help="Host name or address"),
    username: str = typer.Option(..., "--user", "-u", help="Remote user name"),
    port: int = typer.Option(22, "--port", help="SSH port"),
    auth: AuthMethod = typer.Option(
        AuthMethod.PASSWORD,
        "--auth",
        help="Authentication method",
    ),
    key_path: Optional[Path] = typer.Option(
        None,
        "--key",
        help="Private key file (public_key auth)",
    ),
    ssh_key: Optional[str] = typer.Option(
        None,
        "--ssh-key",
        help="Name of a stored SSH key (public_key auth)",
    ),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Group name"),
    secret: Optional[str] = typer.Option(
        None,
        "--secret",
        help="Password or key passphrase (prompted if omitted; empty for none)",
    ),
    password: Optional[str] = typer.Option(
        None,
        "--password", "-p",
        envvar=PASSWORD_ENV,
        help="Master password (prompted if needed)",
    ),
):
    """Save a new connection."""
    from ..vault import SecretStore

    connections, key_store = _repositories()
    if connections.find_by_name(name):
        console.print(f"[red]Error: Connection already exists: {name}[/red]")
        raise typer.Exit(1)

    connection = ServerConnection(
        name=name,
        host=host,
        username=username,
        port=port,
        auth_method=auth,
        private_key_path=str(key_path) if key_path else None,
        group=group,
    )

    if ssh_key:
        stored = key_store.find_key_by_name(ssh_key)
        if stored is None:
            console.print(f"[red]Error: SSH key not found: {ssh_key}[/red]")
            raise typer.Exit(1)
        connection.ssh_key_id = stored.id

    if auth is AuthMethod.PUBLIC_KEY and not (key_path or ssh_key):
        console.print("[red]Error: public_key auth needs --key or --ssh-key[/red]")
        raise typer.Exit(1)

    if secret is None:
        label = "Key passphrase" if auth is AuthMethod.PUBLIC_KEY else "Connection password"
        secret = typer.prompt(label, default="", hide_input=True, show_default=False)

    if secret:
        vm = _unlock(password)
        secrets = SecretStore(vm.config)
        if auth is AuthMethod.PUBLIC_KEY:
            secrets.store_key_passphrase(connection, secret, vm.require_key())
        else:
            secrets.store_password(connection, secret, vm.require_key())
        vm.clear()

    connections.add(connection)
    connections.save()
    console.print(f"[green]Saved connection {name} ({connection.address})[/green]")


@conn_app.command("list")
def conn_list():
    """List saved connections."""
    connections, _ = _repositories()
    entries = connections.all()
    if not entries:
        console.print("[yellow]No connections saved.[/yellow]")
        return

    table = Table(title=f"Connections ({len(entries)})")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Auth")
    table.add_column("Group")
    table.add_column("Secret", justify="center")
    table.add_column("Used", justify="right")

    for connection in entries:
        table.add_row(
            connection.name,
            connection.address,
            connection.auth_method.value,
            connection.group or "",
            "yes" if connection.has_secret else "no",
            str(connection.usage_count),
        )

    console.print(table)


@conn_app.command("remove")
def conn_remove(
    name: str = typer.Argument(..., help="Connection name"),
):
    """Delete a saved connection."""
    connections, _ = _repositories()
    connection = connections.find_by_name(name)
    if connection is None:
        console.print(f"[red]Error: Connection not found: {name}[/red]")
        raise typer.Exit(1)

    connections.remove(connection.id)
    connections.save()
    console.print(f"[green]Removed connection {name}[/green]")


# Key commands


@key_app.command("add")
def key_add(
    name: str = typer.Argument(..., help="Key name"),
    key_path: Path = typer.Argument(..., help="Private key file"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    copy: bool = typer.Option(
        False,
        "--copy",
        help="Copy the key into the configuration directory",
    ),
    passphrase: Optional[str] = typer.Option(
        None,
        "--passphrase",
        help="Key passphrase (prompted if omitted; empty for none)",
    ),
    password: Optional[str] = typer.Option(
        None,
        "--password", "-p",
        envvar=PASSWORD_ENV,
        help="Master password (prompted if needed)",
    ),
):
    """Register an SSH private key."""
    from ..vault import SecretStore

    if not key_path.is_file():
        console.print(f"[red]Error: File not found: {key_path}[/red]")
        raise typer.Exit(1)

    _, key_store = _repositories()
    if key_store.find_key_by_name(name):
        console.print(f"[red]Error: SSH key already exists: {name}[/red]")
        raise typer.Exit(1)

    ssh_key = SSHKey(name=name, key_path=str(key_path.resolve()), description=description)

    if passphrase is None:
        passphrase = typer.prompt("Key passphrase", default="", hide_input=True, show_default=False)

    if passphrase:
        vm = _unlock(password)
        SecretStore(vm.config).store_ssh_key_passphrase(ssh_key, passphrase, vm.require_key())
        vm.clear()

    if copy:
        try:
            target = key_store.copy_key_to_user_dir(ssh_key)
        except TermvaultError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
        console.print(f"Copied to: {target}")

    key_store.add_key(ssh_key)
    key_store.save()
    console.print(f"[green]Saved SSH key {name}[/green]")


@key_app.command("list")
def key_list():
    """List stored SSH keys."""
    _, key_store = _repositories()
    keys = key_store.all_keys()
    if not keys:
        console.print("[yellow]No SSH keys stored.[/yellow]")
        return

    table = Table(title=f"SSH keys ({len(keys)})")
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    table.add_column("Passphrase", justify="center")
    table.add_column("Description")

    for ssh_key in keys:
        table.add_row(
            ssh_key.name,
            ssh_key.effective_path,
            "yes" if ssh_key.encrypted_passphrase else "no",
            ssh_key.description or "",
        )

    console.print(table)


# Sessions


@app.command()
def connect(
    name: str = typer.Argument(..., help="Connection name"),
    password: Optional[str] = typer.Option(
        None,
        "--password", "-p",
        envvar=PASSWORD_ENV,
        help="Master password (prompted if needed)",
    ),
):
    """
    Open a shell on a saved connection.

    Remote output is written to stdout; each line read from stdin is sent
    to the remote shell.
    """
    from ..credentials import CredentialBroker
    from ..ssh import SessionContext, SessionRegistry

    connections, key_store = _repositories()
    connection = connections.find_by_name(name)
    if connection is None:
        console.print(f"[red]Error: Connection not found: {name}[/red]")
        raise typer.Exit(1)

    vm = _unlock(password) if connection.has_secret or connection.ssh_key_id else _vault()
    broker = CredentialBroker(vm, key_store=key_store)

    try:
        secret = broker.session_secret(connection) if connection.has_secret else None
        registry = SessionRegistry(SessionContext(
            settings=get_settings(),
            transport_factory=transport_factory,
            key_resolver=broker.key_resolver(),
        ))
        session = registry.create(connection, secret)
        session.set_output_consumer(_write_output)
        session.connect()
    except TermvaultError as e:
        console.print(f"[red]Error: {e}[/red]")
        vm.clear()
        raise typer.Exit(1)

    connection.mark_used()
    connections.save()
    key_store.save()

    try:
        for line in sys.stdin:
            if not session.is_connected():
                break
            session.send_input(line.rstrip("\n") + "\r")
    except KeyboardInterrupt:
        pass
    finally:
        session.disconnect()
        session.wait_closed(timeout=2.0)
        registry.close_all()
        vm.clear()

    console.print(f"\n[dim]Connection to {connection.address} closed.[/dim]")


def _write_output(chunk: str) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


@app.command()
def version():
    """Show version information."""
    console.print(f"Termvault v{__version__}")
    console.print("Remote shell client with an encrypted credential vault")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
