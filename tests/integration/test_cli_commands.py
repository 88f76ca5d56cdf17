"""Integration tests for CLI commands."""

import importlib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from termvault.cli.main import app
from termvault.credentials import CredentialBroker
from termvault.storage import ConnectionRepository, SSHKeyStore
from termvault.vault import VaultManager

cli_main = importlib.import_module("termvault.cli.main")

runner = CliRunner()

PASSWORD = "correct horse battery"
NEW_PASSWORD = "a brand new password"


def invoke(config_dir: Path, *args: str, input: str = None):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args], input=input)


@pytest.fixture
def initialized(config_dir: Path) -> Path:
    result = invoke(config_dir, "vault", "init", "--password", PASSWORD)
    assert result.exit_code == 0
    return config_dir


class TestVaultCommands:
    """Tests for vault init/status/change-password."""

    def test_init(self, config_dir):
        result = invoke(config_dir, "vault", "init", "--password", PASSWORD)

        assert result.exit_code == 0
        assert "Master password set up" in result.stdout
        assert (config_dir / "master.key").exists()

    def test_init_prompts(self, config_dir):
        result = invoke(config_dir, "vault", "init", input=f"{PASSWORD}\n{PASSWORD}\n")

        assert result.exit_code == 0
        assert VaultManager(config_dir).verify_password(PASSWORD)

    def test_init_twice(self, initialized):
        result = invoke(initialized, "vault", "init", "--password", PASSWORD)

        assert result.exit_code == 1
        assert "already set" in result.stdout

    def test_init_short_password(self, config_dir):
        result = invoke(config_dir, "vault", "init", "--password", "short")

        assert result.exit_code == 1
        assert not (config_dir / "master.key").exists()

    def test_status_unconfigured(self, config_dir):
        result = invoke(config_dir, "vault", "status")

        assert result.exit_code == 0
        assert "not configured" in result.stdout

    def test_status_configured(self, initialized):
        result = invoke(initialized, "vault", "status")

        assert result.exit_code == 0
        assert "configured" in result.stdout
        assert "AES-256-GCM" in result.stdout

    def test_change_password_re_encrypts(self, initialized, key_file):
        invoke(initialized, "conn", "add", "web", "--host", "example.com", "--user", "alice",
               "--secret", "hunter2", "--password", PASSWORD)
        invoke(initialized, "key", "add", "deploy", str(key_file),
               "--passphrase", "phrase", "--password", PASSWORD)

        result = invoke(initialized, "vault", "change-password",
                        "--password", PASSWORD, "--new-password", NEW_PASSWORD)

        assert result.exit_code == 0
        assert "Re-encrypted entries: 2" in result.stdout

        vm = VaultManager(initialized)
        vm.unlock(NEW_PASSWORD)
        key_store = SSHKeyStore(initialized)
        broker = CredentialBroker(vm, key_store=key_store)
        connection = ConnectionRepository(initialized).find_by_name("web")
        assert broker.session_secret(connection) == "hunter2"
        assert broker.resolve_key(key_store.find_key_by_name("deploy").id).passphrase == "phrase"

    def test_change_password_reports_failures(self, initialized):
        invoke(initialized, "conn", "add", "web", "--host", "example.com", "--user", "alice",
               "--secret", "hunter2", "--password", PASSWORD)
        repository = ConnectionRepository(initialized)
        connection = repository.find_by_name("web")
        connection.encrypted_password = "broken"
        repository.save()

        result = invoke(initialized, "vault", "change-password",
                        "--password", PASSWORD, "--new-password", NEW_PASSWORD)

        assert result.exit_code == 1
        assert "not re-encrypted" in result.stdout
        assert VaultManager(initialized).verify_password(NEW_PASSWORD)

    def test_change_password_wrong_old(self, initialized):
        result = invoke(initialized, "vault", "change-password",
                        "--password", "wrong password", "--new-password", NEW_PASSWORD)

        assert result.exit_code == 1
        assert VaultManager(initialized).verify_password(PASSWORD)


class TestConnectionCommands:
    """Tests for conn add/list/remove."""

    def test_add_encrypts_secret(self, initialized):
        result = invoke(initialized, "conn", "add", "web", "--host", "example.com", "--user", "alice",
                        "--secret", "hunter2", "--password", PASSWORD)

        assert result.exit_code == 0
        connection = ConnectionRepository(initialized).find_by_name("web")
        assert connection.encrypted_password
        assert "hunter2" not in (initialized / "connections.yaml").read_text()

    def test_add_without_secret_needs_no_vault(self, config_dir):
        result = invoke(config_dir, "conn", "add", "web", "--host", "example.com", "--user", "alice",
                        "--secret", "")

        assert result.exit_code == 0
        assert not ConnectionRepository(config_dir).find_by_name("web").has_secret

    def test_add_wrong_master_password(self, initialized):
        result = invoke(initialized, "conn", "add", "web", "--host", "example.com", "--user", "alice",
                        "--secret", "hunter2", "--password", "wrong password")

        assert result.exit_code == 1
        assert "Invalid master password" in result.stdout
        assert ConnectionRepository(initialized).find_by_name("web") is None

    def test_add_duplicate(self, config_dir):
        invoke(config_dir, "conn", "add", "web", "--host", "example.com", "--user", "alice", "--secret", "")
        result = invoke(config_dir, "conn", "add", "web", "--host", "other.com", "--user", "bob", "--secret", "")

        assert result.exit_code == 1
        assert "already exists" in result.stdout

    def test_add_public_key_needs_key(self, config_dir):
        result = invoke(config_dir, "conn", "add", "db", "--host", "db.example.com", "--user", "bob",
                        "--auth", "public_key", "--secret", "")

        assert result.exit_code == 1

    def test_add_with_stored_key(self, config_dir, key_file):
        invoke(config_dir, "key", "add", "deploy", str(key_file), "--passphrase", "")
        result = invoke(config_dir, "conn", "add", "db", "--host", "db.example.com", "--user", "bob",
                        "--auth", "public_key", "--ssh-key", "deploy", "--secret", "")

        assert result.exit_code == 0
        connection = ConnectionRepository(config_dir).find_by_name("db")
        assert connection.ssh_key_id == SSHKeyStore(config_dir).find_key_by_name("deploy").id

    def test_list(self, config_dir):
        invoke(config_dir, "conn", "add", "web", "--host", "example.com", "--user", "alice", "--secret", "")

        result = invoke(config_dir, "conn", "list")

        assert result.exit_code == 0
        assert "web" in result.stdout
        assert "alice@example.com:22" in result.stdout

    def test_list_empty(self, config_dir):
        result = invoke(config_dir, "conn", "list")

        assert result.exit_code == 0
        assert "No connections" in result.stdout

    def test_remove(self, config_dir):
        invoke(config_dir, "conn", "add", "web", "--host", "example.com", "--user", "alice", "--secret", "")

        result = invoke(config_dir, "conn", "remove", "web")

        assert result.exit_code == 0
        assert ConnectionRepository(config_dir).all() == []

    def test_remove_unknown(self, config_dir):
        result = invoke(config_dir, "conn", "remove", "nope")

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestKeyCommands:
    """Tests for key add/list."""

    def test_add_and_list(self, config_dir, key_file):
        result = invoke(config_dir, "key", "add", "deploy", str(key_file),
                        "--description", "CI key", "--passphrase", "")
        assert result.exit_code == 0

        result = invoke(config_dir, "key", "list")

        assert result.exit_code == 0
        assert "deploy" in result.stdout

    def test_add_copy(self, config_dir, key_file):
        result = invoke(config_dir, "key", "add", "deploy", str(key_file), "--copy", "--passphrase", "")

        assert result.exit_code == 0
        key = SSHKeyStore(config_dir).find_key_by_name("deploy")
        assert key.copied_to_user_dir
        assert Path(key.user_dir_path).exists()

    def test_add_missing_file(self, config_dir, tmp_path):
        result = invoke(config_dir, "key", "add", "gone", str(tmp_path / "gone"), "--passphrase", "")

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestConnectCommand:
    """Tests for connect, with the network replaced by a fake transport."""

    def test_connect(self, initialized, fakes, monkeypatch):
        transport = fakes.Transport(fakes.Channel([b"welcome\r\n"]))
        monkeypatch.setattr(cli_main, "transport_factory", lambda: transport)
        invoke(initialized, "conn", "add", "web", "--host", "example.com", "--user", "alice",
               "--secret", "hunter2", "--password", PASSWORD)

        result = invoke(initialized, "connect", "web", "--password", PASSWORD, input="ls\n")

        assert result.exit_code == 0
        assert transport.auth.password == "hunter2"
        assert "closed" in result.stdout
        assert ConnectionRepository(initialized).find_by_name("web").usage_count == 1

    def test_connect_auth_failure(self, initialized, fakes, monkeypatch):
        monkeypatch.setattr(cli_main, "transport_factory", lambda: fakes.Transport(fail_auth=True))
        invoke(initialized, "conn", "add", "web", "--host", "example.com", "--user", "alice",
               "--secret", "hunter2", "--password", PASSWORD)

        result = invoke(initialized, "connect", "web", "--password", PASSWORD)

        assert result.exit_code == 1
        assert "Authentication failed" in result.stdout

    def test_connect_unknown(self, config_dir):
        result = invoke(config_dir, "connect", "nope")

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestVersionCommand:
    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "Termvault v0.1.0" in result.stdout
