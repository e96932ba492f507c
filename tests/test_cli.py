"""Tests for the command-line interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from socks_relay.cmd import cli
from socks_relay.core.config import DEFAULT_PORT, ProxyConfig
from socks_relay.core.lib.auth import CredentialTable, StaticCredentials
from socks_relay.core.network import NetworkInterface

runner = CliRunner()


class ServerRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[ProxyConfig, int, bool]] = []

    def __call__(self, config: ProxyConfig, num_processes: int = 1, show_stats: bool = False) -> None:
        self.calls.append((config, num_processes, show_stats))

    @property
    def config(self) -> ProxyConfig:
        assert len(self.calls) == 1
        return self.calls[0][0]


@pytest.fixture
def server(monkeypatch: pytest.MonkeyPatch) -> ServerRecorder:
    for name in ("LISTEN_HOST", "PORT", "AUTH_USER", "AUTH_PASS", "AUTH_FILE"):
        monkeypatch.delenv(name, raising=False)
    recorder = ServerRecorder()
    monkeypatch.setattr(cli, "create_proxy_server", recorder)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "is_local_address", lambda ip: ip != "192.0.2.1")
    return recorder


def test_version() -> None:
    result = runner.invoke(cli.app, [])
    assert cli.__version__ in result.output


def test_serve_defaults(server: ServerRecorder) -> None:
    result = runner.invoke(cli.app, ["serve"])

    assert result.exit_code == 0, result.output
    config, processes, show_stats = server.calls[0]
    assert config.host == "0.0.0.0"
    assert config.port == DEFAULT_PORT
    assert processes == 1
    assert not show_stats
    assert not config.reuse_port
    assert isinstance(config.authenticator, StaticCredentials)
    assert config.authenticator.validate("intern", "password123")


def test_serve_options(server: ServerRecorder) -> None:
    result = runner.invoke(
        cli.app,
        [
            "serve",
            "--host", "127.0.0.1",
            "--port", "1090",
            "-u", "alice",
            "--password", "secret",
            "--processes", "3",
            "--connect-timeout", "2.5",
            "-n", "192.0.2.53",
            "-n", "192.0.2.54",
        ],
    )

    assert result.exit_code == 0, result.output
    config, processes, _ = server.calls[0]
    assert (config.host, config.port) == ("127.0.0.1", 1090)
    assert processes == 3
    assert config.reuse_port
    assert config.connect_timeout == 2.5
    assert config.nameservers == ("192.0.2.53", "192.0.2.54")
    assert config.authenticator.validate("alice", "secret")


def test_serve_reads_environment(server: ServerRecorder) -> None:
    result = runner.invoke(
        cli.app,
        ["serve"],
        env={"LISTEN_HOST": "127.0.0.1", "PORT": "2080", "AUTH_USER": "bob", "AUTH_PASS": "hunter2"},
    )

    assert result.exit_code == 0, result.output
    assert server.config.listen_address == "127.0.0.1:2080"
    assert server.config.authenticator.validate("bob", "hunter2")
    assert not server.config.authenticator.validate("intern", "password123")


def test_serve_does_not_log_username(server: ServerRecorder, log_messages: list[str]) -> None:
    result = runner.invoke(cli.app, ["serve", "-u", "zelda", "--password", "secret"])

    assert result.exit_code == 0, result.output
    assert log_messages
    assert not any("zelda" in message for message in log_messages)


def test_serve_credentials_file(server: ServerRecorder, tmp_path: Path) -> None:
    path = tmp_path / "users.txt"
    path.write_text("alice:one\nbob:two\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["serve", "--credentials-file", str(path)])

    assert result.exit_code == 0, result.output
    assert isinstance(server.config.authenticator, CredentialTable)
    assert server.config.authenticator.validate("bob", "two")


def test_serve_rejects_empty_credentials_file(server: ServerRecorder, tmp_path: Path) -> None:
    path = tmp_path / "users.txt"
    path.write_text("# nobody yet\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["serve", "--credentials-file", str(path)])

    assert result.exit_code != 0
    assert server.calls == []


def test_serve_rejects_malformed_credentials_file(server: ServerRecorder, tmp_path: Path) -> None:
    path = tmp_path / "users.txt"
    path.write_text("alice\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["serve", "--credentials-file", str(path)])

    assert result.exit_code == 1
    assert server.calls == []


def test_serve_rejects_foreign_host(server: ServerRecorder) -> None:
    result = runner.invoke(cli.app, ["serve", "--host", "192.0.2.1"])

    assert result.exit_code == 1
    assert "not an address of this machine" in result.output
    assert server.calls == []


def test_serve_rejects_foreign_outbound_address(server: ServerRecorder) -> None:
    result = runner.invoke(cli.app, ["serve", "--outbound-address", "192.0.2.1"])

    assert result.exit_code == 1
    assert server.calls == []


def test_serve_rejects_bad_port(server: ServerRecorder) -> None:
    result = runner.invoke(cli.app, ["serve", "--port", "70000"])

    assert result.exit_code == 2
    assert server.calls == []


def test_interfaces(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = []

    def list_interfaces(include_down: bool = False) -> list[NetworkInterface]:
        seen.append(include_down)
        return [
            NetworkInterface("eth0", "192.0.2.10", 4, True, False),
            NetworkInterface("lo", "127.0.0.1", 4, True, True),
        ]

    monkeypatch.setattr(cli, "list_interfaces", list_interfaces)

    result = runner.invoke(cli.app, ["interfaces", "--all"])

    assert result.exit_code == 0, result.output
    assert "192.0.2.10" in result.output
    assert "127.0.0.1" in result.output
    assert seen == [True]
