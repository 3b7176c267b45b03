"""Unit tests for CLI commands.

Tests CLI behavior using Click's CliRunner for isolated, fast testing.
Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from oidc_auth.auth.key_resolver import SigningKeyResolver
from oidc_auth.cli import cli

ROOT_KEY_B64 = "AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8="


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove any OIDC_AUTH_* variables from the environment."""
    for name in ("SECRET", "ROOT_ENCRYPTION_KEY", "LOG_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(f"OIDC_AUTH_{name}", raising=False)


@pytest.fixture
def patched_resolver(fake_issuer):
    """Make the discover command talk to FakeIssuer."""

    def factory(timeout_seconds: float) -> SigningKeyResolver:
        return SigningKeyResolver(timeout_seconds=timeout_seconds, transport=fake_issuer.transport())

    with patch("oidc_auth.cli.commands.discover.SigningKeyResolver", side_effect=factory):
        yield


class TestVersion:
    """Tests for --version flag."""

    @pytest.mark.parametrize("flag", ["--version", "-v"])
    def test_version_flag_shows_version(self, runner: CliRunner, flag: str) -> None:
        """Given --version or -v, prints the application name and version."""
        # Act
        result = runner.invoke(cli, [flag])

        # Assert
        assert result.exit_code == 0
        assert "oidc-auth 0.1.0" in result.output


class TestHelp:
    def test_root_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "serve" in result.output
        assert "discover" in result.output


class TestServe:
    """Tests for the serve command."""

    def test_missing_configuration_exits_1(self, runner: CliRunner, clean_env) -> None:
        """Given no environment and no config file, reports the missing fields."""
        # Act
        result = runner.invoke(cli, ["serve"])

        # Assert
        assert result.exit_code == 1
        assert "auth_secret" in result.output

    def test_missing_config_file_exits_1(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["serve", "--config", str(tmp_path / "absent.json")])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_valid_config_starts_uvicorn(self, runner: CliRunner, tmp_path: Path) -> None:
        # Arrange
        config_path = tmp_path / "config.json"
        config_path.write_text(
            json.dumps({"auth_secret": "s" * 32, "root_encryption_key": ROOT_KEY_B64}),
            encoding="utf-8",
        )

        # Act
        with patch("oidc_auth.cli.commands.serve.uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--config", str(config_path), "--port", "9999"])

        # Assert
        assert result.exit_code == 0, result.output
        run.assert_called_once()
        assert run.call_args.kwargs["port"] == 9999
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["log_level"] == "info"


class TestDiscover:
    """Tests for the discover command."""

    def test_lists_signing_keys(self, runner: CliRunner, fake_issuer, patched_resolver) -> None:
        # Act
        result = runner.invoke(cli, ["discover", "https://idp.example"])

        # Assert
        assert result.exit_code == 0, result.output
        assert "https://idp.example/jwks" in result.output
        assert "key-1  RSA  RS256" in result.output

    def test_resolves_requested_kid(self, runner: CliRunner, patched_resolver) -> None:
        result = runner.invoke(cli, ["discover", "https://idp.example", "--kid", "key-1"])

        assert result.exit_code == 0, result.output
        assert "kid 'key-1' resolves to a RSA key" in result.output

    def test_unknown_kid_exits_1(self, runner: CliRunner, patched_resolver) -> None:
        result = runner.invoke(cli, ["discover", "https://idp.example", "--kid", "missing"])

        assert result.exit_code == 1

    def test_unreachable_issuer_exits_1(self, runner: CliRunner, fake_issuer, patched_resolver) -> None:
        fake_issuer.status_code = 500

        result = runner.invoke(cli, ["discover", "https://idp.example"])

        assert result.exit_code == 1
        assert "HTTP 500" in result.output
